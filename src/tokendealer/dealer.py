import asyncio
import dataclasses
import inspect
import logging
import math
import time
from collections.abc import Iterable
from typing import Any, Callable, Union

from .env import load_tokens_from_env
from .errors import AllTokensExhaustedError, TokenExhaustedRetry
from .policies import Choice, choose_token, coerce_wait_policy
from .state import UsageRecord
from .store import DEFAULT_GROUP, UsageStore, default_store, normalize_tokens

# Throttle for "sleeping until reset" notices, per (group, token) and shared via the store
SLEEP_NOTICE_INTERVAL = 5.0

# Tokens are credentials; log only a short suffix
LOG_SUFFIX_LEN = 4
LOG_MIN_MASKED_LEN = 8


def _label(token: str) -> str:
    if not token:
        return "''"
    if len(token) < LOG_MIN_MASKED_LEN:
        return "***"
    return f"***{token[-LOG_SUFFIX_LEN:]}"


class ExhaustSignal:
    """Second argument handed to the work function.

    ``exhaust(reset_at)`` marks the dealt token as rate limited until ``reset_at``
    (epoch seconds); calling it again overwrites the reset time. With
    ``retryable=True`` the call also raises ``TokenExhaustedRetry``, which aborts the
    current attempt; let it propagate and the dealer re-deals another token.
    """

    def __init__(self, dealer: "_Dealer", token: str, usage: UsageRecord):
        self._dealer = dealer
        self.token = token
        self.usage = usage
        self.calls = 0

    def __call__(self, reset_at: float, retryable: bool = False) -> None:
        if reset_at is not None and not math.isfinite(reset_at):
            raise ValueError(f"reset_at must be a finite timestamp, got {reset_at!r}")
        self.calls += 1
        self._dealer._mark_exhausted(self.token, self.usage, reset_at)
        if retryable:
            raise TokenExhaustedRetry(self)

    def exhaust_for(self, seconds: float, retryable: bool = False) -> None:
        self(self._dealer._now() + seconds, retryable)


# ---------- Base dealer (shared logic; waiting and invocation handled by subclasses) ----------


class _Dealer:
    def __init__(
        self,
        store: Union[UsageStore, None] = None,
        group: str = DEFAULT_GROUP,
        wait: Union[object, None] = False,
        on_exhausted: Union[Callable[[str, float], Any], None] = None,
        tokens: Union[Iterable[str], None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize a dealer.

        Args:
            store (UsageStore | None): usage state; defaults to the process-wide store
            group (str): namespace isolating usage state from unrelated callers
            wait (bool | WaitPolicy | callable | None): whether to sleep when every
                token is exhausted; a callable receives (token, wait_seconds)
            on_exhausted (callable | None): called with (token, reset_at) on every
                exhaust signal
            tokens (Iterable[str] | None): default tokens used when deal() gets None
            log_level (int | None): level applied to the "tokendealer" logger
        """
        self.store = store if store is not None else default_store
        self.group = group
        self.wait_policy = coerce_wait_policy(wait)
        self.on_exhausted = on_exhausted
        self.tokens: list[str] = list(tokens) if tokens else []
        self._logger = logging.getLogger("tokendealer")
        if log_level is not None:
            self._logger.setLevel(log_level)

    def _now(self) -> float:
        return self.store.now()

    def _resolve_tokens(self, tokens: Union[Iterable[str], None]) -> list[str]:
        if tokens is None:
            tokens = self.tokens
        return normalize_tokens(tokens)

    # public API
    def get_usage(self, tokens: Union[Iterable[str], None] = None) -> dict[str, UsageRecord]:
        return self.store.snapshot(self._resolve_tokens(tokens), self.group)

    @classmethod
    def from_env(
        cls,
        names=None,
        prefix: Union[str, None] = None,
        env_path: Union[str, None] = None,
        split_commas: bool = True,
        **kwargs,
    ):
        """Create a dealer whose default tokens are read from environment variables.

        Remaining kwargs are passed to the dealer constructor.
        """
        tokens = load_tokens_from_env(
            names=names, prefix=prefix, env_path=env_path, split_commas=split_commas
        )
        return cls(tokens=tokens, **kwargs)

    # internal
    def _acquire(self, tokens: list[str]) -> tuple[Choice, Union[float, None]]:
        """Choose a token; returns (choice, None) with inflight taken, or (choice, wait)."""
        with self.store.lock:
            chosen = choose_token(tokens, self.store.snapshot(tokens, self.group))
            if not chosen.usage.exhausted:
                chosen.usage.inflight += 1
                self._logger.debug(
                    f"group={self.group} dealt token={_label(chosen.token)} "
                    f"inflight={chosen.usage.inflight}"
                )
                return chosen, None
            return chosen, chosen.usage.reset_at - self._now()

    def _wait_or_fail(self, chosen: Choice, wait: float) -> float:
        """Return how long to sleep before re-selecting, or raise AllTokensExhaustedError."""
        if not self.wait_policy.should_wait(chosen.token, wait):
            with self.store.lock:
                usage = {t: dataclasses.replace(r) for t, r in chosen.overall_usage.items()}
            raise AllTokensExhaustedError(usage, token=chosen.token, wait=wait)
        delay = max(0.0, wait)
        now = self._now()
        notice_key = (self.group, chosen.token)
        with self.store.lock:
            notify = self.store.sleep_notices.get(notice_key, 0.0) <= now
            if notify:
                self.store.sleep_notices[notice_key] = now + SLEEP_NOTICE_INTERVAL
        if notify:
            self._logger.info(
                f"group={self.group} all tokens exhausted; waiting ~{delay:.2f}s "
                f"for token={_label(chosen.token)}"
            )
        return delay

    def _release(self, usage: UsageRecord) -> None:
        with self.store.lock:
            usage.inflight -= 1

    def _mark_exhausted(self, token: str, usage: UsageRecord, reset_at: float) -> None:
        with self.store.lock:
            usage.exhausted = True
            usage.reset_at = reset_at
        self._logger.info(f"group={self.group} token={_label(token)} exhausted until {reset_at}")
        if self.on_exhausted is not None:
            self.on_exhausted(token, reset_at)

    def _retrying(self, err: TokenExhaustedRetry, signal: ExhaustSignal) -> bool:
        # Markers from another deal() call's signal are not ours to swallow
        if err.signal is not signal:
            return False
        self._logger.debug(
            f"group={self.group} token={_label(signal.token)} exhausted mid-call; re-dealing"
        )
        return True


# ---------- Sync dealer (threads) ----------


class TokenDealer(_Dealer):
    def requests_client(self, tokens: Union[Iterable[str], None] = None, session=None, **kwargs):
        from .adapters import RequestsClientContext  # noqa: PLC0415

        return RequestsClientContext(self, tokens, session=session, **kwargs)

    def deal(self, tokens: Union[Iterable[str], None], work: Callable[[str, ExhaustSignal], Any]):
        """Run work(token, exhaust) with the best available token and return its result.

        Raises AllTokensExhaustedError when every token is exhausted and the wait
        policy declines; any other exception from work propagates unchanged.
        """
        tokens = self._resolve_tokens(tokens)
        while True:
            chosen, wait = self._acquire(tokens)
            if wait is not None:
                time.sleep(self._wait_or_fail(chosen, wait))
                continue
            signal = ExhaustSignal(self, chosen.token, chosen.usage)
            try:
                result = work(chosen.token, signal)
                if inspect.isawaitable(result):
                    if inspect.iscoroutine(result):
                        result.close()
                    raise TypeError(
                        "work returned an awaitable; use AsyncTokenDealer for async work"
                    )
                return result
            except TokenExhaustedRetry as err:
                if not self._retrying(err, signal):
                    raise
            finally:
                self._release(chosen.usage)


# ---------- Async dealer (asyncio) ----------


class AsyncTokenDealer(_Dealer):
    def httpx_client(self, tokens: Union[Iterable[str], None] = None, client=None, **kwargs):
        from .adapters import HttpxClientContext  # noqa: PLC0415

        return HttpxClientContext(self, tokens, client=client, **kwargs)

    def aiohttp_client(self, tokens: Union[Iterable[str], None] = None, session=None, **kwargs):
        from .adapters import AiohttpClientContext  # noqa: PLC0415

        return AiohttpClientContext(self, tokens, session=session, **kwargs)

    async def deal(
        self, tokens: Union[Iterable[str], None], work: Callable[[str, ExhaustSignal], Any]
    ):
        """Async deal(); work may be a coroutine function or a plain callable."""
        tokens = self._resolve_tokens(tokens)
        while True:
            chosen, wait = self._acquire(tokens)
            if wait is not None:
                await asyncio.sleep(self._wait_or_fail(chosen, wait))
                continue
            signal = ExhaustSignal(self, chosen.token, chosen.usage)
            try:
                result = work(chosen.token, signal)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except TokenExhaustedRetry as err:
                if not self._retrying(err, signal):
                    raise
            finally:
                self._release(chosen.usage)


# ---------- Functional helpers ----------


def deal(
    tokens: Union[Iterable[str], None],
    work: Callable[[str, ExhaustSignal], Any],
    *,
    group: str = DEFAULT_GROUP,
    wait: Union[object, None] = False,
    store: Union[UsageStore, None] = None,
    on_exhausted: Union[Callable[[str, float], Any], None] = None,
):
    dealer = TokenDealer(store=store, group=group, wait=wait, on_exhausted=on_exhausted)
    return dealer.deal(tokens, work)


async def adeal(
    tokens: Union[Iterable[str], None],
    work: Callable[[str, ExhaustSignal], Any],
    *,
    group: str = DEFAULT_GROUP,
    wait: Union[object, None] = False,
    store: Union[UsageStore, None] = None,
    on_exhausted: Union[Callable[[str, float], Any], None] = None,
):
    dealer = AsyncTokenDealer(store=store, group=group, wait=wait, on_exhausted=on_exhausted)
    return await dealer.deal(tokens, work)


def get_tokens_usage(
    tokens: Union[Iterable[str], None] = None,
    *,
    group: str = DEFAULT_GROUP,
    store: Union[UsageStore, None] = None,
) -> dict[str, UsageRecord]:
    """Current usage per token; unseen tokens get (and keep) a default record."""
    store = store if store is not None else default_store
    return store.snapshot(tokens, group)
