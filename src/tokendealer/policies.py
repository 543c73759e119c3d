import inspect
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable, Union

from .state import UsageRecord

# Defaults used when inspect.signature cannot determine argument counts
DEFAULT_WAIT_FN_ARGC = 2  # wait_fn(token, wait_seconds)

# Wait functions receive the token at 2+ args
WAIT_FN_WITH_TOKEN_ARGC = 2


def _count_positional_args(fn, default: int) -> int:
    """Return count of positional params for fn; fall back to default on failure."""
    try:
        sig = inspect.signature(fn)
        return len(
            [
                p
                for p in sig.parameters.values()
                if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            ]
        )
    except (TypeError, ValueError):
        return default


# ---------- token selection ----------


@dataclass
class Choice:
    token: str
    usage: UsageRecord
    overall_usage: dict[str, UsageRecord]


def _prefer(candidate: UsageRecord, incumbent: UsageRecord) -> bool:
    """True when candidate should replace the incumbent; ties keep the incumbent."""
    if incumbent.exhausted and candidate.exhausted:
        # prefer the one that resets sooner
        return candidate.reset_at < incumbent.reset_at
    if incumbent.exhausted != candidate.exhausted:
        return incumbent.exhausted
    return candidate.inflight < incumbent.inflight


def choose_token(tokens: Sequence[str], snapshot: dict[str, UsageRecord]) -> Choice:
    """Pick the best token from a usage snapshot, scanning tokens left to right.

    Non-exhausted tokens beat exhausted ones. Among non-exhausted tokens the
    lowest inflight count wins, among exhausted ones the earliest reset. Ties keep
    the earlier token in the list, which gives round-robin under equal load.
    """
    if not tokens:
        raise ValueError("tokens is empty")
    best = tokens[0]
    for token in tokens[1:]:
        if _prefer(snapshot[token], snapshot[best]):
            best = token
    return Choice(token=best, usage=snapshot[best], overall_usage=snapshot)


# ---------- wait policies ----------


class WaitPolicy:
    """Decides whether a call should sleep until the chosen exhausted token resets."""

    def should_wait(self, token: str, wait_seconds: float) -> bool:
        return False


class NeverWait(WaitPolicy):
    pass


class AlwaysWait(WaitPolicy):
    def should_wait(self, token: str, wait_seconds: float) -> bool:
        return True


class MaxWaitPolicy(WaitPolicy):
    """Wait only when the token resets within max_seconds."""

    def __init__(self, max_seconds: float):
        if max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        self.max_seconds = max_seconds

    def should_wait(self, token: str, wait_seconds: float) -> bool:
        return wait_seconds <= self.max_seconds


class FunctionalWaitPolicy(WaitPolicy):
    """Wrap a user-supplied wait function.

    Accepted function signatures:
        - wait_fn(token, wait_seconds) -> bool
        - wait_fn(wait_seconds) -> bool
    """

    def __init__(self, wait_fn: Callable):
        self.wait_fn = wait_fn

    def should_wait(self, token, wait_seconds):
        argc = _count_positional_args(self.wait_fn, DEFAULT_WAIT_FN_ARGC)
        if argc >= WAIT_FN_WITH_TOKEN_ARGC:
            return bool(self.wait_fn(token, wait_seconds))
        return bool(self.wait_fn(wait_seconds))


def coerce_wait_policy(wait: Union[object, None]) -> WaitPolicy:
    """Turn None | bool | int | WaitPolicy | callable into a WaitPolicy.

    Accepted inputs:
      - None / False -> NeverWait
      - True         -> AlwaysWait
      - int          -> truthiness, as for bool (0 never waits, 1 always waits)
      - WaitPolicy instance (returned as-is)
      - callable: wait_fn(token, wait_seconds) or wait_fn(wait_seconds)
    """
    if wait is None or wait is False:
        return NeverWait()
    if wait is True:
        return AlwaysWait()
    if isinstance(wait, int):
        return AlwaysWait() if wait else NeverWait()
    if isinstance(wait, WaitPolicy):
        return wait
    if callable(wait):
        return FunctionalWaitPolicy(wait)
    raise TypeError("wait must be None, a bool or int, a WaitPolicy, or a callable")
