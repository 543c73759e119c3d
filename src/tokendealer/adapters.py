import contextlib
from collections.abc import Iterable
from typing import Union

from .dealer import AsyncTokenDealer, ExhaustSignal, TokenDealer
from .ratelimit import TOO_MANY_REQUESTS, reset_from_headers
from .types import AuthConfig


def _prepare(auth_config: AuthConfig, token: str, kwargs: dict) -> dict:
    """Copy request kwargs with the token injected into headers or query params."""
    kw = dict(kwargs)
    headers = {**(kw.pop("headers", None) or {})}
    params = {**(kw.pop("params", None) or {})}
    auth_config.apply(token, headers, params)
    return {**kw, "headers": headers, "params": params}


class _ClientContext:
    def __init__(
        self,
        dealer,
        tokens: Union[Iterable[str], None] = None,
        auth_config: Union[AuthConfig, None] = None,
        default_retry_after: float = 1.0,
    ):
        self.dealer = dealer
        self.tokens = list(tokens) if tokens is not None else None
        self.auth_config = auth_config or AuthConfig()
        self.default_retry_after = default_retry_after

    def _reset_at(self, status, headers) -> Union[float, None]:
        return reset_from_headers(
            status,
            dict(headers or {}),
            now=self.dealer._now(),
            default_retry_after=self.default_retry_after,
        )


# ---------- requests (sync) ----------
class RequestsClientContext(_ClientContext):
    def __init__(
        self,
        dealer: TokenDealer,
        tokens: Union[Iterable[str], None] = None,
        session=None,
        auth_config: Union[AuthConfig, None] = None,
        default_retry_after: float = 1.0,
    ):
        super().__init__(dealer, tokens, auth_config, default_retry_after)
        self.session = session
        self._own_session = False

    def __enter__(self):
        if self.session is None:
            import requests  # noqa: PLC0415

            self.session = requests.Session()
            self._own_session = True
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._own_session:
            with contextlib.suppress(Exception):
                self.session.close()
            self.session = None
            self._own_session = False
        return False

    def request(self, method: str, url: str, **kwargs):
        import requests  # noqa: PLC0415

        if self.session is None:
            raise RuntimeError("Use 'with' to open the client or pass a session.")

        def _work(token: str, exhaust: ExhaustSignal):
            try:
                resp = self.session.request(method, url, **_prepare(self.auth_config, token, kwargs))
            except requests.RequestException as e:
                self.dealer._logger.warning(f"request error method={method} url={url}: {e}")
                raise
            reset_at = self._reset_at(resp.status_code, resp.headers)
            if reset_at is not None:
                if resp.status_code == TOO_MANY_REQUESTS:
                    with contextlib.suppress(Exception):
                        resp.close()
                    exhaust(reset_at, retryable=True)
                exhaust(reset_at)
            return resp

        return self.dealer.deal(self.tokens, _work)

    # sugar
    def get(self, url: str, **kw):
        return self.request("GET", url, **kw)

    def post(self, url: str, **kw):
        return self.request("POST", url, **kw)

    def put(self, url: str, **kw):
        return self.request("PUT", url, **kw)

    def delete(self, url: str, **kw):
        return self.request("DELETE", url, **kw)


# ---------- httpx (async) ----------
class HttpxClientContext(_ClientContext):
    def __init__(
        self,
        dealer: AsyncTokenDealer,
        tokens: Union[Iterable[str], None] = None,
        client=None,
        auth_config: Union[AuthConfig, None] = None,
        default_retry_after: float = 1.0,
    ):
        super().__init__(dealer, tokens, auth_config, default_retry_after)
        self.client = client
        self._own_client = False

    async def __aenter__(self):
        if self.client is None:
            import httpx  # noqa: PLC0415

            self.client = httpx.AsyncClient()
            self._own_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._own_client:
            with contextlib.suppress(Exception):
                await self.client.aclose()
            self.client = None
            self._own_client = False
        return False

    async def request(self, method: str, url: str, **kwargs):
        import httpx  # noqa: PLC0415

        if self.client is None:
            raise RuntimeError("Use 'async with' to open the client or pass a client.")

        async def _work(token: str, exhaust: ExhaustSignal):
            try:
                resp = await self.client.request(
                    method, url, **_prepare(self.auth_config, token, kwargs)
                )
            except httpx.TransportError as e:
                self.dealer._logger.warning(f"request error method={method} url={url}: {e}")
                raise
            reset_at = self._reset_at(resp.status_code, resp.headers)
            if reset_at is not None:
                if resp.status_code == TOO_MANY_REQUESTS:
                    with contextlib.suppress(Exception):
                        await resp.aclose()
                    exhaust(reset_at, retryable=True)
                exhaust(reset_at)
            return resp

        return await self.dealer.deal(self.tokens, _work)

    async def get(self, url, **kw):
        return await self.request("GET", url, **kw)

    async def post(self, url, **kw):
        return await self.request("POST", url, **kw)

    async def put(self, url, **kw):
        return await self.request("PUT", url, **kw)

    async def delete(self, url, **kw):
        return await self.request("DELETE", url, **kw)


# ---------- aiohttp (async) ----------
# A context manager per request keeps aiohttp's 'async with ... as resp' pattern.
class _AiohttpRequestCtx:
    def __init__(self, outer: "AiohttpClientContext", method: str, url: str, kwargs: dict):
        self.outer = outer
        self.method = method
        self.url = url
        self.kwargs = kwargs
        self._resp = None

    async def __aenter__(self):
        self._resp = await self.outer._send(self.method, self.url, self.kwargs)
        return self._resp

    async def __aexit__(self, exc_type, exc, tb):
        if self._resp is not None and not self._resp.closed:
            await self._resp.release()
        return False


class AiohttpClientContext(_ClientContext):
    def __init__(
        self,
        dealer: AsyncTokenDealer,
        tokens: Union[Iterable[str], None] = None,
        session=None,
        auth_config: Union[AuthConfig, None] = None,
        default_retry_after: float = 1.0,
    ):
        super().__init__(dealer, tokens, auth_config, default_retry_after)
        self.session = session
        self._own_session = False

    async def __aenter__(self):
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession()
            self._own_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._own_session:
            await self.session.close()
            self.session = None
            self._own_session = False
        return False

    async def _send(self, method: str, url: str, kwargs: dict):
        import aiohttp  # noqa: PLC0415

        if self.session is None:
            raise RuntimeError("Use 'async with' to open the client or pass a session.")

        async def _work(token: str, exhaust: ExhaustSignal):
            try:
                resp = await self.session.request(
                    method, url, **_prepare(self.auth_config, token, kwargs)
                )
            except aiohttp.ClientError as e:
                self.dealer._logger.warning(f"request error method={method} url={url}: {e}")
                raise
            reset_at = self._reset_at(resp.status, resp.headers)
            if reset_at is not None:
                if resp.status == TOO_MANY_REQUESTS:
                    with contextlib.suppress(Exception):
                        await resp.release()
                    exhaust(reset_at, retryable=True)
                exhaust(reset_at)
            return resp

        return await self.dealer.deal(self.tokens, _work)

    def request(self, method: str, url: str, **kwargs):
        return _AiohttpRequestCtx(self, method, url, kwargs)

    def get(self, url, **kw):
        return self.request("GET", url, **kw)

    def post(self, url, **kw):
        return self.request("POST", url, **kw)

    def put(self, url, **kw):
        return self.request("PUT", url, **kw)

    def delete(self, url, **kw):
        return self.request("DELETE", url, **kw)
