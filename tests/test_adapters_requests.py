from unittest.mock import MagicMock

import pytest

from tokendealer import AllTokensExhaustedError, AuthConfig, TokenDealer, UsageStore


def _response(status=200, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    return resp


def test_requests_injection_header():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    resp = _response()
    sess.request.return_value = resp

    auth = AuthConfig(header="X-Auth", scheme="Token")
    with dealer.requests_client(["T1", "T2"], session=sess, auth_config=auth) as client:
        r = client.get("https://example.com", headers={"Accept": "application/json"})
        assert r is resp
        args, kwargs = sess.request.call_args
        assert args == ("GET", "https://example.com")
        assert kwargs["headers"] == {"Accept": "application/json", "X-Auth": "Token T1"}


def test_requests_injection_query():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    sess.request.return_value = _response()
    auth = AuthConfig(in_="query", query_param="api_key")
    with dealer.requests_client(["T"], session=sess, auth_config=auth) as client:
        _ = client.post("https://example.com", params={"q": "x"})
        args, kwargs = sess.request.call_args
        assert kwargs["params"] == {"q": "x", "api_key": "T"}
        assert "Authorization" not in kwargs["headers"]


def test_requests_rotates_on_429():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    limited = _response(429, {"Retry-After": "30"})
    ok = _response(200)
    sess.request.side_effect = [limited, ok]

    with dealer.requests_client(["T1", "T2"], session=sess) as client:
        r = client.get("https://example.com")

    assert r is ok
    sent = [c.kwargs["headers"]["Authorization"] for c in sess.request.call_args_list]
    assert sent == ["Bearer T1", "Bearer T2"]
    limited.close.assert_called_once()
    usage = dealer.get_usage(["T1", "T2"])
    assert usage["T1"].exhausted
    assert usage["T1"].inflight == 0
    assert not usage["T2"].exhausted


def test_requests_remaining_zero_marks_but_returns():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(dealer._now() + 60)}
    resp = _response(200, headers)
    sess.request.return_value = resp

    with dealer.requests_client(["T1", "T2"], session=sess) as client:
        assert client.get("https://example.com") is resp
        assert sess.request.call_count == 1
        assert dealer.get_usage(["T1"])["T1"].exhausted
        client.get("https://example.com")
        assert sess.request.call_args.kwargs["headers"]["Authorization"] == "Bearer T2"


def test_requests_all_limited_raises():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    sess.request.side_effect = [_response(429), _response(429)]

    with dealer.requests_client(["T1", "T2"], session=sess) as client, pytest.raises(
        AllTokensExhaustedError
    ):
        client.get("https://example.com")
    assert sess.request.call_count == 2  # noqa: PLR2004


def test_requests_empty_token_sends_no_auth():
    dealer = TokenDealer(store=UsageStore())
    sess = MagicMock()
    sess.request.return_value = _response()
    with dealer.requests_client(session=sess) as client:
        client.delete("https://example.com")
    assert sess.request.call_args.kwargs["headers"] == {}


def test_requests_client_needs_session():
    client = TokenDealer(store=UsageStore()).requests_client(["T"])
    with pytest.raises(RuntimeError):
        client.get("https://example.com")
