import email.utils
import time

from tokendealer import parse_retry_after, reset_from_headers


def test_retry_after_seconds():
    assert reset_from_headers(429, {"Retry-After": "2"}, now=100.0) == 102.0  # noqa: PLR2004
    assert reset_from_headers(503, {"retry-after": "5"}, now=100.0) == 105.0  # noqa: PLR2004


def test_retry_after_http_date():
    now = time.time()
    future = email.utils.formatdate(now + 2, usegmt=True)
    reset_at = reset_from_headers(429, {"Retry-After": future}, now=now)
    assert reset_at >= now + 1.5


def test_unparseable_retry_after_falls_back_to_one_second():
    assert parse_retry_after({"Retry-After": "soon"}, now=0.0) == 1.0
    assert parse_retry_after({}, now=0.0) == 0.0


def test_rate_limit_remaining_zero_uses_reset_header():
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"}
    assert reset_from_headers(403, headers, now=1.0) == 1700000000.0  # noqa: PLR2004
    assert reset_from_headers(200, headers, now=1.0) == 1700000000.0  # noqa: PLR2004


def test_not_limited_responses():
    assert reset_from_headers(200, {}, now=1.0) is None
    assert reset_from_headers(503, {}, now=1.0) is None
    headers = {"X-RateLimit-Remaining": "12", "X-RateLimit-Reset": "1700000000"}
    assert reset_from_headers(200, headers, now=1.0) is None


def test_bare_429_uses_default_retry_after():
    assert reset_from_headers(429, {}, now=10.0) == 11.0  # noqa: PLR2004
    assert reset_from_headers(429, {}, now=10.0, default_retry_after=30.0) == 40.0  # noqa: PLR2004


def test_non_finite_retry_after_falls_back_to_one_second():
    assert parse_retry_after({"Retry-After": "inf"}, now=0.0) == 1.0
    assert parse_retry_after({"Retry-After": "nan"}, now=0.0) == 1.0
    assert parse_retry_after({"Retry-After": "-inf"}, now=0.0) == 1.0
    assert reset_from_headers(429, {"Retry-After": "inf"}, now=10.0) == 11.0  # noqa: PLR2004


def test_non_finite_rate_limit_reset_is_ignored():
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "inf"}
    assert reset_from_headers(200, headers, now=10.0) is None
    assert reset_from_headers(429, headers, now=10.0) == 11.0  # noqa: PLR2004
