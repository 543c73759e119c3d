import email.utils as eut
import math
import time
from collections.abc import Mapping
from typing import Union

# Statuses whose Retry-After header describes a rate-limit window
RETRY_AFTER_STATUSES = frozenset({429, 503})
TOO_MANY_REQUESTS = 429


def _header(headers: Mapping[str, str], name: str) -> Union[str, None]:
    name = name.lower()
    for k, v in headers.items():
        if k.lower() == name:
            return v
    return None


def parse_retry_after(headers: Mapping[str, str], now: float) -> float:
    """Seconds to wait according to Retry-After; 0.0 when absent."""
    ra = _header(headers, "retry-after")
    if ra is None:
        return 0.0
    try:
        seconds = float(ra)
    except ValueError:
        # Try HTTP-date per RFC7231
        try:
            ts = eut.parsedate_to_datetime(ra)
        except (TypeError, ValueError):
            return 1.0
        # Round up to the next whole second to avoid truncation
        # making short delays appear too short
        return max(0.0, float(math.ceil(ts.timestamp() - now)))
    # inf and nan are as unusable as garbage
    if not math.isfinite(seconds):
        return 1.0
    return max(0.0, seconds)


def reset_from_headers(
    status_code: Union[int, None],
    headers: Mapping[str, str],
    now: Union[float, None] = None,
    default_retry_after: float = 1.0,
) -> Union[float, None]:
    """Return the epoch time a token recovers at, or None if the response is not limited.

    Understands Retry-After on 429/503 and the X-RateLimit-Remaining/X-RateLimit-Reset
    pair (reset in epoch seconds) used by GitHub-style APIs. A bare 429 falls back to
    now + default_retry_after.
    """
    now = time.time() if now is None else now
    if status_code in RETRY_AFTER_STATUSES:
        retry_after = parse_retry_after(headers, now)
        if retry_after > 0:
            return now + retry_after

    remaining = _header(headers, "x-ratelimit-remaining")
    reset = _header(headers, "x-ratelimit-reset")
    if remaining is not None and reset is not None:
        try:
            reset_at = float(reset)
            if int(remaining) <= 0 and math.isfinite(reset_at):
                return reset_at
        except ValueError:
            pass

    if status_code == TOO_MANY_REQUESTS:
        return now + default_retry_after
    return None
