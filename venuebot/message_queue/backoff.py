"""Bounded exponential backoff for queue retries."""

import datetime as dt
from typing import Optional

MAX_BACKOFF_EXPONENT = 6


def compute_backoff(
    attempts: int,
    min_backoff: float,
    max_backoff: float,
    cap_exponent: int = MAX_BACKOFF_EXPONENT,
) -> float:
    """
    Delay in seconds before the next attempt.

    delay = min(max_backoff, min_backoff * 2 ** min(attempts, cap_exponent))

    Attempts are clamped to [0, cap_exponent] before exponentiation, so the
    result is non-negative, non-decreasing in attempts and never above
    max_backoff.
    """
    exponent = min(max(attempts, 0), cap_exponent)
    delay = max(min_backoff, 0.0) * (2 ** exponent)
    return max(0.0, min(max_backoff, delay))


def retry_delay(
    attempts: int,
    min_backoff: float,
    max_backoff: float,
    retry_after: Optional[float] = None,
) -> dt.timedelta:
    """
    Backoff honoring an upstream minimum delay.

    A retry_after from the API lower-bounds the computed backoff; it is not
    capped by max_backoff because sending earlier would only be rejected
    again.
    """
    delay = compute_backoff(attempts, min_backoff, max_backoff)
    if retry_after is not None:
        delay = max(delay, float(retry_after))
    return dt.timedelta(seconds=delay)
