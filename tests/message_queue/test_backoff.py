"""
Tests for retry backoff.
"""
import datetime as dt

import pytest

from venuebot.message_queue.backoff import compute_backoff, retry_delay


class TestComputeBackoff:
    """Tests for the bounded exponential delay."""

    @pytest.mark.parametrize(
        "attempts,expected",
        [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (5, 32.0)],
    )
    def test_doubles_per_attempt(self, attempts, expected):
        assert compute_backoff(attempts, 1.0, 3600.0) == expected

    def test_capped_by_max_backoff(self):
        assert compute_backoff(5, 1.0, 10.0) == 10.0

    def test_exponent_is_capped(self):
        """Attempts beyond the cap stop growing the delay."""
        assert compute_backoff(6, 1.0, 3600.0) == 64.0
        assert compute_backoff(50, 1.0, 3600.0) == 64.0

    def test_negative_attempts_treated_as_zero(self):
        assert compute_backoff(-3, 0.5, 60.0) == 0.5

    def test_non_decreasing(self):
        delays = [compute_backoff(n, 0.5, 60.0) for n in range(20)]
        assert delays == sorted(delays)
        assert all(0 <= d <= 60.0 for d in delays)


class TestRetryDelay:
    """Tests for backoff combined with an upstream retry_after."""

    def test_without_retry_after(self):
        assert retry_delay(1, 1.0, 60.0) == dt.timedelta(seconds=2)

    def test_retry_after_lower_bounds_delay(self):
        assert retry_delay(1, 1.0, 60.0, retry_after=7) == dt.timedelta(seconds=7)

    def test_retry_after_below_backoff_is_ignored(self):
        assert retry_delay(4, 1.0, 60.0, retry_after=3) == dt.timedelta(seconds=16)

    def test_retry_after_not_capped(self):
        assert retry_delay(1, 1.0, 60.0, retry_after=120) == dt.timedelta(seconds=120)
