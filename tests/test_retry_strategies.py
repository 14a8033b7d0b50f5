"""Tests for the step retry policy."""

from datetime import datetime, timedelta

import pytest

from workflow.retry_strategies import RetryStrategy


NOW = datetime(2026, 3, 1, 9, 30)


# ─── Delay computation ───

@pytest.mark.unit
class TestComputeDelay:
    def test_exponential_minutes(self):
        s = RetryStrategy.exponential()
        assert [s.compute_delay(n) for n in (1, 2, 3)] == [
            timedelta(minutes=2),
            timedelta(minutes=4),
            timedelta(minutes=8),
        ]

    def test_custom_base(self):
        s = RetryStrategy.exponential(base=3)
        assert s.compute_delay(2) == timedelta(minutes=9)

    def test_custom_unit(self):
        s = RetryStrategy.exponential(unit=timedelta(seconds=10))
        assert s.compute_delay(3) == timedelta(seconds=80)

    def test_max_delay_caps(self):
        s = RetryStrategy.exponential(max_delay=timedelta(minutes=5))
        assert s.compute_delay(2) == timedelta(minutes=4)
        assert s.compute_delay(10) == timedelta(minutes=5)


# ─── Retry decision ───

@pytest.mark.unit
class TestShouldRetry:
    def test_requested_within_budget(self):
        assert RetryStrategy.should_retry(0, 3, True) is True
        assert RetryStrategy.should_retry(2, 3, True) is True

    def test_budget_exhausted(self):
        assert RetryStrategy.should_retry(3, 3, True) is False

    def test_not_requested(self):
        assert RetryStrategy.should_retry(0, 3, False) is False

    def test_zero_budget(self):
        assert RetryStrategy.should_retry(0, 0, True) is False


# ─── Next attempt ───

@pytest.mark.unit
class TestNextAttempt:
    def test_backoff(self):
        s = RetryStrategy.exponential()
        assert s.next_attempt_at(NOW, 1) == NOW + timedelta(minutes=2)
        assert s.next_attempt_at(NOW, 3) == NOW + timedelta(minutes=8)

    def test_explicit_delay_overrides(self):
        s = RetryStrategy.exponential()
        assert s.next_attempt_at(NOW, 3, timedelta(seconds=15)) == NOW + timedelta(seconds=15)

    def test_zero_explicit_delay_is_honoured(self):
        s = RetryStrategy.exponential()
        assert s.next_attempt_at(NOW, 2, timedelta(0)) == NOW

    def test_frozen(self):
        s = RetryStrategy.exponential()
        with pytest.raises(AttributeError):
            s.base = 10
