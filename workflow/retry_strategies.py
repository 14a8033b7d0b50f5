"""Step retry policy.

Retries are scheduled, never slept: a failed step that asks for a retry
is parked in ``retrying`` with ``scheduled_time`` set to the next
eligible time, and the job scheduler calls the step processor back.

Default backoff is exponential in minutes, ``base ** retry_count``,
where ``retry_count`` is the count *after* the increment for the retry
being scheduled (first retry → 2 minutes, second → 4, third → 8).
An explicit delay returned by the step overrides the backoff.

Usage:
    strategy = RetryStrategy.exponential()
    if strategy.should_retry(step.retry_count, step.max_retries, result.should_retry):
        step.retry_count += 1
        step.scheduled_time = strategy.next_attempt_at(now, step.retry_count, result.retry_delay)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class RetryStrategy:
    """Exponential backoff used for step retries."""
    base: int = 2
    unit: timedelta = timedelta(minutes=1)
    max_delay: Optional[timedelta] = None

    @classmethod
    def exponential(
        cls,
        base: int = 2,
        unit: timedelta = timedelta(minutes=1),
        max_delay: Optional[timedelta] = None,
    ) -> 'RetryStrategy':
        return cls(base=base, unit=unit, max_delay=max_delay)

    def compute_delay(self, retry_count: int) -> timedelta:
        """Backoff delay for the ``retry_count``-th retry (1-based)."""
        delay = self.unit * (self.base ** retry_count)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    @staticmethod
    def should_retry(retry_count: int, max_retries: int, requested: bool) -> bool:
        """A retry happens only when requested and the budget is not spent."""
        return bool(requested) and retry_count < max_retries

    def next_attempt_at(
        self,
        now: datetime,
        retry_count: int,
        explicit_delay: Optional[timedelta] = None,
    ) -> datetime:
        """When the next attempt becomes eligible."""
        delay = explicit_delay if explicit_delay is not None else self.compute_delay(retry_count)
        return now + delay
