"""
Compute when a job must be performed again.

Recurring jobs follow their frequency, failing one-shot jobs are retried
with a delay of `5 + attempts ** 4` seconds: 6s, 21s, 86s, 261s, 630s...
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from errors import SchedulingInvariantViolation
from utils import apply_modifier, clock


def _utc(value: datetime) -> datetime:
    # datetimes sharing a tzinfo compare by wall clock, ambiguous during DST
    if value.tzinfo is None:
        value = value.replace(tzinfo=clock.tz)
    return value.astimezone(timezone.utc)


def retry_delay(attempts: int) -> timedelta:
    return timedelta(seconds=5 + attempts ** 4)


def next_retry_at(attempts: int, now: Optional[datetime] = None) -> datetime:
    now = now or clock.now()
    return now + retry_delay(attempts)


def next_occurrence(start: datetime, frequency: str, now: Optional[datetime] = None) -> datetime:
    """
    Apply `frequency` to `start` until the date is in the future.

    Raises SchedulingInvariantViolation if the frequency doesn't move the
    date forward, as the loop would never end.
    """
    now = _utc(now or clock.now())
    date = start.astimezone(clock.tz)
    while _utc(date) <= now:
        new_date = apply_modifier(date, frequency, clock.tz)
        if _utc(new_date) <= _utc(date):
            raise SchedulingInvariantViolation(
                f"frequency {frequency!r} is going backward (from {date.isoformat()})"
            )
        date = new_date
    return date


def check_frequency(frequency: str, start: Optional[datetime] = None):
    """Raise if the frequency is invalid or doesn't move time forward."""
    start = start or clock.now()
    if _utc(apply_modifier(start, frequency, clock.tz)) <= _utc(start):
        raise SchedulingInvariantViolation(f"frequency {frequency!r} is going backward")
