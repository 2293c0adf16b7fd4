"""Time helpers shared by services.

All timestamps are stored as naive UTC datetimes.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def resolve_now(now: Optional[datetime]) -> datetime:
    """Use the explicit `now` when given, the wall clock otherwise."""
    return as_naive_utc(now) if now is not None else utcnow()


def seconds_between(start: datetime, end: datetime) -> float:
    """Signed seconds from start to end."""
    return (as_naive_utc(end) - as_naive_utc(start)).total_seconds()
