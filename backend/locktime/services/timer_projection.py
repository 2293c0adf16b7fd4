"""
Timer projection for lock countdowns.

Derives the time remaining on a lock from its stored snapshot and an
explicit `now`. Nothing here touches storage: the stored remaining_seconds
only changes through LockService transitions, while the displayed value is
recomputed from the snapshot on every tick.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional

from locktime.config import get_settings
from locktime.models.lock import LockStatus
from locktime.utils.formatting import DurationParts, split_duration
from locktime.utils.invariants import enum_value
from locktime.utils.timeutil import seconds_between


@dataclass(frozen=True)
class LockSnapshot:
    """The persisted fields a projection needs."""
    status: LockStatus
    remaining_seconds: int
    started_at: Optional[datetime]
    initial_duration_seconds: int

    @classmethod
    def from_lock(cls, lock) -> "LockSnapshot":
        """Build a snapshot from a Lock row (or any object with the same fields)."""
        return cls(
            status=LockStatus(enum_value(lock.status)),
            remaining_seconds=int(lock.remaining_seconds),
            started_at=lock.started_at,
            initial_duration_seconds=int(lock.initial_duration_seconds),
        )


@dataclass(frozen=True)
class TimerProjection:
    """Remaining time and progress of a lock at one instant."""
    status: LockStatus
    remaining_seconds: int
    elapsed_seconds: int  # seconds run since started_at (0 unless active)
    allocated_seconds: int
    completed_fraction: float  # 0.0 - 1.0

    @property
    def progress_percent(self) -> float:
        return self.completed_fraction * 100.0

    @property
    def parts(self) -> DurationParts:
        """Days/hours/minutes/seconds breakdown for countdown display."""
        return split_duration(self.remaining_seconds)

    @property
    def is_running(self) -> bool:
        return self.status == LockStatus.ACTIVE and self.remaining_seconds > 0


def elapsed_since_start(snapshot: LockSnapshot, now: datetime) -> int:
    """
    Whole seconds the lock has been running since started_at.

    Zero unless the lock is active. Clock skew (started_at in the future)
    counts as zero elapsed time.
    """
    if snapshot.status != LockStatus.ACTIVE or snapshot.started_at is None:
        return 0
    return max(0, math.floor(seconds_between(snapshot.started_at, now)))


def remaining_at(snapshot: LockSnapshot, now: datetime) -> int:
    """
    True remaining seconds at `now`.

    active: remaining - (now - started_at), floored at 0
    paused: the frozen snapshot
    completed / cancelled: 0
    """
    status = snapshot.status
    if status in (LockStatus.COMPLETED, LockStatus.CANCELLED):
        return 0
    if status == LockStatus.PAUSED:
        return max(0, snapshot.remaining_seconds)
    return max(0, snapshot.remaining_seconds - elapsed_since_start(snapshot, now))


def project(snapshot: LockSnapshot, now: datetime) -> TimerProjection:
    """
    Project a lock snapshot to `now`.

    Progress is measured against the allocated time,
    max(initial_duration, remaining_now + elapsed), so time added after
    the start never pushes the bar below 0% or past 100%.

    Args:
        snapshot: Persisted lock fields
        now: Evaluation instant

    Returns:
        TimerProjection with non-negative remaining seconds
    """
    remaining_now = remaining_at(snapshot, now)
    elapsed = elapsed_since_start(snapshot, now)
    allocated = max(snapshot.initial_duration_seconds, remaining_now + elapsed)

    if snapshot.status == LockStatus.COMPLETED:
        fraction = 1.0
    elif snapshot.status == LockStatus.CANCELLED:
        fraction = 0.0
    elif snapshot.initial_duration_seconds <= 0 or allocated <= 0:
        fraction = 0.0
    else:
        fraction = (allocated - remaining_now) / allocated

    return TimerProjection(
        status=snapshot.status,
        remaining_seconds=remaining_now,
        elapsed_seconds=elapsed,
        allocated_seconds=allocated,
        completed_fraction=min(1.0, max(0.0, fraction)),
    )


def project_lock(lock, now: datetime) -> TimerProjection:
    """Convenience wrapper taking a Lock row."""
    return project(LockSnapshot.from_lock(lock), now)


def countdown(
    snapshot: LockSnapshot,
    start: datetime,
    tick_seconds: Optional[int] = None,
    max_ticks: Optional[int] = None,
) -> Iterator[TimerProjection]:
    """
    Yield projections at a fixed cadence starting at `start`.

    tick_seconds defaults to the configured timer cadence. The caller owns
    the scheduling (a refresh loop or timer task sleeps between items);
    the generator stops once the countdown reaches 0 or after max_ticks
    items. Frozen states (paused, completed, cancelled)
    yield a single projection.
    """
    if tick_seconds is None:
        tick_seconds = get_settings().timer_tick_seconds
    if tick_seconds <= 0:
        raise ValueError("tick_seconds must be positive")

    tick = 0
    while max_ticks is None or tick < max_ticks:
        current = project(snapshot, start + timedelta(seconds=tick * tick_seconds))
        yield current
        if not current.is_running:
            return
        tick += 1
