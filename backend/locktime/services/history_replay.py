"""
Interval replay over lock history.

Turns append-only history entries into locked-time totals. A running
interval opens at `created`/`resumed` and closes at the next
`paused`/`completed`/`cancelled`; each interval is clipped to the
requested window before it is credited.
"""
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from locktime.models.lock_history import CLOSING_ACTIONS, OPENING_ACTIONS, LockAction, action_rank
from locktime.utils.invariants import enum_value
from locktime.utils.timeutil import as_naive_utc


@dataclass(frozen=True)
class HistoryEvent:
    """Minimal view of a history entry used by the replay."""
    lock_id: UUID
    action: LockAction
    created_at: datetime

    @classmethod
    def from_entry(cls, entry) -> "HistoryEvent":
        return cls(
            lock_id=entry.lock_id,
            action=LockAction(enum_value(entry.action)),
            created_at=as_naive_utc(entry.created_at),
        )


@dataclass(frozen=True)
class LockedInterval:
    """One running period of a lock; closed_at is None while still running."""
    lock_id: UUID
    opened_at: datetime
    closed_at: Optional[datetime]


def _as_events(entries: Iterable) -> List[HistoryEvent]:
    return [e if isinstance(e, HistoryEvent) else HistoryEvent.from_entry(e) for e in entries]


def group_by_lock(entries: Iterable) -> Dict[UUID, List[HistoryEvent]]:
    """Group entries per lock, each group sorted by timestamp then action_rank."""
    grouped: Dict[UUID, List[HistoryEvent]] = defaultdict(list)
    for event in _as_events(entries):
        grouped[event.lock_id].append(event)
    for events in grouped.values():
        events.sort(key=lambda e: (e.created_at, action_rank(e.action)))
    return dict(grouped)


def replay_intervals(events: List[HistoryEvent]) -> List[LockedInterval]:
    """
    Replay one lock's sorted events into running intervals.

    An opening event while an interval is already open keeps the earlier
    start. A closing event with nothing open is ignored. Time adjustments
    do not open or close intervals.

    Events sharing a timestamp are settled together: the lock is running
    after the instant when the open interval plus the openings outnumber
    the closings. A pause and resume at the same instant therefore gives
    the same result whichever order they are read in.
    """
    intervals: List[LockedInterval] = []
    opened_at: Optional[datetime] = None
    lock_id = events[0].lock_id if events else None

    for instant, same_instant in groupby(events, key=lambda e: e.created_at):
        actions = [event.action for event in same_instant]
        openings = sum(1 for action in actions if action in OPENING_ACTIONS)
        closings = sum(1 for action in actions if action in CLOSING_ACTIONS)
        running = (1 if opened_at is not None else 0) + openings - closings > 0

        if opened_at is None and running:
            opened_at = instant
        elif opened_at is not None and not running:
            intervals.append(LockedInterval(lock_id, opened_at, instant))
            opened_at = None

    if opened_at is not None:
        intervals.append(LockedInterval(lock_id, opened_at, None))

    return intervals


def clip_seconds(
    interval: LockedInterval,
    window_start: Optional[datetime],
    window_end: datetime,
    now: datetime,
) -> int:
    """
    Seconds of the interval that fall inside [window_start, window_end].

    A still-open interval runs until now, capped at window_end.
    """
    close = interval.closed_at if interval.closed_at is not None else min(now, window_end)
    close = min(close, window_end)
    open_ = interval.opened_at if window_start is None else max(interval.opened_at, window_start)
    return max(0, math.floor((close - open_).total_seconds()))


def total_locked_seconds(
    entries: Iterable,
    window_start: Optional[datetime],
    window_end: datetime,
    now: datetime,
) -> int:
    """
    Total running seconds across all locks inside a window.

    Entries may arrive in any order and may mix locks; entries before
    window_start still open intervals that cross into the window (only the
    in-window part is credited). Repeated pause/resume cycles count as
    independent intervals.

    Args:
        entries: LockHistoryEntry rows or HistoryEvent values
        window_start: Start of the window (None = unbounded)
        window_end: End of the window
        now: Current instant, caps still-open intervals

    Returns:
        Whole seconds locked within the window
    """
    window_end = as_naive_utc(window_end)
    now = as_naive_utc(now)
    if window_start is not None:
        window_start = as_naive_utc(window_start)
        if window_start >= window_end:
            return 0

    total = 0
    for events in group_by_lock(entries).values():
        for interval in replay_intervals(events):
            total += clip_seconds(interval, window_start, window_end, now)
    return total


def totals_by_lock(
    entries: Iterable,
    window_start: Optional[datetime],
    window_end: datetime,
    now: datetime,
) -> Dict[UUID, int]:
    """Like total_locked_seconds, broken down per lock id."""
    window_end = as_naive_utc(window_end)
    now = as_naive_utc(now)
    if window_start is not None:
        window_start = as_naive_utc(window_start)

    result: Dict[UUID, int] = {}
    for lock_id, events in group_by_lock(entries).items():
        result[lock_id] = sum(
            clip_seconds(interval, window_start, window_end, now)
            for interval in replay_intervals(events)
        )
    return result


def trailing_window(now: datetime, days: int) -> Tuple[datetime, datetime]:
    """(start, end) of the trailing window ending at now."""
    now = as_naive_utc(now)
    return now - timedelta(days=days), now
