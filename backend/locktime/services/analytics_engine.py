"""Analytics engine for locked-time statistics and dashboard summaries."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from locktime.config import get_settings
from locktime.models.lock import Lock, LockStatus
from locktime.models.lock_history import LockHistoryEntry, action_rank_clause
from locktime.models.notification import Notification
from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.models.task import Task, TaskStatus
from locktime.models.user import User, UserStatus
from locktime.services.history_replay import total_locked_seconds, trailing_window
from locktime.services.task_service import TaskService
from locktime.utils.formatting import format_days_hours
from locktime.utils.timeutil import resolve_now


@dataclass
class LockedTimeTotal:
    """Total locked time over one trailing window."""
    window_days: int
    window_start: datetime
    window_end: datetime
    total_seconds: int

    @property
    def display(self) -> str:
        return format_days_hours(self.total_seconds)


@dataclass
class RecentLock:
    """Compact lock row for the dashboard."""
    lock_id: UUID
    relationship_id: UUID
    name: str
    status: str
    created_at: datetime


@dataclass
class DashboardSummary:
    """Everything the dashboard cards show for one user."""
    user_id: UUID
    generated_at: datetime
    locked_totals: List[LockedTimeTotal]
    task_counts: Dict[str, int]
    recent_locks: List[RecentLock] = field(default_factory=list)

    def total_for(self, window_days: int) -> Optional[LockedTimeTotal]:
        for total in self.locked_totals:
            if total.window_days == window_days:
                return total
        return None


@dataclass
class AdminStats:
    """Platform-wide counts for the admin panel."""
    users_total: int
    users_active: int
    relationships_total: int
    relationships_active: int
    locks_total: int
    locks_active: int
    tasks_total: int
    tasks_pending: int
    notifications_total: int


class AnalyticsEngine:
    """
    Analytics engine for lock history.

    Rules:
    - Read-only: never mutates locks, history or tasks
    - Deterministic: same history and same `now` give the same totals
    - Totals come from replaying history (see history_replay), never from
      the lock's remaining-time snapshot

    Outputs:
    - Locked-time totals over trailing windows (7/30 days by default)
    - Dashboard summary (totals, task counts, recent locks)
    - Admin statistics
    """

    def __init__(self, db: Session):
        """
        Initialize analytics engine.

        Args:
            db: Database session
        """
        self.db = db

    def relationship_ids_for(self, user_id: UUID) -> List[UUID]:
        """Ids of the user's active relationships (as keyholder or sub)."""
        rows = self.db.query(Relationship.id).filter(
            or_(Relationship.keyholder_id == user_id, Relationship.sub_id == user_id),
            Relationship.status == RelationshipStatus.ACTIVE,
        ).all()
        return [row[0] for row in rows]

    def locked_time_totals(
        self,
        user_id: UUID,
        windows_days: Optional[Sequence[int]] = None,
        now: Optional[datetime] = None,
    ) -> List[LockedTimeTotal]:
        """
        Total locked seconds per trailing window for a user's locks.

        Steps:
        1. Collect lock ids of the user's active relationships
        2. Load their history up to now, including entries before the
           window start (they may open an interval crossing into it)
        3. Replay per window

        Args:
            user_id: User ID
            windows_days: Window lengths in days (default from settings)
            now: Evaluation instant

        Returns:
            One LockedTimeTotal per window, in the order requested
        """
        now = resolve_now(now)
        if windows_days is None:
            windows_days = get_settings().stats_windows_days

        relationship_ids = self.relationship_ids_for(user_id)
        lock_ids = self._lock_ids(relationship_ids)
        entries = self._history_until(lock_ids, now)

        totals = []
        for days in windows_days:
            start, end = trailing_window(now, days)
            totals.append(
                LockedTimeTotal(
                    window_days=days,
                    window_start=start,
                    window_end=end,
                    total_seconds=total_locked_seconds(entries, window_end=end, now=now, window_start=start),
                )
            )
        return totals

    def lock_locked_seconds(
        self,
        lock_id: UUID,
        now: Optional[datetime] = None,
        window_start: Optional[datetime] = None,
    ) -> int:
        """Locked seconds of a single lock, optionally from window_start."""
        now = resolve_now(now)
        entries = self._history_until([lock_id], now)
        return total_locked_seconds(entries, window_end=now, now=now, window_start=window_start)

    def dashboard_summary(self, user_id: UUID, now: Optional[datetime] = None) -> DashboardSummary:
        """
        Build the dashboard for a user.

        Steps:
        1. Locked-time totals for the configured windows
        2. Task counts by status across active relationships
        3. Most recent locks
        """
        now = resolve_now(now)
        settings = get_settings()
        relationship_ids = self.relationship_ids_for(user_id)

        locked_totals = self.locked_time_totals(user_id, settings.stats_windows_days, now)
        task_counts = TaskService(self.db).count_by_status(relationship_ids)

        recent_locks: List[RecentLock] = []
        if relationship_ids:
            rows = (
                self.db.query(Lock)
                .filter(Lock.relationship_id.in_(relationship_ids))
                .order_by(Lock.created_at.desc())
                .limit(settings.recent_items_limit)
                .all()
            )
            recent_locks = [
                RecentLock(
                    lock_id=lock.id,
                    relationship_id=lock.relationship_id,
                    name=lock.name,
                    status=lock.status.value,
                    created_at=lock.created_at,
                )
                for lock in rows
            ]

        return DashboardSummary(
            user_id=user_id,
            generated_at=now,
            locked_totals=locked_totals,
            task_counts=task_counts,
            recent_locks=recent_locks,
        )

    def admin_stats(self) -> AdminStats:
        """Counts across the whole platform."""
        return AdminStats(
            users_total=self.db.query(User).count(),
            users_active=self.db.query(User).filter(User.status == UserStatus.ACTIVE).count(),
            relationships_total=self.db.query(Relationship).count(),
            relationships_active=self.db.query(Relationship).filter(
                Relationship.status == RelationshipStatus.ACTIVE
            ).count(),
            locks_total=self.db.query(Lock).count(),
            locks_active=self.db.query(Lock).filter(Lock.status == LockStatus.ACTIVE).count(),
            tasks_total=self.db.query(Task).count(),
            tasks_pending=self.db.query(Task).filter(Task.status == TaskStatus.PENDING).count(),
            notifications_total=self.db.query(Notification).count(),
        )

    def _lock_ids(self, relationship_ids: List[UUID]) -> List[UUID]:
        if not relationship_ids:
            return []
        rows = self.db.query(Lock.id).filter(Lock.relationship_id.in_(relationship_ids)).all()
        return [row[0] for row in rows]

    def _history_until(self, lock_ids: List[UUID], now: datetime) -> List[LockHistoryEntry]:
        if not lock_ids:
            return []
        return (
            self.db.query(LockHistoryEntry)
            .filter(
                LockHistoryEntry.lock_id.in_(lock_ids),
                LockHistoryEntry.created_at <= now,
            )
            .order_by(LockHistoryEntry.created_at.asc(), action_rank_clause())
            .all()
        )
