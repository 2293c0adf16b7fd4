"""
Services package.

Services contain business logic and data access for one domain each.

Services should:
    - Accept database session as parameter
    - Validate the command before touching any row
    - Write the state change and its history entry in one unit of work
    - Return data or raise LockTimeError subclasses

Pure computations (timer projection, history replay) live beside them as
plain functions and never touch the session.
"""

from locktime.services.timer_projection import (
    LockSnapshot,
    TimerProjection,
    countdown,
    project,
    project_lock,
    remaining_at,
)
from locktime.services.history_replay import (
    HistoryEvent,
    LockedInterval,
    replay_intervals,
    total_locked_seconds,
    totals_by_lock,
    trailing_window,
)
from locktime.services.notification_service import NotificationService
from locktime.services.user_service import UserService
from locktime.services.lock_service import LockService
from locktime.services.task_service import ReviewOutcome, TaskService
from locktime.services.relationship_service import RelationshipService
from locktime.services.analytics_engine import (
    AdminStats,
    AnalyticsEngine,
    DashboardSummary,
    LockedTimeTotal,
    RecentLock,
)

__all__ = [
    "LockSnapshot",
    "TimerProjection",
    "countdown",
    "project",
    "project_lock",
    "remaining_at",
    "HistoryEvent",
    "LockedInterval",
    "replay_intervals",
    "total_locked_seconds",
    "totals_by_lock",
    "trailing_window",
    "NotificationService",
    "UserService",
    "LockService",
    "ReviewOutcome",
    "TaskService",
    "RelationshipService",
    "AdminStats",
    "AnalyticsEngine",
    "DashboardSummary",
    "LockedTimeTotal",
    "RecentLock",
]
