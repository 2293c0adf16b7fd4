"""Notification service for in-app notifications."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from locktime.config import get_settings
from locktime.models.notification import Notification
from locktime.utils.invariants import NotFoundError, PermissionDeniedError, commit_or_raise
from locktime.utils.logging import get_logger
from locktime.utils.timeutil import resolve_now

logger = get_logger(__name__)


class NotificationService:
    """
    Service for producing and managing notifications.

    Producers (lock, task and relationship services) call notify() inside
    their own unit of work, so the notification is committed together with
    the change it reports.
    """

    # Notification types
    LOCK_CREATED = "lock_created"
    LOCK_TIME_CHANGED = "lock_time_changed"
    LOCK_STATUS_CHANGED = "lock_status_changed"
    TASK_ASSIGNED = "task_assigned"
    TASK_SUBMITTED = "task_submitted"
    TASK_REVIEWED = "task_reviewed"
    RELATIONSHIP_REQUESTED = "relationship_request"
    RELATIONSHIP_ACCEPTED = "relationship_accepted"
    RELATIONSHIP_PAUSED = "relationship_paused"
    RELATIONSHIP_RESUMED = "relationship_resumed"
    RELATIONSHIP_ENDED = "relationship_ended"

    # Links
    LINK_LOCKS = "/locks"
    LINK_TASKS = "/tasks"
    LINK_RELATIONSHIPS = "/relationships"

    def __init__(self, db: Session, auto_commit: bool = True):
        """
        Initialize notification service.

        Args:
            db: Database session
            auto_commit: Commit after each public mutation
        """
        self.db = db
        self.auto_commit = auto_commit

    def notify(
        self,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """
        Add a notification to the current unit of work.

        Does not commit; the caller's commit publishes it.
        """
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link,
            created_at=resolve_now(now),
        )
        self.db.add(notification)
        logger.debug("notification_queued", user_id=str(user_id), type=type)
        return notification

    def mark_read(
        self,
        notification_id: UUID,
        user_id: UUID,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Mark one of the user's notifications read."""
        notification = self._get_owned(notification_id, user_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = resolve_now(now)
            self._commit("mark_notification_read")
        return notification

    def mark_all_read(self, user_id: UUID, now: Optional[datetime] = None) -> int:
        """
        Mark every unread notification of the user read.

        Returns:
            Number of notifications updated
        """
        read_at = resolve_now(now)
        unread = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        ).all()
        for notification in unread:
            notification.is_read = True
            notification.read_at = read_at
        self._commit("mark_all_notifications_read")
        logger.info("notifications_marked_read", user_id=str(user_id), count=len(unread))
        return len(unread)

    def delete(self, notification_id: UUID, user_id: UUID) -> None:
        """Delete one of the user's notifications."""
        notification = self._get_owned(notification_id, user_id)
        self.db.delete(notification)
        self._commit("delete_notification")

    def list_recent(self, user_id: UUID, limit: Optional[int] = None) -> List[Notification]:
        """Newest notifications first."""
        if limit is None:
            limit = get_settings().recent_items_limit
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )

    def unread_count(self, user_id: UUID) -> int:
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        ).count()

    def _get_owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id
        ).first()
        if not notification:
            raise NotFoundError(
                f"Notification {notification_id} not found",
                details={"notification_id": str(notification_id)},
            )
        if notification.user_id != user_id:
            raise PermissionDeniedError(
                "Notification belongs to another user",
                details={"notification_id": str(notification_id), "user_id": str(user_id)},
            )
        return notification

    def _commit(self, operation: str) -> None:
        if self.auto_commit:
            commit_or_raise(self.db, operation)
        else:
            self.db.flush()
