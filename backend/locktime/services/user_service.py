"""
User directory service.

Partner search for sending relationship requests, plus the admin views:
user listing and account status moderation.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from locktime.config import get_settings
from locktime.models.user import User, UserRole, UserStatus
from locktime.utils.invariants import (
    NotFoundError,
    check_is_admin,
    commit_or_raise,
    enum_value,
)
from locktime.utils.logging import get_logger
from locktime.utils.timeutil import resolve_now

logger = get_logger(__name__)


class UserService:
    """Service for user lookups, partner search and account moderation."""

    def __init__(self, db: Session, auto_commit: bool = True):
        """
        Initialize user service.

        Args:
            db: Database session
            auto_commit: Commit after each command
        """
        self.db = db
        self.auto_commit = auto_commit

    def get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": str(user_id)})
        return user

    def require_admin(self, user_id: UUID) -> User:
        """Load a user and check they are an administrator."""
        user = self.get_user(user_id)
        check_is_admin(user)
        return user

    def search_users(
        self,
        user_id: UUID,
        query: str,
        limit: Optional[int] = None,
    ) -> List[User]:
        """
        Find possible partners for a relationship request.

        Matches users of the opposite role, never the searcher, whose
        display name or country contains the query (case-insensitive).
        Queries shorter than the configured minimum return nothing.

        Args:
            user_id: Searching user
            query: Text to look for
            limit: Maximum results (default from settings)

        Returns:
            Matching users, ordered by display name
        """
        settings = get_settings()
        query = (query or "").strip()
        if len(query) < settings.user_search_min_length:
            return []
        if limit is None:
            limit = settings.user_search_limit

        searcher = self.get_user(user_id)
        target_role = UserRole(enum_value(searcher.role)).opposite
        pattern = f"%{query}%"

        return (
            self.db.query(User)
            .filter(
                User.role == target_role,
                User.id != user_id,
                or_(User.display_name.ilike(pattern), User.country.ilike(pattern)),
            )
            .order_by(User.display_name.asc())
            .limit(limit)
            .all()
        )

    def list_users(
        self,
        admin_id: UUID,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        query: Optional[str] = None,
    ) -> List[User]:
        """All users, newest first, with optional role, status and name/email filters. Admin only."""
        self.require_admin(admin_id)
        rows = self.db.query(User)
        if role is not None:
            rows = rows.filter(User.role == role)
        if status is not None:
            rows = rows.filter(User.status == status)
        if query:
            pattern = f"%{query.strip()}%"
            rows = rows.filter(or_(User.display_name.ilike(pattern), User.email.ilike(pattern)))
        return rows.order_by(User.created_at.desc()).all()

    def set_user_status(
        self,
        admin_id: UUID,
        user_id: UUID,
        status: UserStatus,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Change a user's account status (active, suspended or banned).

        Raises:
            PermissionDeniedError: If the actor is not an admin
            NotFoundError: If the user does not exist
        """
        now = resolve_now(now)
        self.require_admin(admin_id)
        user = self.get_user(user_id)
        previous = enum_value(user.status)

        user.status = UserStatus(enum_value(status))
        user.updated_at = now
        if self.auto_commit:
            commit_or_raise(self.db, "set_user_status")
        else:
            self.db.flush()

        logger.info(
            "user_status_changed",
            user_id=str(user_id),
            admin_id=str(admin_id),
            previous=previous,
            status=user.status.value,
        )
        return user
