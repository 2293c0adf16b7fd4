"""Relationship service for pairing keyholders with subs."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.models.user import User, UserRole
from locktime.services.notification_service import NotificationService
from locktime.utils.invariants import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    check_is_admin,
    check_is_participant,
    check_transition_allowed,
    commit_or_raise,
    enum_value,
)
from locktime.utils.logging import get_logger
from locktime.utils.timeutil import resolve_now

logger = get_logger(__name__)


class RelationshipService:
    """
    Service for the relationship lifecycle.

    pending --accept--> active <--pause/resume--> paused
    pending --reject--> ended
    active | paused --end--> ended

    Either role may send a request; only its recipient accepts or rejects it.

    Every transition notifies the other participant.
    """

    def __init__(self, db: Session, auto_commit: bool = True):
        """
        Initialize relationship service.

        Args:
            db: Database session
            auto_commit: Commit after each command
        """
        self.db = db
        self.auto_commit = auto_commit
        self.notifications = NotificationService(db, auto_commit=False)

    def invite(
        self,
        initiator_id: UUID,
        target_id: UUID,
        now: Optional[datetime] = None,
    ) -> Relationship:
        """
        Send a pairing request from either role to a user of the opposite role.

        The initiator's role decides which side of the pairing each user
        takes; the target answers the request.

        Raises:
            ValidationError: If roles do not complement each other, an
                account is not active, or an open pairing exists
        """
        now = resolve_now(now)
        if initiator_id == target_id:
            raise ValidationError("Cannot send a request to yourself", details={"user_id": str(initiator_id)})
        initiator = self._get_user(initiator_id)
        target = self._get_user(target_id)

        initiator_role = UserRole(enum_value(initiator.role))
        if enum_value(target.role) != initiator_role.opposite.value:
            raise ValidationError(
                f"Requests from a {initiator_role.value} must go to a {initiator_role.opposite.value}",
                details={"initiator_id": str(initiator_id), "target_id": str(target_id)},
            )
        for user in (initiator, target):
            if not user.is_active:
                raise ValidationError(
                    "User account is not active",
                    details={"user_id": str(user.id), "status": enum_value(user.status)},
                )

        if initiator_role == UserRole.KEYHOLDER:
            keyholder, sub = initiator, target
        else:
            keyholder, sub = target, initiator

        existing = self.db.query(Relationship).filter(
            Relationship.keyholder_id == keyholder.id,
            Relationship.sub_id == sub.id,
            Relationship.status != RelationshipStatus.ENDED,
        ).first()
        if existing:
            raise ValidationError(
                "These users already have an open relationship",
                details={"relationship_id": str(existing.id)},
            )

        relationship = Relationship(
            keyholder_id=keyholder.id,
            sub_id=sub.id,
            initiated_by=initiator_id,
            status=RelationshipStatus.PENDING,
            created_at=now,
        )
        self.db.add(relationship)
        self.db.flush()

        self._notify(
            target_id,
            NotificationService.RELATIONSHIP_REQUESTED,
            "New relationship request",
            f"{initiator.display_name} sent you a relationship request",
            now,
        )
        self._commit("invite_relationship")

        logger.info(
            "relationship_requested",
            relationship_id=str(relationship.id),
            initiator_role=initiator_role.value,
        )
        return relationship

    def accept(self, relationship_id: UUID, actor_id: UUID, now: Optional[datetime] = None) -> Relationship:
        """The participant who received a pending request accepts it."""
        now = resolve_now(now)
        relationship = self._get_as_recipient(relationship_id, actor_id)
        check_transition_allowed("accept", relationship.status, [RelationshipStatus.PENDING], record_id=relationship.id)

        relationship.status = RelationshipStatus.ACTIVE
        relationship.started_at = now
        self._notify(
            relationship.partner_of(actor_id),
            NotificationService.RELATIONSHIP_ACCEPTED,
            "Request accepted",
            "Your relationship request was accepted",
            now,
        )
        return self._finish(relationship, "accept_relationship")

    def reject(self, relationship_id: UUID, actor_id: UUID, now: Optional[datetime] = None) -> Relationship:
        """The participant who received a pending request turns it down."""
        now = resolve_now(now)
        relationship = self._get_as_recipient(relationship_id, actor_id)
        check_transition_allowed("reject", relationship.status, [RelationshipStatus.PENDING], record_id=relationship.id)

        relationship.status = RelationshipStatus.ENDED
        relationship.ended_at = now
        self._notify(
            relationship.partner_of(actor_id),
            NotificationService.RELATIONSHIP_ENDED,
            "Request rejected",
            "Your relationship request was rejected",
            now,
        )
        return self._finish(relationship, "reject_relationship")

    def pause(self, relationship_id: UUID, actor_id: UUID, now: Optional[datetime] = None) -> Relationship:
        now = resolve_now(now)
        relationship = self._get_as_participant(relationship_id, actor_id)
        check_transition_allowed("pause", relationship.status, [RelationshipStatus.ACTIVE], record_id=relationship.id)

        relationship.status = RelationshipStatus.PAUSED
        self._notify(
            relationship.partner_of(actor_id),
            NotificationService.RELATIONSHIP_PAUSED,
            "Relationship paused",
            "The relationship was paused",
            now,
        )
        return self._finish(relationship, "pause_relationship")

    def resume(self, relationship_id: UUID, actor_id: UUID, now: Optional[datetime] = None) -> Relationship:
        now = resolve_now(now)
        relationship = self._get_as_participant(relationship_id, actor_id)
        check_transition_allowed("resume", relationship.status, [RelationshipStatus.PAUSED], record_id=relationship.id)

        relationship.status = RelationshipStatus.ACTIVE
        self._notify(
            relationship.partner_of(actor_id),
            NotificationService.RELATIONSHIP_RESUMED,
            "Relationship resumed",
            "The relationship was resumed",
            now,
        )
        return self._finish(relationship, "resume_relationship")

    def end(self, relationship_id: UUID, actor_id: UUID, now: Optional[datetime] = None) -> Relationship:
        now = resolve_now(now)
        relationship = self._get_as_participant(relationship_id, actor_id)
        check_transition_allowed(
            "end",
            relationship.status,
            [RelationshipStatus.ACTIVE, RelationshipStatus.PAUSED],
            record_id=relationship.id,
        )

        relationship.status = RelationshipStatus.ENDED
        relationship.ended_at = now
        self._notify(
            relationship.partner_of(actor_id),
            NotificationService.RELATIONSHIP_ENDED,
            "Relationship ended",
            "The relationship was ended",
            now,
        )
        return self._finish(relationship, "end_relationship")

    def get_relationship(self, relationship_id: UUID) -> Relationship:
        relationship = self.db.query(Relationship).filter(
            Relationship.id == relationship_id
        ).first()
        if not relationship:
            raise NotFoundError(
                f"Relationship {relationship_id} not found",
                details={"relationship_id": str(relationship_id)},
            )
        return relationship

    def get_active_for_sub(self, sub_id: UUID) -> Optional[Relationship]:
        """The sub's most recently updated active relationship."""
        return (
            self.db.query(Relationship)
            .filter(Relationship.sub_id == sub_id, Relationship.status == RelationshipStatus.ACTIVE)
            .order_by(Relationship.updated_at.desc())
            .first()
        )

    def list_for_user(
        self,
        user_id: UUID,
        status: Optional[RelationshipStatus] = None,
    ) -> List[Relationship]:
        """Relationships where the user is keyholder or sub."""
        query = self.db.query(Relationship).filter(
            or_(Relationship.keyholder_id == user_id, Relationship.sub_id == user_id)
        )
        if status is not None:
            query = query.filter(Relationship.status == status)
        return query.order_by(Relationship.updated_at.desc()).all()

    def list_all(
        self,
        admin_id: UUID,
        status: Optional[RelationshipStatus] = None,
    ) -> List[Relationship]:
        """Every relationship on the platform, newest first. Admin only."""
        check_is_admin(self._get_user(admin_id))
        query = self.db.query(Relationship)
        if status is not None:
            query = query.filter(Relationship.status == status)
        return query.order_by(Relationship.created_at.desc()).all()

    def _get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": str(user_id)})
        return user

    def _get_as_participant(self, relationship_id: UUID, actor_id: UUID) -> Relationship:
        relationship = self.get_relationship(relationship_id)
        check_is_participant(relationship, actor_id)
        return relationship

    def _get_as_recipient(self, relationship_id: UUID, actor_id: UUID) -> Relationship:
        relationship = self.get_relationship(relationship_id)
        check_is_participant(relationship, actor_id)
        if relationship.recipient_id() != actor_id:
            raise PermissionDeniedError(
                "Only the user who received the request can answer it",
                details={"relationship_id": str(relationship.id), "actor_id": str(actor_id)},
            )
        return relationship

    def _notify(self, user_id: UUID, type: str, title: str, message: str, now: datetime) -> None:
        self.notifications.notify(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=NotificationService.LINK_RELATIONSHIPS,
            now=now,
        )

    def _finish(self, relationship: Relationship, operation: str) -> Relationship:
        self._commit(operation)
        logger.info(operation, relationship_id=str(relationship.id), status=enum_value(relationship.status))
        return relationship

    def _commit(self, operation: str) -> None:
        if self.auto_commit:
            commit_or_raise(self.db, operation)
        else:
            self.db.flush()
