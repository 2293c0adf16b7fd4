"""
Lock invariants and validation utilities.

Enforces the constraints every lock command relies on:
1. Transitions only from the statuses the lock state machine allows
2. Time adjustments only in directions the lock's flags permit
3. No zero-length time adjustment
4. Only the relationship's keyholder mutates its locks
5. History entries are append-only (never updated, never deleted)

Fail fast with explicit errors.
"""

from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


class LockTimeError(Exception):
    """Base exception for every domain error raised by locktime."""

    def __init__(self, error_name: str, message: str, details: dict = None):
        self.error_name = error_name
        self.details = details or {}
        super().__init__(f"[{error_name}] {message}")


class InvalidTransitionError(LockTimeError):
    """Raised when an operation is attempted from a disallowed status."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("invalid_transition", message, details)


class CapabilityDeniedError(LockTimeError):
    """Raised when a time-adjustment direction is not permitted by the lock's flags."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("capability_denied", message, details)


class ZeroDeltaError(LockTimeError):
    """Raised when a time adjustment carries no net change."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("zero_delta", message, details)


class PermissionDeniedError(LockTimeError):
    """Raised when the acting user does not hold the required role."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("permission_denied", message, details)


class NotFoundError(LockTimeError):
    """Raised when a referenced record does not exist."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("not_found", message, details)


class ValidationError(LockTimeError):
    """Raised when command input is malformed."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("validation_error", message, details)


class StorageFailureError(LockTimeError):
    """Raised when the store rejects a read or write. Not retried."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("storage_failure", message, details)


class HistoryImmutableError(LockTimeError):
    """Raised when code tries to update or delete a history entry."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("history_immutable", message, details)


def enum_value(value) -> str:
    """Plain string value of a str-Enum member (or of a plain string)."""
    return getattr(value, "value", value)


def check_transition_allowed(
    operation: str,
    current_status: str,
    allowed_from: Iterable[str],
    record_id: Optional[UUID] = None,
) -> None:
    """
    Invariant: operations only run from the statuses that allow them.

    Raises:
        InvalidTransitionError: If current_status is not in allowed_from
    """
    allowed = [enum_value(s) for s in allowed_from]
    current = enum_value(current_status)
    if current not in allowed:
        raise InvalidTransitionError(
            f"Cannot {operation} from status '{current}'",
            details={
                "record_id": str(record_id) if record_id else None,
                "operation": operation,
                "current_status": current,
                "allowed_from": allowed,
            },
        )


def check_capability(lock, direction: str) -> None:
    """
    Invariant: manual time adjustments respect the lock's capability flags.

    Raises:
        CapabilityDeniedError: If the direction is not permitted
    """
    if direction == "add":
        permitted = bool(lock.allow_keyholder_add_time)
    elif direction == "remove":
        permitted = bool(lock.allow_keyholder_remove_time)
    else:
        raise ValidationError(
            f"Unknown time adjustment direction '{direction}'",
            details={"direction": direction},
        )

    if not permitted:
        raise CapabilityDeniedError(
            f"Lock does not allow the keyholder to {direction} time",
            details={"lock_id": str(lock.id), "direction": direction},
        )


def check_nonzero_delta(delta_seconds: int) -> None:
    """
    Invariant: a time adjustment must move the clock.

    Raises:
        ZeroDeltaError: If delta_seconds is 0
        ValidationError: If delta_seconds is negative (direction carries the sign)
    """
    if delta_seconds == 0:
        raise ZeroDeltaError(
            "Time adjustment must be at least 1 second",
            details={"delta_seconds": 0},
        )
    if delta_seconds < 0:
        raise ValidationError(
            "delta_seconds must be positive; use direction to remove time",
            details={"delta_seconds": delta_seconds},
        )


def check_is_keyholder(relationship, actor_id: UUID) -> None:
    """
    Invariant: only the relationship's keyholder mutates its locks and tasks.

    Raises:
        PermissionDeniedError: If actor is not the keyholder
    """
    if relationship.keyholder_id != actor_id:
        raise PermissionDeniedError(
            "Only the keyholder of this relationship can perform this action",
            details={
                "relationship_id": str(relationship.id),
                "actor_id": str(actor_id),
            },
        )


def check_is_admin(user) -> None:
    """
    Invariant: platform-wide listings and account moderation are admin-only.

    Raises:
        PermissionDeniedError: If the user is not an admin
    """
    if not user.is_admin:
        raise PermissionDeniedError(
            "Only an administrator can perform this action",
            details={"actor_id": str(user.id)},
        )


def check_is_participant(relationship, actor_id: UUID) -> None:
    """
    Invariant: only the two paired users act on a relationship.

    Raises:
        PermissionDeniedError: If actor is neither keyholder nor sub
    """
    if actor_id not in (relationship.keyholder_id, relationship.sub_id):
        raise PermissionDeniedError(
            "User is not part of this relationship",
            details={
                "relationship_id": str(relationship.id),
                "actor_id": str(actor_id),
            },
        )


def commit_or_raise(db: Session, operation: str) -> None:
    """
    Commit the session as one unit.

    On any store error the session is rolled back and the error re-raised
    as StorageFailureError, so a lock mutation never lands without its
    history entry.
    """
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailureError(
            f"Failed to persist {operation}: {e}",
            details={"operation": operation, "error_type": type(e).__name__},
        ) from e


def install_history_guards(history_model) -> None:
    """
    Register ORM guards that keep history rows append-only.

    Any flush that updates or deletes a history entry raises
    HistoryImmutableError.
    """

    @event.listens_for(history_model, "before_update")
    def _reject_update(mapper, connection, target):
        raise HistoryImmutableError(
            "Lock history entries cannot be modified",
            details={"history_id": str(target.id)},
        )

    @event.listens_for(history_model, "before_delete")
    def _reject_delete(mapper, connection, target):
        raise HistoryImmutableError(
            "Lock history entries cannot be deleted",
            details={"history_id": str(target.id)},
        )


def validate_request_id(request_id: str) -> None:
    """
    Utility helper: Validate request_id format.

    Raises:
        ValueError: If request_id is invalid
    """
    if not request_id:
        raise ValueError("request_id cannot be empty")

    if not isinstance(request_id, str):
        raise ValueError(f"request_id must be a string, got {type(request_id)}")

    if len(request_id) > 255:
        raise ValueError(f"request_id too long (max 255 chars, got {len(request_id)})")


def validate_orchestrator_name(orchestrator_name: str) -> None:
    """
    Utility helper: Validate orchestrator name format.

    Raises:
        ValueError: If orchestrator_name is invalid
    """
    if not orchestrator_name:
        raise ValueError("orchestrator_name cannot be empty")

    if len(orchestrator_name) > 100:
        raise ValueError(f"orchestrator_name too long (max 100 chars, got {len(orchestrator_name)})")

    if not orchestrator_name.replace('_', '').isalnum():
        raise ValueError("orchestrator_name must contain only alphanumeric characters and underscores")
