"""Lock service for lock state transitions and their history."""
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from locktime.models.lock import Lock, LockStatus
from locktime.models.lock_history import LockAction, LockHistoryEntry, action_rank_clause
from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.services.notification_service import NotificationService
from locktime.services.timer_projection import LockSnapshot, TimerProjection, project, remaining_at
from locktime.services.user_service import UserService
from locktime.utils.formatting import describe_duration, duration_from_parts
from locktime.utils.invariants import (
    NotFoundError,
    ValidationError,
    check_capability,
    check_is_keyholder,
    check_nonzero_delta,
    check_transition_allowed,
    commit_or_raise,
)
from locktime.utils.logging import get_logger
from locktime.utils.timeutil import resolve_now

logger = get_logger(__name__)

TIME_ADJUSTABLE = (LockStatus.ACTIVE, LockStatus.PAUSED)


class LockService:
    """
    Service for validated lock mutations.

    Capabilities:
    - Create locks
    - Pause / resume the running clock
    - Add or remove time
    - Complete or cancel (terminal)

    Rules:
    - Only the relationship's keyholder mutates a lock
    - Every mutation appends exactly one LockHistoryEntry
    - The lock row, its history entry and any notification are committed
      together (one commit per command)
    - Terminal locks (completed, cancelled) reject every operation
    """

    # Default history reasons
    REASON_CREATED = "Lock created"
    REASON_PAUSED = "Lock paused by keyholder"
    REASON_RESUMED = "Lock resumed by keyholder"
    REASON_COMPLETED = "Lock completed by keyholder"
    REASON_CANCELLED = "Lock cancelled by keyholder"

    def __init__(self, db: Session, auto_commit: bool = True):
        """
        Initialize lock service.

        Args:
            db: Database session
            auto_commit: Commit after each command. Orchestrators pass False
                and commit the whole unit of work themselves.
        """
        self.db = db
        self.auto_commit = auto_commit
        self.notifications = NotificationService(db, auto_commit=False)

    # Commands

    def create_lock(
        self,
        relationship_id: UUID,
        actor_id: UUID,
        name: str,
        duration_seconds: int,
        description: Optional[str] = None,
        allow_keyholder_add_time: bool = True,
        allow_keyholder_remove_time: bool = True,
        allow_sub_request_time: bool = False,
        now: Optional[datetime] = None,
    ) -> Lock:
        """
        Create an active lock with the full duration remaining.

        Args:
            relationship_id: Owning relationship (must be active)
            actor_id: Keyholder creating the lock
            name: Lock name
            duration_seconds: Initial duration (> 0)
            description: Optional description
            allow_keyholder_add_time: Capability flag
            allow_keyholder_remove_time: Capability flag
            allow_sub_request_time: Capability flag
            now: Creation instant (defaults to wall clock)

        Returns:
            The new Lock

        Raises:
            NotFoundError: If the relationship does not exist
            PermissionDeniedError: If actor is not the keyholder
            InvalidTransitionError: If the relationship is not active
            ValidationError: If name is empty or duration is not positive
        """
        now = resolve_now(now)
        relationship = self._get_relationship(relationship_id)
        check_is_keyholder(relationship, actor_id)
        check_transition_allowed(
            "create a lock in relationship",
            relationship.status,
            [RelationshipStatus.ACTIVE],
            record_id=relationship.id,
        )

        if not name or not name.strip():
            raise ValidationError("Lock name is required")
        if duration_seconds is None or duration_seconds <= 0:
            raise ValidationError(
                "Lock duration must be positive",
                details={"duration_seconds": duration_seconds},
            )

        lock = Lock(
            relationship_id=relationship.id,
            name=name.strip(),
            description=description or None,
            status=LockStatus.ACTIVE,
            initial_duration_seconds=int(duration_seconds),
            remaining_seconds=int(duration_seconds),
            started_at=now,
            allow_keyholder_add_time=allow_keyholder_add_time,
            allow_keyholder_remove_time=allow_keyholder_remove_time,
            allow_sub_request_time=allow_sub_request_time,
            created_at=now,
        )
        self.db.add(lock)
        self.db.flush()

        self._record(lock, LockAction.CREATED, actor_id, 0, self.REASON_CREATED, now)
        self.notifications.notify(
            user_id=relationship.sub_id,
            type=NotificationService.LOCK_CREATED,
            title="New lock created",
            message=f'Lock "{lock.name}" was created',
            link=NotificationService.LINK_LOCKS,
            now=now,
        )
        self._commit("create_lock")

        logger.info(
            "lock_created",
            lock_id=str(lock.id),
            relationship_id=str(relationship.id),
            duration_seconds=lock.initial_duration_seconds,
        )
        return lock

    def pause(
        self,
        lock_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """
        Freeze the clock: store the projected remaining time as the snapshot.

        Only valid from active.
        """
        now = resolve_now(now)
        lock = self._get_for_keyholder(lock_id, actor_id)
        check_transition_allowed("pause", lock.status, [LockStatus.ACTIVE], record_id=lock.id)

        lock.remaining_seconds = remaining_at(LockSnapshot.from_lock(lock), now)
        lock.status = LockStatus.PAUSED
        lock.paused_at = now

        self._record(lock, LockAction.PAUSED, actor_id, 0, reason or self.REASON_PAUSED, now)
        self._commit("pause_lock")

        logger.info("lock_paused", lock_id=str(lock.id), remaining_seconds=lock.remaining_seconds)
        return lock

    def resume(
        self,
        lock_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """
        Restart the clock from the frozen snapshot.

        Only valid from paused. started_at moves to now; remaining is kept.
        """
        now = resolve_now(now)
        lock = self._get_for_keyholder(lock_id, actor_id)
        check_transition_allowed("resume", lock.status, [LockStatus.PAUSED], record_id=lock.id)

        lock.status = LockStatus.ACTIVE
        lock.started_at = now
        lock.paused_at = None

        self._record(lock, LockAction.RESUMED, actor_id, 0, reason or self.REASON_RESUMED, now)
        self._commit("resume_lock")

        logger.info("lock_resumed", lock_id=str(lock.id), remaining_seconds=lock.remaining_seconds)
        return lock

    def adjust_time(
        self,
        lock_id: UUID,
        actor_id: UUID,
        delta_seconds: int,
        direction: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """
        Add or remove time on an active or paused lock.

        Args:
            lock_id: Lock to adjust
            actor_id: Keyholder
            delta_seconds: Positive amount of time
            direction: "add" or "remove" (must be allowed by the lock's flags)
            reason: Optional reason stored in history
            now: Instant of the change

        Returns:
            The updated Lock

        Raises:
            ZeroDeltaError: If delta_seconds is 0 (nothing is written)
            CapabilityDeniedError: If the direction is not allowed
            InvalidTransitionError: If the lock is terminal
        """
        check_nonzero_delta(delta_seconds)
        now = resolve_now(now)
        lock = self._get_for_keyholder(lock_id, actor_id)
        check_transition_allowed("adjust time", lock.status, TIME_ADJUSTABLE, record_id=lock.id)
        check_capability(lock, direction)

        signed_change = delta_seconds if direction == "add" else -delta_seconds
        self.apply_time_change(lock, signed_change, actor_id, reason, now)

        verb = "increased" if signed_change > 0 else "decreased"
        self.notifications.notify(
            user_id=lock.pairing.sub_id,
            type=NotificationService.LOCK_TIME_CHANGED,
            title="Lock time changed",
            message=f'Time on lock "{lock.name}" was {verb} by {describe_duration(delta_seconds)}',
            link=NotificationService.LINK_LOCKS,
            now=now,
        )
        self._commit("adjust_lock_time")
        return lock

    def adjust_time_parts(
        self,
        lock_id: UUID,
        actor_id: UUID,
        direction: str,
        days: int = 0,
        hours: int = 0,
        minutes: int = 0,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """adjust_time() taking a days/hours/minutes form entry."""
        try:
            delta_seconds = duration_from_parts(days, hours, minutes)
        except ValueError as e:
            raise ValidationError(str(e), details={"days": days, "hours": hours, "minutes": minutes}) from e
        return self.adjust_time(lock_id, actor_id, delta_seconds, direction, reason=reason, now=now)

    def complete(
        self,
        lock_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """Finish the lock: remaining drops to 0. Terminal."""
        now = resolve_now(now)
        lock = self._get_for_keyholder(lock_id, actor_id)
        check_transition_allowed("complete", lock.status, TIME_ADJUSTABLE, record_id=lock.id)

        lock.status = LockStatus.COMPLETED
        lock.remaining_seconds = 0
        lock.completed_at = now

        self._record(lock, LockAction.COMPLETED, actor_id, 0, reason or self.REASON_COMPLETED, now)
        self._notify_status(lock, "completed", now)
        self._commit("complete_lock")

        logger.info("lock_completed", lock_id=str(lock.id))
        return lock

    def cancel(
        self,
        lock_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Lock:
        """Abandon the lock. Terminal."""
        now = resolve_now(now)
        lock = self._get_for_keyholder(lock_id, actor_id)
        check_transition_allowed("cancel", lock.status, TIME_ADJUSTABLE, record_id=lock.id)

        lock.status = LockStatus.CANCELLED
        lock.remaining_seconds = 0

        self._record(lock, LockAction.CANCELLED, actor_id, 0, reason or self.REASON_CANCELLED, now)
        self._notify_status(lock, "cancelled", now)
        self._commit("cancel_lock")

        logger.info("lock_cancelled", lock_id=str(lock.id))
        return lock

    # Shared primitive

    def apply_time_change(
        self,
        lock: Lock,
        signed_change: int,
        actor_id: UUID,
        reason: Optional[str],
        now: datetime,
    ) -> Optional[LockHistoryEntry]:
        """
        Shift the remaining snapshot by a signed amount and record it.

        Decreases clamp at 0. Capability flags are not consulted here;
        manual adjustments check them in adjust_time(). Does not commit.

        Returns:
            The history entry, or None when signed_change is 0
        """
        if signed_change == 0:
            return None

        before = lock.remaining_seconds
        lock.remaining_seconds = max(0, before + signed_change)
        action = LockAction.TIME_ADDED if signed_change > 0 else LockAction.TIME_REMOVED
        entry = self._record(lock, action, actor_id, signed_change, reason, now)

        logger.info(
            "lock_time_changed",
            lock_id=str(lock.id),
            time_change_seconds=signed_change,
            remaining_before=before,
            remaining_after=lock.remaining_seconds,
        )
        return entry

    # Queries

    def get_lock(self, lock_id: UUID) -> Lock:
        lock = self.db.query(Lock).filter(Lock.id == lock_id).first()
        if not lock:
            raise NotFoundError(f"Lock {lock_id} not found", details={"lock_id": str(lock_id)})
        return lock

    def list_locks(
        self,
        relationship_ids: Iterable[UUID],
        status: Optional[LockStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Lock]:
        """Locks of the given relationships, newest first, optionally filtered by status."""
        ids = list(relationship_ids)
        if not ids:
            return []
        query = self.db.query(Lock).filter(Lock.relationship_id.in_(ids))
        if status is not None:
            query = query.filter(Lock.status == status)
        query = query.order_by(Lock.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_all_locks(self, admin_id: UUID, status: Optional[LockStatus] = None) -> List[Lock]:
        """Every lock on the platform, newest first. Admin only."""
        UserService(self.db).require_admin(admin_id)
        query = self.db.query(Lock)
        if status is not None:
            query = query.filter(Lock.status == status)
        return query.order_by(Lock.created_at.desc()).all()

    def get_history(self, lock_id: UUID, newest_first: bool = True) -> List[LockHistoryEntry]:
        """History entries of one lock; entries sharing a timestamp follow action_rank."""
        if newest_first:
            order = (LockHistoryEntry.created_at.desc(), action_rank_clause().desc())
        else:
            order = (LockHistoryEntry.created_at.asc(), action_rank_clause())
        return (
            self.db.query(LockHistoryEntry)
            .filter(LockHistoryEntry.lock_id == lock_id)
            .order_by(*order)
            .all()
        )

    def project(self, lock_id: UUID, now: Optional[datetime] = None) -> TimerProjection:
        """Current countdown state of a lock."""
        return project(LockSnapshot.from_lock(self.get_lock(lock_id)), resolve_now(now))

    # Internals

    def _get_relationship(self, relationship_id: UUID) -> Relationship:
        relationship = self.db.query(Relationship).filter(
            Relationship.id == relationship_id
        ).first()
        if not relationship:
            raise NotFoundError(
                f"Relationship {relationship_id} not found",
                details={"relationship_id": str(relationship_id)},
            )
        return relationship

    def _get_for_keyholder(self, lock_id: UUID, actor_id: UUID) -> Lock:
        lock = self.get_lock(lock_id)
        check_is_keyholder(lock.pairing, actor_id)
        return lock

    def _record(
        self,
        lock: Lock,
        action: LockAction,
        actor_id: UUID,
        time_change_seconds: int,
        reason: Optional[str],
        now: datetime,
    ) -> LockHistoryEntry:
        """Append a history entry to the current unit of work."""
        entry = LockHistoryEntry(
            lock_id=lock.id,
            performed_by=actor_id,
            action=action,
            time_change_seconds=time_change_seconds,
            reason=reason or None,
            created_at=now,
        )
        self.db.add(entry)
        return entry

    def _notify_status(self, lock: Lock, verb: str, now: datetime) -> None:
        self.notifications.notify(
            user_id=lock.pairing.sub_id,
            type=NotificationService.LOCK_STATUS_CHANGED,
            title=f"Lock {verb}",
            message=f'Lock "{lock.name}" was {verb}',
            link=NotificationService.LINK_LOCKS,
            now=now,
        )

    def _commit(self, operation: str) -> None:
        if self.auto_commit:
            commit_or_raise(self.db, operation)
        else:
            self.db.flush()
