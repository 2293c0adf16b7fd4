"""Lock orchestrator for idempotent lock commands."""
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from locktime.models.lock import Lock
from locktime.orchestrators.base import BaseOrchestrator, OrchestrationError
from locktime.services.lock_service import LockService
from locktime.services.timer_projection import project_lock
from locktime.utils.timeutil import resolve_now


class LockOrchestratorError(OrchestrationError):
    """Base exception for lock orchestrator errors."""
    pass


def serialize_lock(lock: Lock, now: datetime) -> Dict[str, Any]:
    """JSON-ready view of a lock, with its countdown projected at `now`."""
    projection = project_lock(lock, now)
    return {
        "id": str(lock.id),
        "relationship_id": str(lock.relationship_id),
        "name": lock.name,
        "description": lock.description,
        "status": lock.status.value,
        "initial_duration_seconds": lock.initial_duration_seconds,
        "remaining_seconds": lock.remaining_seconds,
        "projected_remaining_seconds": projection.remaining_seconds,
        "progress_percent": projection.progress_percent,
        "started_at": lock.started_at.isoformat() if lock.started_at else None,
        "paused_at": lock.paused_at.isoformat() if lock.paused_at else None,
        "completed_at": lock.completed_at.isoformat() if lock.completed_at else None,
        "allow_keyholder_add_time": lock.allow_keyholder_add_time,
        "allow_keyholder_remove_time": lock.allow_keyholder_remove_time,
        "allow_sub_request_time": lock.allow_sub_request_time,
        "as_of": now.isoformat(),
    }


class LockOrchestrator(BaseOrchestrator[Dict[str, Any]]):
    """
    Orchestrator for lock commands.

    Each command runs as one idempotent unit:
    1. Load and validate the lock (LockService)
    2. Apply the transition and append its history entry
    3. Queue the notification for the sub
    4. Commit once, cache the serialized lock under request_id

    Resubmitting a command with the same request_id returns the cached
    lock instead of applying the change again.
    """

    resource_type = "Lock"

    @property
    def orchestrator_name(self) -> str:
        """Return orchestrator name."""
        return "lock_orchestrator"

    def __init__(self, db: Session, user_id: UUID):
        """
        Initialize lock orchestrator.

        Args:
            db: Database session
            user_id: Keyholder issuing the commands
        """
        super().__init__(db, user_id)
        self.lock_service = LockService(db, auto_commit=False)
        self._commands: Dict[str, Callable[[Dict[str, Any], datetime], Lock]] = {
            "create": self._create,
            "pause": self._pause,
            "resume": self._resume,
            "adjust_time": self._adjust_time,
            "complete": self._complete,
            "cancel": self._cancel,
        }

    def create_lock(
        self,
        request_id: str,
        relationship_id: UUID,
        name: str,
        duration_seconds: int,
        description: Optional[str] = None,
        allow_keyholder_add_time: bool = True,
        allow_keyholder_remove_time: bool = True,
        allow_sub_request_time: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Create a lock. Returns the serialized lock."""
        return self._run(request_id, "create", now, {
            "relationship_id": str(relationship_id),
            "name": name,
            "duration_seconds": duration_seconds,
            "description": description,
            "allow_keyholder_add_time": allow_keyholder_add_time,
            "allow_keyholder_remove_time": allow_keyholder_remove_time,
            "allow_sub_request_time": allow_sub_request_time,
        })

    def pause(self, request_id: str, lock_id: UUID, reason: Optional[str] = None,
              now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._run(request_id, "pause", now, {"lock_id": str(lock_id), "reason": reason})

    def resume(self, request_id: str, lock_id: UUID, reason: Optional[str] = None,
               now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._run(request_id, "resume", now, {"lock_id": str(lock_id), "reason": reason})

    def adjust_time(
        self,
        request_id: str,
        lock_id: UUID,
        delta_seconds: int,
        direction: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Add or remove time. A retried request never applies the delta twice."""
        return self._run(request_id, "adjust_time", now, {
            "lock_id": str(lock_id),
            "delta_seconds": delta_seconds,
            "direction": direction,
            "reason": reason,
        })

    def complete(self, request_id: str, lock_id: UUID, reason: Optional[str] = None,
                 now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._run(request_id, "complete", now, {"lock_id": str(lock_id), "reason": reason})

    def cancel(self, request_id: str, lock_id: UUID, reason: Optional[str] = None,
               now: Optional[datetime] = None) -> Dict[str, Any]:
        return self._run(request_id, "cancel", now, {"lock_id": str(lock_id), "reason": reason})

    def _run(self, request_id: str, command: str, now: Optional[datetime],
             payload: Dict[str, Any]) -> Dict[str, Any]:
        input_data = dict(payload, command=command, now=resolve_now(now).isoformat())
        return self.execute(request_id=request_id, input_data=input_data)

    def _execute_pipeline(self, context: Dict[str, Any]) -> Dict[str, Any]:
        input_data = context["input"]
        command = input_data["command"]
        handler = self._commands.get(command)
        if handler is None:
            raise LockOrchestratorError(f"Unknown lock command '{command}'")

        now = datetime.fromisoformat(input_data["now"])
        with self._trace_step(f"lock_{command}"):
            lock = handler(input_data, now)

        self.log_step("serialize_lock", details={"lock_id": str(lock.id), "status": lock.status.value})
        return serialize_lock(lock, now)

    # Command handlers

    def _create(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.create_lock(
            relationship_id=UUID(data["relationship_id"]),
            actor_id=self.user_id,
            name=data["name"],
            duration_seconds=data["duration_seconds"],
            description=data.get("description"),
            allow_keyholder_add_time=data.get("allow_keyholder_add_time", True),
            allow_keyholder_remove_time=data.get("allow_keyholder_remove_time", True),
            allow_sub_request_time=data.get("allow_sub_request_time", False),
            now=now,
        )

    def _pause(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.pause(UUID(data["lock_id"]), self.user_id, reason=data.get("reason"), now=now)

    def _resume(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.resume(UUID(data["lock_id"]), self.user_id, reason=data.get("reason"), now=now)

    def _adjust_time(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.adjust_time(
            UUID(data["lock_id"]),
            self.user_id,
            delta_seconds=data["delta_seconds"],
            direction=data["direction"],
            reason=data.get("reason"),
            now=now,
        )

    def _complete(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.complete(UUID(data["lock_id"]), self.user_id, reason=data.get("reason"), now=now)

    def _cancel(self, data: Dict[str, Any], now: datetime) -> Lock:
        return self.lock_service.cancel(UUID(data["lock_id"]), self.user_id, reason=data.get("reason"), now=now)
