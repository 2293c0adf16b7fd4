"""Task review orchestrator: review verdict plus its lock time side effect."""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from locktime.orchestrators.base import BaseOrchestrator
from locktime.orchestrators.lock_orchestrator import serialize_lock
from locktime.services.task_service import TaskService
from locktime.utils.timeutil import resolve_now


class TaskReviewOrchestrator(BaseOrchestrator[Dict[str, Any]]):
    """
    Orchestrator for reviewing submitted tasks.

    Steps:
    1. Validate the reviewer and the task status
    2. Record the verdict
    3. Apply the reward or penalty to the linked lock (if any)
    4. Notify the sub
    5. Commit all of it together

    A retried review with the same request_id returns the first outcome and
    never credits the lock twice.
    """

    resource_type = "Task"

    @property
    def orchestrator_name(self) -> str:
        """Return orchestrator name."""
        return "task_review_orchestrator"

    def __init__(self, db: Session, user_id: UUID):
        """
        Initialize task review orchestrator.

        Args:
            db: Database session
            user_id: Keyholder reviewing the task
        """
        super().__init__(db, user_id)
        self.task_service = TaskService(db, auto_commit=False)

    def review(
        self,
        request_id: str,
        task_id: UUID,
        approved: bool,
        review_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject a task.

        Returns:
            Dict with the task id and status, the signed time change applied
            and the lock after the change (None when the task has no lock)
        """
        return self.execute(
            request_id=request_id,
            input_data={
                "task_id": str(task_id),
                "approved": bool(approved),
                "review_notes": review_notes,
                "now": resolve_now(now).isoformat(),
            },
        )

    def _execute_pipeline(self, context: Dict[str, Any]) -> Dict[str, Any]:
        input_data = context["input"]
        now = datetime.fromisoformat(input_data["now"])

        with self._trace_step("review_task"):
            outcome = self.task_service.review_task(
                UUID(input_data["task_id"]),
                self.user_id,
                approved=input_data["approved"],
                review_notes=input_data.get("review_notes"),
                now=now,
            )

        task = outcome.task
        lock_data = None
        if task.lock_id is not None:
            lock_data = serialize_lock(self.task_service.lock_service.get_lock(task.lock_id), now)

        if outcome.history_entry is None:
            self.log_step("apply_time_change", status="skipped", details={"task_id": str(task.id)})
        else:
            self.log_step(
                "apply_time_change",
                details={
                    "lock_id": str(task.lock_id),
                    "time_change_seconds": outcome.time_change_seconds,
                },
            )

        return {
            "id": str(task.id),
            "status": task.status.value,
            "approved": outcome.approved,
            "time_change_seconds": outcome.time_change_seconds,
            "history_entry_id": str(outcome.history_entry.id) if outcome.history_entry else None,
            "lock": lock_data,
        }
