"""Task service for assigning, submitting and reviewing tasks."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from locktime.models.lock import Lock
from locktime.models.lock_history import LockHistoryEntry
from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.models.task import Task, TaskStatus, TaskType
from locktime.services.lock_service import LockService
from locktime.services.notification_service import NotificationService
from locktime.utils.invariants import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    check_is_keyholder,
    check_transition_allowed,
    commit_or_raise,
    enum_value,
)
from locktime.utils.logging import get_logger
from locktime.utils.timeutil import resolve_now

logger = get_logger(__name__)


@dataclass
class ReviewOutcome:
    """Result of a task review."""
    task: Task
    approved: bool
    time_change_seconds: int  # signed change applied to the lock (0 if none)
    history_entry: Optional[LockHistoryEntry] = None


class TaskService:
    """
    Service for the task workflow.

    Lifecycle: pending -> submitted -> approved | rejected

    Rules:
    - Keyholder creates and reviews, sub submits
    - Review of a task linked to a lock credits the lock: approval removes
      time_reward_seconds, rejection adds time_penalty_seconds
    - The task update, lock update, history entry and notification of a
      review are committed together
    """

    def __init__(self, db: Session, auto_commit: bool = True):
        """
        Initialize task service.

        Args:
            db: Database session
            auto_commit: Commit after each command
        """
        self.db = db
        self.auto_commit = auto_commit
        self.lock_service = LockService(db, auto_commit=False)
        self.notifications = NotificationService(db, auto_commit=False)

    def create_task(
        self,
        relationship_id: UUID,
        actor_id: UUID,
        title: str,
        task_type: TaskType = TaskType.CHECK_IN,
        description: Optional[str] = None,
        lock_id: Optional[UUID] = None,
        time_reward_seconds: int = 0,
        time_penalty_seconds: int = 0,
        quiz_data: Optional[Dict[str, Any]] = None,
        requires_photo: bool = False,
        requires_text: bool = False,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Assign a new task to the sub of a relationship.

        Raises:
            PermissionDeniedError: If actor is not the keyholder
            InvalidTransitionError: If the relationship is not active
            ValidationError: If the task definition is incomplete
        """
        now = resolve_now(now)
        relationship = self._get_relationship(relationship_id)
        check_is_keyholder(relationship, actor_id)
        check_transition_allowed(
            "assign a task in relationship",
            relationship.status,
            [RelationshipStatus.ACTIVE],
            record_id=relationship.id,
        )

        task_type = TaskType(enum_value(task_type))
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        if time_reward_seconds < 0 or time_penalty_seconds < 0:
            raise ValidationError(
                "Task reward and penalty cannot be negative",
                details={
                    "time_reward_seconds": time_reward_seconds,
                    "time_penalty_seconds": time_penalty_seconds,
                },
            )
        if lock_id is not None:
            lock = self.db.query(Lock).filter(Lock.id == lock_id).first()
            if not lock or lock.relationship_id != relationship.id:
                raise ValidationError(
                    "Task lock must belong to the same relationship",
                    details={"lock_id": str(lock_id), "relationship_id": str(relationship.id)},
                )

        task = Task(
            relationship_id=relationship.id,
            lock_id=lock_id,
            title=title.strip(),
            description=description or None,
            task_type=task_type,
            time_reward_seconds=int(time_reward_seconds),
            time_penalty_seconds=int(time_penalty_seconds),
            status=TaskStatus.PENDING,
            created_at=now,
        )
        if task_type == TaskType.QUIZ:
            task.quiz_data = self._validate_quiz(quiz_data)
        elif task_type == TaskType.PROOF:
            task.requires_photo = requires_photo
            task.requires_text = requires_text

        self.db.add(task)
        self.db.flush()

        self.notifications.notify(
            user_id=relationship.sub_id,
            type=NotificationService.TASK_ASSIGNED,
            title="New task",
            message=f'You have a new task: "{task.title}"',
            link=NotificationService.LINK_TASKS,
            now=now,
        )
        self._commit("create_task")

        logger.info("task_created", task_id=str(task.id), task_type=task_type.value)
        return task

    def submit_task(
        self,
        task_id: UUID,
        actor_id: UUID,
        quiz_answer: Optional[int] = None,
        submission_text: Optional[str] = None,
        submission_photo_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Submit a pending task for review.

        check_in needs nothing, quiz needs an answer, proof needs whatever
        the task requires (text and/or photo URL).
        """
        now = resolve_now(now)
        task = self.get_task(task_id)
        relationship = task.pairing
        if relationship.sub_id != actor_id:
            raise PermissionDeniedError(
                "Only the sub of this relationship can submit the task",
                details={"task_id": str(task.id), "actor_id": str(actor_id)},
            )
        check_transition_allowed("submit task", task.status, [TaskStatus.PENDING], record_id=task.id)

        task_type = TaskType(enum_value(task.task_type))
        if task_type == TaskType.QUIZ:
            if quiz_answer is None:
                raise ValidationError("Choose an answer")
            options = (task.quiz_data or {}).get("options", [])
            if not 0 <= quiz_answer < len(options):
                raise ValidationError(
                    "Quiz answer out of range",
                    details={"quiz_answer": quiz_answer, "options": len(options)},
                )
            task.quiz_answer = quiz_answer
        elif task_type == TaskType.PROOF:
            if task.requires_text and not submission_text:
                raise ValidationError("A text description is required")
            if task.requires_photo and not submission_photo_url:
                raise ValidationError("A photo is required")
            task.submission_text = submission_text or None
            task.submission_photo_url = submission_photo_url or None

        task.status = TaskStatus.SUBMITTED
        task.submitted_at = now

        self.notifications.notify(
            user_id=relationship.keyholder_id,
            type=NotificationService.TASK_SUBMITTED,
            title="Task submitted",
            message=f'Task "{task.title}" was submitted for review',
            link=NotificationService.LINK_TASKS,
            now=now,
        )
        self._commit("submit_task")

        logger.info("task_submitted", task_id=str(task.id))
        return task

    def review_task(
        self,
        task_id: UUID,
        actor_id: UUID,
        approved: bool,
        review_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewOutcome:
        """
        Approve or reject a submitted task.

        If the task references a lock, approval removes time_reward_seconds
        and rejection adds time_penalty_seconds, through the same primitive
        as manual time adjustments. Nothing is applied when the net change
        is 0 or the lock has already finished.

        Returns:
            ReviewOutcome with the signed change actually applied

        Raises:
            PermissionDeniedError: If actor is not the keyholder
            InvalidTransitionError: If the task is not submitted
        """
        now = resolve_now(now)
        task = self.get_task(task_id)
        relationship = task.pairing
        check_is_keyholder(relationship, actor_id)
        check_transition_allowed("review task", task.status, [TaskStatus.SUBMITTED], record_id=task.id)

        task.status = TaskStatus.APPROVED if approved else TaskStatus.REJECTED
        task.reviewed_at = now
        task.reviewed_by = actor_id
        task.review_notes = review_notes or None

        outcome = ReviewOutcome(task=task, approved=approved, time_change_seconds=0)
        signed_change = self.review_time_change(task, approved)

        if task.lock_id is not None and signed_change != 0:
            lock = self.lock_service.get_lock(task.lock_id)
            if lock.status.is_terminal:
                logger.warning(
                    "task_review_lock_finished",
                    task_id=str(task.id),
                    lock_id=str(lock.id),
                    lock_status=lock.status.value,
                )
            else:
                verdict = "approved" if approved else "rejected"
                outcome.history_entry = self.lock_service.apply_time_change(
                    lock,
                    signed_change,
                    actor_id,
                    reason=f"Task {verdict}: {task.title}",
                    now=now,
                )
                outcome.time_change_seconds = signed_change

        verdict = "approved" if approved else "rejected"
        self.notifications.notify(
            user_id=relationship.sub_id,
            type=NotificationService.TASK_REVIEWED,
            title=f"Task {verdict}",
            message=f'Task "{task.title}" was {verdict}',
            link=NotificationService.LINK_TASKS,
            now=now,
        )
        self._commit("review_task")

        logger.info(
            "task_reviewed",
            task_id=str(task.id),
            approved=approved,
            time_change_seconds=outcome.time_change_seconds,
        )
        return outcome

    @staticmethod
    def review_time_change(task: Task, approved: bool) -> int:
        """Signed lock change a review implies: -reward on approval, +penalty on rejection."""
        if approved:
            return -int(task.time_reward_seconds or 0)
        return int(task.time_penalty_seconds or 0)

    @staticmethod
    def is_quiz_correct(task: Task) -> bool:
        """Whether a quiz task's submitted answer matches the correct one."""
        if enum_value(task.task_type) != TaskType.QUIZ.value or task.quiz_answer is None:
            return False
        return task.quiz_answer == (task.quiz_data or {}).get("correct_answer")

    def get_task(self, task_id: UUID) -> Task:
        task = self.db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise NotFoundError(f"Task {task_id} not found", details={"task_id": str(task_id)})
        return task

    def list_tasks(
        self,
        relationship_ids: Iterable[UUID],
        status: Optional[TaskStatus] = None,
    ) -> List[Task]:
        ids = list(relationship_ids)
        if not ids:
            return []
        query = self.db.query(Task).filter(Task.relationship_id.in_(ids))
        if status is not None:
            query = query.filter(Task.status == status)
        return query.order_by(Task.created_at.desc()).all()

    def count_by_status(self, relationship_ids: Iterable[UUID]) -> Dict[str, int]:
        """Task counts per status; every status is present, zero if unused."""
        counts = {status.value: 0 for status in TaskStatus}
        ids = list(relationship_ids)
        if not ids:
            return counts
        rows = (
            self.db.query(Task.status, func.count(Task.id))
            .filter(Task.relationship_id.in_(ids))
            .group_by(Task.status)
            .all()
        )
        for status, count in rows:
            counts[enum_value(status)] = count
        return counts

    def _validate_quiz(self, quiz_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not quiz_data or not quiz_data.get("question"):
            raise ValidationError("Quiz question is required")
        options = [o.strip() for o in quiz_data.get("options", []) if o and o.strip()]
        if len(options) < 2:
            raise ValidationError(
                "Quiz needs at least two options",
                details={"options": len(options)},
            )
        correct = quiz_data.get("correct_answer", 0)
        if not isinstance(correct, int) or not 0 <= correct < len(options):
            raise ValidationError(
                "Quiz correct answer out of range",
                details={"correct_answer": correct, "options": len(options)},
            )
        return {"question": quiz_data["question"], "options": options, "correct_answer": correct}

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

    def _commit(self, operation: str) -> None:
        if self.auto_commit:
            commit_or_raise(self.db, operation)
        else:
            self.db.flush()
