"""
Task Workflow Tests

pending -> submitted -> approved | rejected

Reviewing a task linked to a lock changes the lock's remaining time:
approval removes the reward, rejection adds the penalty. The change goes
through the same primitive as manual adjustments and appears in the lock
history as one time_added / time_removed entry.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from locktime.models.lock_history import LockAction, LockHistoryEntry
from locktime.models.notification import Notification
from locktime.models.task import TaskStatus, TaskType
from locktime.services.lock_service import LockService
from locktime.services.task_service import TaskService
from locktime.utils.invariants import (
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)

DAY = 86400
HOUR = 3600


@pytest.fixture
def lock_service(db):
    return LockService(db)


@pytest.fixture
def task_service(db):
    return TaskService(db)


@pytest.fixture
def paused_lock(lock_service, pairing, keyholder, t0):
    """24 h lock that ran for one hour and was paused (82800 s left)."""
    lock = lock_service.create_lock(pairing.id, keyholder.id, "Week", DAY, now=t0)
    lock_service.pause(lock.id, keyholder.id, now=t0 + timedelta(hours=1))
    return lock


def submitted_task(task_service, pairing, keyholder, sub, now, **kwargs):
    task = task_service.create_task(pairing.id, keyholder.id, kwargs.pop("title", "Check in"), now=now, **kwargs)
    task_service.submit_task(task.id, sub.id, now=now + timedelta(minutes=5))
    return task


def time_entries(db, lock):
    return db.query(LockHistoryEntry).filter(
        LockHistoryEntry.lock_id == lock.id,
        LockHistoryEntry.action.in_([LockAction.TIME_ADDED, LockAction.TIME_REMOVED]),
    ).all()


class TestReviewSideEffect:
    """Approval and rejection move the lock's remaining time."""

    def test_approval_removes_reward(self, db, task_service, lock_service, paused_lock, pairing, keyholder, sub, t0):
        now = t0 + timedelta(hours=2)
        task = submitted_task(
            task_service, pairing, keyholder, sub, now,
            lock_id=paused_lock.id, time_reward_seconds=HOUR,
        )

        outcome = task_service.review_task(task.id, keyholder.id, approved=True, now=now + timedelta(minutes=10))

        assert outcome.task.status == TaskStatus.APPROVED
        assert outcome.time_change_seconds == -HOUR
        assert lock_service.get_lock(paused_lock.id).remaining_seconds == 79200

        entries = time_entries(db, paused_lock)
        assert len(entries) == 1
        assert entries[0].action == LockAction.TIME_REMOVED
        assert entries[0].time_change_seconds == -HOUR
        assert entries[0].reason == "Task approved: Check in"
        assert outcome.history_entry.id == entries[0].id

    def test_rejection_adds_penalty(self, db, task_service, lock_service, paused_lock, pairing, keyholder, sub, t0):
        now = t0 + timedelta(hours=2)
        task = submitted_task(
            task_service, pairing, keyholder, sub, now,
            lock_id=paused_lock.id, time_reward_seconds=HOUR, time_penalty_seconds=2 * HOUR,
        )

        outcome = task_service.review_task(task.id, keyholder.id, approved=False, now=now + timedelta(minutes=10))

        assert outcome.task.status == TaskStatus.REJECTED
        assert outcome.time_change_seconds == 2 * HOUR
        assert lock_service.get_lock(paused_lock.id).remaining_seconds == 82800 + 2 * HOUR
        assert [e.action for e in time_entries(db, paused_lock)] == [LockAction.TIME_ADDED]

    def test_review_ignores_capability_flags(self, db, task_service, lock_service, pairing, keyholder, sub, t0):
        lock = lock_service.create_lock(
            pairing.id, keyholder.id, "Strict", DAY,
            allow_keyholder_add_time=False, allow_keyholder_remove_time=False, now=t0,
        )
        task = submitted_task(
            task_service, pairing, keyholder, sub, t0,
            lock_id=lock.id, time_reward_seconds=HOUR,
        )
        task_service.review_task(task.id, keyholder.id, approved=True, now=t0 + timedelta(minutes=10))
        assert lock_service.get_lock(lock.id).remaining_seconds == DAY - HOUR

    def test_approval_clamps_at_zero(self, task_service, lock_service, pairing, keyholder, sub, t0):
        lock = lock_service.create_lock(pairing.id, keyholder.id, "Short", HOUR, now=t0)
        task = submitted_task(
            task_service, pairing, keyholder, sub, t0,
            lock_id=lock.id, time_reward_seconds=DAY,
        )
        task_service.review_task(task.id, keyholder.id, approved=True, now=t0 + timedelta(minutes=10))
        assert lock_service.get_lock(lock.id).remaining_seconds == 0


class TestReviewWithoutSideEffect:
    """Cases where the review writes no lock history."""

    def test_task_without_lock(self, db, task_service, pairing, keyholder, sub, t0):
        task = submitted_task(task_service, pairing, keyholder, sub, t0, time_reward_seconds=HOUR)
        outcome = task_service.review_task(task.id, keyholder.id, approved=True, now=t0 + timedelta(hours=1))
        assert outcome.time_change_seconds == 0
        assert outcome.history_entry is None
        assert db.query(LockHistoryEntry).count() == 0

    def test_zero_reward(self, db, task_service, lock_service, paused_lock, pairing, keyholder, sub, t0):
        now = t0 + timedelta(hours=2)
        task = submitted_task(task_service, pairing, keyholder, sub, now, lock_id=paused_lock.id)
        outcome = task_service.review_task(task.id, keyholder.id, approved=True, now=now + timedelta(minutes=10))
        assert outcome.history_entry is None
        assert time_entries(db, paused_lock) == []
        assert lock_service.get_lock(paused_lock.id).remaining_seconds == 82800

    def test_terminal_lock_untouched(self, db, task_service, lock_service, paused_lock, pairing, keyholder, sub, t0):
        now = t0 + timedelta(hours=2)
        task = submitted_task(
            task_service, pairing, keyholder, sub, now,
            lock_id=paused_lock.id, time_penalty_seconds=HOUR,
        )
        lock_service.complete(paused_lock.id, keyholder.id, now=now + timedelta(minutes=6))

        outcome = task_service.review_task(task.id, keyholder.id, approved=False, now=now + timedelta(minutes=10))

        assert outcome.task.status == TaskStatus.REJECTED
        assert outcome.time_change_seconds == 0
        assert time_entries(db, paused_lock) == []
        assert lock_service.get_lock(paused_lock.id).remaining_seconds == 0


class TestTaskLifecycle:
    """Creation, submission and review rules."""

    def test_create_notifies_sub(self, db, task_service, pairing, keyholder, sub, t0):
        task_service.create_task(pairing.id, keyholder.id, "Photo", now=t0)
        assert db.query(Notification).filter(
            Notification.user_id == sub.id, Notification.type == "task_assigned"
        ).count() == 1

    def test_sub_cannot_create(self, task_service, pairing, sub, t0):
        with pytest.raises(PermissionDeniedError):
            task_service.create_task(pairing.id, sub.id, "Self-assigned", now=t0)

    def test_negative_reward_rejected(self, task_service, pairing, keyholder, t0):
        with pytest.raises(ValidationError):
            task_service.create_task(pairing.id, keyholder.id, "Bad", time_reward_seconds=-1, now=t0)

    def test_lock_from_other_relationship_rejected(self, db, task_service, pairing, keyholder, t0):
        with pytest.raises(ValidationError):
            task_service.create_task(pairing.id, keyholder.id, "Bad", lock_id=uuid4(), now=t0)

    def test_quiz_requires_two_options(self, task_service, pairing, keyholder, t0):
        with pytest.raises(ValidationError):
            task_service.create_task(
                pairing.id, keyholder.id, "Quiz", task_type=TaskType.QUIZ,
                quiz_data={"question": "2+2?", "options": ["4", " "], "correct_answer": 0},
                now=t0,
            )

    def test_quiz_submission_and_correctness(self, task_service, pairing, keyholder, sub, t0):
        task = task_service.create_task(
            pairing.id, keyholder.id, "Quiz", task_type=TaskType.QUIZ,
            quiz_data={"question": "2+2?", "options": ["3", "4", "5"], "correct_answer": 1},
            now=t0,
        )
        with pytest.raises(ValidationError):
            task_service.submit_task(task.id, sub.id, quiz_answer=7, now=t0)

        submitted = task_service.submit_task(task.id, sub.id, quiz_answer=1, now=t0)
        assert submitted.status == TaskStatus.SUBMITTED
        assert TaskService.is_quiz_correct(submitted)

    def test_proof_requires_text(self, task_service, pairing, keyholder, sub, t0):
        task = task_service.create_task(
            pairing.id, keyholder.id, "Proof", task_type=TaskType.PROOF,
            requires_text=True, now=t0,
        )
        with pytest.raises(ValidationError):
            task_service.submit_task(task.id, sub.id, now=t0)
        done = task_service.submit_task(task.id, sub.id, submission_text="Done", now=t0)
        assert done.submission_text == "Done"

    def test_keyholder_cannot_submit(self, task_service, pairing, keyholder, t0):
        task = task_service.create_task(pairing.id, keyholder.id, "Check in", now=t0)
        with pytest.raises(PermissionDeniedError):
            task_service.submit_task(task.id, keyholder.id, now=t0)

    def test_review_pending_task_fails(self, task_service, pairing, keyholder, t0):
        task = task_service.create_task(pairing.id, keyholder.id, "Check in", now=t0)
        with pytest.raises(InvalidTransitionError):
            task_service.review_task(task.id, keyholder.id, approved=True, now=t0)

    def test_sub_cannot_review(self, task_service, pairing, keyholder, sub, t0):
        task = submitted_task(task_service, pairing, keyholder, sub, t0)
        with pytest.raises(PermissionDeniedError):
            task_service.review_task(task.id, sub.id, approved=True, now=t0)

    def test_double_review_fails(self, task_service, pairing, keyholder, sub, t0):
        task = submitted_task(task_service, pairing, keyholder, sub, t0)
        task_service.review_task(task.id, keyholder.id, approved=True, now=t0)
        with pytest.raises(InvalidTransitionError):
            task_service.review_task(task.id, keyholder.id, approved=False, now=t0)

    def test_count_by_status_includes_every_status(self, task_service, pairing, keyholder, sub, t0):
        task_service.create_task(pairing.id, keyholder.id, "A", now=t0)
        submitted_task(task_service, pairing, keyholder, sub, t0, title="B")
        counts = task_service.count_by_status([pairing.id])
        assert counts == {"pending": 1, "submitted": 1, "approved": 0, "rejected": 0}
