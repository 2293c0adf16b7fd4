"""Task model."""
import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from locktime.database import Base
from locktime.models.base import BaseModel


class TaskType(str, enum.Enum):
    """How a task is completed."""
    CHECK_IN = "check_in"
    QUIZ = "quiz"
    PROOF = "proof"


class TaskStatus(str, enum.Enum):
    """Task review lifecycle."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class Task(Base, BaseModel):
    """
    Task assigned by a keyholder to a sub.

    When reviewed, an optional linked lock is credited: approval removes
    time_reward_seconds, rejection adds time_penalty_seconds.

    Attributes:
        relationship_id: Owning relationship
        lock_id: Optional lock affected by the review outcome
        title: Task title
        description: Optional instructions
        task_type: check_in, quiz or proof
        quiz_data: {"question": str, "options": [str], "correct_answer": int}
        quiz_answer: Index chosen by the sub
        requires_photo: Proof must include a photo URL
        requires_text: Proof must include a text description
        submission_text: Text proof
        submission_photo_url: Photo proof URL
        time_reward_seconds: Time removed from the lock on approval
        time_penalty_seconds: Time added to the lock on rejection
        status: pending, submitted, approved or rejected
        submitted_at: When the sub submitted
        reviewed_at: When the keyholder reviewed
        reviewed_by: Reviewing user
        review_notes: Optional reviewer notes
    """

    __tablename__ = "tasks"

    relationship_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("relationships.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    lock_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("locks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(
        SQLEnum(TaskType, name="task_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TaskType.CHECK_IN,
    )
    quiz_data = Column(JSON, nullable=True)
    quiz_answer = Column(Integer, nullable=True)
    requires_photo = Column(Boolean, default=False, nullable=False)
    requires_text = Column(Boolean, default=False, nullable=False)
    submission_text = Column(Text, nullable=True)
    submission_photo_url = Column(String(1024), nullable=True)
    time_reward_seconds = Column(Integer, default=0, nullable=False)
    time_penalty_seconds = Column(Integer, default=0, nullable=False)
    status = Column(
        SQLEnum(TaskStatus, name="task_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    submitted_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_notes = Column(Text, nullable=True)

    # Relationships
    pairing = relationship("Relationship", back_populates="tasks")
    lock = relationship("Lock")

    def __repr__(self):
        return f"<Task(title='{self.title}', status='{self.status}')>"
