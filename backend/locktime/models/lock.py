"""Lock model."""
import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from locktime.database import Base
from locktime.models.base import BaseModel


class LockStatus(str, enum.Enum):
    """Lock lifecycle states. COMPLETED and CANCELLED are terminal."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LockStatus.COMPLETED, LockStatus.CANCELLED)


class Lock(Base, BaseModel):
    """
    Time-bound lock owned by a relationship.

    The stored remaining_seconds is a snapshot valid as of started_at.
    While the lock is active the true remaining time is
    remaining_seconds - (now - started_at), floored at 0; use
    services.timer_projection to derive it. The snapshot itself only
    changes through explicit transitions (pause, time adjustment,
    complete, cancel).

    Attributes:
        relationship_id: Owning relationship
        name: Display name
        description: Optional free text
        status: active, paused, completed or cancelled
        initial_duration_seconds: Duration the lock was created with
        remaining_seconds: Remaining-time snapshot
        started_at: Start of the current running period
        paused_at: When the lock was last paused
        completed_at: When the lock was completed
        allow_keyholder_add_time: Keyholder may add time
        allow_keyholder_remove_time: Keyholder may remove time
        allow_sub_request_time: Sub may ask for a time change
    """

    __tablename__ = "locks"

    relationship_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("relationships.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(LockStatus, name="lock_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=LockStatus.ACTIVE,
        index=True,
    )
    initial_duration_seconds = Column(Integer, nullable=False)
    remaining_seconds = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    allow_keyholder_add_time = Column(Boolean, default=True, nullable=False)
    allow_keyholder_remove_time = Column(Boolean, default=True, nullable=False)
    allow_sub_request_time = Column(Boolean, default=False, nullable=False)

    # Relationships
    pairing = relationship("Relationship", back_populates="locks")
    history = relationship(
        "LockHistoryEntry",
        back_populates="lock",
        order_by="LockHistoryEntry.created_at",
    )

    def __repr__(self):
        return f"<Lock(name='{self.name}', status='{self.status}', remaining={self.remaining_seconds})>"
