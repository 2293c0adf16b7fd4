"""Relationship model."""
import enum

from sqlalchemy import Column, DateTime, ForeignKey, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from locktime.database import Base
from locktime.models.base import BaseModel


class RelationshipStatus(str, enum.Enum):
    """Lifecycle of a keyholder/sub pairing."""
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class Relationship(Base, BaseModel):
    """
    Pairing between a keyholder and a sub.

    A relationship starts as a pending request sent by either participant,
    becomes active once the other participant accepts it, may be paused and
    resumed, and ends for good.

    Attributes:
        keyholder_id: User holding the privileged role
        sub_id: User whose locks are managed
        initiated_by: Participant who sent the request; the other one answers it
        status: pending, active, paused or ended
        started_at: When the request was accepted
        ended_at: When the relationship was rejected or ended
    """

    __tablename__ = "relationships"

    keyholder_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sub_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    initiated_by = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(
        SQLEnum(
            RelationshipStatus,
            name="relationship_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=RelationshipStatus.PENDING,
        index=True,
    )
    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    # Relationships
    keyholder = relationship("User", foreign_keys=[keyholder_id])
    sub = relationship("User", foreign_keys=[sub_id])
    locks = relationship("Lock", back_populates="pairing")
    tasks = relationship("Task", back_populates="pairing")

    def partner_of(self, user_id):
        """Return the id of the other participant."""
        return self.sub_id if user_id == self.keyholder_id else self.keyholder_id

    def recipient_id(self):
        """Participant expected to answer a pending request."""
        return self.partner_of(self.initiated_by) if self.initiated_by is not None else self.keyholder_id

    def __repr__(self):
        return f"<Relationship(id='{self.id}', status='{self.status}')>"
