"""LockHistoryEntry model."""
import enum

from sqlalchemy import Column, ForeignKey, Integer, Text, Uuid, case
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from locktime.database import Base
from locktime.models.base import BaseModel
from locktime.utils.invariants import install_history_guards


class LockAction(str, enum.Enum):
    """Kinds of lock history entries."""
    CREATED = "created"
    PAUSED = "paused"
    RESUMED = "resumed"
    TIME_ADDED = "time_added"
    TIME_REMOVED = "time_removed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Actions that start and stop a running interval during history replay
OPENING_ACTIONS = frozenset({LockAction.CREATED, LockAction.RESUMED})
CLOSING_ACTIONS = frozenset({LockAction.PAUSED, LockAction.COMPLETED, LockAction.CANCELLED})


class LockHistoryEntry(Base, BaseModel):
    """
    Immutable audit record of one lock transition or time adjustment.

    **IMMUTABILITY RULES:**
    - Entries are APPEND-ONLY
    - NEVER update fields after creation
    - NEVER delete entries (aggregates are replayed from them)

    Attributes:
        lock_id: Lock the entry describes
        performed_by: Acting user
        action: One of LockAction
        time_change_seconds: Signed change (0 for non-time actions)
        reason: Optional free text
        created_at: When the transition happened (from BaseModel)

    Guards:
        - install_history_guards() rejects UPDATE and DELETE at flush time
    """

    __tablename__ = "lock_history"

    lock_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("locks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    performed_by = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action = Column(
        SQLEnum(LockAction, name="lock_action", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    time_change_seconds = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=True)

    # Relationships
    lock = relationship("Lock", back_populates="history")
    performer = relationship("User")

    def __repr__(self):
        return f"<LockHistoryEntry(action='{self.action}', time_change={self.time_change_seconds})>"


install_history_guards(LockHistoryEntry)


def action_rank(action) -> int:
    """Order of actions sharing a timestamp: created, closing actions, then the rest."""
    action = LockAction(getattr(action, "value", action))
    if action == LockAction.CREATED:
        return 0
    if action in CLOSING_ACTIONS:
        return 1
    return 2


def action_rank_clause():
    """SQL counterpart of action_rank, for ORDER BY after created_at."""
    return case(
        (LockHistoryEntry.action == LockAction.CREATED, 0),
        (LockHistoryEntry.action.in_(list(CLOSING_ACTIONS)), 1),
        else_=2,
    )
