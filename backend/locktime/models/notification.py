"""Notification model."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from locktime.database import Base
from locktime.models.base import BaseModel


class Notification(Base, BaseModel):
    """
    In-app notification for one user.

    Attributes:
        user_id: Recipient
        type: Machine-readable kind (lock_created, task_reviewed, ...)
        title: Short heading
        message: Body text
        link: Path of the page the notification points to
        is_read: Whether the recipient has seen it
        read_at: When it was marked read
    """

    __tablename__ = "notifications"

    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(255), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Notification(type='{self.type}', user_id='{self.user_id}')>"
