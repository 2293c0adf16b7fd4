"""Base model with common fields for all models."""
import uuid

from sqlalchemy import Column, DateTime, Uuid

from locktime.utils.timeutil import utcnow


class BaseModel:
    """
    Mixin providing id and timestamps.

    Attributes:
        id: UUID primary key
        created_at: Creation timestamp (naive UTC)
        updated_at: Last modification timestamp (naive UTC)
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
