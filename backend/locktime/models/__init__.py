"""
Models Package

Imports all SQLAlchemy models for application use.
"""

from locktime.models.base import BaseModel
from locktime.models.user import User, UserRole, UserStatus
from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.models.lock import Lock, LockStatus
from locktime.models.lock_history import LockHistoryEntry, LockAction
from locktime.models.task import Task, TaskStatus, TaskType
from locktime.models.notification import Notification
from locktime.models.idempotency import IdempotencyKey, DecisionTrace, RequestStatus

__all__ = [
    'BaseModel',
    'User',
    'UserRole',
    'UserStatus',
    'Relationship',
    'RelationshipStatus',
    'Lock',
    'LockStatus',
    'LockHistoryEntry',
    'LockAction',
    'Task',
    'TaskStatus',
    'TaskType',
    'Notification',
    'IdempotencyKey',
    'DecisionTrace',
    'RequestStatus',
]
