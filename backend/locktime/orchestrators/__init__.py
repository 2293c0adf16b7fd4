"""
Orchestrators package.

Orchestrators coordinate services to run one user command as a single
idempotent, traced unit of work.

Orchestrators should:
    - Build their services with auto_commit=False
    - Commit exactly once per command (via BaseOrchestrator.execute)
    - Return JSON-ready dicts, which are cached per request_id

Difference between Services and Orchestrators:
    - Services: Single-responsibility, focused on one domain/entity
    - Orchestrators: Deduplicated commands spanning several services
"""

from locktime.orchestrators.base import (
    BaseOrchestrator,
    DuplicateRequestError,
    OrchestrationError,
)
from locktime.orchestrators.lock_orchestrator import (
    LockOrchestrator,
    LockOrchestratorError,
    serialize_lock,
)
from locktime.orchestrators.task_review_orchestrator import TaskReviewOrchestrator

__all__ = [
    "BaseOrchestrator",
    "DuplicateRequestError",
    "OrchestrationError",
    "LockOrchestrator",
    "LockOrchestratorError",
    "serialize_lock",
    "TaskReviewOrchestrator",
]
