"""
Command deduplication models.

Every lock command and task review sent through an orchestrator carries a
client request_id. IdempotencyKey remembers what that request did, and
DecisionTrace keeps the step log of each run.
"""
import enum

from sqlalchemy import JSON, Column, DateTime, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum

from locktime.database import Base
from locktime.models.base import BaseModel


class RequestStatus(str, enum.Enum):
    """Progress of one deduplicated command."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyKey(Base, BaseModel):
    """
    One submitted command, keyed by the client's request_id.

    A double click or a retry after a dropped response resubmits the same
    request_id. What happens next depends on the stored status:
    - COMPLETED: the cached serialized lock (or review) is returned, the
      lock is not touched again
    - PROCESSING: rejected as an in-flight duplicate
    - FAILED: the key is dropped and the command runs again
    - expired: treated as unseen

    Attributes:
        request_id: Client-supplied id, unique across all orchestrators
        orchestrator_name: lock_orchestrator or task_review_orchestrator
        user_id: Acting user
        status: RequestStatus
        request_payload: Command name and its arguments, `now` as ISO text
        response_data: JSON-ready result replayed to duplicates
        error_message, error_details: LockTimeError name, message and details
        started_at, completed_at: Execution window
        result_resource_type: "Lock" or "Task"
        result_resource_id: Id of the lock or task the command changed
        expires_at: End of the replay window (idempotency_ttl_hours)
    """

    __tablename__ = "idempotency_keys"

    request_id = Column(String(255), unique=True, nullable=False, index=True)
    orchestrator_name = Column(String(100), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    status = Column(
        SQLEnum(RequestStatus, name="request_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )

    request_payload = Column(JSON, nullable=True)
    response_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    result_resource_type = Column(String(50), nullable=True)
    result_resource_id = Column(Uuid(as_uuid=True), nullable=True, index=True)

    def __repr__(self):
        return f"<IdempotencyKey(request_id='{self.request_id}', status='{self.status}')>"


class DecisionTrace(Base, BaseModel):
    """
    Step log of one command run, successful or failed.

    trace_json holds the ExecutionStep list, the outcome ("success" or
    "failed"), timing and the error for failed runs. A retried request
    leaves one trace per run.
    """

    __tablename__ = "decision_traces"

    request_id = Column(String(255), nullable=False, index=True)
    orchestrator_name = Column(String(100), nullable=False, index=True)
    trace_json = Column(JSON, nullable=False)

    def __repr__(self):
        return f"<DecisionTrace(request_id='{self.request_id}', orchestrator='{self.orchestrator_name}')>"
