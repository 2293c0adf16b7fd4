"""
Base Orchestrator

Abstract base class for command orchestrators with built-in support for:
- Idempotency (a resubmitted command is never applied twice)
- Decision tracing (step-by-step audit trail of each command)
- Single commit per command (lock row, history entry and notification
  land together or not at all)

All command orchestrators should extend this class.
"""

import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from locktime.config import get_settings
from locktime.models.idempotency import DecisionTrace, IdempotencyKey, RequestStatus
from locktime.utils.invariants import (
    LockTimeError,
    commit_or_raise,
    validate_orchestrator_name,
    validate_request_id,
)
from locktime.utils.logging import bind_context, clear_context, get_logger
from locktime.utils.timeutil import utcnow

logger = get_logger(__name__)

# Type variable for orchestrator result
T = TypeVar('T')


class ExecutionStep:
    """Represents a single execution step in the trace"""
    def __init__(self, action: str, step_number: int):
        self.step = step_number
        self.action = action
        self.status = "in_progress"
        self.started_at = utcnow().isoformat()
        self.completed_at = None
        self.duration_ms = None
        self.details = {}
        self.error = None
        self._start_time = time.time()

    def complete(self, status: str = "success", details: Optional[Dict[str, Any]] = None):
        """Mark step as completed"""
        self.status = status
        self.completed_at = utcnow().isoformat()
        self.duration_ms = int((time.time() - self._start_time) * 1000)
        if details:
            self.details = details

    def fail(self, error: str, details: Optional[Dict[str, Any]] = None):
        """Mark step as failed"""
        self.status = "failed"
        self.completed_at = utcnow().isoformat()
        self.duration_ms = int((time.time() - self._start_time) * 1000)
        self.error = error
        if details:
            self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        result = {
            "step": self.step,
            "action": self.action,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }
        if self.details:
            result["details"] = self.details
        if self.error:
            result["error"] = self.error
        return result


class OrchestrationError(Exception):
    """Base exception for orchestration errors"""
    pass


class DuplicateRequestError(OrchestrationError):
    """Raised when a duplicate request is detected and still processing"""
    pass


class BaseOrchestrator(ABC, Generic[T]):
    """
    Abstract base orchestrator with idempotency and traceability.

    Subclasses must implement:
    - orchestrator_name: str property
    - _execute_pipeline(context: Dict[str, Any]) -> T method

    Services used inside the pipeline must be built with auto_commit=False;
    execute() commits once after the pipeline succeeds and rolls everything
    back if it raises.

    Domain errors (LockTimeError subclasses) propagate unchanged so callers
    can tell an invalid transition from an infrastructure failure. Any other
    exception is wrapped in OrchestrationError.
    """

    # Name stored with the idempotency key when the result carries an "id"
    resource_type: Optional[str] = None

    def __init__(self, db: Session, user_id: Optional[uuid.UUID] = None):
        """
        Initialize base orchestrator.

        Args:
            db: Database session
            user_id: Acting user for this command
        """
        self.db = db
        self.user_id = user_id
        self._start_time = None
        self._current_request_id = None
        self._execution_steps: List[ExecutionStep] = []
        self._step_counter = 0

    @property
    @abstractmethod
    def orchestrator_name(self) -> str:
        """
        Name of this orchestrator (must be unique across all orchestrators).

        Returns:
            Orchestrator name (e.g., "lock_orchestrator")
        """
        pass

    @abstractmethod
    def _execute_pipeline(self, context: Dict[str, Any]) -> T:
        """
        Execute the command pipeline.

        Args:
            context: Execution context with input data

        Returns:
            JSON-serializable result of the command
        """
        pass

    def execute(
        self,
        request_id: str,
        input_data: Dict[str, Any],
        ttl_hours: Optional[int] = None
    ) -> T:
        """
        Execute the command with idempotency guarantees.

        Steps:
        1. Check idempotency key in database
        2. If duplicate completed request: return cached response
        3. If duplicate in-flight request: raise DuplicateRequestError
        4. Create idempotency key record and mark as processing
        5. Execute pipeline with step-by-step tracing
        6. Persist DecisionTrace, cache response, commit once

        On failure the command's changes are rolled back and a FAILED key
        plus its trace are committed on their own, so a retry with the same
        request_id runs again.

        Args:
            request_id: Unique request identifier (idempotency key)
            input_data: JSON-serializable command payload
            ttl_hours: How long the cached response is honoured
                (default from settings)

        Returns:
            Result of the command

        Raises:
            DuplicateRequestError: If request is already being processed
            LockTimeError: If the command itself is rejected
            OrchestrationError: For any other failure
        """
        try:
            validate_request_id(request_id)
            validate_orchestrator_name(self.orchestrator_name)
        except ValueError as e:
            raise OrchestrationError(f"Invalid input: {str(e)}") from e

        if ttl_hours is None:
            ttl_hours = get_settings().idempotency_ttl_hours

        self._current_request_id = request_id
        self._start_time = time.time()
        self._execution_steps = []
        self._step_counter = 0

        bind_context(request_id=request_id, orchestrator=self.orchestrator_name)
        try:
            with self._trace_step("check_idempotency"):
                existing_key = self._get_idempotency_key(request_id)
                if existing_key:
                    cached_result = self._handle_duplicate_request(existing_key)
                    if cached_result is not None:
                        logger.info("request_replayed", status=existing_key.status.value)
                        return cached_result

            with self._trace_step("create_idempotency_key"):
                idempotency_key = self._create_idempotency_key(
                    request_id=request_id,
                    input_data=input_data,
                    ttl_hours=ttl_hours
                )

            with self._trace_step("mark_processing"):
                self._update_status(idempotency_key, RequestStatus.PROCESSING)

            try:
                with self._trace_step("prepare_context"):
                    context = self._prepare_context(input_data)

                with self._trace_step("execute_pipeline"):
                    result = self._execute_pipeline(context)

                with self._trace_step("serialize_result"):
                    response_data = self._serialize_result(result)

                with self._trace_step("complete_request"):
                    self._complete_request(
                        idempotency_key=idempotency_key,
                        response_data=response_data,
                        result=result
                    )

                self._persist_trace()
                commit_or_raise(self.db, self.orchestrator_name)
                logger.info("request_completed", duration_ms=self.get_elapsed_time_ms())
                return result

            except Exception as e:
                self.db.rollback()
                self._record_failure(request_id, input_data, ttl_hours, e)
                raise

        except (DuplicateRequestError, LockTimeError):
            raise
        except OrchestrationError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise OrchestrationError(f"Orchestration failed: {str(e)}") from e
        finally:
            clear_context()

    def _get_idempotency_key(self, request_id: str) -> Optional[IdempotencyKey]:
        """Get existing idempotency key if it exists"""
        return self.db.query(IdempotencyKey).filter(
            and_(
                IdempotencyKey.request_id == request_id,
                IdempotencyKey.orchestrator_name == self.orchestrator_name
            )
        ).first()

    def _handle_duplicate_request(self, existing_key: IdempotencyKey) -> Optional[T]:
        """
        Handle duplicate request based on current status.

        - Expired: Delete record and return None (runs as a new request)
        - COMPLETED: Return cached response
        - PROCESSING: Raise error (duplicate in-flight)
        - FAILED: Delete failed record and return None to allow retry
        - PENDING: Should not happen, raise error
        """
        if existing_key.expires_at is not None and existing_key.expires_at < utcnow():
            self.db.delete(existing_key)
            self.db.flush()
            return None

        if existing_key.status == RequestStatus.COMPLETED:
            if existing_key.response_data is not None:
                return self._deserialize_result(existing_key.response_data)
            raise OrchestrationError("Completed request has no cached response")

        elif existing_key.status == RequestStatus.PROCESSING:
            raise DuplicateRequestError(
                f"Request {existing_key.request_id} is already being processed"
            )

        elif existing_key.status == RequestStatus.FAILED:
            self.db.delete(existing_key)
            self.db.flush()
            return None

        else:
            raise OrchestrationError(
                f"Request {existing_key.request_id} is in unexpected state: {existing_key.status}"
            )

    def _create_idempotency_key(
        self,
        request_id: str,
        input_data: Dict[str, Any],
        ttl_hours: int
    ) -> IdempotencyKey:
        """Create new idempotency key record"""
        now = utcnow()
        idempotency_key = IdempotencyKey(
            request_id=request_id,
            orchestrator_name=self.orchestrator_name,
            user_id=self.user_id,
            status=RequestStatus.PENDING,
            request_payload=input_data,
            expires_at=now + timedelta(hours=ttl_hours),
            created_at=now
        )

        self.db.add(idempotency_key)
        self.db.flush()

        return idempotency_key

    def _update_status(self, idempotency_key: IdempotencyKey, status: RequestStatus):
        """Update idempotency key status"""
        idempotency_key.status = status

        if status == RequestStatus.PROCESSING:
            idempotency_key.started_at = utcnow()
        elif status in (RequestStatus.COMPLETED, RequestStatus.FAILED):
            idempotency_key.completed_at = utcnow()

        self.db.flush()

    def _complete_request(
        self,
        idempotency_key: IdempotencyKey,
        response_data: Dict[str, Any],
        result: T
    ):
        """Mark request as completed and cache response"""
        self._update_status(idempotency_key, RequestStatus.COMPLETED)

        idempotency_key.response_data = response_data

        resource_id = response_data.get("id") if isinstance(response_data, dict) else None
        if resource_id and self.resource_type:
            idempotency_key.result_resource_id = uuid.UUID(str(resource_id))
            idempotency_key.result_resource_type = self.resource_type

        self.db.flush()

    def _record_failure(
        self,
        request_id: str,
        input_data: Dict[str, Any],
        ttl_hours: int,
        error: Exception
    ):
        """
        Commit a FAILED key and the failed trace after the command was rolled back.

        A store error here is logged and dropped so the command's own error is
        the one the caller sees.
        """
        error_name = getattr(error, "error_name", type(error).__name__)
        logger.warning("request_failed", error_name=error_name, error=str(error))

        try:
            idempotency_key = self._get_idempotency_key(request_id)
            if idempotency_key is None:
                idempotency_key = self._create_idempotency_key(request_id, input_data, ttl_hours)
            self._update_status(idempotency_key, RequestStatus.FAILED)
            idempotency_key.error_message = str(error)
            idempotency_key.error_details = {
                'error_type': type(error).__name__,
                'error_name': error_name,
                'details': getattr(error, "details", None),
            }
            self._persist_trace(error=str(error))
            self.db.commit()
        except SQLAlchemyError as store_error:
            self.db.rollback()
            logger.error("failure_record_not_saved", error=str(store_error))

    def _prepare_context(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Prepare execution context.

        Subclasses can override to add custom context preparation.
        """
        return {
            'input': input_data,
            'user_id': self.user_id,
            'request_id': self._current_request_id,
            'orchestrator': self.orchestrator_name
        }

    def _serialize_result(self, result: T) -> Dict[str, Any]:
        """
        Serialize result for caching.

        Pipelines return plain dicts, which are cached as-is.
        """
        if isinstance(result, dict):
            return result
        return {'result': str(result)}

    def _deserialize_result(self, response_data: Dict[str, Any]) -> T:
        """Return the cached response as-is."""
        return response_data  # type: ignore

    # Execution Tracing Methods

    @contextmanager
    def _trace_step(self, action: str):
        """
        Context manager for automatic step tracing.

        Usage:
            with self._trace_step("apply_time_change"):
                ...
        """
        self._step_counter += 1
        step = ExecutionStep(action, self._step_counter)
        self._execution_steps.append(step)

        try:
            yield step
            step.complete()
        except Exception as e:
            step.fail(str(e))
            raise

    def log_step(
        self,
        action: str,
        status: str = "success",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Manually log an execution step.

        Args:
            action: Description of the action
            status: Status of the step (success, failed, skipped, etc.)
            details: Additional details about the step
        """
        self._step_counter += 1
        step = ExecutionStep(action, self._step_counter)
        step.complete(status, details)
        self._execution_steps.append(step)
        logger.debug("step_logged", action=action, status=status)

    def _persist_trace(self, error: Optional[str] = None):
        """Add the DecisionTrace for this execution to the session."""
        trace_json = {
            "started_at": datetime.fromtimestamp(self._start_time, timezone.utc).replace(tzinfo=None).isoformat(),
            "completed_at": utcnow().isoformat(),
            "duration_ms": self.get_elapsed_time_ms(),
            "steps": [step.to_dict() for step in self._execution_steps],
            "result": "failed" if error else "success",
            "metadata": {
                "user_id": str(self.user_id) if self.user_id else None,
                "total_steps": len(self._execution_steps)
            }
        }

        if error:
            trace_json["error"] = error

        self.db.add(DecisionTrace(
            request_id=self._current_request_id,
            orchestrator_name=self.orchestrator_name,
            trace_json=trace_json,
            created_at=utcnow()
        ))
        self.db.flush()

    # Utility Methods

    def get_elapsed_time_ms(self) -> int:
        """Get elapsed time since orchestration started in milliseconds"""
        if self._start_time:
            return int((time.time() - self._start_time) * 1000)
        return 0
