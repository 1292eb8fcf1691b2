"""
Structured exceptions and error responses for Stageline.

The scheduling core raises these synchronously; the API turns them into
a consistent JSON body through the registered FastAPI handlers.
"""

from typing import Any, Dict, Optional, List

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stageline.logging_config import get_logger

logger = get_logger("stageline.error")


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error."""
    loc: Optional[List[str]] = None
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # Error code (e.g. "cycle_detected")
    message: str
    details: Optional[List[Dict[str, Any]]] = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class StagelineException(Exception):
    """Base exception for all Stageline errors."""

    error_code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(StagelineException):
    """Resource not found."""

    error_code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(message=f"{resource} with ID {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(StagelineException):
    """Malformed stage input: unknown dependency, negative duration, start after end."""

    error_code = "validation_error"
    status_code = 422

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message=message, details=details)


class CycleError(StagelineException):
    """The dependency graph is not acyclic."""

    error_code = "cycle_detected"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, cycle: Optional[List[str]] = None):
        self.cycle = list(cycle or [])
        if self.cycle:
            path = " -> ".join(self.cycle + self.cycle[:1])
            message = f"Dependency cycle detected: {path}"
        else:
            message = "Dependency graph contains a cycle"
        super().__init__(
            message=message,
            details=[
                ErrorDetail(loc=["dependencies"], msg=message, type="cycle_error").model_dump()
            ],
        )


class FinalizedStageError(StagelineException):
    """An edit targets a completed stage, whose dates are immutable."""

    error_code = "finalized_stage"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, stage_id: str, stage_name: str = ""):
        label = stage_name or stage_id
        super().__init__(message=f"Stage {label} is completed and its dates cannot change")
        self.stage_id = stage_id


class CascadeConflictError(StagelineException):
    """A cascade cannot be applied without resolving its conflicts."""

    error_code = "cascade_conflict"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicts: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message=message, details=conflicts)


class InternalConsistencyError(StagelineException):
    """A scheduling invariant was violated by the engine itself. Not recoverable."""

    error_code = "internal_consistency_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, stage_id: Optional[str] = None):
        super().__init__(message=message)
        self.stage_id = stage_id


# =============================================================================
# Exception Handlers
# =============================================================================

async def stageline_exception_handler(request: Request, exc: StagelineException) -> JSONResponse:
    """Handle StagelineException and return structured response."""
    if isinstance(exc, InternalConsistencyError):
        logger.critical(f"Internal consistency error on {request.url.path}: {exc.message}")
    body = ErrorResponse(error=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(StagelineException, stageline_exception_handler)
