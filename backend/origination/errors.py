"""
Loan Origination API - Error Taxonomy

Every domain failure raised by the services derives from OriginationError.
Routers stamp the failing operation on the error (see `operation`) and the
exception handler installed in main turns it into:

    {"type": <OPERATION>_ERROR, "error": <class name>, "message": ..., "errors": [...]}
"""
from contextlib import contextmanager
from typing import List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class OriginationError(Exception):
    """Base class for all domain errors."""
    status_code = 400
    default_type = "ORIGINATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.operation: Optional[str] = None

    @property
    def type(self) -> str:
        return self.operation or self.default_type

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "error": self.__class__.__name__,
            "message": self.message,
            "errors": self.errors,
        }


# =============================================================================
# USER-CORRECTABLE
# =============================================================================

class ValidationError(OriginationError):
    """Missing or malformed required fields. Carries every message found."""
    status_code = 400
    default_type = "VALIDATION_ERROR"

    def __init__(self, errors: List[str], message: Optional[str] = None):
        super().__init__(message or "; ".join(errors), errors=errors)


class NotFoundError(OriginationError):
    """Referenced entity does not exist."""
    status_code = 404
    default_type = "NOT_FOUND_ERROR"


class PermissionDeniedError(OriginationError):
    """Actor lacks the capability required for the operation."""
    status_code = 403
    default_type = "PERMISSION_DENIED_ERROR"


# =============================================================================
# CONFLICTS
# =============================================================================

class ConflictError(OriginationError):
    status_code = 409
    default_type = "CONFLICT_ERROR"


class DuplicateClientError(ConflictError):
    pass


class CycleInProgressError(ConflictError):
    """A screening, loan or ACAT of the client is still live."""
    pass


class RedundantTransitionError(ConflictError):
    """Status update to the value the screening already holds."""
    pass


class InvalidTransitionError(ConflictError):
    """Status update not present in the transition table."""
    pass


# =============================================================================
# CYCLE GATING
# =============================================================================

class CycleGatingError(OriginationError):
    status_code = 409
    default_type = "CYCLE_GATING_ERROR"


class NoScreeningHistoryError(CycleGatingError):
    pass


class NoHistoryRecordError(CycleGatingError):
    pass


class IncompleteCycleError(CycleGatingError):
    """A ledger cycle is missing its Screening, Loan or ACAT reference."""

    def __init__(self, cycle_number: int, missing: str):
        super().__init__(
            f"Loan Cycle {cycle_number} is in progress. Missing {missing} Application"
        )
        self.cycle_number = cycle_number
        self.missing = missing


# =============================================================================
# UPSTREAM COLLABORATORS
# =============================================================================

class UpstreamServiceError(OriginationError):
    status_code = 502
    default_type = "UPSTREAM_SERVICE_ERROR"


class UploadError(UpstreamServiceError):
    pass


class CBSRequestError(UpstreamServiceError):
    pass


class GeoServiceError(UpstreamServiceError):
    pass


# =============================================================================
# REQUEST BOUNDARY
# =============================================================================

@contextmanager
def operation(tag: str):
    """Stamp the operation tag on any domain error raised inside the block."""
    try:
        yield
    except OriginationError as exc:
        if exc.operation is None:
            exc.operation = tag
        raise


async def origination_error_handler(request: Request, exc: OriginationError) -> JSONResponse:
    """FastAPI exception handler - structured error body with the class status code."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
