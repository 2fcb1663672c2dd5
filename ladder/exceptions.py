"""
ladder/exceptions.py
Typed exceptions raised by the ladder services.

Every exception carries a machine-readable code and optional details; the
HTTP layer maps status_code and renders the standard error body.
"""
from typing import Any, Dict, Optional


class LadderError(Exception):
    """Base exception for the ladder engine"""
    status_code: int = 500
    error: str = "Error"

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationFailedError(LadderError):
    """
    Bad shape or range, rejected before any mutation.

    Examples:
    - strength outside 1..5
    - seed team index outside 1..8
    - duplicate stage number in one overrides submission
    """
    status_code = 400
    error = "Bad Request"


class NotFoundError(LadderError):
    status_code = 404
    error = "Not Found"

    def __init__(self, resource: str, identifier: Any = None, code: str = "NOT_FOUND"):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, code, {"resource": resource, "id": identifier})


class PreconditionError(LadderError):
    """
    Expected state conflict the caller can resolve.

    Examples:
    - previous stage still has unscored games
    - teams already formed
    - payments outstanding
    """
    status_code = 409
    error = "Conflict"


class InvalidTransitionError(PreconditionError):
    """Lifecycle transition not allowed from the current status."""


class InvariantViolationError(LadderError):
    """Stored data contradicts an engine invariant; the operation halts."""
    status_code = 500
    error = "Invariant Violation"
