"""
ladder/errors.py
Centralized error codes and the error response contract.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Invalid input / out-of-range values
- 403: Feature disabled
- 404: Resource does not exist
- 409: Precondition or lifecycle conflict
- 422: Validation error (Pydantic)
- 429: Rate limit exceeded
- 500: Invariant violation or internal failure
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Lifecycle
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    TOURNAMENT_CANCELED = "TOURNAMENT_CANCELED"
    TOURNAMENT_FINISHED = "TOURNAMENT_FINISHED"
    TOURNAMENT_NOT_DRAFT = "TOURNAMENT_NOT_DRAFT"
    MODE_MISMATCH = "MODE_MISMATCH"

    # Team formation
    PAYMENT_INCOMPLETE = "PAYMENT_INCOMPLETE"
    TEAMS_ALREADY_EXIST = "TEAMS_ALREADY_EXIST"
    PLAYER_COUNT_INVALID = "PLAYER_COUNT_INVALID"
    TOO_MANY_SEEDS = "TOO_MANY_SEEDS"
    DUPLICATE_SEED = "DUPLICATE_SEED"
    SEED_SLOT_UNAVAILABLE = "SEED_SLOT_UNAVAILABLE"
    FORMATION_INCOMPLETE = "FORMATION_INCOMPLETE"
    BUCKET_COLLISION = "BUCKET_COLLISION"
    INVALID_SEED = "INVALID_SEED"
    INVALID_STRENGTH = "INVALID_STRENGTH"

    # Ladder
    TEAM_COUNT_INVALID = "TEAM_COUNT_INVALID"
    PREVIOUS_STAGE_INCOMPLETE = "PREVIOUS_STAGE_INCOMPLETE"
    COURT_IMBALANCE = "COURT_IMBALANCE"
    ALREADY_SCORED = "ALREADY_SCORED"
    INVALID_WINNER = "INVALID_WINNER"
    NO_STAGES = "NO_STAGES"

    # Points
    OVERRIDES_LOCKED_AFTER_START = "OVERRIDES_LOCKED_AFTER_START"
    DUPLICATE_STAGE_NUMBER = "DUPLICATE_STAGE_NUMBER"
    INVALID_STAGE_NUMBER = "INVALID_STAGE_NUMBER"
    INVALID_POINTS = "INVALID_POINTS"

    # Registration
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    INVALID_REGISTRATION_STATE = "INVALID_REGISTRATION_STATE"
    INVALID_PHONE = "INVALID_PHONE"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_SLOT = "INVALID_SLOT"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Any] = None


def error_payload(
    error: str,
    message: str,
    code: str,
    details: Optional[Any] = None
) -> Dict[str, Any]:
    """Build the standard error body, omitting empty details."""
    content = {
        "success": False,
        "error": error,
        "message": message,
        "code": code,
    }
    if details:
        content["details"] = details
    return content


def get_error_summary() -> Dict[str, Any]:
    """Return summary of error handling system for documentation"""
    return {
        "service": "ladder-error-handler",
        "response_structure": {
            "success": "boolean (always false for errors)",
            "error": "string (error type)",
            "message": "string (human-readable)",
            "code": "string (machine-readable)",
            "details": "object (optional)"
        },
        "status_codes": {
            "400": "Invalid input / out-of-range values",
            "403": "Feature disabled",
            "404": "Resource does not exist",
            "409": "Precondition or lifecycle conflict",
            "422": "Validation error (Pydantic)",
            "429": "Rate limit exceeded",
            "500": "Invariant violation or internal failure"
        },
        "error_codes": sorted(
            attr for attr in dir(ErrorCode)
            if not attr.startswith('_')
        )
    }
