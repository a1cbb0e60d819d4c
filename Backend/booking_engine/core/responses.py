"""
Error envelope for the public API.

Successful calls return their response model directly. Failures raised by the
engine are rendered by the handlers in main.py as:

    {
        "error": {
            "code": "CONFLICT",
            "message": "Requested time is no longer available",
            "details": {"booking_link_id": 1, "start": "...", "end": "..."}
        },
        "status": "error"
    }

``details`` is omitted when there is nothing to add.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
    status: Literal["error"] = "error"


class ErrorCodes:
    """Values of ``error.code``; engine errors carry theirs as ``SchedulingError.code``."""

    # 400
    INVALID_TIMEZONE = "INVALID_TIMEZONE"
    INVALID_INPUT = "INVALID_INPUT"

    # 404
    NOT_FOUND = "NOT_FOUND"

    # 409
    CONFLICT = "CONFLICT"

    # 422
    OUT_OF_WINDOW = "OUT_OF_WINDOW"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ROUTING_UNMATCHED = "ROUTING_UNMATCHED"

    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(code: str, message: str, details: Optional[dict] = None) -> dict:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details or None))
    return envelope.model_dump(exclude_none=True)
