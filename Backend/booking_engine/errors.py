"""
Scheduling error taxonomy.

Every failure the engine reports to its caller is one of these types. They
carry a stable ``code`` (matching ``core.responses.ErrorCodes``) and optional
``details`` so the HTTP layer can render them without string matching.

    InvalidTimezone       unrecognized zone id (caller/config bug, never retried)
    ConflictError         slot no longer free (re-fetch availability, pick another)
    OutOfWindow           interval is not a producible slot (caller bug)
    ValidationError       required routing question missing
    UnroutableSubmission  no rule matched and the form has no default action
    NotFoundError         unknown booking link / event / form / owner
    InvalidInput          malformed request (empty or oversized query window, missing contact)
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all engine errors."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidTimezone(SchedulingError):
    code = "INVALID_TIMEZONE"

    def __init__(self, zone_id: str):
        self.zone_id = zone_id
        super().__init__(f"Unrecognized timezone: {zone_id!r}", {"zone_id": zone_id})


class ConflictError(SchedulingError):
    code = "CONFLICT"


class OutOfWindow(SchedulingError):
    code = "OUT_OF_WINDOW"


class ValidationError(SchedulingError):
    """A required routing question is missing from the submitted answers."""

    code = "VALIDATION_ERROR"

    def __init__(self, question_id: str, label: Optional[str] = None):
        self.question_id = question_id
        name = label or question_id
        super().__init__(
            f"Question '{name}' is required",
            {"question_id": question_id},
        )


class UnroutableSubmission(SchedulingError):
    code = "ROUTING_UNMATCHED"


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"


class InvalidInput(SchedulingError):
    code = "INVALID_INPUT"
