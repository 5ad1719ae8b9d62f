"""Error Model — tagged failure dicts for the core, typed exceptions for the edge.

Invariants:
    - Core stages never raise across a component boundary: they return None on
      success or a failure dict {"status": "error", "error_code", "message"}
    - Every ErrorCode has exactly one category and HTTP status (CODE_META)
    - Exceptions exist only at the infrastructure/API edge: DatabaseError,
      DuplicateAttendanceError, CheckInRejected
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Failure dicts over exceptions inside the pipeline: the orchestrator
      decides whether to halt, the error path has the same shape as success
    - Single RollcallError base: one FastAPI handler serializes every edge error
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    """Every failure the check-in pipeline can report."""
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    INVALID_OCCURRENCE_REF = "INVALID_OCCURRENCE_REF"
    NOT_IN_GROUP = "NOT_IN_GROUP"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_MANUAL_CHECKIN = "INVALID_MANUAL_CHECKIN"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    EVENT_ENDED = "EVENT_ENDED"
    QR_INVALID = "QR_INVALID"
    QR_MISMATCH = "QR_MISMATCH"
    QR_INSTANCE_MISMATCH = "QR_INSTANCE_MISMATCH"
    LOCATION_REQUIRED = "LOCATION_REQUIRED"
    EVENT_LOCATION_NOT_SET = "EVENT_LOCATION_NOT_SET"
    INVALID_LOCATION = "INVALID_LOCATION"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"
    ATTENDANCE_NOT_FOUND = "ATTENDANCE_NOT_FOUND"
    ATTENDANCE_DELETED = "ATTENDANCE_DELETED"
    INSTANCE_DATE_REQUIRED = "INSTANCE_DATE_REQUIRED"
    INVALID_INSTANCE_DATE = "INVALID_INSTANCE_DATE"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    NO_DATA = "NO_DATA"
    DOWNSTREAM_FAILURE = "DOWNSTREAM_FAILURE"


_V, _A, _B, _N, _C, _D = (
    ErrorCategory.VALIDATION, ErrorCategory.AUTHORIZATION,
    ErrorCategory.BUSINESS_RULE, ErrorCategory.RESOURCE_NOT_FOUND,
    ErrorCategory.CONFLICT, ErrorCategory.DATABASE,
)

# code -> (category, http status)
CODE_META: dict[ErrorCode, tuple[ErrorCategory, int]] = {
    ErrorCode.EVENT_NOT_FOUND: (_N, 404),
    ErrorCode.INVALID_OCCURRENCE_REF: (_V, 400),
    ErrorCode.NOT_IN_GROUP: (_A, 403),
    ErrorCode.PERMISSION_DENIED: (_A, 403),
    ErrorCode.INVALID_MANUAL_CHECKIN: (_V, 400),
    ErrorCode.METHOD_NOT_ALLOWED: (_B, 400),
    ErrorCode.EVENT_ENDED: (_B, 400),
    ErrorCode.QR_INVALID: (_V, 400),
    ErrorCode.QR_MISMATCH: (_V, 400),
    ErrorCode.QR_INSTANCE_MISMATCH: (_V, 400),
    ErrorCode.LOCATION_REQUIRED: (_V, 400),
    ErrorCode.EVENT_LOCATION_NOT_SET: (_B, 400),
    ErrorCode.INVALID_LOCATION: (_V, 400),
    ErrorCode.OUT_OF_RANGE: (_B, 400),
    ErrorCode.ALREADY_CHECKED_IN: (_C, 409),
    ErrorCode.ALREADY_CHECKED_OUT: (_C, 409),
    ErrorCode.ATTENDANCE_NOT_FOUND: (_N, 404),
    ErrorCode.ATTENDANCE_DELETED: (_C, 409),
    ErrorCode.INSTANCE_DATE_REQUIRED: (_V, 400),
    ErrorCode.INVALID_INSTANCE_DATE: (_V, 400),
    ErrorCode.INVALID_DATE_RANGE: (_V, 400),
    ErrorCode.NO_DATA: (_D, 500),
    ErrorCode.DOWNSTREAM_FAILURE: (_D, 503),
}


def failure(code: ErrorCode, message: str, **extra: Any) -> dict:
    """Build a tagged failure result. Extra keys ride along for callers/logs."""
    return {
        "status": "error",
        "error_code": code.value,
        "message": message,
        **extra,
    }


def is_failure(result: object) -> bool:
    return isinstance(result, dict) and result.get("status") == "error"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str | None = None
    participant_id: str | None = None
    instance_date: str | None = None
    debug_info: dict[str, Any] | None = None


class RollcallError(Exception):
    """Base exception for errors surfaced at the infrastructure/API edge."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "event_id": self.context.event_id,
                    "participant_id": self.context.participant_id,
                    "instance_date": self.context.instance_date,
                },
            }
        }


# ─── Pipeline Rejections ─────────────────────────────────────────

class CheckInRejected(RollcallError):
    """A failure dict lifted into an exception by the route layer."""

    def __init__(self, result: dict, context: ErrorContext | None = None):
        code = ErrorCode(result["error_code"])
        category, http_status = CODE_META[code]
        severity = (
            ErrorSeverity.CRITICAL if category is ErrorCategory.DATABASE
            else ErrorSeverity.WARNING
        )
        super().__init__(
            result["message"], code.value, category, severity, context, http_status,
        )
        self.result = result

    def to_response(self) -> dict:
        response = super().to_response()
        details = {
            k: v for k, v in self.result.items()
            if k not in ("status", "error_code", "message")
        }
        if details:
            response["error"]["details"] = details
        return response


# ─── Infrastructure Errors ───────────────────────────────────────

class DatabaseError(RollcallError):
    """Store operation failed for a reason other than the uniqueness constraint."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class DuplicateAttendanceError(RollcallError):
    """Insert collided with the live-attendance uniqueness constraint."""
    def __init__(self, message: str = "Attendance uniqueness constraint violated",
                 context: ErrorContext | None = None):
        super().__init__(
            message, "DUPLICATE_ATTENDANCE", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


def downstream_failure(exc: DatabaseError) -> dict:
    """Store error other than the uniqueness signal, message carried unmodified."""
    return failure(
        ErrorCode.DOWNSTREAM_FAILURE, exc.message, operation=exc.operation,
    )
