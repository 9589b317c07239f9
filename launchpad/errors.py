from datetime import datetime, timezone
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    METADATA_FETCH_FAILED = "METADATA_FETCH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.METADATA_FETCH_FAILED: 422,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL_ERROR: 500,
    ErrorKind.EXTERNAL_SERVICE_ERROR: 503,
}


class ServiceError(Exception):
    """An expected failure carrying the kind that decides its HTTP status."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return self.kind.status_code


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_envelope(kind: ErrorKind, message: str) -> dict:
    """Body used by the /api/v1 surface."""
    return {
        "success": False,
        "error": message,
        "code": kind.value,
        "timestamp": utc_timestamp(),
    }
