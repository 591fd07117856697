"""
Error handling utilities for Lambda functions.

Provides standardized error responses with error codes and HTTP status mapping.
"""

from typing import Any, Dict, Optional, Tuple


class AppError(Exception):
    """
    Application error with error code and message.

    Raised anywhere inside an operation; the handler entry point turns it
    into an HTTP response with the mapped status code.
    """

    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        """HTTP status code for this error."""
        return HTTP_STATUS.get(self.error_code, 400)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the response body."""
        return {
            "error": self.message,
            "errorCode": self.error_code,
            **self.details,
        }


# Common error codes
class ErrorCode:
    """Standard error codes for the application."""

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Validation errors
    INVALID_INPUT = "INVALID_INPUT"

    # Business logic errors
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    OWNER_CANNOT_LEAVE = "OWNER_CANNOT_LEAVE"
    CODE_ALREADY_ASSIGNED = "CODE_ALREADY_ASSIGNED"

    # Concurrency errors
    CONFLICT = "CONFLICT"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


HTTP_STATUS: Dict[str, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.DATABASE_ERROR: 500,
}


def handle_error(error: Exception) -> Tuple[int, Dict[str, Any]]:
    """
    Convert exception to a status code and standardized error body.

    Args:
        error: Exception to handle

    Returns:
        Tuple of (HTTP status code, error body)
    """
    if isinstance(error, AppError):
        return error.status_code, error.to_dict()

    # Unexpected error - the caller logs it, the client gets a generic message
    return 500, {
        "error": "Internal server error",
        "errorCode": ErrorCode.INTERNAL_ERROR,
    }
