# =============================================================================
# app/exceptions.py - Error Taxonomy
# =============================================================================
# Domain exceptions raised by services and dependencies.
# Each carries an HTTP status and a machine-readable code; the error handler
# (app/middleware/error_handler.py) turns them into the API error envelope.
# =============================================================================

from typing import Any


class CodionixException(Exception):
    """
    Base exception for the Codionix API.

    All custom exceptions inherit from this class. Anything raised with an
    explicit status/code is passed through to the client unchanged.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to the `error` member of the response envelope."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class ValidationError(CodionixException):
    """Input failed a business rule or schema check."""

    def __init__(self, message: str = "Validation failed", details: Any = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)


class UnauthorizedError(CodionixException):
    """Missing, invalid or expired credentials."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=401)


class ForbiddenError(CodionixException):
    """Authenticated, but not allowed to touch this resource."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=403)


class NotFoundError(CodionixException):
    """Raised when a requested record doesn't exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, code="NOT_FOUND", status_code=404)


class ConflictError(CodionixException):
    """Raised when a write would duplicate an existing record."""

    def __init__(self, message: str = "Resource already exists", details: Any = None):
        super().__init__(message, code="CONFLICT", status_code=409, details=details)


class RateLimitError(CodionixException):
    def __init__(self, message: str = "Too many requests, please try again later."):
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", status_code=429)


# =============================================================================
# Server Errors (5xx)
# =============================================================================

class InternalError(CodionixException):
    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message, code="INTERNAL_ERROR", status_code=500)


class DatabaseError(CodionixException):
    """Unrecognized database failure."""

    def __init__(self, message: str = "A database error occurred", details: Any = None):
        super().__init__(message, code="DATABASE_ERROR", status_code=500, details=details)


class DatabaseTimeoutError(CodionixException):
    """
    A query or connection checkout exceeded its time budget.

    Mapped to 503 rather than 500: it usually means the pool is saturated
    and the client may retry.
    """

    def __init__(
        self,
        message: str = "Database operation timed out. Please try again.",
        details: Any = None,
    ):
        super().__init__(message, code="DATABASE_TIMEOUT", status_code=503, details=details)


class ServiceUnavailableError(CodionixException):
    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message, code="SERVICE_UNAVAILABLE", status_code=503)
