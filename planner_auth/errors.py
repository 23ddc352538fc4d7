"""
Error taxonomy for the Planner Authentication service.

Every business-rule failure is an ``AuthError`` carrying an ``ErrorKind`` tag
and the HTTP status it maps to at the API boundary. Callers branch on
``error.kind`` rather than on message text.
"""
import enum
from typing import Any, List, Optional


class ErrorKind(enum.Enum):
    """Outcome kinds surfaced to API clients."""
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_TOKEN = "invalid_token"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


class AuthError(Exception):
    """Base exception for authentication-related errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input."""
    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Validation failed"


class Unauthorized(AuthError):
    """Missing, invalid or expired credential."""
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401
    default_message = "Invalid email or password"


class Forbidden(AuthError):
    """Valid credential but insufficient privilege, or untrusted token."""
    kind = ErrorKind.FORBIDDEN
    status_code = 403
    default_message = "Invalid or expired token."


class NotFound(AuthError):
    """Referenced entity is absent."""
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "User not found"


class Conflict(AuthError):
    """Duplicate email. Reported as 400 on the HTTP surface."""
    kind = ErrorKind.CONFLICT
    status_code = 400
    default_message = "Email address is already in use"


class InvalidToken(AuthError):
    """Ephemeral token is missing, mismatched, consumed or expired."""
    kind = ErrorKind.INVALID_TOKEN
    status_code = 400
    default_message = "Invalid or expired token"


class RateLimitExceeded(AuthError):
    """Too many requests from one client."""
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    default_message = "Too many requests, please try again later"

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        super().__init__(message)
        self.retry_after = retry_after


class InternalError(AuthError):
    """Unexpected credential store failure."""
