"""
Strategic Planner Authentication.

This package provides the authentication core of the strategic planning API:
- JWT access/refresh token signing and verification
- Refresh-token rotation and revocation backed by hashed records
- Single-use password-reset and email-verification tokens
- FastAPI dependencies gating protected routes
"""

__version__ = "0.1.0"

from planner_auth.config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
)

from planner_auth.errors import (
    AuthError,
    Conflict,
    ErrorKind,
    Forbidden,
    InternalError,
    InvalidToken,
    NotFound,
    RateLimitExceeded,
    Unauthorized,
    ValidationError,
)

from planner_auth.database import (
    Base,
    Database,
    init_db,
    get_database,
    session_scope,
)

from planner_auth.models import (
    RefreshToken,
    User,
    UserRole,
    UserStatus,
)

from planner_auth.store import CredentialStore
from planner_auth.token import TokenCodec, get_token_codec
from planner_auth.auth import TokenLifecycleManager
from planner_auth.verification import (
    LoggingNotifier,
    TokenNotifier,
    VerificationTokenManager,
)

__all__ = [
    # Models
    "User",
    "UserRole",
    "UserStatus",
    "RefreshToken",

    # Database
    "Base",
    "Database",
    "init_db",
    "get_database",
    "session_scope",
    "CredentialStore",

    # Tokens
    "TokenCodec",
    "get_token_codec",
    "TokenLifecycleManager",
    "VerificationTokenManager",
    "TokenNotifier",
    "LoggingNotifier",

    # Errors
    "AuthError",
    "ErrorKind",
    "ValidationError",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "Conflict",
    "InvalidToken",
    "RateLimitExceeded",
    "InternalError",

    # Config constants
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
]
