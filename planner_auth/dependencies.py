"""
Dependency injection for the Planner Authentication service.

This module provides the FastAPI dependencies that gate protected routes on a
bearer access token, the role guard, per-route rate limiting, and the
providers for the token managers.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from planner_auth.auth import TokenLifecycleManager, default_token_manager
from planner_auth.config import TOKEN_TYPE_ACCESS, settings
from planner_auth.errors import Forbidden, Unauthorized
from planner_auth.security import RateLimiter
from planner_auth.token import TokenCodec, get_token_codec
from planner_auth.verification import VerificationTokenManager, default_verification_manager

logger = logging.getLogger(__name__)

# Security scheme for JWT tokens
security = HTTPBearer(auto_error=False)

MISSING_TOKEN_MESSAGE = "Access denied. No token provided."
INVALID_TOKEN_MESSAGE = "Invalid or expired token."


@dataclass(frozen=True)
class Principal:
    """Authenticated caller attached to the request."""
    subject_id: str
    email: Optional[str]
    role: str


# PUBLIC_INTERFACE
def get_codec() -> TokenCodec:
    """Token codec used by the auth gate."""
    return get_token_codec()


# PUBLIC_INTERFACE
def get_token_manager() -> TokenLifecycleManager:
    """Token lifecycle manager used by the routes."""
    return default_token_manager


# PUBLIC_INTERFACE
def get_verification_manager() -> VerificationTokenManager:
    """Ephemeral token manager used by the routes."""
    return default_verification_manager


# PUBLIC_INTERFACE
async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    codec: TokenCodec = Depends(get_codec),
) -> Principal:
    """
    Authenticate the request from its bearer access token.

    Args:
        request: FastAPI request object; the principal is stored on
            ``request.state.principal``.
        credentials: HTTP Authorization credentials.
        codec: Codec verifying the token.

    Returns:
        The authenticated principal.

    Raises:
        Unauthorized: If the Authorization header is missing or not a bearer token.
        Forbidden: If the token does not verify or is not an access token.
    """
    if not credentials or not credentials.credentials:
        raise Unauthorized(MISSING_TOKEN_MESSAGE)

    claims = codec.verify(credentials.credentials)
    if not claims or claims.get("type") != TOKEN_TYPE_ACCESS:
        raise Forbidden(INVALID_TOKEN_MESSAGE)

    principal = Principal(
        subject_id=claims["sub"],
        email=claims.get("email"),
        role=claims.get("role", "user"),
    )
    request.state.principal = principal
    return principal


# PUBLIC_INTERFACE
def require_role(role: str) -> Callable:
    """
    Build a dependency that admits only principals with the given role.

    Args:
        role: Required role name, e.g. ``"admin"``.

    Returns:
        FastAPI dependency returning the principal.
    """
    async def role_guard(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role != role:
            logger.warning(f"User {principal.subject_id} denied: role {role} required")
            raise Forbidden(f"{role.capitalize()} privileges required")
        return principal

    return role_guard


# PUBLIC_INTERFACE
class RateLimitedRoute:
    """
    Rate limiting dependency for API routes.

    Limits the number of requests from a specific client address.
    """

    def __init__(self, max_requests: Optional[int] = None, window_seconds: Optional[int] = None):
        """
        Initialize the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in the window.
            window_seconds: Time window in seconds.
        """
        self.rate_limiter = RateLimiter(
            window_seconds=window_seconds or settings.RATE_LIMIT_PERIOD_SECONDS,
            max_requests=max_requests or settings.RATE_LIMIT_REQUESTS,
        )

    async def __call__(self, request: Request) -> None:
        """
        Check if the request is rate limited.

        Raises:
            RateLimitExceeded: If the rate limit is exceeded.
        """
        if not settings.RATE_LIMIT_ENABLED:
            return
        client_ip = request.client.host if request.client else "unknown"
        self.rate_limiter.add_request(f"{request.url.path}:{client_ip}")


# Rate limiter for credential endpoints
auth_rate_limiter = RateLimitedRoute()
