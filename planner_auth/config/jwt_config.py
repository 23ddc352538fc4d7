"""
JWT and ephemeral token lifetimes for the Planner Authentication service.

Values are read from the application settings so that a single environment
controls every token lifetime.
"""
from datetime import timedelta
from typing import Dict, Union

from planner_auth.config.settings import settings

# Token settings
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

# Ephemeral token purposes
PURPOSE_PASSWORD_RESET = "password_reset"
PURPOSE_EMAIL_VERIFICATION = "email_verification"


# PUBLIC_INTERFACE
def get_jwt_settings() -> Dict[str, Union[str, int]]:
    """
    Get JWT configuration settings.

    Returns:
        Dictionary containing JWT configuration settings.
    """
    return {
        "secret_key": settings.JWT_SECRET_KEY,
        "algorithm": settings.JWT_ALGORITHM,
        "access_token_expire_minutes": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
        "refresh_token_expire_days": settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS,
    }


# PUBLIC_INTERFACE
def get_token_expiry(token_type: str) -> timedelta:
    """
    Get token expiry time based on token type.

    Args:
        token_type: Type of token (access, refresh, or an ephemeral purpose).

    Returns:
        Timedelta representing token expiry time.
    """
    if token_type == TOKEN_TYPE_ACCESS:
        return timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    elif token_type == TOKEN_TYPE_REFRESH:
        return timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    elif token_type == PURPOSE_PASSWORD_RESET:
        return timedelta(minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES)
    elif token_type == PURPOSE_EMAIL_VERIFICATION:
        return timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS)
    else:
        raise ValueError(f"Invalid token type: {token_type}")
