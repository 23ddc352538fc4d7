"""
Configuration package for the Planner Authentication service.
"""

from planner_auth.config.settings import Settings, settings, get_settings
from planner_auth.config.jwt_config import (
    get_jwt_settings,
    get_token_expiry,
    PURPOSE_EMAIL_VERIFICATION,
    PURPOSE_PASSWORD_RESET,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
)

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "get_jwt_settings",
    "get_token_expiry",
    "PURPOSE_EMAIL_VERIFICATION",
    "PURPOSE_PASSWORD_RESET",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
]
