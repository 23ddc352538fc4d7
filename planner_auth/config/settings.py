"""
Centralized configuration management for the Planner Authentication service.

This module provides a centralized configuration system using pydantic-settings
for managing all application settings including JWT, security, database, and API
settings. Every value can be overridden through an environment variable of the
same name or a ``.env`` file.
"""
import os
import secrets
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings class for all application configuration.

    Loaded once at startup; treated as read-only afterwards.
    """
    # Application settings
    APP_NAME: str = "Strategic Planner Auth"
    APP_DESCRIPTION: str = "Token-based authentication for the strategic planning API"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # API settings
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 33354
    RELOAD: bool = False

    # Comma separated list of allowed origins, "*" allows any
    CORS_ORIGINS: str = "*"

    # Rate limiting settings
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_PERIOD_SECONDS: int = 60

    # JWT settings
    JWT_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Password policy
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_REQUIRE_UPPERCASE: bool = False
    PASSWORD_REQUIRE_LOWERCASE: bool = False
    PASSWORD_REQUIRE_DIGIT: bool = False
    PASSWORD_REQUIRE_SPECIAL: bool = False

    # Ephemeral token settings
    PASSWORD_RESET_TOKEN_EXPIRE_MINUTES: int = 60
    EMAIL_VERIFICATION_TOKEN_EXPIRE_HOURS: int = 24

    # Database settings
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)
    DATABASE_ECHO: bool = False

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_url(cls, v: Optional[str]) -> str:
        """Set default SQLite database URL if not provided."""
        if isinstance(v, str) and v:
            return v

        # Default to SQLite database in project root
        base_dir = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
        return f"sqlite:///{os.path.join(base_dir, 'planner_auth.db')}"

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Whether the service runs in production mode."""
        return self.APP_ENV.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS into a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Create a global settings instance
settings = Settings()


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """
    Get the application settings.

    Returns:
        Settings: The application settings instance.
    """
    return settings
