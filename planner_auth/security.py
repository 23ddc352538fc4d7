"""
Security utilities for the Planner Authentication service.

This module provides password hashing and the password policy, one-way hashing
of bearer tokens for storage, secure random token generation, and in-process
rate limiting.
"""
import hashlib
import hmac
import logging
import re
import secrets
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Pattern, Tuple

from passlib.context import CryptContext

from planner_auth.config import settings
from planner_auth.errors import RateLimitExceeded, ValidationError

# Configure logging
logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security constants
MAX_PASSWORD_LENGTH = 128
EPHEMERAL_TOKEN_BYTES = 32

COMMON_PASSWORDS = frozenset({
    "password", "123456", "12345678", "123456789", "qwerty",
    "abc123", "letmein", "welcome", "admin", "iloveyou",
})

# (policy flag, pattern, message) for the optional character-class rules
CHARACTER_RULES: List[Tuple[str, Pattern, str]] = [
    ("require_uppercase", re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    ("require_lowercase", re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    ("require_digit", re.compile(r"[0-9]"), "Password must contain a digit"),
    ("require_special", re.compile(r"[^A-Za-z0-9\s]"), "Password must contain a special character"),
]


class WeakPasswordError(ValidationError):
    """Raised when a password fails the password policy."""


class PasswordValidator:
    """
    Password policy.

    Length bounds always apply; the character-class rules and the common
    password check are switched on per instance.
    """

    def __init__(
        self,
        min_length: int = 6,
        max_length: int = MAX_PASSWORD_LENGTH,
        require_uppercase: bool = False,
        require_lowercase: bool = False,
        require_digit: bool = False,
        require_special: bool = False,
        disallow_common: bool = True,
    ):
        self.min_length = min_length
        self.max_length = max_length
        self.require_uppercase = require_uppercase
        self.require_lowercase = require_lowercase
        self.require_digit = require_digit
        self.require_special = require_special
        self.disallow_common = disallow_common

    @classmethod
    def from_settings(cls) -> "PasswordValidator":
        """Build a validator from the configured password policy."""
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_digit=settings.PASSWORD_REQUIRE_DIGIT,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
        )

    # PUBLIC_INTERFACE
    def validate(self, password: str) -> Tuple[bool, List[str]]:
        """
        Check a password against the policy.

        Args:
            password: Candidate password.

        Returns:
            Tuple of a validity flag and the messages of every violated rule.
        """
        violations = []

        if not self.min_length <= len(password) <= self.max_length:
            violations.append(
                f"Password must be between {self.min_length} and {self.max_length} characters long"
            )

        for flag, pattern, message in CHARACTER_RULES:
            if getattr(self, flag) and pattern.search(password) is None:
                violations.append(message)

        if self.disallow_common and password.lower() in COMMON_PASSWORDS:
            violations.append("Password is too common and easily guessable")

        return not violations, violations

    # PUBLIC_INTERFACE
    def validate_or_raise(self, password: str) -> None:
        """
        Raise unless the password satisfies the policy.

        Raises:
            WeakPasswordError: Carrying one field error per violated rule.
        """
        ok, violations = self.validate(password)
        if ok:
            return
        raise WeakPasswordError(
            violations[0],
            errors=[{"field": "password", "message": message} for message in violations],
        )


class PasswordManager:
    """Salted bcrypt hashing guarded by the password policy."""

    def __init__(self, validator: Optional[PasswordValidator] = None):
        self.validator = validator or PasswordValidator.from_settings()

    # PUBLIC_INTERFACE
    def hash_password(self, password: str, validate: bool = True) -> str:
        """
        Hash a password with bcrypt.

        Args:
            password: Plain text password.
            validate: Apply the password policy first.

        Raises:
            WeakPasswordError: If validate is True and the policy rejects it.
        """
        if validate:
            self.validator.validate_or_raise(password)
        return pwd_context.hash(password)

    # PUBLIC_INTERFACE
    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Whether the password matches the stored hash. Never raises."""
        if not plain_password or not hashed_password:
            return False
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            logger.warning("Password verification failed: unrecognized hash format")
            return False

    # PUBLIC_INTERFACE
    def needs_rehash(self, hashed_password: str) -> bool:
        return pwd_context.needs_update(hashed_password)


# PUBLIC_INTERFACE
def generate_secure_token(length: int = EPHEMERAL_TOKEN_BYTES) -> str:
    """
    Generate a secure random token.

    Args:
        length: Number of random bytes.

    Returns:
        The bytes as a hexadecimal string.
    """
    return secrets.token_hex(length)


# PUBLIC_INTERFACE
def hash_token(token: str) -> str:
    """
    One-way hash of a bearer token for storage and lookup.

    Args:
        token: Raw token value.

    Returns:
        SHA-256 hex digest.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# PUBLIC_INTERFACE
def token_matches(raw_token: str, stored_hash: Optional[str]) -> bool:
    """Constant-time comparison of a raw token against a stored hash."""
    if not raw_token or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(raw_token), stored_hash)


class RateLimiter:
    """
    Sliding-window rate limiter keyed by request source.

    Each key keeps the timestamps of its requests inside the current window,
    oldest first. A key whose window empties is forgotten.
    """

    def __init__(self, window_seconds: int = 60, max_requests: int = 60):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._windows: Dict[str, Deque[float]] = {}
        self._last_sweep = time.time()

    # PUBLIC_INTERFACE
    def add_request(self, key: str) -> None:
        """
        Count a request against a key.

        Args:
            key: Request source, e.g. route and client address.

        Raises:
            RateLimitExceeded: If the key has used up its window.
        """
        now = time.time()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        window = self._prune(key, now)
        if len(window) >= self.max_requests:
            retry_after = max(1, int(window[0] + self.window_seconds - now) + 1)
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitExceeded(retry_after=retry_after)
        window.append(now)
        self._windows[key] = window

    # PUBLIC_INTERFACE
    def get_remaining(self, key: str) -> int:
        """Number of requests still allowed for a key in the current window."""
        return max(0, self.max_requests - len(self._prune(key, time.time())))

    # PUBLIC_INTERFACE
    def reset(self) -> None:
        """Forget every recorded request."""
        self._windows.clear()

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._windows.get(key)
        if window is None:
            return deque()
        while window and window[0] <= now - self.window_seconds:
            window.popleft()
        if not window:
            del self._windows[key]
        return window

    def _sweep(self, now: float) -> None:
        # Keys that never come back would otherwise stay forever
        for key in list(self._windows):
            self._prune(key, now)
        self._last_sweep = now


# Create a default manager for common use
default_password_manager = PasswordManager()
