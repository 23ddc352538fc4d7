"""
JWT token codec for the Planner Authentication service.

This module signs and verifies access and refresh tokens. Verification is
stateless: it checks signature, algorithm, expiry and required claims, and
reports every failure the same way so callers cannot tell an expired token
from a forged one.
"""
import datetime
import logging
import uuid
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import InvalidTokenError

from planner_auth.config.jwt_config import (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH,
                                            get_jwt_settings, get_token_expiry)

# Configure logger
logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "type", "exp", "iat"]


class TokenCodec:
    """
    Encoder/decoder for signed, expiring tokens.

    The signing secret is supplied at construction and never changes afterwards.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_ttl: Optional[datetime.timedelta] = None,
        refresh_token_ttl: Optional[datetime.timedelta] = None,
    ):
        """
        Initialize the codec.

        Args:
            secret_key: HMAC signing secret.
            algorithm: JWT signing algorithm.
            access_token_ttl: Access token lifetime (default: configured, 1 day).
            refresh_token_ttl: Refresh token lifetime (default: configured, 7 days).
        """
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl or get_token_expiry(TOKEN_TYPE_ACCESS)
        self.refresh_token_ttl = refresh_token_ttl or get_token_expiry(TOKEN_TYPE_REFRESH)

    @classmethod
    def from_settings(cls) -> "TokenCodec":
        """Build a codec from the configured JWT settings."""
        jwt_settings = get_jwt_settings()
        return cls(jwt_settings["secret_key"], jwt_settings["algorithm"])

    # PUBLIC_INTERFACE
    def issue_access_token(self, subject_id: str, email: str, role: str) -> str:
        """
        Create a signed access token.

        Args:
            subject_id: Account id placed in the ``sub`` claim.
            email: Account email.
            role: Account role.

        Returns:
            Encoded JWT.
        """
        claims = {"sub": str(subject_id), "email": email, "role": role}
        return self._encode(claims, TOKEN_TYPE_ACCESS, self.access_token_ttl)

    # PUBLIC_INTERFACE
    def issue_refresh_token(self, subject_id: str) -> str:
        """
        Create a signed refresh token.

        Args:
            subject_id: Account id placed in the ``sub`` claim.

        Returns:
            Encoded JWT.
        """
        return self._encode({"sub": str(subject_id)}, TOKEN_TYPE_REFRESH, self.refresh_token_ttl)

    # PUBLIC_INTERFACE
    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode and validate a token.

        Args:
            token: Encoded JWT.

        Returns:
            The decoded claims, or None if the token is malformed, forged,
            expired or missing required claims.
        """
        if not token or not isinstance(token, str):
            return None
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except InvalidTokenError as e:
            logger.debug(f"Token verification failed: {type(e).__name__}")
            return None

    # PUBLIC_INTERFACE
    def token_expiration(self, token: str) -> Optional[datetime.datetime]:
        """
        Get the expiration time of a valid token.

        Returns:
            Naive UTC expiry, or None if the token does not verify.
        """
        claims = self.verify(token)
        if not claims:
            return None
        return datetime.datetime.fromtimestamp(claims["exp"], datetime.timezone.utc).replace(tzinfo=None)

    def _encode(self, claims: Dict[str, Any], token_type: str, ttl: datetime.timedelta) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload = dict(claims)
        payload.update({
            "type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + ttl,
        })
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)


_default_codec: Optional[TokenCodec] = None


# PUBLIC_INTERFACE
def get_token_codec() -> TokenCodec:
    """
    Get the process-wide codec, built from settings on first use.

    Returns:
        The default TokenCodec.
    """
    global _default_codec
    if _default_codec is None:
        _default_codec = TokenCodec.from_settings()
    return _default_codec
