"""
Single-use ephemeral tokens for password reset and email verification.

A pending token lives on the account as a SHA-256 hash plus expiry; the raw
value only leaves this module through the notifier and the return value.
Issuing a new token replaces any pending one of the same purpose.
"""
import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from planner_auth.config.jwt_config import (PURPOSE_EMAIL_VERIFICATION,
                                            PURPOSE_PASSWORD_RESET, get_token_expiry)
from planner_auth.database import Database, get_database
from planner_auth.errors import InternalError, InvalidToken, NotFound
from planner_auth.models import utcnow
from planner_auth.security import (PasswordManager, default_password_manager,
                                   generate_secure_token, hash_token, token_matches)
from planner_auth.store import CredentialStore

logger = logging.getLogger(__name__)

# Column pair holding the pending token for each purpose
TOKEN_FIELDS = {
    PURPOSE_PASSWORD_RESET: ("reset_token_hash", "reset_token_expires_at"),
    PURPOSE_EMAIL_VERIFICATION: ("verification_token_hash", "verification_token_expires_at"),
}


class TokenNotifier(Protocol):
    """Out-of-band delivery channel for ephemeral tokens."""

    def send(self, purpose: str, email: str, token: str) -> None:
        ...


class LoggingNotifier:
    """Records that a token was issued. The token itself is not logged."""

    def send(self, purpose: str, email: str, token: str) -> None:
        logger.info(f"Issued {purpose} token for {email}")


class VerificationTokenManager:
    """
    Issues and consumes password-reset and email-verification tokens.
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        notifier: Optional[TokenNotifier] = None,
        password_manager: Optional[PasswordManager] = None,
    ):
        self._database = database
        self.notifier = notifier or LoggingNotifier()
        self.password_manager = password_manager or default_password_manager

    @property
    def database(self) -> Database:
        return self._database or get_database()

    @contextmanager
    def _store(self) -> Generator[CredentialStore, Any, None]:
        try:
            with self.database.session_scope() as session:
                yield CredentialStore(session)
        except SQLAlchemyError as exc:
            logger.error(f"Credential store failure: {exc}")
            raise InternalError("Credential store unavailable") from exc

    # PUBLIC_INTERFACE
    def initiate_reset(self, email: str) -> Optional[str]:
        """
        Start a password reset.

        Args:
            email: Account email.

        Returns:
            The raw token, or None when no account exists for the email.
            Callers must answer both cases identically.
        """
        with self._store() as store:
            user = store.find_user_by_email(email)
            if user is None:
                logger.info("Password reset requested for unknown email")
                return None
            token = self._issue(store, user.id, PURPOSE_PASSWORD_RESET)
            user_email = user.email

        self.notifier.send(PURPOSE_PASSWORD_RESET, user_email, token)
        return token

    # PUBLIC_INTERFACE
    def initiate_verification(self, subject_id: str) -> Optional[str]:
        """
        Start email verification for an account.

        Returns:
            The raw token, or None if the email is already verified.

        Raises:
            NotFound: If the account does not exist.
        """
        with self._store() as store:
            user = store.find_user_by_id(subject_id)
            if user is None:
                raise NotFound()
            if user.email_verified:
                return None
            token = self._issue(store, user.id, PURPOSE_EMAIL_VERIFICATION)
            user_email = user.email

        self.notifier.send(PURPOSE_EMAIL_VERIFICATION, user_email, token)
        return token

    # PUBLIC_INTERFACE
    def confirm_reset(self, email: str, raw_token: str, new_password: str) -> None:
        """
        Consume a reset token and set a new password.

        Every outstanding refresh token of the account is revoked as well.

        Raises:
            InvalidToken: If no reset is pending, the token does not match, or
                it has expired.
            WeakPasswordError: If the new password fails the policy.
        """
        hashed_password = self.password_manager.hash_password(new_password)

        def apply(store: CredentialStore, user_id: str) -> None:
            store.update_user(user_id, {"hashed_password": hashed_password})
            store.delete_refresh_token_records_for_user(user_id)

        self._consume(email, raw_token, PURPOSE_PASSWORD_RESET, apply)
        logger.info("Password reset completed")

    # PUBLIC_INTERFACE
    def confirm_verification(self, email: str, raw_token: str) -> None:
        """
        Consume a verification token and mark the email verified.

        Raises:
            InvalidToken: If no verification is pending, the token does not
                match, or it has expired.
        """
        def apply(store: CredentialStore, user_id: str) -> None:
            store.update_user(user_id, {"email_verified": True})

        self._consume(email, raw_token, PURPOSE_EMAIL_VERIFICATION, apply)
        logger.info("Email verification completed")

    def _issue(self, store: CredentialStore, user_id: str, purpose: str) -> str:
        hash_field, expiry_field = TOKEN_FIELDS[purpose]
        token = generate_secure_token()
        store.update_user(user_id, {
            hash_field: hash_token(token),
            expiry_field: utcnow() + get_token_expiry(purpose),
        })
        return token

    def _consume(self, email: str, raw_token: str, purpose: str, apply) -> None:
        hash_field, expiry_field = TOKEN_FIELDS[purpose]
        expired = False

        with self._store() as store:
            user = store.find_user_by_email(email)
            stored_hash = getattr(user, hash_field) if user is not None else None
            expires_at = getattr(user, expiry_field) if user is not None else None

            if stored_hash is None or expires_at is None:
                raise InvalidToken()

            if expires_at < utcnow():
                # Clear it and commit before rejecting
                store.update_user(user.id, {hash_field: None, expiry_field: None})
                expired = True
            elif not token_matches(raw_token, stored_hash):
                raise InvalidToken()
            else:
                with store.batch():
                    apply(store, user.id)
                    store.update_user(user.id, {hash_field: None, expiry_field: None})

        if expired:
            logger.info(f"Rejected expired {purpose} token")
            raise InvalidToken()


# Create a default manager for common use
default_verification_manager = VerificationTokenManager()
