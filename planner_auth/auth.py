"""
Token lifecycle management for the Planner Authentication service.

This module provides login, registration, refresh-token rotation, logout, and
the account operations that affect outstanding credentials. Every public
operation runs in a single session scope, so its writes commit together.
"""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from planner_auth.config.jwt_config import TOKEN_TYPE_REFRESH
from planner_auth.database import Database, get_database
from planner_auth.errors import Conflict, InternalError, NotFound, Unauthorized
from planner_auth.models import UserRole, UserStatus, utcnow
from planner_auth.security import PasswordManager, default_password_manager, hash_token
from planner_auth.store import CredentialStore, normalize_email
from planner_auth.token import TokenCodec, get_token_codec

# Configure logging
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
INVALID_REFRESH_MESSAGE = "Invalid refresh token"
REVOKED_REFRESH_MESSAGE = "Refresh token has been revoked"

# Called with (session, user_id) inside the account-deletion transaction
AccountDeletionHook = Callable[[Session, str], None]


class TokenLifecycleManager:
    """
    Issues, rotates and revokes access/refresh token pairs.

    Refresh tokens are persisted only as hashes; a presented refresh token is
    honoured once and then replaced.
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        codec: Optional[TokenCodec] = None,
        password_manager: Optional[PasswordManager] = None,
        deletion_hooks: Optional[List[AccountDeletionHook]] = None,
    ):
        """
        Initialize the manager.

        Args:
            database: Database to use. Defaults to the process-wide database.
            codec: Token codec. Defaults to the codec built from settings.
            password_manager: Password hasher/validator.
            deletion_hooks: Callbacks removing a deleted account's owned data.
        """
        self._database = database
        self._codec = codec
        self.password_manager = password_manager or default_password_manager
        self.deletion_hooks: List[AccountDeletionHook] = list(deletion_hooks or [])

    @property
    def database(self) -> Database:
        return self._database or get_database()

    @property
    def codec(self) -> TokenCodec:
        return self._codec or get_token_codec()

    @contextmanager
    def _store(self) -> Generator[CredentialStore, Any, None]:
        try:
            with self.database.session_scope() as session:
                yield CredentialStore(session)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error(f"Credential store failure: {exc}")
            raise InternalError("Credential store unavailable") from exc

    # PUBLIC_INTERFACE
    def login(self, email: str, password: str) -> Tuple[Dict[str, Any], Dict[str, str]]:
        """
        Authenticate a user and issue a token pair.

        Args:
            email: Account email, any case.
            password: Plain text password.

        Returns:
            Tuple of the public user summary and the token pair.

        Raises:
            Unauthorized: For an unknown email, disabled account or wrong
                password, always with the same message.
        """
        with self._store() as store:
            user = store.find_user_by_email(email)
            if user is None or not user.is_active:
                logger.info("Login rejected: no active account for supplied email")
                raise Unauthorized(INVALID_CREDENTIALS_MESSAGE)

            if not self.password_manager.verify_password(password, user.hashed_password):
                logger.info(f"Login rejected: bad password for user {user.id}")
                raise Unauthorized(INVALID_CREDENTIALS_MESSAGE)

            with store.batch():
                tokens = self._issue_pair(store, user.id, user.email, user.role.value)

            logger.info(f"User logged in: {user.id}")
            return user.to_public_dict(), tokens

    # PUBLIC_INTERFACE
    def register(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> Tuple[str, Dict[str, str]]:
        """
        Register a new user and issue a token pair.

        Args:
            email: Account email; normalized before storage.
            password: Plain text password, checked against the password policy.
            display_name: Optional display name.

        Returns:
            Tuple of the new user id and the token pair.

        Raises:
            Conflict: If the email is already registered.
            WeakPasswordError: If the password fails the policy.
        """
        email = normalize_email(email)
        hashed_password = self.password_manager.hash_password(password)

        try:
            with self._store() as store:
                if store.find_user_by_email(email) is not None:
                    raise Conflict()

                with store.batch():
                    user_id = store.insert_user({
                        "email": email,
                        "hashed_password": hashed_password,
                        "display_name": display_name,
                        "role": UserRole.USER,
                        "status": UserStatus.ACTIVE,
                        "email_verified": False,
                    })
                    tokens = self._issue_pair(store, user_id, email, UserRole.USER.value)
        except IntegrityError:
            # Concurrent registration of the same email
            raise Conflict()

        logger.info(f"User registered: {user_id}")
        return user_id, tokens

    # PUBLIC_INTERFACE
    def refresh(self, refresh_token: str) -> Dict[str, str]:
        """
        Exchange a refresh token for a new pair, revoking the presented one.

        Args:
            refresh_token: Refresh token previously issued by this service.

        Returns:
            The new token pair.

        Raises:
            Unauthorized: If the token does not verify, is not a refresh token,
                has been used or revoked, or its account is gone or disabled.
        """
        claims = self.codec.verify(refresh_token)
        if not claims or claims.get("type") != TOKEN_TYPE_REFRESH:
            raise Unauthorized(INVALID_REFRESH_MESSAGE)

        user_id = claims["sub"]
        token_hash = hash_token(refresh_token)

        with self._store() as store:
            records = store.find_refresh_token_records_by_hash(user_id, token_hash)
            if not records:
                logger.warning(f"Rejected revoked or unknown refresh token for user {user_id}")
                raise Unauthorized(REVOKED_REFRESH_MESSAGE)
            if len(records) > 1:
                logger.warning(f"Found {len(records)} records for one refresh token of user {user_id}")

            user = store.find_user_by_id(user_id)
            if user is None or not user.is_active:
                raise Unauthorized(INVALID_REFRESH_MESSAGE)

            with store.batch():
                removed = store.delete_refresh_token_records([record.id for record in records])
                if removed < len(records):
                    # A concurrent refresh consumed the token first
                    logger.warning(f"Refresh token of user {user_id} was already rotated")
                    raise Unauthorized(REVOKED_REFRESH_MESSAGE)
                tokens = self._issue_pair(store, user.id, user.email, user.role.value)

            logger.debug(f"Rotated refresh token for user {user_id}")
            return tokens

    # PUBLIC_INTERFACE
    def logout(self, refresh_token: Optional[str], subject_id: str) -> int:
        """
        Revoke a refresh token of the given subject.

        Always succeeds; an unknown or absent token revokes nothing.

        Returns:
            Number of records removed.
        """
        if not refresh_token:
            return 0

        with self._store() as store:
            records = store.find_refresh_token_records_by_hash(
                subject_id, hash_token(refresh_token), include_expired=True
            )
            with store.batch():
                removed = store.delete_refresh_token_records([record.id for record in records])

        logger.info(f"User logged out: {subject_id} ({removed} refresh token(s) revoked)")
        return removed

    # PUBLIC_INTERFACE
    def logout_all(self, subject_id: str) -> int:
        """
        Revoke every refresh token of a subject.

        Returns:
            Number of records removed.
        """
        with self._store() as store:
            removed = store.delete_refresh_token_records_for_user(subject_id)
        logger.info(f"Revoked {removed} refresh token(s) for user {subject_id}")
        return removed

    # PUBLIC_INTERFACE
    def check_email(self, email: str) -> bool:
        """Whether an account exists for the email."""
        with self._store() as store:
            return store.find_user_by_email(email) is not None

    # PUBLIC_INTERFACE
    def get_profile(self, subject_id: str) -> Dict[str, Any]:
        """
        Public view of an account.

        Raises:
            NotFound: If the account does not exist.
        """
        with self._store() as store:
            user = store.find_user_by_id(subject_id)
            if user is None:
                raise NotFound()
            return user.to_public_dict()

    # PUBLIC_INTERFACE
    def update_profile(
        self,
        subject_id: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update profile fields that were supplied.

        Raises:
            NotFound: If the account does not exist.
        """
        fields = {}
        if display_name is not None:
            fields["display_name"] = display_name
        if photo_url is not None:
            fields["photo_url"] = photo_url

        with self._store() as store:
            user = store.find_user_by_id(subject_id)
            if user is None:
                raise NotFound()
            if fields:
                store.update_user(subject_id, fields)
            return user.to_public_dict()

    # PUBLIC_INTERFACE
    def change_password(self, subject_id: str, current_password: str, new_password: str) -> int:
        """
        Change a password and sign out every session.

        Returns:
            Number of refresh tokens revoked.

        Raises:
            NotFound: If the account does not exist.
            Unauthorized: If the current password is wrong.
            WeakPasswordError: If the new password fails the policy.
        """
        hashed_password = self.password_manager.hash_password(new_password)

        with self._store() as store:
            user = store.find_user_by_id(subject_id)
            if user is None:
                raise NotFound()
            if not self.password_manager.verify_password(current_password, user.hashed_password):
                raise Unauthorized("Current password is incorrect")

            with store.batch():
                store.update_user(subject_id, {"hashed_password": hashed_password})
                revoked = store.delete_refresh_token_records_for_user(subject_id)

        logger.info(f"Password changed for user {subject_id}")
        return revoked

    # PUBLIC_INTERFACE
    def delete_account(self, subject_id: str) -> None:
        """
        Delete an account with its refresh tokens and owned resources.

        Raises:
            NotFound: If the account does not exist.
        """
        with self._store() as store:
            if store.find_user_by_id(subject_id) is None:
                raise NotFound()
            with store.batch():
                for hook in self.deletion_hooks:
                    hook(store.session, subject_id)
                store.delete_user(subject_id)

        logger.info(f"Account deleted: {subject_id}")

    # PUBLIC_INTERFACE
    def purge_expired_refresh_tokens(self) -> int:
        """
        Remove refresh-token records past their expiry.

        Returns:
            Number of records removed.
        """
        with self._store() as store:
            removed = store.purge_expired_refresh_token_records()
        if removed:
            logger.info(f"Purged {removed} expired refresh token(s)")
        return removed

    def _issue_pair(self, store: CredentialStore, user_id: str, email: str, role: str) -> Dict[str, str]:
        access_token = self.codec.issue_access_token(user_id, email, role)
        refresh_token = self.codec.issue_refresh_token(user_id)
        store.insert_refresh_token_record(
            user_id,
            hash_token(refresh_token),
            utcnow() + self.codec.refresh_token_ttl,
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
        }


# Create a default manager for common use
default_token_manager = TokenLifecycleManager()
