"""
Credential store for the Planner Authentication service.

``CredentialStore`` wraps one SQLAlchemy session and exposes the small
document-style contract the token managers need. It never commits on its own;
the owning session scope commits all of an operation's writes together.
"""
import datetime
import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from planner_auth.models import RefreshToken, User, utcnow

logger = logging.getLogger(__name__)

# Columns a caller may change through update_user
UPDATABLE_USER_FIELDS = {
    "email",
    "hashed_password",
    "display_name",
    "photo_url",
    "role",
    "status",
    "email_verified",
    "reset_token_hash",
    "reset_token_expires_at",
    "verification_token_hash",
    "verification_token_expires_at",
}


def normalize_email(email: str) -> str:
    """Case-normalize an email address for storage and lookup."""
    return (email or "").strip().lower()


class CredentialStore:
    """Users and refresh-token records, bound to a session."""

    def __init__(self, session: Session):
        self.session = session

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.session.scalars(
            select(User).where(User.email == normalize_email(email))
        ).first()

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return self.session.get(User, user_id)

    def insert_user(self, record: Dict[str, Any]) -> str:
        """
        Insert a user document.

        Args:
            record: Column values; ``email`` is normalized.

        Returns:
            The new user id.
        """
        user = User(**record)
        user.email = normalize_email(user.email)
        self.session.add(user)
        self.session.flush()
        return user.id

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        """
        Apply a partial update to a user.

        Raises:
            KeyError: If the user does not exist.
            ValueError: If a field is not updatable.
        """
        unknown = set(fields) - UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")

        user = self.find_user_by_id(user_id)
        if user is None:
            raise KeyError(user_id)
        for name, value in fields.items():
            setattr(user, name, value)
        user.updated_at = utcnow()
        self.session.flush()

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and, through the ORM cascade, its refresh-token records."""
        user = self.find_user_by_id(user_id)
        if user is None:
            return False
        self.session.delete(user)
        self.session.flush()
        return True

    def insert_refresh_token_record(
        self, user_id: str, token_hash: str, expires_at: datetime.datetime
    ) -> int:
        record = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.session.add(record)
        self.session.flush()
        return record.id

    def find_refresh_token_records_by_hash(
        self, user_id: str, token_hash: str, include_expired: bool = False
    ) -> List[RefreshToken]:
        query = select(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.token_hash == token_hash,
        )
        if not include_expired:
            query = query.where(RefreshToken.expires_at >= utcnow())
        return list(self.session.scalars(query.order_by(RefreshToken.id)))

    def delete_refresh_token_records(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        result = self.session.execute(delete(RefreshToken).where(RefreshToken.id.in_(ids)))
        return result.rowcount

    def delete_refresh_token_records_for_user(self, user_id: str) -> int:
        result = self.session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        return result.rowcount

    def count_refresh_token_records(self, user_id: str) -> int:
        return len(self.session.scalars(
            select(RefreshToken.id).where(RefreshToken.user_id == user_id)
        ).all())

    def purge_expired_refresh_token_records(self, now: Optional[datetime.datetime] = None) -> int:
        result = self.session.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < (now or utcnow()))
        )
        return result.rowcount

    @contextmanager
    def batch(self) -> Generator["CredentialStore", Any, None]:
        """
        Group writes that must become visible together.

        Writes are flushed at the end of the block and committed with the
        enclosing session scope; an exception discards all of them.
        """
        try:
            yield self
            self.session.flush()
        except Exception:
            self.session.rollback()
            raise
