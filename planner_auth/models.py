"""
SQLAlchemy models for the Planner Authentication service.

This module defines user accounts and refresh-token records. Password-reset and
email-verification tokens are embedded on the account as hash/expiry pairs.
"""
import datetime
import enum
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from planner_auth.database import Base


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class UserRole(enum.Enum):
    """User role enumeration."""
    USER = "user"
    ADMIN = "admin"


class UserStatus(enum.Enum):
    """Account status enumeration."""
    ACTIVE = "active"
    DISABLED = "disabled"


class User(Base):
    """
    User account.

    Stores the bcrypt password hash and, at most, one pending password-reset
    token and one pending email-verification token, each as a SHA-256 hash
    with its expiry.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), unique=True, index=True, nullable=False)
    hashed_password = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=True)
    photo_url = Column(String(2048), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    status = Column(Enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    reset_token_hash = Column(String(64), nullable=True)
    reset_token_expires_at = Column(DateTime, nullable=True)
    verification_token_hash = Column(String(64), nullable=True)
    verification_token_expires_at = Column(DateTime, nullable=True)

    # Relationships
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def is_admin(self) -> bool:
        """Check if the user has admin role."""
        return self.role == UserRole.ADMIN

    @property
    def is_active(self) -> bool:
        """Check if the account may sign in."""
        return self.status == UserStatus.ACTIVE

    def to_public_dict(self) -> Dict[str, Any]:
        """Account fields safe to return to clients; no password or token material."""
        return {
            "uid": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "role": self.role.value,
            "status": self.status.value,
            "emailVerified": self.email_verified,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        """String representation of the User object."""
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"


class RefreshToken(Base):
    """
    Outstanding refresh-token grant.

    Only the SHA-256 hash of the issued token is kept, so a database dump
    yields no usable credentials.
    """
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    def is_expired(self, now: Optional[datetime.datetime] = None) -> bool:
        """Check whether the grant has passed its expiry."""
        return self.expires_at < (now or utcnow())

    def __repr__(self) -> str:
        """String representation of the RefreshToken object."""
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, expires_at={self.expires_at})>"
