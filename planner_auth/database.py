"""
Database configuration and session management for the Planner Authentication service.

This module provides SQLAlchemy setup, session management, and database
initialization. One ``session_scope`` is one transaction: everything written
inside it is committed together or rolled back together.
"""
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from planner_auth.config import settings

# Create SQLAlchemy base class for models
Base = declarative_base()


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Refresh-token cascades rely on SQLite enforcing foreign keys."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine and session factory for one credential database."""

    def __init__(self, db_url: Optional[str] = None):
        """
        Args:
            db_url: SQLAlchemy URL; the configured DATABASE_URL when omitted.
        """
        if db_url is None:
            db_url = settings.DATABASE_URL

        engine_kwargs = {"echo": settings.DATABASE_ECHO}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # In-memory databases live in a single connection
            if db_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.url = db_url
        self.engine = create_engine(db_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    def create_all(self) -> None:
        """Create the users and refresh_tokens tables if missing."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop every table. Test teardown only."""
        Base.metadata.drop_all(bind=self.engine)

    def get_session(self) -> Session:
        """Open a session the caller must close."""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, Any, None]:
        """
        One transaction per block, committed on normal exit and rolled back
        if the block raises.
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Default database instance, created by init_db at startup
db: Optional[Database] = None


# PUBLIC_INTERFACE
def init_db(db_url: Optional[str] = None) -> Database:
    """
    Initialize the database with all required tables.

    Args:
        db_url: Optional database URL. If None, uses the configured URL.

    Returns:
        The initialized database.
    """
    global db
    # Importing the models registers their tables on Base.metadata
    from planner_auth import models  # noqa: F401

    db = Database(db_url)
    db.create_all()
    return db


# PUBLIC_INTERFACE
def get_database() -> Database:
    """
    Get the process-wide database, initializing it on first use.

    Returns:
        The default Database instance.
    """
    if db is None:
        return init_db()
    return db


# PUBLIC_INTERFACE
@contextmanager
def session_scope() -> Generator[Session, Any, None]:
    """
    Context manager for sessions on the default database.

    Yields:
        An active SQLAlchemy session.
    """
    with get_database().session_scope() as session:
        yield session
