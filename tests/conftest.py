"""
Test fixtures for the Planner Authentication service.

This module provides pytest fixtures for an in-memory database, token
managers wired to it, a FastAPI test client, and registered test users.
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("APP_ENV", "test")

import pytest
from fastapi.testclient import TestClient

from planner_auth.auth import TokenLifecycleManager
from planner_auth.config import settings
from planner_auth.database import Database
from planner_auth.dependencies import (auth_rate_limiter, get_codec, get_token_manager,
                                       get_verification_manager)
from planner_auth.models import User, UserRole
from planner_auth.token import TokenCodec
from planner_auth.verification import VerificationTokenManager
from main import app

TEST_PASSWORD = "secret1"


class CapturingNotifier:
    """Notifier keeping every issued token for inspection."""

    def __init__(self):
        self.sent = []

    def send(self, purpose, email, token):
        self.sent.append((purpose, email, token))

    def last_token(self, purpose=None):
        for sent_purpose, _, token in reversed(self.sent):
            if purpose is None or sent_purpose == purpose:
                return token
        return None


@pytest.fixture(scope="function")
def database():
    """Create a fresh in-memory database."""
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.drop_all()
    db.engine.dispose()


@pytest.fixture(scope="function")
def codec():
    """Codec signing with the test secret."""
    return TokenCodec(settings.JWT_SECRET_KEY)


@pytest.fixture(scope="function")
def notifier():
    return CapturingNotifier()


@pytest.fixture(scope="function")
def token_manager(database, codec):
    """Token lifecycle manager bound to the test database."""
    return TokenLifecycleManager(database=database, codec=codec)


@pytest.fixture(scope="function")
def verification_manager(database, notifier):
    """Ephemeral token manager bound to the test database."""
    return VerificationTokenManager(database=database, notifier=notifier)


@pytest.fixture(scope="function", autouse=True)
def disable_rate_limit(monkeypatch):
    """Rate limiting is exercised explicitly by its own tests."""
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    auth_rate_limiter.rate_limiter.reset()
    yield
    auth_rate_limiter.rate_limiter.reset()


@pytest.fixture(scope="function")
def client(codec, token_manager, verification_manager):
    """Create a FastAPI test client wired to the test managers."""
    app.dependency_overrides[get_codec] = lambda: codec
    app.dependency_overrides[get_token_manager] = lambda: token_manager
    app.dependency_overrides[get_verification_manager] = lambda: verification_manager

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(token_manager):
    """Register alice@example.com and return the account id and initial tokens."""
    user_id, tokens = token_manager.register("alice@example.com", TEST_PASSWORD, "Alice")
    return {"id": user_id, "email": "alice@example.com", "tokens": tokens}


@pytest.fixture(scope="function")
def test_admin(token_manager, database):
    """Register an account and promote it to admin."""
    user_id, _ = token_manager.register("admin@example.com", "adminpass1", "Admin")
    with database.session_scope() as session:
        session.get(User, user_id).role = UserRole.ADMIN
    _, tokens = token_manager.login("admin@example.com", "adminpass1")
    return {"id": user_id, "email": "admin@example.com", "tokens": tokens}


@pytest.fixture(scope="function")
def auth_headers(test_user):
    """Bearer header carrying the test_user access token."""
    return {"Authorization": f"Bearer {test_user['tokens']['access_token']}"}
