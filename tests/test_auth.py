"""
Tests for the token lifecycle.

This module tests login, registration, refresh-token rotation, logout, and the
account operations provided by planner_auth.auth.
"""
import datetime
import threading
import time

import pytest
from sqlalchemy import select

from planner_auth.auth import TokenLifecycleManager
from planner_auth.config import settings
from planner_auth.database import Database
from planner_auth.errors import AuthError, Conflict, ErrorKind, InternalError, NotFound, Unauthorized
from planner_auth.models import RefreshToken, User, UserStatus, utcnow
from planner_auth.security import WeakPasswordError, hash_token
from planner_auth.store import CredentialStore
from planner_auth.token import TokenCodec

TEST_PASSWORD = "secret1"  # password of the test_user fixture


def _refresh_records(database, user_id):
    with database.session_scope() as session:
        return list(session.scalars(select(RefreshToken).where(RefreshToken.user_id == user_id)))


def test_register_issues_tokens(token_manager, codec, database):
    """Registration stores a hashed password and returns a usable pair."""
    user_id, tokens = token_manager.register("Bob@Example.com ", "hunter22", "Bob")

    access_claims = codec.verify(tokens["access_token"])
    assert access_claims["sub"] == user_id
    assert access_claims["email"] == "bob@example.com"
    assert access_claims["role"] == "user"

    with database.session_scope() as session:
        user = session.get(User, user_id)
        assert user.email == "bob@example.com"
        assert user.display_name == "Bob"
        assert user.hashed_password != "hunter22"
        assert user.hashed_password.startswith("$2")
        assert user.email_verified is False

    records = _refresh_records(database, user_id)
    assert len(records) == 1
    assert records[0].token_hash == hash_token(tokens["refresh_token"])
    assert records[0].token_hash != tokens["refresh_token"]


def test_register_duplicate_email(token_manager, test_user):
    """A second registration with the same normalized email conflicts."""
    with pytest.raises(Conflict) as exc_info:
        token_manager.register("ALICE@example.com", "another1")

    assert exc_info.value.kind == ErrorKind.CONFLICT


def test_register_weak_password(token_manager):
    """Passwords shorter than the policy minimum are refused."""
    with pytest.raises(WeakPasswordError) as exc_info:
        token_manager.register("carol@example.com", "abc")

    assert exc_info.value.kind == ErrorKind.VALIDATION


def test_login_success(token_manager, test_user, codec):
    """Login returns the public user summary and distinct tokens."""
    user, tokens = token_manager.login("Alice@Example.com", TEST_PASSWORD)

    assert user["uid"] == test_user["id"]
    assert user["email"] == "alice@example.com"
    assert "hashed_password" not in user
    assert tokens["access_token"] != tokens["refresh_token"]
    assert codec.verify(tokens["access_token"])["type"] == "access"
    assert codec.verify(tokens["refresh_token"])["type"] == "refresh"


def test_login_failures_share_one_message(token_manager, test_user):
    """Unknown email and wrong password are indistinguishable."""
    with pytest.raises(Unauthorized) as unknown:
        token_manager.login("nobody@example.com", TEST_PASSWORD)
    with pytest.raises(Unauthorized) as wrong:
        token_manager.login("alice@example.com", "wrong-password")

    assert unknown.value.message == wrong.value.message == "Invalid email or password"


def test_login_disabled_account(token_manager, test_user, database):
    """Disabled accounts cannot sign in."""
    with database.session_scope() as session:
        session.get(User, test_user["id"]).status = UserStatus.DISABLED

    with pytest.raises(Unauthorized):
        token_manager.login("alice@example.com", TEST_PASSWORD)


def test_each_login_adds_a_session(token_manager, test_user, database):
    """Concurrent sessions are not limited."""
    token_manager.login("alice@example.com", TEST_PASSWORD)
    token_manager.login("alice@example.com", TEST_PASSWORD)

    assert len(_refresh_records(database, test_user["id"])) == 3


def test_refresh_rotates_tokens(token_manager, test_user, database):
    """Refresh returns a new pair and replaces the stored record."""
    old_refresh = test_user["tokens"]["refresh_token"]

    tokens = token_manager.refresh(old_refresh)

    assert tokens["refresh_token"] != old_refresh
    records = _refresh_records(database, test_user["id"])
    assert [record.token_hash for record in records] == [hash_token(tokens["refresh_token"])]


def test_refresh_token_is_single_use(token_manager, test_user):
    """Replaying a rotated refresh token fails."""
    rt1 = test_user["tokens"]["refresh_token"]
    rt2 = token_manager.refresh(rt1)["refresh_token"]

    with pytest.raises(Unauthorized) as exc_info:
        token_manager.refresh(rt1)

    assert exc_info.value.message == "Refresh token has been revoked"
    # The replacement is still good
    assert token_manager.refresh(rt2)["refresh_token"]


def test_refresh_rejects_access_token(token_manager, test_user):
    """Only refresh tokens can be exchanged."""
    with pytest.raises(Unauthorized):
        token_manager.refresh(test_user["tokens"]["access_token"])


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_refresh_rejects_malformed(token_manager, token):
    with pytest.raises(Unauthorized):
        token_manager.refresh(token)


def test_refresh_rejects_expired_record(token_manager, test_user, database):
    """A record past its expiry no longer authorizes a refresh."""
    with database.session_scope() as session:
        for record in session.scalars(select(RefreshToken)):
            record.expires_at = utcnow() - datetime.timedelta(seconds=1)

    with pytest.raises(Unauthorized):
        token_manager.refresh(test_user["tokens"]["refresh_token"])


def test_refresh_after_account_deleted(token_manager, test_user):
    token_manager.delete_account(test_user["id"])

    with pytest.raises(Unauthorized):
        token_manager.refresh(test_user["tokens"]["refresh_token"])


def test_refresh_removes_duplicate_records(token_manager, test_user, database):
    """Every record matching the presented token is consumed."""
    rt = test_user["tokens"]["refresh_token"]
    with database.session_scope() as session:
        session.add(RefreshToken(
            user_id=test_user["id"],
            token_hash=hash_token(rt),
            expires_at=utcnow() + datetime.timedelta(days=1),
        ))

    token_manager.refresh(rt)

    assert len(_refresh_records(database, test_user["id"])) == 1
    with pytest.raises(Unauthorized):
        token_manager.refresh(rt)


def test_refresh_rejected_when_record_already_consumed(token_manager, test_user, database, monkeypatch):
    """If another rotation removed the record first, nothing new is issued."""
    rt = test_user["tokens"]["refresh_token"]
    original_delete = CredentialStore.delete_refresh_token_records

    def delete_lost_race(self, ids):
        original_delete(self, ids)
        return 0

    monkeypatch.setattr(CredentialStore, "delete_refresh_token_records", delete_lost_race)

    with pytest.raises(Unauthorized) as exc_info:
        token_manager.refresh(rt)

    assert exc_info.value.message == "Refresh token has been revoked"
    records = _refresh_records(database, test_user["id"])
    assert [record.token_hash for record in records] == [hash_token(rt)]


class SlowCodec(TokenCodec):
    """Codec that widens the window between consuming a token and committing."""

    def issue_access_token(self, *args, **kwargs):
        time.sleep(0.5)
        return super().issue_access_token(*args, **kwargs)


def test_concurrent_refresh_is_single_use(tmp_path):
    """Two simultaneous refreshes with one token yield exactly one new pair."""
    database = Database(f"sqlite:///{tmp_path / 'sessions.db'}")
    database.create_all()
    manager = TokenLifecycleManager(database=database, codec=SlowCodec(settings.JWT_SECRET_KEY))
    user_id, tokens = manager.register("alice@example.com", TEST_PASSWORD)

    issued, rejected = [], []
    barrier = threading.Barrier(2)

    def rotate():
        barrier.wait()
        try:
            issued.append(manager.refresh(tokens["refresh_token"]))
        except AuthError as exc:
            rejected.append(exc)

    threads = [threading.Thread(target=rotate) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert len(issued) == 1
        assert len(rejected) == 1
        records = _refresh_records(database, user_id)
        assert [record.token_hash for record in records] == [hash_token(issued[0]["refresh_token"])]
    finally:
        database.engine.dispose()


def test_logout_invalidates_refresh_token(token_manager, test_user):
    """After logout the refresh token cannot be used."""
    rt = test_user["tokens"]["refresh_token"]

    assert token_manager.logout(rt, test_user["id"]) == 1

    with pytest.raises(Unauthorized):
        token_manager.refresh(rt)


def test_logout_is_idempotent(token_manager, test_user):
    rt = test_user["tokens"]["refresh_token"]

    token_manager.logout(rt, test_user["id"])

    assert token_manager.logout(rt, test_user["id"]) == 0
    assert token_manager.logout(None, test_user["id"]) == 0
    assert token_manager.logout("garbage", test_user["id"]) == 0


def test_logout_only_affects_own_tokens(token_manager, test_user):
    """A subject cannot revoke another subject's refresh token."""
    other_id, _ = token_manager.register("mallory@example.com", "mallory1")
    rt = test_user["tokens"]["refresh_token"]

    assert token_manager.logout(rt, other_id) == 0
    assert token_manager.refresh(rt)["access_token"]


def test_logout_all(token_manager, test_user):
    _, second = token_manager.login("alice@example.com", TEST_PASSWORD)

    assert token_manager.logout_all(test_user["id"]) == 2

    for rt in (test_user["tokens"]["refresh_token"], second["refresh_token"]):
        with pytest.raises(Unauthorized):
            token_manager.refresh(rt)


def test_check_email(token_manager, test_user):
    assert token_manager.check_email("ALICE@example.com") is True
    assert token_manager.check_email("nobody@example.com") is False


def test_get_and_update_profile(token_manager, test_user):
    profile = token_manager.update_profile(
        test_user["id"], display_name="Alice A.", photo_url="https://example.com/a.png"
    )

    assert profile["displayName"] == "Alice A."
    assert token_manager.get_profile(test_user["id"])["photoURL"] == "https://example.com/a.png"


def test_get_profile_unknown_user(token_manager):
    with pytest.raises(NotFound):
        token_manager.get_profile("missing")


def test_change_password_revokes_sessions(token_manager, test_user):
    """Changing the password signs every session out."""
    revoked = token_manager.change_password(test_user["id"], TEST_PASSWORD, "new-secret1")

    assert revoked == 1
    with pytest.raises(Unauthorized):
        token_manager.refresh(test_user["tokens"]["refresh_token"])
    with pytest.raises(Unauthorized):
        token_manager.login("alice@example.com", TEST_PASSWORD)
    assert token_manager.login("alice@example.com", "new-secret1")


def test_change_password_wrong_current(token_manager, test_user):
    with pytest.raises(Unauthorized):
        token_manager.change_password(test_user["id"], "not-it", "new-secret1")


def test_delete_account_cascades(token_manager, test_user, database):
    """Deletion removes the user, its refresh tokens, and runs cascade hooks."""
    deleted = []
    token_manager.deletion_hooks.append(lambda session, user_id: deleted.append(user_id))

    token_manager.delete_account(test_user["id"])

    assert deleted == [test_user["id"]]
    assert _refresh_records(database, test_user["id"]) == []
    assert token_manager.check_email("alice@example.com") is False


def test_delete_account_hook_failure_rolls_back(token_manager, test_user):
    """A failing cascade hook leaves the account in place."""
    def failing_hook(session, user_id):
        raise RuntimeError("projects store unavailable")

    token_manager.deletion_hooks.append(failing_hook)

    with pytest.raises(RuntimeError):
        token_manager.delete_account(test_user["id"])

    assert token_manager.check_email("alice@example.com") is True


def test_delete_missing_account(token_manager):
    with pytest.raises(NotFound):
        token_manager.delete_account("missing")


def test_purge_expired_refresh_tokens(token_manager, test_user, database):
    token_manager.login("alice@example.com", TEST_PASSWORD)
    with database.session_scope() as session:
        record = session.scalars(select(RefreshToken).order_by(RefreshToken.id)).first()
        record.expires_at = utcnow() - datetime.timedelta(days=1)

    assert token_manager.purge_expired_refresh_tokens() == 1
    assert len(_refresh_records(database, test_user["id"])) == 1


def test_store_failure_is_internal_error(token_manager, database):
    """Database failures surface as InternalError, not as SQLAlchemy errors."""
    database.drop_all()

    with pytest.raises(InternalError) as exc_info:
        token_manager.check_email("alice@example.com")

    assert exc_info.value.status_code == 500
