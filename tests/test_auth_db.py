"""
Tests for the credential store.

Covers:
- User creation and lookup
- Two-factor record transitions
- Storage failures surfacing as UpstreamUnavailable
"""
import logging
import sqlite3

import pytest
from sqlalchemy import false

from keyward.auth.errors import ConflictError, UpstreamUnavailable
from keyward.database import auth_db as auth_db_module
from keyward.database.auth_db import AuthDB, normalize_email


class TestUsers:
    """Test user creation and lookup."""

    def test_create_user(self, auth_db):
        user = auth_db.create_user("Ada@Example.com", "hash", "Ada")

        assert user["email"] == "ada@example.com"
        assert user["name"] == "Ada"
        assert user["is_active"] is True
        assert "password_hash" not in user

    def test_duplicate_email_case_insensitive(self, auth_db):
        auth_db.create_user("ada@example.com", "hash")

        with pytest.raises(ConflictError):
            auth_db.create_user("ADA@example.com", "hash")

    def test_concurrent_registration_conflicts(self, auth_db, monkeypatch):
        """The unique index catches a registration that passed the pre-check."""
        auth_db.create_user("ada@example.com", "hash")

        real_select = auth_db_module.select
        monkeypatch.setattr(
            auth_db_module, "select", lambda *cols: real_select(*cols).where(false())
        )

        with pytest.raises(ConflictError):
            auth_db.create_user("ada@example.com", "other-hash")

    def test_lookup_by_email_includes_hash(self, auth_db):
        auth_db.create_user("ada@example.com", "the-hash")

        user = auth_db.get_user_by_email("  ADA@example.com ")
        assert user["password_hash"] == "the-hash"

    def test_lookup_by_id_is_public(self, auth_db):
        created = auth_db.create_user("ada@example.com", "the-hash")

        user = auth_db.get_user_by_id(created["user_id"])
        assert user["email"] == "ada@example.com"
        assert "password_hash" not in user

    def test_unknown_user(self, auth_db):
        assert auth_db.get_user_by_email("nobody@example.com") is None
        assert auth_db.get_user_by_id("00000000-0000-0000-0000-000000000000") is None

    def test_update_last_login(self, auth_db):
        created = auth_db.create_user("ada@example.com", "hash")
        auth_db.update_last_login(created["user_id"])

        assert auth_db.get_user_by_id(created["user_id"])["last_login"] is not None

    def test_normalize_email(self):
        assert normalize_email(" Ada@Example.COM ") == "ada@example.com"


class TestTwoFactorRecords:
    """Test pending, enabled and removed states."""

    @pytest.fixture
    def user_id(self, auth_db):
        return auth_db.create_user("ada@example.com", "hash")["user_id"]

    def test_pending_then_enabled(self, auth_db, user_id):
        auth_db.save_pending_two_factor(user_id, "SECRET1")
        assert auth_db.get_two_factor(user_id)["enabled"] is False

        assert auth_db.enable_two_factor(user_id, "SECRET1") is True
        record = auth_db.get_two_factor(user_id)
        assert record["enabled"] is True
        assert record["enabled_at"] is not None

    def test_pending_secret_replaced(self, auth_db, user_id):
        auth_db.save_pending_two_factor(user_id, "SECRET1")
        auth_db.save_pending_two_factor(user_id, "SECRET2")

        assert auth_db.get_two_factor(user_id)["secret"] == "SECRET2"
        assert auth_db.enable_two_factor(user_id, "SECRET1") is False

    def test_enabled_record_not_overwritten(self, auth_db, user_id):
        auth_db.save_pending_two_factor(user_id, "SECRET1")
        auth_db.enable_two_factor(user_id, "SECRET1")

        with pytest.raises(ConflictError):
            auth_db.save_pending_two_factor(user_id, "SECRET2")
        assert auth_db.get_two_factor(user_id)["secret"] == "SECRET1"

    def test_enable_only_once(self, auth_db, user_id):
        auth_db.save_pending_two_factor(user_id, "SECRET1")

        assert auth_db.enable_two_factor(user_id, "SECRET1") is True
        assert auth_db.enable_two_factor(user_id, "SECRET1") is False

    def test_delete(self, auth_db, user_id):
        auth_db.save_pending_two_factor(user_id, "SECRET1")

        assert auth_db.delete_two_factor(user_id) is True
        assert auth_db.get_two_factor(user_id) is None
        assert auth_db.delete_two_factor(user_id) is False


class TestRecoveryCodeStorage:
    """Test batch replacement."""

    def test_replace_batch(self, auth_db):
        user_id = auth_db.create_user("ada@example.com", "hash")["user_id"]

        first = auth_db.replace_recovery_codes(user_id, ["h1", "h2"])
        second = auth_db.replace_recovery_codes(user_id, ["h3", "h4", "h5"])

        codes = auth_db.get_recovery_codes(user_id)
        assert second["count"] == 3
        assert {c["batch_id"] for c in codes} == {second["batch_id"]}
        assert first["batch_id"] != second["batch_id"]
        assert auth_db.count_unused_recovery_codes(user_id) == 3


class TestUnavailableStorage:
    """Connectivity failures become UpstreamUnavailable."""

    @pytest.fixture
    def broken_db(self, tmp_path):
        db = AuthDB(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'keyward.db'}")
        yield db
        db.dispose()

    def test_ping(self, broken_db):
        with pytest.raises(UpstreamUnavailable) as exc_info:
            broken_db.ping()
        assert exc_info.value.status_code == 503

    def test_init_schema(self, broken_db):
        with pytest.raises(UpstreamUnavailable):
            broken_db.init_schema()

    def test_lookup(self, broken_db):
        with pytest.raises(UpstreamUnavailable):
            broken_db.get_user_by_email("ada@example.com")

    def test_healthy_ping(self, auth_db):
        auth_db.ping()


class TestSecretsKeptOutOfLogs:
    """Driver errors never carry bound values into logs."""

    def test_locked_store_does_not_log_totp_secret(self, auth_db, tmp_path, caplog):
        user_id = auth_db.create_user("ada@example.com", "hash")["user_id"]
        secret = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"

        # Another writer holds the lock until the busy timeout expires
        blocker = sqlite3.connect(str(tmp_path / "keyward.db"), isolation_level=None)
        blocker.execute("BEGIN IMMEDIATE")
        try:
            with caplog.at_level(logging.ERROR):
                with pytest.raises(UpstreamUnavailable) as exc_info:
                    auth_db.save_pending_two_factor(user_id, secret)
        finally:
            blocker.rollback()
            blocker.close()

        assert "Database unavailable" in caplog.text
        assert secret not in caplog.text
        assert secret not in str(exc_info.value.__cause__)
        assert auth_db.get_two_factor(user_id) is None
