"""
Pytest configuration and shared fixtures for Keyward tests.

This module provides common test fixtures for:
- A throwaway SQLite credential store
- The session issuer and AuthService built on it
- An application and TestClient wired to those resources
"""
import pytest
from fastapi.testclient import TestClient

from keyward.api.deps import AuthRateLimiter
from keyward.api.main import create_app
from keyward.auth import hashing
from keyward.auth.service import AuthService
from keyward.auth.tokens import SessionIssuer
from keyward.database.auth_db import AuthDB
from keyward.utils.config import AppConfig

TEST_JWT_SECRET = "test-secret-key-for-keyward-tests-0123456789"
TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Minimum bcrypt cost so hashing does not dominate test time."""
    monkeypatch.setattr(hashing, "BCRYPT_ROUNDS", 4)


# ============================================
# Core Fixtures
# ============================================

@pytest.fixture
def auth_db(tmp_path):
    """
    File-backed SQLite store, created fresh for each test.
    Automatically cleaned up after test completes.
    """
    db = AuthDB(f"sqlite:///{tmp_path / 'keyward.db'}")
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def sessions():
    return SessionIssuer(TEST_JWT_SECRET)


@pytest.fixture
def auth_service(auth_db, sessions):
    return AuthService(auth_db, sessions, totp_issuer="Keyward")


@pytest.fixture
def registered_user(auth_service):
    """A registered account: dict with email, password and the stored user."""
    user = auth_service.register("ada@example.com", TEST_PASSWORD, "Ada Lovelace")
    return {"email": "ada@example.com", "password": TEST_PASSWORD, "user": user}


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def app_config():
    return AppConfig(
        database_url="sqlite://",
        jwt_secret=TEST_JWT_SECRET,
        cors_origins=["http://localhost:3000"],
        rate_limit_enabled=False,
        app_env="test",
    )


@pytest.fixture
def app(app_config, auth_db, auth_service):
    return create_app(
        config=app_config,
        db=auth_db,
        auth_service=auth_service,
        rate_limiter=AuthRateLimiter(),
    )


@pytest.fixture
def client(app):
    """TestClient with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client, registered_user):
    """Bearer header for the registered user, obtained through /auth/login."""
    response = client.post(
        "/auth/login",
        json={"email": registered_user["email"], "password": registered_user["password"]},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
