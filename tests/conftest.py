"""
tests/conftest.py -- Shared test fixtures for SIWES auth unit and integration tests.

This module provides:
  - make_settings(): Settings with explicit keys and a low bcrypt cost
  - _make_test_store(): isolated in-memory user DB
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - store / tokens / workflow / make_user: per-test fixtures for unit tests
  - api_client / api_user: TestClient with admin JWT for route tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/auth module import so
get_settings() auto-generates SECRET_KEY in dev mode rather than raising.
"""

from __future__ import annotations

import os
import secrets
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService
from auth.workflow import AuthWorkflow
from core.config import Settings

# Rate limits are exercised by slowapi itself; route tests would trip them.
limiter.enabled = False

TEST_EMAIL = "test@example.com"
TEST_PASSWORD = "Test@1234"
NEW_PASSWORD = "NewPass@5678"


def make_settings(**overrides) -> Settings:
    """Settings with explicit signing keys and bcrypt cost 4 for speed."""
    values = {
        "debug": True,
        "secret_key": secrets.token_hex(32),
        "refresh_secret_key": secrets.token_hex(32),
        "bcrypt_rounds": 4,
        "smtp_host": "",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests and test
                   modules never share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(settings: Settings, user_store: UserStore, tokens: TokenService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test collaborators into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.tokens = tokens
        app.state.workflow = AuthWorkflow(user_store, tokens, settings)
        yield

    return test_lifespan


def _add_user(
    store: UserStore,
    tokens: TokenService,
    email: str,
    password: str = TEST_PASSWORD,
    role: str = "student",
    **fields,
) -> User:
    uid = store.create_user(User(email=email, role=role, hashed_password=tokens.hash_password(password), **fields))
    return store.get_by_id(uid)


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh DB per test
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = _make_test_store(uuid.uuid4().hex)
    yield user_store
    user_store.close()


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def workflow(store: UserStore, tokens: TokenService, settings: Settings) -> AuthWorkflow:
    return AuthWorkflow(store, tokens, settings)


@pytest.fixture
def make_user(store: UserStore, tokens: TokenService):
    """Factory: make_user(email, password=TEST_PASSWORD, role="student", **fields) -> User.

    Users start in the first-login state unless the flags are passed.
    """

    def factory(email: str, password: str = TEST_PASSWORD, role: str = "student", **fields) -> User:
        return _add_user(store, tokens, email, password, role, **fields)

    return factory


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    The admin user is created before the client starts and has already
    completed its first-login reset.
    """
    settings = make_settings()
    tokens = TokenService(settings)
    user_store = _make_test_store(request.module.__name__.replace(".", "_"))

    admin = _add_user(
        user_store,
        tokens,
        "admin@siwes.edu",
        password="Admin@1234",
        role="admin",
        first_name="Ada",
        last_name="Admin",
        is_first_login=False,
        password_reset_required=False,
    )
    token = tokens.create_access_token(admin)

    app.router.lifespan_context = _patch_lifespan(settings, user_store, tokens)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    user_store.close()


@pytest.fixture
def api_user(api_client):
    """Factory creating users in the api_client's store.

    api_user(email, password=TEST_PASSWORD, role="student", **fields) -> User
    """
    client, _, _ = api_client

    def factory(email: str, password: str = TEST_PASSWORD, role: str = "student", **fields) -> User:
        return _add_user(client.app.state.user_store, client.app.state.tokens, email, password, role, **fields)

    return factory
