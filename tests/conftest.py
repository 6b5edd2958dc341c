"""
tests/conftest.py -- Shared test fixtures for usergate integration tests.

This module provides:
  - make_state(): builds isolated components (in-memory DB, fast bcrypt, fake oracle)
  - _patch_lifespan(): wires those components into app.state, bypassing real startup
  - api_client: TestClient against the real app with the security gate allowing everything
  - AllowAllOracle / RaisingOracle: deterministic SecurityOracle fakes

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

ENVIRONMENT must be set before any app import so get_settings() generates a
JWT secret instead of demanding one.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any api/core import.
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import PasswordHasher
from auth.service import Authenticator
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings
from security.gate import SecurityGate
from security.oracle import RateLimitDecision, RequestProfile

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"

# bcrypt's minimum work factor keeps the suite fast.
FAST_ROUNDS = 4


class AllowAllOracle:
    """Oracle fake that lets every request through and records what it saw."""

    def __init__(self) -> None:
        self.seen: list[RequestProfile] = []

    def inspect(self, profile: RequestProfile) -> RateLimitDecision:
        self.seen.append(profile)
        return RateLimitDecision.allow()


class RaisingOracle:
    """Oracle fake that always fails, to exercise the fail-closed path."""

    def inspect(self, profile: RequestProfile) -> RateLimitDecision:
        raise ConnectionError("security service unreachable")


def make_settings(**overrides) -> Settings:
    values = {"environment": "test", "jwt_secret": TEST_SECRET, "bcrypt_rounds": FAST_ROUNDS}
    values.update(overrides)
    return Settings(**values)


def make_state(app_, settings: Settings, db_suffix: str) -> None:
    """Attach isolated components to app_.state (mirrors api.main.build_state)."""
    db_url = f"sqlite:///file:test_auth_{db_suffix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=db_url)
    codec = TokenCodec(secret=settings.jwt_secret, ttl_seconds=settings.token_expire_seconds)
    app_.state.settings = settings
    app_.state.user_store = user_store
    app_.state.token_codec = codec
    app_.state.authenticator = Authenticator(user_store, PasswordHasher(rounds=settings.bcrypt_rounds))
    app_.state.security_gate = SecurityGate(AllowAllOracle(), codec, cookie_name=settings.cookie_name)


def _patch_lifespan(settings: Settings, db_suffix: str):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app_):
        make_state(app_, settings, db_suffix)
        yield
        app_.state.user_store.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app with isolated in-memory state.

    Tests that need a different security gate replace
    client.app.state.security_gate and restore it afterwards (see gate_client
    in test_security_gate.py).
    """
    settings = make_settings()
    app.router.lifespan_context = _patch_lifespan(settings, "api")
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(autouse=True)
def _clear_cookies(request) -> None:
    """Start every test without a session cookie left over from the previous one."""
    if "api_client" in request.fixturenames:
        request.getfixturevalue("api_client").cookies.clear()


@pytest.fixture
def signup_user(api_client: TestClient):
    """Factory: create an account through the API and return its JSON."""

    def _signup(email: str | None = None, password: str = "secret123", name: str = "Test User", role: str = "user"):
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        resp = api_client.post(
            "/api/auth/signup",
            json={"name": name, "email": email, "password": password, "role": role},
        )
        assert resp.status_code == 201, resp.text
        api_client.cookies.clear()
        return resp.json()

    return _signup
