"""
tests/conftest.py -- Shared test fixtures for AccountGuard tests.

This module provides:
  - FakeClock / FakeVerifier: deterministic stand-ins for time and Google
  - make_store(): isolated in-memory UserStore per test
  - clock, verifier, store, service: unit fixtures for the auth core
  - api: ApiHarness wrapping a TestClient with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG, SECRET_KEY and ENCRYPTION_KEY must be set before any api/ import,
because api.main reads get_settings() at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any api/core import so get_settings() succeeds.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-" + "s" * 32)
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-" + "e" * 32)

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.dependencies import AuthenticationGate
from auth.errors import ExternalTokenRejected
from auth.models import ExternalIdentity
from auth.service import AuthService, build_auth_service
from auth.store import UserStore
from core.config import Settings

TEST_SECRET = "unit-secret-key-" + "k" * 32
TEST_ENCRYPTION_KEY = "unit-encryption-key-" + "c" * 32


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeVerifier:
    """GoogleTokenVerifier stand-in: maps token strings to identities."""

    def __init__(self) -> None:
        self.identities: dict[str, ExternalIdentity] = {}
        self.calls: list[str] = []

    def add(self, token: str, email: str, name: str | None = None, **extra) -> None:
        self.identities[token] = ExternalIdentity(email=email, email_verified=True, name=name, **extra)

    def verify(self, token: str) -> ExternalIdentity:
        self.calls.append(token)
        if token not in self.identities:
            raise ExternalTokenRejected()
        return self.identities[token]


# ---------------------------------------------------------------------------
# Store / service helpers
# ---------------------------------------------------------------------------


def make_store(prefix: str = "auth") -> UserStore:
    """Create a UserStore on a fresh named shared-memory SQLite database."""
    return UserStore(db_url=f"sqlite:///file:test_{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET, "encryption_key": TEST_ENCRYPTION_KEY}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = make_store()
    yield user_store
    user_store.close()


@pytest.fixture
def service(store: UserStore, verifier: FakeVerifier, clock: FakeClock) -> AuthService:
    return build_auth_service(make_settings(), store, verifier=verifier, clock=clock)


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    store: UserStore
    service: AuthService
    clock: FakeClock
    verifier: FakeVerifier

    def register(self, email: str, username: str, password: str = "correct-horse") -> str:
        """Register through the API and return the session token."""
        resp = self.client.post(
            "/api/v1/register",
            json={"email": email, "username": username, "password": password},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        return resp.json()["token"]

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(user_store: UserStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test store and service into app.state so TestClient
    routes see an isolated database, a fake clock and a fake Google verifier.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = service
        app.state.gate = AuthenticationGate(service.issuer)
        yield

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness around the real FastAPI app.

    Tests hit real route handlers, dependencies and exception handlers but use
    an isolated in-memory store. Rate limiting is switched off so tests can
    fail logins repeatedly without tripping 429.
    """
    user_store = make_store("api")
    clock = FakeClock()
    verifier = FakeVerifier()
    service = build_auth_service(make_settings(), user_store, verifier=verifier, clock=clock)

    app.router.lifespan_context = _patch_lifespan(user_store, service)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, store=user_store, service=service, clock=clock, verifier=verifier)

    limiter.enabled = True
    user_store.close()
