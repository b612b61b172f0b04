"""
tests/conftest.py -- Shared test fixtures for authcore unit and integration tests.

This module provides:
  - FakeClock / clock: a controllable UTC clock shared by every component
  - hasher: Argon2id with the cheapest legal parameters (fast tests)
  - store: isolated in-memory UserStore per test
  - service: AuthService wired from the fixtures above
  - make_user: factory that registers a user through the service
  - api_client: TestClient with a patched lifespan for HTTP tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and the Argon2 cost env vars must be set before any api/ import so
get_settings() auto-generates SECRET_KEY and builds a cheap hasher.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ARGON2_MEMORY_COST", "8")
os.environ.setdefault("ARGON2_TIME_COST", "1")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.hashing import CredentialHasher, HashingParams
from auth.models import User
from auth.service import AuthService, build_auth_service
from auth.store import UserStore
from auth.tokens import JoseTokenSigner
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
PASSWORD = "S3curePass"
CHEAP_PARAMS = HashingParams(memory_cost=8, time_cost=1, parallelism=1)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def memory_db_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore(db_url=memory_db_url(f"test_auth_{uuid.uuid4().hex}"))
    yield s
    s.close()


@pytest.fixture
def hasher() -> CredentialHasher:
    return CredentialHasher(CHEAP_PARAMS)


@pytest.fixture
def signer(clock: FakeClock) -> JoseTokenSigner:
    return JoseTokenSigner(TEST_SECRET, clock=clock)


@pytest.fixture
def service(store: UserStore, hasher: CredentialHasher, signer: JoseTokenSigner, clock: FakeClock) -> AuthService:
    return AuthService(store=store, hasher=hasher, signer=signer, clock=clock)


@pytest.fixture
def make_user(service: AuthService) -> Callable[..., User]:
    """Register a user with unique defaults. Keyword args override any field."""
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> User:
        n = next(counter)
        fields = {"name": f"User {n}", "email": f"user{n}@example.com", "password": PASSWORD}
        fields.update(overrides)
        return service.create_user(**fields)

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built AuthService into app.state so TestClient routes see an
    isolated test DB rather than the production database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    base_url uses localhost so TrustedHostMiddleware accepts the requests.
    """
    user_store = UserStore(db_url=memory_db_url(f"test_api_{uuid.uuid4().hex}"))
    auth_service = build_auth_service(get_settings(), store=user_store)

    app.router.lifespan_context = _patch_lifespan(auth_service)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, auth_service

    user_store.close()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Clear slowapi counters so each test starts with a full budget."""
    limiter.reset()
