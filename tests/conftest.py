"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - engine / users / groups / throttles: in-memory SQLAlchemy stores
  - clock: a controllable UTC clock for throttle tests
  - hasher: bcrypt at the minimum cost factor (fast, still a real hash)
  - codes / throttle / auth: the core components wired together
  - make_user: helper that registers (and optionally activates) a user
  - api_client: TestClient over api.main.create_app with in-memory services

Design: every function-scoped fixture gets a fresh sqlite:///:memory: engine.
create_auth_engine() uses a StaticPool for memory URLs, so the TestClient's
worker threads all see the same database.

GATEHOUSE_DEBUG must be set before any core import so get_settings() can
auto-generate a secret key instead of raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("GATEHOUSE_DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.channels import MemoryCookieChannel, MemorySessionChannel
from auth.codes import CredentialCodeManager
from auth.factory import build_services
from auth.hashing import BcryptHasher
from auth.models import User
from auth.session import AuthSession, SessionConfig
from auth.store import SQLGroupStore, SQLThrottleStore, SQLUserStore, create_auth_engine
from auth.throttle import ThrottleGuard
from core.config import Settings

SECRET = "test-secret-key-0123456789abcdef-0123456789abcdef"
PASSWORD = "correct horse battery"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def secret_key() -> str:
    return SECRET


@pytest.fixture
def password() -> str:
    return PASSWORD


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    e = create_auth_engine("sqlite:///:memory:")
    yield e
    e.dispose()


@pytest.fixture
def users(engine) -> SQLUserStore:
    return SQLUserStore(engine, login_attribute="email")


@pytest.fixture
def groups(engine) -> SQLGroupStore:
    return SQLGroupStore(engine)


@pytest.fixture
def throttles(engine) -> SQLThrottleStore:
    return SQLThrottleStore(engine)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> BcryptHasher:
    return BcryptHasher(strength=4)


@pytest.fixture
def codes(users, hasher) -> CredentialCodeManager:
    return CredentialCodeManager(users, hasher, SECRET)


@pytest.fixture
def throttle(throttles, clock) -> ThrottleGuard:
    return ThrottleGuard(throttles, attempt_limit=5, suspension_minutes=15, clock=clock)


@pytest.fixture
def session_channel() -> MemorySessionChannel:
    return MemorySessionChannel("gatehouse")


@pytest.fixture
def cookie_channel() -> MemoryCookieChannel:
    return MemoryCookieChannel("gatehouse")


@pytest.fixture
def auth(users, groups, throttle, hasher, codes, session_channel, cookie_channel) -> AuthSession:
    return AuthSession(
        users=users,
        groups=groups,
        throttle=throttle,
        hasher=hasher,
        codes=codes,
        config=SessionConfig(secret_key=SECRET),
        session=session_channel,
        cookie=cookie_channel,
    )


@pytest.fixture
def make_user(users, hasher):
    """Return a factory: make_user(email, password=PASSWORD, activated=True) -> User."""

    def _make(email: str = "alice@example.com", password: str = PASSWORD, activated: bool = True) -> User:
        user = User(email=email, password=hasher.hash(password), is_activated=activated)
        return users.save(user)

    return _make


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def api_settings() -> Settings:
    return Settings(debug=True, secret_key=SECRET, hasher="bcrypt", log_level="WARNING")


@pytest.fixture
def delivered() -> list[tuple[str, str, str]]:
    """Codes handed to deliver_code, as (login, purpose, code)."""
    return []


@pytest.fixture
def api_client(api_settings, engine, delivered) -> Generator[TestClient, None, None]:
    """TestClient over a fresh app with in-memory services.

    The rate limiter is process-wide, so its counters are reset per test.
    """
    services = build_services(api_settings, engine=engine)

    def deliver(user: User, purpose: str, code: str) -> None:
        delivered.append((user.email, purpose, code))

    app = create_app(settings=api_settings, services=services, deliver_code=deliver)
    limiter.reset()
    with TestClient(app) as client:
        yield client
    limiter.reset()
