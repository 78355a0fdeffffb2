"""
tests/conftest.py -- Shared test fixtures for the inspection gateway.

This module provides:
  - make_settings(): Settings with an injected secret and plain cookies
  - seed_accounts(): the standard cast (root, insp01, ghost) in any store
  - FakeClock: a settable clock for token expiry tests
  - store / auth_config: unit-test fixtures backed by in-memory SQLite
  - api_client: TestClient over the real app with a patched lifespan
  - client: per-test view of api_client with counters and cookies reset

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because route handlers run in a thread pool and plain
:memory: DBs are per-connection.

The DEBUG env var must be set before api.main is imported: the module builds
its middleware from get_settings() at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, configure_auth
from auth.models import Account, DeviceBinding, Platform, Role
from auth.policy import AuthConfig
from auth.store import AccountStore
from auth.tokens import hash_password
from core.config import Settings

TEST_SECRET = "test-secret-key-for-inspectgate-0123456789abcdef"

ROOT_PASSWORD = "RootPass1!"
INSP_PASSWORD = "InspPass1!"
GHOST_PASSWORD = "GhostPass1!"

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"
ANDROID_HEADERS = {"X-Platform": "android", "User-Agent": "okhttp/4.12.0"}
WEB_HEADERS = {"User-Agent": BROWSER_UA}


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "secure_cookies": False,
        "database_url": "sqlite:///:memory:",
    }
    values.update(overrides)
    return Settings(**values)


def seed_accounts(store: AccountStore) -> dict[str, int]:
    """Create root (admin), insp01 (inspector on DEV-123/android) and ghost (inactive admin)."""
    ids = {}
    ids["root"] = store.create_account(
        Account(
            username="root",
            email="root@example.org",
            hashed_password=hash_password(ROOT_PASSWORD),
            roles=(Role.ADMIN,),
        )
    )
    ids["insp01"] = store.create_account(
        Account(
            username="insp01",
            email="insp01@example.org",
            hashed_password=hash_password(INSP_PASSWORD),
            roles=(Role.INSPECTOR,),
            device=DeviceBinding(device_id="DEV-123", platform=Platform.ANDROID),
        )
    )
    ids["ghost"] = store.create_account(
        Account(
            username="ghost",
            email="ghost@example.org",
            hashed_password=hash_password(GHOST_PASSWORD),
            roles=(Role.ADMIN,),
            is_active=False,
        )
    )
    return ids


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def at(self, epoch_seconds: float) -> None:
        self.now = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig.from_settings(make_settings())


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def seeded(store: AccountStore) -> tuple[AccountStore, dict[str, int]]:
    return store, seed_accounts(store)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: AccountStore):
    """Return a lifespan that wires the test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        configure_auth(app, settings, store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[str, int]], None, None]:
    """Yield (client, account ids) for integration tests, one app per test module."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    store = AccountStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    ids = seed_accounts(store)

    app.router.lifespan_context = _patch_lifespan(make_settings(), store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, ids

    store.close()


@pytest.fixture
def client(api_client) -> TestClient:
    """Per-test client: fresh rate-limit counters and an empty cookie jar."""
    test_client, _ids = api_client
    test_client.app.state.rate_limiter.reset()
    test_client.cookies.clear()
    return test_client
