"""
Pytest configuration and shared fixtures for the CyberFarm test suite.

This file provides:
- Test settings (in-memory store, scheduler off, known secrets)
- A controllable clock and a scripted RNG for deterministic engine runs
- An engine fixture backed by the in-memory document store
- API test clients with the engine dependency overridden
"""

import os
import sys
import pytest
from typing import List, Optional


# =============================================================================
# EARLY SETTINGS (runs at module import time)
# =============================================================================
# Must run before app modules are imported so the settings singleton sees it.

os.environ["ENVIRONMENT"] = "testing"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-BOT-TOKEN"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["BOT_USERNAME"] = "testfarm_bot"
os.environ.pop("DATABASE_URL", None)

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.database import InMemoryDocumentStore
from app.services.game_engine import GameEngine, get_engine

# 2026-01-01 01:00:00 UTC
START_MS = 1_767_229_200_000

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, seconds: float = 0, hours: float = 0) -> int:
        self.now += int(ms + seconds * 1000 + hours * 3_600_000)
        return self.now


class ScriptedRandom:
    """
    Stand-in for random.Random: returns queued values from random(), then
    the default once the queue runs dry.

    0.5 is a plain draw: COMMON tier, no double yield.
    """

    def __init__(self, values: Optional[List[float]] = None, default: float = 0.5):
        self.values = list(values or [])
        self.default = default
        self.calls = 0

    def push(self, *values: float):
        self.values.extend(values)

    def random(self) -> float:
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return self.default


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def engine(store, clock, rng):
    """Engine on the in-memory store with a fixed clock and scripted RNG."""
    return GameEngine(
        store,
        clock=clock,
        rng=rng,
        ton_withdraw_fee=0.10,
        paid_spin_reveal_ms=2000,
        bot_username="testfarm_bot",
    )


@pytest.fixture
def farmer(engine):
    """A fresh FREE player. Returns the user id."""
    engine.get_or_create_user("1001", "farmer")
    return "1001"


def set_user_fields(engine: GameEngine, user_id: str, **fields):
    """Test helper: write fields straight onto the live aggregate."""
    user = engine._states[user_id].user
    for name, value in fields.items():
        setattr(user, name, value)


def ripen_all(engine: GameEngine, clock: FakeClock):
    """Jump far enough ahead for any crop to be ready."""
    clock.advance(hours=1)
    engine.tick_growth()


# =============================================================================
# API CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def test_client(engine):
    """FastAPI TestClient wired to the test engine."""
    from fastapi.testclient import TestClient
    from main import app

    app.dependency_overrides[get_engine] = lambda: engine
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(farmer):
    """Bearer headers for the farmer fixture."""
    from app.auth.security import create_access_token

    token = create_access_token(data={"sub": farmer, "username": "farmer"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_client_with_auth(test_client, auth_headers):
    """TestClient with auth headers pre-configured."""

    class AuthTestClient:
        def __init__(self, client, headers):
            self._client = client
            self._auth_headers = headers

        def get(self, url, **kwargs):
            headers = {**self._auth_headers, **kwargs.pop('headers', {})}
            return self._client.get(url, headers=headers, **kwargs)

        def post(self, url, **kwargs):
            headers = {**self._auth_headers, **kwargs.pop('headers', {})}
            return self._client.post(url, headers=headers, **kwargs)

        def __getattr__(self, name):
            return getattr(self._client, name)

    return AuthTestClient(test_client, auth_headers)
