"""Pytest configuration and fixtures."""

import asyncio
import os
from datetime import UTC, datetime, timedelta

# Set test environment variables BEFORE importing anything that loads settings
# This ensures tests run with auth disabled, HS256 JWTs and the in-memory store
os.environ["AUTH_REQUIRED"] = "false"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["DATABASE_BACKEND"] = "memory"
os.environ["TELEMETRY_ENABLED"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Force reload of settings with test environment
import agent_booking_api.config as config_module

config_module.settings = config_module.Settings()

# Verify settings are correct for tests
assert config_module.settings.auth_required is False, (
    "Test setup failed: auth_required should be False"
)
assert config_module.settings.database_backend == "memory", (
    "Test setup failed: database_backend should be memory"
)

from agent_booking_api.core import EventHub, build_core, set_core  # noqa: E402
from agent_booking_api.storage import SESSIONS, USERS, MemoryStore  # noqa: E402


class RecordingHub(EventHub):
    """EventHub that also remembers every notification it was asked to send."""

    def __init__(self, queue_size: int = 100):
        super().__init__(queue_size=queue_size)
        self.sent: list[tuple[str, str, dict]] = []

    def notify_user(self, user_id, event, payload):
        self.sent.append((user_id, event, payload))
        super().notify_user(user_id, event, payload)

    def of(self, user_id: str, event: str) -> list[dict]:
        """Payloads of one event type sent to one user."""
        return [p for u, e, p in self.sent if u == user_id and e == event]


@pytest.fixture
def test_settings():
    """Policy used by core tests (defaults, no background regeneration)."""
    return config_module.Settings(
        session_duration_minutes=5.0,
        warning_window_minutes=0.5,
        wait_minutes_per_person=5,
        private_session_cost=10,
        initial_points=100,
        max_points=100,
        daily_regen_amount=20,
        regen_interval_seconds=3600,
        free_agent_id="free-agent",
    )


@pytest_asyncio.fixture
async def store():
    """Fresh in-memory record store for each test."""
    memory_store = MemoryStore()
    await memory_store.connect()
    yield memory_store
    await memory_store.disconnect()


@pytest.fixture
def hub():
    return RecordingHub()


@pytest_asyncio.fixture
async def core(store, test_settings, hub):
    """Core services on the in-memory store."""
    services = build_core(store, test_settings, hub)
    yield services
    await services.shutdown()


@pytest.fixture
def make_user(store):
    """Factory creating a user row with a given balance."""

    async def _make(
        user_id: str,
        points: int = 100,
        next_regen_at: datetime | None = None,
        is_active: bool = True,
    ) -> dict:
        return await store.create(
            USERS,
            {
                "user_id": user_id,
                "points": points,
                "next_regen_at": next_regen_at or datetime.now(UTC) + timedelta(days=1),
                "is_active": is_active,
                "total_sessions": 0,
            },
        )

    return _make


@pytest.fixture
def get_points(store):
    """Read a user's current balance straight from the store."""

    async def _get(user_id: str) -> int:
        row = await store.find_by_id(USERS, user_id)
        return row["points"]

    return _get


@pytest.fixture
def get_session_row(store):
    """Read a session row straight from the store."""

    async def _get(session_id: str) -> dict:
        return await store.find_by_id(SESSIONS, session_id)

    return _get


@pytest_asyncio.fixture
async def client(core):
    """Create test client wired to the in-memory core."""
    from fastapi import FastAPI

    from agent_booking_api.api import (
        agents_router,
        chat_router,
        events_router,
        health_router,
        points_router,
        sessions_router,
    )
    from agent_booking_api.middleware import AuthMiddleware
    from agent_booking_api.telemetry import TelemetryMiddleware

    test_app = FastAPI(title="Test App")
    test_app.add_middleware(AuthMiddleware)
    test_app.add_middleware(TelemetryMiddleware)

    test_app.include_router(health_router)
    test_app.include_router(sessions_router)
    test_app.include_router(agents_router)
    test_app.include_router(chat_router)
    test_app.include_router(points_router)
    test_app.include_router(events_router)

    set_core(core)
    try:
        async with AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://test",
            timeout=5.0,
        ) as test_client:
            yield test_client
    finally:
        set_core(None)


class YieldingStore(MemoryStore):
    """MemoryStore that gives up the event loop before every operation.

    Lets tests interleave concurrent coroutines the way a networked
    database would.
    """

    async def find_by_id(self, entity, record_id):
        await asyncio.sleep(0)
        return await super().find_by_id(entity, record_id)

    async def find_where(self, entity, where=None, order_by=None, limit=None, offset=0):
        await asyncio.sleep(0)
        return await super().find_where(entity, where, order_by, limit, offset)

    async def create(self, entity, fields):
        await asyncio.sleep(0)
        return await super().create(entity, fields)

    async def update(self, entity, target, fields):
        await asyncio.sleep(0)
        return await super().update(entity, target, fields)

    async def count(self, entity, where=None):
        await asyncio.sleep(0)
        return await super().count(entity, where)


@pytest_asyncio.fixture
async def yielding_store():
    """In-memory store whose operations interleave under asyncio.gather."""
    memory_store = YieldingStore()
    await memory_store.connect()
    yield memory_store
    await memory_store.disconnect()
