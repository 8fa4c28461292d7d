"""Tests for the HTTP API."""

from unittest.mock import patch

import jwt
import pytest
from httpx import AsyncClient

from agent_booking_api.storage import USERS


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id}


@pytest.mark.asyncio
class TestHealth:
    """Test public endpoints."""

    async def test_health(self, client: AsyncClient):
        """Test health reports store and scheduler state."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["active_sessions"] == 0

    async def test_version_and_root(self, client: AsyncClient):
        """Test version and root endpoints."""
        assert (await client.get("/version")).json()["service_version"]
        assert (await client.get("/")).json()["service"] == "Agent Booking API"

    async def test_request_id_header(self, client: AsyncClient):
        """Test that responses carry the correlation id."""
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
class TestAuth:
    """Test caller identification."""

    async def test_dev_header_provisions_user(self, client: AsyncClient, store, test_settings):
        """Test that a new dev user is created with the starting balance."""
        response = await client.get("/points", headers=_as("newcomer"))

        assert response.status_code == 200
        assert response.json()["points"] == 100
        assert await store.find_by_id(USERS, "newcomer") is not None

    async def test_default_dev_user(self, client: AsyncClient):
        """Test the fallback dev identity."""
        response = await client.get("/points")
        assert response.json()["user_id"] == "dev-user"

    async def test_missing_jwt_rejected(self, client: AsyncClient):
        """Test that a protected path needs a token when auth is enabled."""
        from agent_booking_api.config import settings

        with patch.object(settings, "auth_required", True):
            response = await client.get("/points")

        assert response.status_code == 401
        assert "Authorization header" in response.json()["detail"]

    async def test_valid_jwt(self, client: AsyncClient):
        """Test that the sub claim identifies the caller."""
        from agent_booking_api.config import settings

        token = jwt.encode({"sub": "jwt-user"}, settings.secret_key, algorithm="HS256")
        with patch.object(settings, "auth_required", True):
            response = await client.get(
                "/points", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 200
        assert response.json()["user_id"] == "jwt-user"

    async def test_user_id_claim(self, client: AsyncClient):
        """Test the userId claim used by older tokens."""
        from agent_booking_api.config import settings

        token = jwt.encode({"userId": "legacy"}, settings.secret_key, algorithm="HS256")
        with patch.object(settings, "auth_required", True):
            response = await client.get(
                "/points", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.json()["user_id"] == "legacy"

    async def test_bad_signature(self, client: AsyncClient):
        """Test that a token signed with another key is refused."""
        from agent_booking_api.config import settings

        token = jwt.encode({"sub": "mallory"}, "not-the-secret-key-at-all-0123456789", algorithm="HS256")
        with patch.object(settings, "auth_required", True):
            response = await client.get(
                "/points", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 401


@pytest.mark.asyncio
class TestSessionsApi:
    """Test booking endpoints."""

    async def test_book_active_then_queued(self, client: AsyncClient):
        """Test 201 for an idle agent and 202 for a busy one."""
        first = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("alice"))
        second = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("bob"))

        assert first.status_code == 201
        assert first.json()["status"] == "active"
        assert first.json()["end_time"] is not None
        assert second.status_code == 202
        assert second.json()["status"] == "queued"
        assert second.json()["queue_position"] == 1
        assert second.json()["estimated_wait_time"] == 5

    async def test_book_twice_conflict(self, client: AsyncClient):
        """Test 409 while a session is open."""
        await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("alice"))
        response = await client.post("/sessions", json={"agent_id": "zorp"}, headers=_as("alice"))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "already_has_session"

    async def test_book_insufficient_points(self, client: AsyncClient, make_user):
        """Test 400 when the balance is too low."""
        await make_user("poor", points=5)

        response = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("poor"))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "insufficient_funds"

    async def test_book_validation(self, client: AsyncClient):
        """Test request validation."""
        response = await client.post("/sessions", json={"agent_id": ""}, headers=_as("alice"))
        assert response.status_code == 422

    async def test_book_inactive_agent(self, client: AsyncClient):
        """Test 503 for a disabled agent."""
        await client.put("/agents/oracle", json={"display_name": "Oracle", "is_active": False})

        response = await client.post("/sessions", json={"agent_id": "oracle"}, headers=_as("a"))

        assert response.status_code == 503

    async def test_current_and_get(self, client: AsyncClient):
        """Test reading the current session and a session by id."""
        empty = await client.get("/sessions/current", headers=_as("alice"))
        assert empty.json()["session"] is None

        booked = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("alice"))
        session_id = booked.json()["session_id"]

        current = await client.get("/sessions/current", headers=_as("alice"))
        assert current.json()["session"]["session_id"] == session_id

        own = await client.get(f"/sessions/{session_id}", headers=_as("alice"))
        other = await client.get(f"/sessions/{session_id}", headers=_as("bob"))
        assert own.status_code == 200
        assert other.status_code == 404

    async def test_cancel(self, client: AsyncClient):
        """Test cancelling a queued session and the error cases."""
        active = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("alice"))
        queued = await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("bob"))

        not_yours = await client.post(
            f"/sessions/{queued.json()['session_id']}/cancel", headers=_as("alice")
        )
        running = await client.post(
            f"/sessions/{active.json()['session_id']}/cancel", headers=_as("alice")
        )
        missing = await client.post("/sessions/nope/cancel", headers=_as("bob"))
        ok = await client.post(f"/sessions/{queued.json()['session_id']}/cancel", headers=_as("bob"))

        assert not_yours.status_code == 409
        assert running.status_code == 409
        assert missing.status_code == 404
        assert ok.status_code == 200
        assert ok.json() == {
            "session_id": queued.json()["session_id"],
            "status": "cancelled",
            "refunded": 10,
            "new_balance": 100,
        }


@pytest.mark.asyncio
class TestAgentsApi:
    """Test catalog and availability endpoints."""

    async def test_upsert_and_list(self, client: AsyncClient):
        """Test registering agents and listing the catalog."""
        created = await client.put(
            "/agents/oracle",
            json={"display_name": "  Oracle  ", "points_cost": 25},
        )
        await client.put("/agents/helper", json={"display_name": "Helper", "access_type": "free"})

        assert created.status_code == 200
        assert created.json()["display_name"] == "Oracle"
        assert created.json()["session_duration_minutes"] == 5.0

        listing = (await client.get("/agents")).json()
        assert listing["total"] == 2
        costs = {a["agent_id"]: a["points_cost"] for a in listing["agents"]}
        assert costs == {"helper": 0, "oracle": 25}

    async def test_availability(self, client: AsyncClient):
        """Test the availability snapshot."""
        await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("alice"))
        await client.post("/sessions", json={"agent_id": "borp"}, headers=_as("bob"))

        data = (await client.get("/agents/borp/availability")).json()

        assert data["available"] is False
        assert data["active_session"]["user_id"] == "alice"
        assert data["queue_length"] == 1
        assert data["queue"][0]["user_id"] == "bob"


@pytest.mark.asyncio
class TestPointsApi:
    """Test balance endpoints."""

    async def test_balance(self, client: AsyncClient, make_user):
        """Test balance and regeneration info."""
        await make_user("alice", points=42)

        data = (await client.get("/points", headers=_as("alice"))).json()

        assert data["points"] == 42
        assert data["max_points"] == 100
        assert data["daily_regen_amount"] == 20
        assert data["next_regen_at"] is not None

    async def test_spend(self, client: AsyncClient, make_user):
        """Test spending and the error cases."""
        await make_user("alice", points=30)

        ok = await client.post("/points/spend", json={"amount": 10, "reason": "tip"}, headers=_as("alice"))
        too_much = await client.post("/points/spend", json={"amount": 500}, headers=_as("alice"))
        invalid = await client.post("/points/spend", json={"amount": 0}, headers=_as("alice"))

        assert ok.status_code == 200
        assert ok.json()["new_balance"] == 20
        assert ok.json()["transaction"]["description"] == "tip"
        assert too_much.status_code == 400
        assert invalid.status_code == 400
        assert invalid.json()["detail"]["message"] == "Invalid amount"

    async def test_spend_deactivated(self, client: AsyncClient, make_user):
        """Test 403 for a deactivated account."""
        await make_user("gone", points=30, is_active=False)

        response = await client.post("/points/spend", json={"amount": 1}, headers=_as("gone"))

        assert response.status_code == 403

    async def test_transactions_paginated(self, client: AsyncClient, make_user):
        """Test history pagination, newest first."""
        await make_user("alice", points=30)
        for reason in ("one", "two", "three"):
            await client.post(
                "/points/spend", json={"amount": 1, "reason": reason}, headers=_as("alice")
            )

        page = (
            await client.get("/points/transactions?limit=2&offset=0", headers=_as("alice"))
        ).json()

        assert page["total"] == 3
        assert page["has_more"] is True
        assert [t["description"] for t in page["transactions"]] == ["three", "two"]
        assert page["transactions"][0]["balance_after"] == 27
