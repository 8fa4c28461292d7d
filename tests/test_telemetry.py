"""Tests for telemetry events and request context."""

import pytest

from agent_booking_api.telemetry import (
    TelemetryEvents,
    clear_dev_logs,
    clear_request_context,
    get_dev_logs,
    get_request_context,
    set_request_context,
    track_event,
)


@pytest.fixture(autouse=True)
def fresh_buffer():
    clear_dev_logs()
    yield
    clear_dev_logs()
    clear_request_context()


def test_event_carries_request_context():
    """Test that tracked events include the current request context."""
    set_request_context(request_id="req-1", user_id="alice")

    track_event(TelemetryEvents.POINTS_SPENT, {"amount": 3})

    [event] = get_dev_logs(TelemetryEvents.POINTS_SPENT)
    assert event["properties"]["request_id"] == "req-1"
    assert event["properties"]["user_id"] == "alice"
    assert event["properties"]["amount"] == 3


def test_context_outside_request_is_empty():
    """Test that no context leaks once cleared."""
    set_request_context(request_id="req-1")
    clear_request_context()
    assert get_request_context() == {}


@pytest.mark.asyncio
class TestDomainEvents:
    """Test that core operations emit telemetry."""

    async def test_booking_and_end_tracked(self, core, make_user):
        """Test session lifecycle events."""
        await make_user("x", points=50)
        await make_user("a", points=50)
        x = (await core.lifecycle.book("x", "borp")).value.session
        await core.lifecycle.book("a", "borp")
        await core.lifecycle.end_session(x.session_id)

        assert get_dev_logs(TelemetryEvents.SESSION_BOOKED)
        assert get_dev_logs(TelemetryEvents.SESSION_QUEUED)
        assert len(get_dev_logs(TelemetryEvents.SESSION_STARTED)) == 2
        assert get_dev_logs(TelemetryEvents.SESSION_ENDED)[0]["properties"]["session_id"] == (
            x.session_id
        )

    async def test_rejections_tracked(self, core, make_user):
        """Test that refused operations are visible in telemetry."""
        await make_user("poor", points=1)

        await core.lifecycle.book("poor", "borp")

        [rejected] = get_dev_logs(TelemetryEvents.SESSION_BOOKING_REJECTED)
        assert rejected["properties"]["reason"] == "insufficient_funds"
        assert get_dev_logs(TelemetryEvents.POINTS_REJECTED)

    async def test_request_tracked(self, client):
        """Test that the middleware records received and completed requests."""
        await client.get("/health")

        [completed] = get_dev_logs(TelemetryEvents.REQUEST_COMPLETED)
        assert completed["properties"]["endpoint"] == "/health"
        assert completed["properties"]["status_code"] == 200
        assert get_dev_logs(TelemetryEvents.REQUEST_RECEIVED)
