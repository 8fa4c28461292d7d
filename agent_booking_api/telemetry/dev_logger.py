"""
Development Logger

Keeps the most recent telemetry events in memory so they can be inspected
locally (and asserted on in tests) without an Application Insights resource.
"""

import json
import logging
from collections import deque
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

_event_buffer: deque[dict[str, Any]] = deque(maxlen=1000)


def configure_dev_logger(max_events: int) -> None:
    """Resize the buffer, keeping the newest events."""
    global _event_buffer
    _event_buffer = deque(_event_buffer, maxlen=max_events)


def log_dev_event(event_name: str, properties: dict[str, Any]) -> None:
    """Record an event in the in-memory buffer."""
    _event_buffer.append(
        {
            "timestamp": datetime.now(UTC).isoformat(),
            "event_name": event_name,
            "properties": properties,
        }
    )
    logger.debug(f"[Telemetry] {event_name}: {json.dumps(properties, default=str)}")


def get_dev_logs(event_name: str | None = None) -> list[dict[str, Any]]:
    """Get buffered events, optionally only those with a given name."""
    if event_name is None:
        return list(_event_buffer)
    return [e for e in _event_buffer if e["event_name"] == event_name]


def export_dev_logs() -> str:
    """Export buffered events as JSON Lines."""
    return "\n".join(json.dumps(event, default=str) for event in _event_buffer)


def clear_dev_logs() -> None:
    """Drop all buffered events."""
    _event_buffer.clear()
