"""Notification sink: how the core pushes state changes to connected clients.

Delivery is best-effort. The core never waits for a client and never learns
whether anyone was listening; a user with no open stream simply misses the
event.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


def agent_channel(agent_id: str) -> str:
    """Subscription key for events sent to everyone watching an agent."""
    return f"agent:{agent_id}"


class NotificationSink(Protocol):
    """Anything the core can push user-facing events into."""

    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None: ...

    def notify_agent(self, agent_id: str, event: str, payload: dict[str, Any]) -> None: ...


class NullSink:
    """Sink that drops everything."""

    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        logger.debug(f"Dropped {event} for {user_id}")

    def notify_agent(self, agent_id: str, event: str, payload: dict[str, Any]) -> None:
        logger.debug(f"Dropped {event} for agent {agent_id}")


class EventHub:
    """Fans events out to per-user subscriber queues.

    Each open stream owns a bounded queue; when a slow client lets it fill
    up, the oldest event is discarded to make room.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def notify_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            logger.debug(f"No subscriber for {event} -> {user_id}")
            return

        message = {
            "event": event,
            "payload": payload,
            "sent_at": datetime.now(UTC).isoformat(),
        }
        for queue in queues:
            if queue.full():
                queue.get_nowait()
                logger.warning(f"Subscriber queue full for {user_id}, dropped oldest event")
            queue.put_nowait(message)

    def notify_agent(self, agent_id: str, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every stream watching an agent."""
        self.notify_user(agent_channel(agent_id), event, payload)

    @asynccontextmanager
    async def subscribe(self, user_id: str, *channels: str) -> AsyncIterator[asyncio.Queue]:
        """Open a stream of events for one user, plus any extra channels."""
        keys = (user_id, *channels)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        for key in keys:
            self._subscribers.setdefault(key, set()).add(queue)
        logger.debug(f"Subscriber attached for {', '.join(keys)}")
        try:
            yield queue
        finally:
            for key in keys:
                queues = self._subscribers.get(key)
                if queues is not None:
                    queues.discard(queue)
                    if not queues:
                        del self._subscribers[key]
            logger.debug(f"Subscriber detached for {', '.join(keys)}")

    def subscriber_count(self, user_id: str | None = None) -> int:
        if user_id is not None:
            return len(self._subscribers.get(user_id, ()))
        return sum(len(q) for q in self._subscribers.values())
