"""Per-agent active session marker and FIFO queue.

The authoritative state lives in memory. Queue positions and wait
estimates are mirrored onto the session rows after each change so that
clients reading the store see them too. Every check-and-change on the
in-memory state happens without an await in between.
"""

import logging

from ..config import Settings
from ..models import ActiveSession, QueueEntry
from ..storage import SESSIONS, RecordStore

logger = logging.getLogger(__name__)


class AgentSessionRegistry:
    """Tracks which session holds each agent and who is waiting for it."""

    def __init__(self, store: RecordStore, settings: Settings):
        self.store = store
        self.settings = settings
        self._active: dict[str, ActiveSession] = {}
        self._queues: dict[str, list[QueueEntry]] = {}

    def estimated_wait(self, position: int) -> int:
        """Minutes a user at the given position is expected to wait."""
        return position * self.settings.wait_minutes_per_person

    def get_active_session(self, agent_id: str) -> ActiveSession | None:
        return self._active.get(agent_id)

    def set_active(self, agent_id: str, marker: ActiveSession) -> None:
        """Install the active marker for an agent.

        Raises:
            RuntimeError: If a different session already holds the agent
        """
        current = self._active.get(agent_id)
        if current is not None and current.session_id != marker.session_id:
            raise RuntimeError(
                f"Agent {agent_id} already has active session {current.session_id}"
            )
        self._active[agent_id] = marker

    def clear_active(self, agent_id: str) -> ActiveSession | None:
        return self._active.pop(agent_id, None)

    def active_count(self) -> int:
        return len(self._active)

    async def enqueue(self, agent_id: str, user_id: str, session_id: str) -> int:
        """Append a booking to the agent's queue and return its 1-based position."""
        queue = self._queues.setdefault(agent_id, [])
        position = len(queue) + 1
        queue.append(
            QueueEntry(user_id=user_id, session_id=session_id, queue_position=position)
        )

        await self._persist_position(session_id, position)
        logger.info(f"Queued session {session_id} for agent {agent_id} at position {position}")
        return position

    async def dequeue_next(self, agent_id: str) -> QueueEntry | None:
        """Pop the head of the queue, renumbering everyone behind it."""
        queue = self._queues.get(agent_id)
        if not queue:
            return None

        entry = queue.pop(0)
        remaining = self._renumber(agent_id)

        await self._persist_positions(remaining)
        logger.info(f"Dequeued session {entry.session_id} for agent {agent_id}")
        return entry

    async def remove_from_queue(self, agent_id: str, session_id: str) -> bool:
        """Remove one booking from anywhere in the queue."""
        queue = self._queues.get(agent_id)
        if not queue:
            return False

        for index, entry in enumerate(queue):
            if entry.session_id == session_id:
                del queue[index]
                break
        else:
            return False

        remaining = self._renumber(agent_id)
        await self._persist_positions(remaining)
        logger.info(f"Removed session {session_id} from agent {agent_id} queue")
        return True

    async def reinsert(self, agent_id: str, entry: QueueEntry, position: int) -> int:
        """Put a removed entry back at (or as close as possible to) its old position."""
        queue = self._queues.setdefault(agent_id, [])
        index = max(0, min(position - 1, len(queue)))
        queue.insert(index, entry)
        remaining = self._renumber(agent_id)

        await self._persist_positions(remaining)
        logger.warning(
            f"Reinserted session {entry.session_id} into agent {agent_id} queue at {index + 1}"
        )
        return index + 1

    async def restore_queue(self, agent_id: str, entries: list[QueueEntry]) -> None:
        """Replace an agent's queue wholesale (startup recovery)."""
        self._queues[agent_id] = list(entries)
        remaining = self._renumber(agent_id)
        await self._persist_positions(remaining)

    def queue_snapshot(self, agent_id: str) -> list[QueueEntry]:
        return [entry.model_copy() for entry in self._queues.get(agent_id, [])]

    def position_of(self, agent_id: str, session_id: str) -> int | None:
        for entry in self._queues.get(agent_id, []):
            if entry.session_id == session_id:
                return entry.queue_position
        return None

    def agents_with_queues(self) -> list[str]:
        return [agent_id for agent_id, queue in self._queues.items() if queue]

    def _renumber(self, agent_id: str) -> list[QueueEntry]:
        queue = self._queues.get(agent_id, [])
        for position, entry in enumerate(queue, start=1):
            entry.queue_position = position
        if not queue:
            self._queues.pop(agent_id, None)
        return [entry.model_copy() for entry in queue]

    async def _persist_positions(self, entries: list[QueueEntry]) -> None:
        for entry in entries:
            await self._persist_position(entry.session_id, entry.queue_position)

    async def _persist_position(self, session_id: str, position: int) -> None:
        await self.store.update(
            SESSIONS,
            session_id,
            {
                "queue_position": position,
                "estimated_wait_time": self.estimated_wait(position),
            },
        )
