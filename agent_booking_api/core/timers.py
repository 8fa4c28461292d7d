"""Per-session timers backed by asyncio tasks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class SessionTimers:
    """Named one-shot timers grouped by session id."""

    def __init__(self) -> None:
        self._tasks: dict[str, dict[str, asyncio.Task]] = {}

    def schedule(
        self, session_id: str, name: str, fire_at: datetime, callback: TimerCallback
    ) -> None:
        """Run callback at fire_at (immediately if that is already past).

        Scheduling a name that is already pending for the session replaces it.
        """
        timers = self._tasks.setdefault(session_id, {})
        existing = timers.pop(name, None)
        if existing is not None:
            existing.cancel()

        delay = max(0.0, (fire_at - datetime.now(UTC)).total_seconds())
        timers[name] = asyncio.create_task(
            self._fire(session_id, name, delay, callback),
            name=f"session-{name}-{session_id}",
        )
        logger.debug(f"Timer {name} for session {session_id} in {delay:.1f}s")

    def cancel(self, session_id: str) -> None:
        """Cancel every pending timer of a session.

        A timer whose callback is currently running is left to finish.
        """
        timers = self._tasks.pop(session_id, {})
        current = asyncio.current_task()
        for task in timers.values():
            if task is not current:
                task.cancel()

    def cancel_all(self) -> None:
        for session_id in list(self._tasks):
            self.cancel(session_id)

    def pending(self, session_id: str) -> list[str]:
        return [
            name for name, task in self._tasks.get(session_id, {}).items() if not task.done()
        ]

    async def _fire(
        self, session_id: str, name: str, delay: float, callback: TimerCallback
    ) -> None:
        await asyncio.sleep(delay)

        # Once the callback starts, it no longer counts as pending
        timers = self._tasks.get(session_id)
        if timers is not None and timers.get(name) is asyncio.current_task():
            del timers[name]
            if not timers:
                del self._tasks[session_id]

        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Timer {name} for session {session_id} failed: {e}", exc_info=True)
