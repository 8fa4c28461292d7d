"""Periodic points regeneration."""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime

from ..config import Settings
from ..storage import USERS, RecordStore, lte
from ..telemetry import TelemetryEvents, track_event
from .balance import BalanceService, RegenOutcome

logger = logging.getLogger(__name__)


@dataclass
class RegenerationReport:
    """Counts from one sweep."""

    examined: int = 0
    regenerated: int = 0
    capped: int = 0
    skipped: int = 0
    failed: int = 0
    skipped_overlap: bool = False


class RegenerationScheduler:
    """Background task that tops up every user whose regeneration is due."""

    def __init__(self, store: RecordStore, balance: BalanceService, settings: Settings):
        self.store = store
        self.balance = balance
        self.settings = settings
        self._sweep_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking every regen_interval_seconds."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="points-regeneration")
        logger.info(
            f"Regeneration scheduler started (every {self.settings.regen_interval_seconds}s)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Regeneration scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Regeneration sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.settings.regen_interval_seconds)

    async def sweep(self, now: datetime | None = None) -> RegenerationReport:
        """Regenerate every active user that is due.

        Only one sweep runs at a time; an overlapping call returns at once
        with an empty report flagged skipped_overlap.
        """
        if self._sweep_lock.locked():
            logger.debug("Regeneration sweep already running, skipping")
            return RegenerationReport(skipped_overlap=True)

        async with self._sweep_lock:
            now = now or datetime.now(UTC)
            report = RegenerationReport()

            for user_id in await self._due_user_ids(now):
                report.examined += 1
                try:
                    outcome = await self.balance.regenerate_due(user_id, now)
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Regeneration failed for {user_id}: {e}", exc_info=True)
                    continue

                if outcome == RegenOutcome.REGENERATED:
                    report.regenerated += 1
                elif outcome == RegenOutcome.CAPPED:
                    report.capped += 1
                else:
                    report.skipped += 1

            if report.examined:
                logger.info(
                    f"Regeneration sweep: {report.regenerated} regenerated, "
                    f"{report.capped} capped, {report.skipped} skipped, {report.failed} failed"
                )
            track_event(
                TelemetryEvents.REGENERATION_SWEEP_COMPLETED,
                {
                    "examined": report.examined,
                    "regenerated": report.regenerated,
                    "capped": report.capped,
                    "failed": report.failed,
                },
            )
            return report

    async def _due_user_ids(self, now: datetime) -> list[str]:
        never_scheduled = await self.store.find_where(
            USERS, {"is_active": True, "next_regen_at": None}
        )
        overdue = await self.store.find_where(
            USERS,
            {"is_active": True, "next_regen_at": lte(now)},
            order_by=[("next_regen_at", "asc")],
        )
        seen: dict[str, None] = {}
        for row in never_scheduled + overdue:
            seen.setdefault(row["user_id"], None)
        return list(seen)
