"""Session lifecycle controller.

Drives each session through queued -> active -> completed (or
queued -> cancelled), arms the warning and end timers, and hands an agent
over to the next queued booking when a session ends.

Lock order is always booking lock (per user) -> agent lock -> balance lock.
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..config import Settings
from ..models import (
    OPEN_STATUSES,
    ActiveSession,
    ActiveSessionSummary,
    AgentAvailabilityResponse,
    QueueEntry,
    QueueSnapshotEntry,
    Session,
    SessionStatus,
    SessionType,
)
from ..storage import SESSIONS, USERS, RecordStore, in_
from ..telemetry import TelemetryEvents, track_event, track_exception
from .agents import AgentCatalog
from .balance import BalanceChange, BalanceService
from .locks import KeyedLock
from .notifications import NotificationSink
from .registry import AgentSessionRegistry
from .results import ErrorKind, Result
from .timers import SessionTimers

logger = logging.getLogger(__name__)

WARNING_TIMER = "warning"
END_TIMER = "end"


@dataclass(frozen=True)
class BookingOutcome:
    """Session created by a booking, either running or waiting in line."""

    session: Session
    admitted: bool
    new_balance: int | None = None

    @property
    def message(self) -> str:
        if self.admitted:
            return "Session started"
        return (
            f"Queued at position {self.session.queue_position}, "
            f"estimated wait {self.session.estimated_wait_time} minutes"
        )


@dataclass(frozen=True)
class CancelOutcome:
    session: Session
    refunded: int
    new_balance: int | None = None


@dataclass
class RecoveryReport:
    """What startup recovery rebuilt from the store."""

    restored_queued: int = 0
    rearmed: int = 0
    ended: int = 0
    promoted: int = 0


class SessionLifecycleController:
    """Books, admits, ends and cancels sessions."""

    def __init__(
        self,
        store: RecordStore,
        balance: BalanceService,
        registry: AgentSessionRegistry,
        catalog: AgentCatalog,
        timers: SessionTimers,
        notifier: NotificationSink,
        settings: Settings,
    ):
        self.store = store
        self.balance = balance
        self.registry = registry
        self.catalog = catalog
        self.timers = timers
        self.notifier = notifier
        self.settings = settings
        self._booking_locks = KeyedLock()
        self._agent_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book(
        self, user_id: str, agent_id: str, duration: float | None = None
    ) -> Result[BookingOutcome]:
        """Book a private session with an agent.

        Points are spent first; the session row is only created once the
        spend succeeded. The session starts at once on an idle agent and
        is queued otherwise.

        Args:
            user_id: Caller
            agent_id: Agent to book
            duration: Requested length in minutes (defaults to the agent's policy)

        Returns:
            Result holding the BookingOutcome, or the reason the booking was refused
        """
        if duration is not None and duration <= 0:
            return self._reject(
                user_id, agent_id, ErrorKind.INVALID_AMOUNT, "Session duration must be positive"
            )

        async with self._booking_locks.hold(user_id):
            user = await self.store.find_by_id(USERS, user_id)
            if user is None:
                return self._reject(user_id, agent_id, ErrorKind.USER_NOT_FOUND, "User not found")

            policy = await self.catalog.policy_for(agent_id)
            if not policy.available:
                return self._reject(
                    user_id,
                    agent_id,
                    ErrorKind.AGENT_UNAVAILABLE,
                    f"Agent {agent_id} is not accepting bookings",
                )

            existing = await self.get_current_session(user_id)
            if existing is not None:
                return self._reject(
                    user_id,
                    agent_id,
                    ErrorKind.ALREADY_HAS_SESSION,
                    f"You already have a {existing.status} session ({existing.session_id})",
                )

            minutes = min(
                duration if duration is not None else policy.duration_minutes,
                self.settings.max_session_duration_minutes,
            )
            session_id = str(uuid.uuid4())
            new_balance = None

            if policy.points_cost > 0:
                spent = await self.balance.spend(
                    user_id,
                    policy.points_cost,
                    f"Private session with {agent_id}",
                    related_id=session_id,
                )
                if not spent.ok:
                    return self._reject(user_id, agent_id, spent.error, spent.detail)
                new_balance = spent.value.new_balance

            try:
                await self.store.create(
                    SESSIONS,
                    {
                        "session_id": session_id,
                        "user_id": user_id,
                        "agent_id": agent_id,
                        "type": SessionType.PRIVATE.value,
                        "status": SessionStatus.QUEUED.value,
                        "duration": minutes,
                        "points_cost": policy.points_cost,
                        "created_at": datetime.now(UTC),
                    },
                )
            except Exception:
                logger.error(f"Failed to create session for {user_id}, refunding", exc_info=True)
                await self._compensate(
                    "refund", user_id, session_id, policy.points_cost, self.balance.earn
                )
                raise

            async with self._agent_locks.hold(agent_id):
                idle = self.registry.get_active_session(agent_id) is None
                admit_now = idle and not self.registry.queue_snapshot(agent_id)
                try:
                    if admit_now:
                        await self._admit(agent_id, session_id, user_id, minutes)
                    else:
                        await self.registry.enqueue(agent_id, user_id, session_id)
                except Exception:
                    logger.error(
                        f"Failed to place session {session_id} on {agent_id}, withdrawing",
                        exc_info=True,
                    )
                    await self._withdraw_booking(
                        agent_id, session_id, user_id, policy.points_cost
                    )
                    raise

                if idle and not admit_now:
                    # Agent was left idle with people waiting; hand it on
                    try:
                        await self._promote_next(agent_id)
                    except Exception as e:
                        logger.error(
                            f"Could not hand idle agent {agent_id} to its queue: {e}",
                            exc_info=True,
                        )
                        track_exception(e, {"agent_id": agent_id})

            session = Session(**await self.store.find_by_id(SESSIONS, session_id))

        outcome = BookingOutcome(
            session=session,
            admitted=session.status == SessionStatus.ACTIVE,
            new_balance=new_balance,
        )
        track_event(
            TelemetryEvents.SESSION_BOOKED if outcome.admitted else TelemetryEvents.SESSION_QUEUED,
            {
                "user_id": user_id,
                "agent_id": agent_id,
                "session_id": session_id,
                "points_cost": policy.points_cost,
                "queue_position": session.queue_position,
            },
        )
        if not outcome.admitted:
            self.notifier.notify_user(
                user_id,
                "session_queued",
                {
                    "session_id": session_id,
                    "agent_id": agent_id,
                    "queue_position": session.queue_position,
                    "estimated_wait_time": session.estimated_wait_time,
                },
            )
        return Result.success(outcome)

    def _reject(
        self, user_id: str, agent_id: str, error: ErrorKind, detail: str | None
    ) -> Result[BookingOutcome]:
        logger.warning(f"Booking rejected for {user_id} on {agent_id}: {detail}")
        track_event(
            TelemetryEvents.SESSION_BOOKING_REJECTED,
            {"user_id": user_id, "agent_id": agent_id, "reason": error.value},
        )
        return Result.failure(error, detail)

    async def _withdraw_booking(
        self, agent_id: str, session_id: str, user_id: str, cost: int
    ) -> None:
        """Cancel and refund a paid booking that could not be admitted or queued.

        Runs while the placement error propagates, so its own failures are
        logged for reconciliation rather than raised. The refund is only
        given once the row is marked cancelled.
        """
        self.timers.cancel(session_id)
        active = self.registry.get_active_session(agent_id)
        if active is not None and active.session_id == session_id:
            self.registry.clear_active(agent_id)

        try:
            await self.registry.remove_from_queue(agent_id, session_id)
            await self.store.update(
                SESSIONS,
                session_id,
                {
                    "status": SessionStatus.CANCELLED.value,
                    "queue_position": None,
                    "estimated_wait_time": None,
                    "start_time": None,
                    "end_time": None,
                },
            )
        except Exception as e:
            self._flag_reconciliation("cancel", user_id, session_id, cost, str(e))
            return

        await self._compensate("refund", user_id, session_id, cost, self.balance.earn)

    async def _compensate(
        self,
        action: str,
        user_id: str,
        session_id: str,
        amount: int,
        apply: Callable[..., Awaitable[Result[BalanceChange]]],
    ) -> None:
        """Apply a compensating balance movement, flagging it when it does not go through."""
        if amount <= 0:
            return
        try:
            result = await apply(user_id, amount, action, related_id=session_id)
        except Exception as e:
            detail = str(e)
        else:
            if result.ok:
                return
            detail = result.detail
        self._flag_reconciliation(action, user_id, session_id, amount, detail)

    @staticmethod
    def _flag_reconciliation(
        action: str, user_id: str, session_id: str, amount: int, detail: str | None
    ) -> None:
        logger.error(
            f"Compensating {action} for session {session_id} ({user_id}, {amount} points) "
            f"failed and needs manual reconciliation: {detail}"
        )
        track_event(
            TelemetryEvents.SESSION_COMPENSATION_FAILED,
            {
                "action": action,
                "user_id": user_id,
                "session_id": session_id,
                "amount": amount,
                "reason": detail,
            },
        )

    # ------------------------------------------------------------------
    # Admission, warning and end (caller holds the agent lock)
    # ------------------------------------------------------------------

    async def _admit(self, agent_id: str, session_id: str, user_id: str, minutes: float) -> None:
        start_time = datetime.now(UTC)
        end_time = start_time + timedelta(minutes=minutes)

        self.registry.set_active(
            agent_id,
            ActiveSession(
                session_id=session_id,
                user_id=user_id,
                agent_id=agent_id,
                start_time=start_time,
                end_time=end_time,
            ),
        )
        try:
            await self.store.update(
                SESSIONS,
                session_id,
                {
                    "status": SessionStatus.ACTIVE.value,
                    "start_time": start_time,
                    "end_time": end_time,
                    "queue_position": None,
                    "estimated_wait_time": None,
                },
            )
        except Exception:
            self.registry.clear_active(agent_id)
            raise

        self._arm_timers(session_id, agent_id, start_time, end_time)

        try:
            user = await self.store.find_by_id(USERS, user_id)
            if user is not None:
                await self.store.update(
                    USERS, user_id, {"total_sessions": user["total_sessions"] + 1}
                )
        except Exception as e:
            logger.warning(f"Failed to count session {session_id} for {user_id}: {e}")

        logger.info(f"Session {session_id} started on {agent_id} for {user_id} until {end_time}")
        track_event(
            TelemetryEvents.SESSION_STARTED,
            {"session_id": session_id, "agent_id": agent_id, "user_id": user_id},
        )
        self.notifier.notify_user(
            user_id,
            "session_started",
            {
                "session_id": session_id,
                "agent_id": agent_id,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "duration": minutes,
            },
        )

    def _arm_timers(
        self, session_id: str, agent_id: str, start_time: datetime, end_time: datetime
    ) -> None:
        warning = timedelta(minutes=self.settings.warning_window_minutes)
        warn_at = max(start_time, end_time - warning)

        self.timers.schedule(
            session_id, WARNING_TIMER, warn_at, lambda: self._warn(agent_id, session_id)
        )
        self.timers.schedule(
            session_id, END_TIMER, end_time, lambda: self._end_from_timer(agent_id, session_id)
        )

    async def _warn(self, agent_id: str, session_id: str) -> None:
        active = self.registry.get_active_session(agent_id)
        if active is None or active.session_id != session_id:
            return

        remaining = max(0.0, (active.end_time - datetime.now(UTC)).total_seconds())
        self.notifier.notify_user(
            active.user_id,
            "session_warning",
            {
                "session_id": session_id,
                "agent_id": agent_id,
                "remaining_seconds": remaining,
                "message": "Your session is about to end",
            },
        )

        queue = self.registry.queue_snapshot(agent_id)
        if queue:
            head = queue[0]
            self.notifier.notify_user(
                head.user_id,
                "queue_warning",
                {
                    "session_id": head.session_id,
                    "agent_id": agent_id,
                    "message": "You're next",
                },
            )

        track_event(
            TelemetryEvents.SESSION_WARNED, {"session_id": session_id, "agent_id": agent_id}
        )

    async def _end_from_timer(self, agent_id: str, session_id: str) -> None:
        try:
            await self.end_session(session_id)
        except Exception as e:
            active = self.registry.get_active_session(agent_id)
            if active is not None and active.session_id == session_id:
                self.registry.clear_active(agent_id)
            logger.error(
                f"Ending session {session_id} on {agent_id} failed; agent cleared, "
                f"session needs manual reconciliation: {e}",
                exc_info=True,
            )
            track_exception(e, {"session_id": session_id, "agent_id": agent_id})
            track_event(
                TelemetryEvents.SESSION_TIMER_FAILED,
                {"session_id": session_id, "agent_id": agent_id, "error_type": type(e).__name__},
            )

    async def end_session(self, session_id: str) -> bool:
        """Complete an active session and admit the next queued booking.

        Returns:
            True if the session was ended, False if it was missing or not active
        """
        row = await self.store.find_by_id(SESSIONS, session_id)
        if row is None or row["status"] != SessionStatus.ACTIVE.value:
            return False

        agent_id = row["agent_id"]
        async with self._agent_locks.hold(agent_id):
            return await self._end_locked(agent_id, session_id)

    async def _end_locked(self, agent_id: str, session_id: str) -> bool:
        row = await self.store.find_by_id(SESSIONS, session_id)
        if row is None or row["status"] != SessionStatus.ACTIVE.value:
            return False

        active = self.registry.get_active_session(agent_id)
        if active is not None and active.session_id == session_id:
            self.registry.clear_active(agent_id)

        now = datetime.now(UTC)
        await self.store.update(
            SESSIONS,
            session_id,
            {"status": SessionStatus.COMPLETED.value, "end_time": now},
        )
        self.timers.cancel(session_id)

        logger.info(f"Session {session_id} on {agent_id} completed")
        track_event(
            TelemetryEvents.SESSION_ENDED,
            {"session_id": session_id, "agent_id": agent_id, "user_id": row["user_id"]},
        )
        self.notifier.notify_user(
            row["user_id"],
            "session_ended",
            {"session_id": session_id, "agent_id": agent_id, "end_time": now.isoformat()},
        )

        await self._promote_next(agent_id)
        return True

    async def _promote_next(self, agent_id: str) -> bool:
        """Admit the head of the queue; False when the agent goes idle."""
        while True:
            entry = await self.registry.dequeue_next(agent_id)
            if entry is None:
                logger.info(f"Agent {agent_id} is idle")
                return False

            self._notify_queue(agent_id)

            row = await self.store.find_by_id(SESSIONS, entry.session_id)
            if row is None or row["status"] != SessionStatus.QUEUED.value:
                logger.warning(f"Skipping stale queue entry {entry.session_id} on {agent_id}")
                continue

            try:
                await self._admit(agent_id, entry.session_id, entry.user_id, row["duration"])
            except Exception:
                # Head keeps its place; the next end or booking retries it
                await self.registry.reinsert(agent_id, entry, 1)
                self._notify_queue(agent_id)
                raise
            return True

    def _notify_queue(self, agent_id: str) -> None:
        for entry in self.registry.queue_snapshot(agent_id):
            self.notifier.notify_user(
                entry.user_id,
                "queue_update",
                {
                    "agent_id": agent_id,
                    "session_id": entry.session_id,
                    "queue_position": entry.queue_position,
                    "estimated_wait_time": self.registry.estimated_wait(entry.queue_position),
                },
            )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, session_id: str, user_id: str) -> Result[CancelOutcome]:
        """Cancel a queued session and refund its cost.

        Only the owner can cancel, and only while the session is still
        waiting in the queue. Active sessions cannot be cancelled.
        """
        row = await self.store.find_by_id(SESSIONS, session_id)
        if row is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"Session {session_id} not found")
        if row["user_id"] != user_id or row["status"] != SessionStatus.QUEUED.value:
            return self._not_cancellable(session_id, row["status"])

        agent_id = row["agent_id"]
        async with self._agent_locks.hold(agent_id):
            row = await self.store.find_by_id(SESSIONS, session_id)
            if row is None or row["status"] != SessionStatus.QUEUED.value:
                return self._not_cancellable(session_id, row["status"] if row else None)

            position = self.registry.position_of(agent_id, session_id)
            if position is None:
                return self._not_cancellable(session_id, row["status"])
            entry = self.registry.queue_snapshot(agent_id)[position - 1]

            await self.registry.remove_from_queue(agent_id, session_id)

            refunded = row["points_cost"]
            new_balance = None
            if refunded > 0:
                try:
                    refund = await self.balance.earn(
                        user_id, refunded, "refund", related_id=session_id
                    )
                except Exception:
                    await self.registry.reinsert(agent_id, entry, position)
                    raise
                if not refund.ok:
                    await self.registry.reinsert(agent_id, entry, position)
                    logger.warning(f"Refund for {session_id} refused: {refund.detail}")
                    return Result.failure(refund.error, refund.detail)
                new_balance = refund.value.new_balance

            try:
                await self.store.update(
                    SESSIONS,
                    session_id,
                    {
                        "status": SessionStatus.CANCELLED.value,
                        "queue_position": None,
                        "estimated_wait_time": None,
                    },
                )
            except Exception:
                logger.error(f"Failed to mark {session_id} cancelled, undoing refund", exc_info=True)
                await self._compensate(
                    "refund reversal", user_id, session_id, refunded, self.balance.spend
                )
                await self.registry.reinsert(agent_id, entry, position)
                raise

            self._notify_queue(agent_id)

        session = Session(**await self.store.find_by_id(SESSIONS, session_id))
        logger.info(f"Session {session_id} cancelled by {user_id}, refunded {refunded}")
        track_event(
            TelemetryEvents.SESSION_CANCELLED,
            {"session_id": session_id, "agent_id": agent_id, "refunded": refunded},
        )
        self.notifier.notify_user(
            user_id,
            "session_cancelled",
            {"session_id": session_id, "agent_id": agent_id, "refunded": refunded},
        )
        return Result.success(
            CancelOutcome(session=session, refunded=refunded, new_balance=new_balance)
        )

    @staticmethod
    def _not_cancellable(session_id: str, status: str | None) -> Result[CancelOutcome]:
        logger.warning(f"Session {session_id} is not cancellable (status={status})")
        return Result.failure(
            ErrorKind.NOT_CANCELLABLE, "Only your own queued sessions can be cancelled"
        )

    # ------------------------------------------------------------------
    # Startup recovery
    # ------------------------------------------------------------------

    async def recover(self) -> RecoveryReport:
        """Rebuild in-memory state from the store after a restart.

        Queued sessions go back into their agents' queues in their old
        order. Active sessions still running get their marker and timers
        back; those already past their end time are completed, which also
        promotes whoever is next.
        """
        report = RecoveryReport()
        now = datetime.now(UTC)

        queued = await self.store.find_where(
            SESSIONS,
            {"status": SessionStatus.QUEUED.value},
            order_by=[("queue_position", "asc"), ("created_at", "asc")],
        )
        queues: dict[str, list[QueueEntry]] = defaultdict(list)
        for row in queued:
            entries = queues[row["agent_id"]]
            entries.append(
                QueueEntry(
                    user_id=row["user_id"],
                    session_id=row["session_id"],
                    queue_position=len(entries) + 1,
                    added_at=row["created_at"],
                )
            )
        for agent_id, entries in queues.items():
            await self.registry.restore_queue(agent_id, entries)
            report.restored_queued += len(entries)

        overdue = []
        for row in await self.store.find_where(SESSIONS, {"status": SessionStatus.ACTIVE.value}):
            end_time = row.get("end_time")
            if end_time is None or end_time <= now:
                overdue.append(row)
                continue
            try:
                self.registry.set_active(
                    row["agent_id"],
                    ActiveSession(
                        session_id=row["session_id"],
                        user_id=row["user_id"],
                        agent_id=row["agent_id"],
                        start_time=row["start_time"] or now,
                        end_time=end_time,
                    ),
                )
            except RuntimeError:
                logger.error(
                    f"Agent {row['agent_id']} has more than one active session, "
                    f"ending {row['session_id']}"
                )
                overdue.append(row)
                continue
            self._arm_timers(row["session_id"], row["agent_id"], row["start_time"] or now, end_time)
            report.rearmed += 1

        for row in overdue:
            if await self.end_session(row["session_id"]):
                report.ended += 1

        for agent_id in self.registry.agents_with_queues():
            async with self._agent_locks.hold(agent_id):
                if self.registry.get_active_session(agent_id) is None:
                    if await self._promote_next(agent_id):
                        report.promoted += 1

        logger.info(
            f"Recovery: {report.restored_queued} queued restored, {report.rearmed} re-armed, "
            f"{report.ended} overdue ended, {report.promoted} promoted"
        )
        track_event(
            TelemetryEvents.SESSION_RECOVERED,
            {
                "restored_queued": report.restored_queued,
                "rearmed": report.rearmed,
                "ended": report.ended,
                "promoted": report.promoted,
            },
        )
        return report

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current_session(self, user_id: str) -> Session | None:
        """The user's queued or active session, if any."""
        rows = await self.store.find_where(
            SESSIONS,
            {"user_id": user_id, "status": in_(OPEN_STATUSES)},
            order_by=[("created_at", "desc")],
            limit=1,
        )
        return Session(**rows[0]) if rows else None

    async def get_session(self, session_id: str, user_id: str | None = None) -> Result[Session]:
        """Look up a session; with user_id, other users' sessions read as missing."""
        row = await self.store.find_by_id(SESSIONS, session_id)
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return Result.failure(ErrorKind.NOT_FOUND, f"Session {session_id} not found")
        return Result.success(Session(**row))

    async def get_agent_availability(self, agent_id: str) -> AgentAvailabilityResponse:
        """Who holds the agent, for how much longer, and who is waiting."""
        now = datetime.now(UTC)
        policy = await self.catalog.policy_for(agent_id)
        active = self.registry.get_active_session(agent_id)

        summary = None
        if active is not None:
            summary = ActiveSessionSummary(
                session_id=active.session_id,
                user_id=active.user_id,
                start_time=active.start_time,
                end_time=active.end_time,
                remaining_seconds=max(0.0, (active.end_time - now).total_seconds()),
            )

        queue = [
            QueueSnapshotEntry(
                user_id=entry.user_id,
                session_id=entry.session_id,
                queue_position=entry.queue_position,
                estimated_wait_time=self.registry.estimated_wait(entry.queue_position),
                added_at=entry.added_at,
            )
            for entry in self.registry.queue_snapshot(agent_id)
        ]

        return AgentAvailabilityResponse(
            agent_id=agent_id,
            available=policy.available and active is None,
            active_session=summary,
            queue=queue,
            queue_length=len(queue),
        )
