"""Points balance service.

Owns every read-modify-write of users.points. Each mutation runs under a
per-user lock, and the balance update and its ledger entry are written
inside the same critical section.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from ..config import Settings
from ..models import Transaction, TransactionKind, User
from ..storage import USERS, DuplicateRecordError, RecordStore
from ..telemetry import TelemetryEvents, track_event
from .ledger import Ledger
from .locks import KeyedLock
from .notifications import NotificationSink
from .results import ErrorKind, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceChange:
    """Balance after a mutation and the transaction that produced it (if any)."""

    user_id: str
    new_balance: int
    transaction: Transaction | None = None


class RegenOutcome(str, Enum):
    """What a single regeneration step did for one user."""

    REGENERATED = "regenerated"
    CAPPED = "capped"
    SKIPPED = "skipped"


_MESSAGES = {
    TransactionKind.SPEND: "Points spent",
    TransactionKind.EARN: "Points earned",
    TransactionKind.REGENERATE: "Points regenerated",
    TransactionKind.BONUS: "Bonus points received",
}

_EVENTS = {
    TransactionKind.SPEND: TelemetryEvents.POINTS_SPENT,
    TransactionKind.EARN: TelemetryEvents.POINTS_EARNED,
    TransactionKind.REGENERATE: TelemetryEvents.POINTS_REGENERATED,
    TransactionKind.BONUS: TelemetryEvents.POINTS_EARNED,
}


class BalanceService:
    """Spend, earn and regenerate points with a ledger entry per movement."""

    def __init__(
        self,
        store: RecordStore,
        ledger: Ledger,
        notifier: NotificationSink,
        settings: Settings,
    ):
        self.store = store
        self.ledger = ledger
        self.notifier = notifier
        self.settings = settings
        self.locks = KeyedLock()

    @property
    def regen_period(self) -> timedelta:
        return timedelta(hours=self.settings.regen_period_hours)

    async def ensure_user(
        self, user_id: str, name: str | None = None, email: str | None = None
    ) -> User:
        """Fetch a user, creating it with the starting balance on first sight."""
        row = await self.store.find_by_id(USERS, user_id)
        if row is not None:
            return User(**row)

        now = datetime.now(UTC)
        try:
            row = await self.store.create(
                USERS,
                {
                    "user_id": user_id,
                    "name": name,
                    "email": email,
                    "points": self.settings.initial_points,
                    "next_regen_at": now + self.regen_period,
                    "is_active": True,
                    "total_sessions": 0,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            logger.info(f"Created user {user_id} with {self.settings.initial_points} points")
        except DuplicateRecordError:
            # Lost a creation race with a concurrent request
            row = await self.store.find_by_id(USERS, user_id)
            if row is None:
                raise
        return User(**row)

    async def get_balance(self, user_id: str) -> Result[User]:
        """Current points and regeneration schedule of a user."""
        row = await self.store.find_by_id(USERS, user_id)
        if row is None:
            return Result.failure(ErrorKind.USER_NOT_FOUND, f"User {user_id} not found")
        return Result.success(User(**row))

    async def spend(
        self, user_id: str, amount: int, description: str, related_id: str | None = None
    ) -> Result[BalanceChange]:
        """Take points from a user; never lets the balance go negative."""
        return await self._apply(user_id, TransactionKind.SPEND, amount, description, related_id)

    async def earn(
        self, user_id: str, amount: int, description: str, related_id: str | None = None
    ) -> Result[BalanceChange]:
        """Give points to a user (refunds go through here)."""
        return await self._apply(user_id, TransactionKind.EARN, amount, description, related_id)

    async def bonus(
        self, user_id: str, amount: int, description: str, related_id: str | None = None
    ) -> Result[BalanceChange]:
        return await self._apply(user_id, TransactionKind.BONUS, amount, description, related_id)

    async def regenerate(
        self, user_id: str, amount: int, description: str, related_id: str | None = None
    ) -> Result[BalanceChange]:
        """Add points without pushing the balance above max_points.

        When the user is already at (or above) the cap this succeeds with
        no transaction.
        """
        return await self._apply(
            user_id, TransactionKind.REGENERATE, amount, description, related_id
        )

    async def regenerate_due(self, user_id: str, now: datetime | None = None) -> RegenOutcome:
        """Run one regeneration step for a user if it is due.

        The row is re-read under the user's lock, so a user already handled
        by a previous sweep is skipped.
        """
        now = now or datetime.now(UTC)

        async with self.locks.hold(user_id):
            row = await self.store.find_by_id(USERS, user_id)
            if row is None or not row["is_active"]:
                return RegenOutcome.SKIPPED
            due_at = row.get("next_regen_at")
            if due_at is not None and due_at > now:
                return RegenOutcome.SKIPPED

            points = row["points"]
            next_regen_at = now + self.regen_period
            headroom = self.settings.max_points - points

            if headroom <= 0:
                await self.store.update(USERS, user_id, {"next_regen_at": next_regen_at})
                logger.debug(f"User {user_id} at cap ({points}), regeneration rescheduled")
                return RegenOutcome.CAPPED

            amount = min(self.settings.daily_regen_amount, headroom)
            change = await self._write(
                row,
                TransactionKind.REGENERATE,
                amount,
                "Daily point regeneration",
                None,
                extra_fields={"next_regen_at": next_regen_at},
            )

        self._announce(change, TransactionKind.REGENERATE, amount)
        return RegenOutcome.REGENERATED

    async def _apply(
        self,
        user_id: str,
        kind: TransactionKind,
        amount: int,
        description: str,
        related_id: str | None,
    ) -> Result[BalanceChange]:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            return self._reject(user_id, kind, ErrorKind.INVALID_AMOUNT, "Invalid amount")

        async with self.locks.hold(user_id):
            row = await self.store.find_by_id(USERS, user_id)
            if row is None:
                return self._reject(
                    user_id, kind, ErrorKind.USER_NOT_FOUND, f"User {user_id} not found"
                )

            points = row["points"]
            if kind == TransactionKind.SPEND:
                if not row["is_active"]:
                    return self._reject(
                        user_id, kind, ErrorKind.ACCOUNT_DEACTIVATED, "Account is deactivated"
                    )
                if points < amount:
                    return self._reject(
                        user_id,
                        kind,
                        ErrorKind.INSUFFICIENT_FUNDS,
                        f"Insufficient points: have {points}, need {amount}",
                    )

            if kind == TransactionKind.REGENERATE:
                amount = min(amount, self.settings.max_points - points)
                if amount <= 0:
                    return Result.success(BalanceChange(user_id=user_id, new_balance=points))

            change = await self._write(row, kind, amount, description, related_id)

        self._announce(change, kind, amount)
        return Result.success(change)

    async def _write(
        self,
        row: dict,
        kind: TransactionKind,
        amount: int,
        description: str,
        related_id: str | None,
        extra_fields: dict | None = None,
    ) -> BalanceChange:
        """Update the balance and append its ledger entry (caller holds the lock)."""
        user_id = row["user_id"]
        before = row["points"]
        after = before - amount if kind == TransactionKind.SPEND else before + amount

        await self.store.update(USERS, user_id, {"points": after, **(extra_fields or {})})
        try:
            transaction = await self.ledger.record(
                user_id, kind, amount, description, related_id, before
            )
        except Exception:
            logger.error(
                f"Ledger append failed for {user_id}, restoring balance {before}", exc_info=True
            )
            restore = {"points": before}
            if extra_fields and "next_regen_at" in extra_fields:
                restore["next_regen_at"] = row.get("next_regen_at")
            await self.store.update(USERS, user_id, restore)
            raise

        return BalanceChange(user_id=user_id, new_balance=after, transaction=transaction)

    def _announce(self, change: BalanceChange, kind: TransactionKind, amount: int) -> None:
        logger.info(f"{_MESSAGES[kind]}: {change.user_id} {kind.value} {amount} -> {change.new_balance}")
        track_event(
            _EVENTS[kind],
            {"user_id": change.user_id, "kind": kind.value, "amount": amount},
        )
        self.notifier.notify_user(
            change.user_id,
            "points_updated",
            {
                "balance": change.new_balance,
                "message": _MESSAGES[kind],
                "kind": kind.value,
                "amount": amount,
            },
        )

    def _reject(
        self, user_id: str, kind: TransactionKind, error: ErrorKind, detail: str
    ) -> Result[BalanceChange]:
        logger.warning(f"Rejected {kind.value} for {user_id}: {detail}")
        track_event(
            TelemetryEvents.POINTS_REJECTED,
            {"user_id": user_id, "kind": kind.value, "reason": error.value},
        )
        return Result.failure(error, detail)
