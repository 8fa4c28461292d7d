"""Append-only points ledger."""

import logging
import uuid
from datetime import UTC, datetime

from ..models import Transaction, TransactionKind
from ..storage import TRANSACTIONS, RecordStore

logger = logging.getLogger(__name__)

# Newest first; seq breaks ties between rows written in the same instant
_NEWEST_FIRST = [("created_at", "desc"), ("seq", "desc")]
_OLDEST_FIRST = [("created_at", "asc"), ("seq", "asc")]


class Ledger:
    """Records every balance movement as an immutable transaction."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def record(
        self,
        user_id: str,
        kind: TransactionKind | str,
        amount: int,
        description: str,
        related_id: str | None,
        balance_before: int,
    ) -> Transaction:
        """Append one transaction.

        Args:
            user_id: Owner of the balance
            kind: Movement kind (spend subtracts, everything else adds)
            amount: Positive number of points moved
            description: Human-readable reason
            related_id: Session (or other entity) the movement belongs to
            balance_before: Balance prior to the movement

        Returns:
            The stored transaction

        Raises:
            ValueError: If amount is not positive or the balance would go negative
        """
        kind = TransactionKind(kind)
        if amount <= 0:
            raise ValueError(f"Transaction amount must be positive, got {amount}")

        if kind == TransactionKind.SPEND:
            balance_after = balance_before - amount
        else:
            balance_after = balance_before + amount
        if balance_after < 0:
            raise ValueError(
                f"Transaction would leave {user_id} with negative balance {balance_after}"
            )

        row = await self.store.create(
            TRANSACTIONS,
            {
                "transaction_id": str(uuid.uuid4()),
                "user_id": user_id,
                "kind": kind.value,
                "amount": amount,
                "description": description,
                "related_id": related_id,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "created_at": datetime.now(UTC),
            },
        )

        logger.debug(f"Ledger {kind.value} {amount} for {user_id}: {balance_before}->{balance_after}")
        return Transaction(**_transaction_fields(row))

    async def history(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> tuple[list[Transaction], int]:
        """Return (page of transactions newest first, total count)."""
        rows = await self.store.find_where(
            TRANSACTIONS,
            {"user_id": user_id},
            order_by=_NEWEST_FIRST,
            limit=limit,
            offset=offset,
        )
        total = await self.store.count(TRANSACTIONS, {"user_id": user_id})
        return [Transaction(**_transaction_fields(row)) for row in rows], total

    async def verify_chain(self, user_id: str, current_balance: int) -> bool:
        """Check that consecutive entries link up and end at the current balance."""
        rows = await self.store.find_where(
            TRANSACTIONS, {"user_id": user_id}, order_by=_OLDEST_FIRST
        )
        if not rows:
            return True

        for previous, current in zip(rows, rows[1:]):
            if previous["balance_after"] != current["balance_before"]:
                logger.warning(
                    f"Ledger gap for {user_id} at {current['transaction_id']}: "
                    f"{previous['balance_after']} != {current['balance_before']}"
                )
                return False

        return rows[-1]["balance_after"] == current_balance


def _transaction_fields(row: dict) -> dict:
    return {key: value for key, value in row.items() if key not in ("seq", "updated_at")}
