"""Ledger entry models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class TransactionKind(str, Enum):
    """Kinds of balance movement recorded in the ledger."""

    SPEND = "spend"
    EARN = "earn"
    REGENERATE = "regenerate"
    BONUS = "bonus"


class Transaction(BaseModel):
    """Immutable record of one balance mutation."""

    model_config = {"use_enum_values": True}

    transaction_id: str
    user_id: str
    kind: TransactionKind
    amount: int = Field(..., gt=0)
    description: str
    related_id: str | None = Field(
        default=None, description="Session or other entity this movement belongs to"
    )
    balance_before: int
    balance_after: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
