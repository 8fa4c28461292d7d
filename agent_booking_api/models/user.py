"""User data models for the points economy."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """User record as far as bookings and the points balance are concerned.

    The user_id comes from the JWT 'sub' claim (or the dev header) and
    identifies the user in the external auth provider system.
    """

    user_id: str = Field(..., description="User identifier from JWT 'sub' claim")
    name: str | None = None
    email: str | None = None
    points: int = Field(default=0, ge=0, description="Spendable balance, never negative")
    next_regen_at: datetime | None = Field(
        default=None, description="When the next regeneration becomes due"
    )
    is_active: bool = True
    total_sessions: int = Field(default=0, description="Sessions admitted so far")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
