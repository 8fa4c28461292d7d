"""Agent catalog models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class AccessType(str, Enum):
    """Whether the points economy applies to an agent."""

    FREE = "free"
    PREMIUM = "premium"


class Agent(BaseModel):
    """Catalog entry describing a bookable agent.

    Cost and duration are optional overrides; unset values fall back to
    the service-wide policy in settings.
    """

    model_config = {"use_enum_values": True}

    agent_id: str
    display_name: str
    access_type: AccessType = AccessType.PREMIUM
    points_cost: int | None = Field(default=None, ge=0)
    session_duration_minutes: float | None = Field(default=None, gt=0)
    is_active: bool = True
    description: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AgentPolicy(BaseModel):
    """Effective booking terms for one agent."""

    agent_id: str
    points_cost: int
    duration_minutes: float
    free_tier: bool = False
    available: bool = True
