"""Session data models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    """Session status enumeration."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_STATUSES = (SessionStatus.QUEUED.value, SessionStatus.ACTIVE.value)


class SessionType(str, Enum):
    """Whether the session grants exclusive (private) or shared access."""

    PRIVATE = "private"
    PUBLIC = "public"


class Session(BaseModel):
    """A time-boxed grant of exclusive access to one agent for one user."""

    model_config = {"use_enum_values": True}

    session_id: str
    user_id: str
    agent_id: str
    type: SessionType = SessionType.PRIVATE
    status: SessionStatus = SessionStatus.QUEUED
    duration: float = Field(..., gt=0, description="Length of the session in minutes")
    points_cost: int = Field(default=0, ge=0)
    queue_position: int | None = None
    estimated_wait_time: int | None = Field(default=None, description="Minutes until admission")
    start_time: datetime | None = None
    end_time: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class QueueEntry(BaseModel):
    """A waiting booking in an agent's FIFO line (in memory only)."""

    user_id: str
    session_id: str
    queue_position: int
    added_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ActiveSession(BaseModel):
    """Marker for the one session currently holding an agent."""

    session_id: str
    user_id: str
    agent_id: str
    start_time: datetime
    end_time: datetime
