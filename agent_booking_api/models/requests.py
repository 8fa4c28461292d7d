"""Request models for API endpoints."""

from pydantic import BaseModel, Field, field_validator

from .agent import AccessType


class BookSessionRequest(BaseModel):
    """Request to book a private session with an agent.

    The booking is paid up front. If the agent is idle the session starts
    immediately, otherwise the caller joins the agent's queue.
    """

    agent_id: str = Field(
        ...,
        min_length=1,
        description="Agent to book",
        examples=["borp"],
    )
    duration_minutes: float | None = Field(
        default=None,
        gt=0,
        description="Requested session length (defaults to the agent's policy)",
    )


class SpendPointsRequest(BaseModel):
    """Request to spend points outside of a booking."""

    amount: int = Field(..., description="Points to spend (must be positive)")
    reason: str | None = Field(default=None, max_length=255, description="Why points are spent")


class AgentUpsertRequest(BaseModel):
    """Request to register or update an agent catalog entry."""

    display_name: str = Field(..., min_length=1, max_length=255)
    access_type: AccessType = AccessType.PREMIUM
    points_cost: int | None = Field(default=None, ge=0)
    session_duration_minutes: float | None = Field(default=None, gt=0)
    is_active: bool = True
    description: str | None = None

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        """Trim surrounding whitespace from the display name."""
        v = v.strip()
        if not v:
            raise ValueError("display_name must not be blank")
        return v


class PostCommentRequest(BaseModel):
    """Request to post a comment to an agent's chat.

    Clients may supply their own comment_id; posting the same id twice
    stores the comment once.
    """

    message: str = Field(..., min_length=1, description="Comment text")
    comment_id: str | None = Field(
        default=None, min_length=1, max_length=128, description="Client-generated id"
    )
    handle: str | None = Field(default=None, max_length=255)
    avatar: str | None = Field(default=None, description="Avatar URL")

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message must not be blank")
        return v


class AgentResponseRequest(BaseModel):
    """Request to record what an agent said in its chat."""

    text: str = Field(..., min_length=1)
    thought: str | None = None
    response_id: str | None = Field(default=None, min_length=1, max_length=128)
    reply_to_comment_id: str | None = None


class MarkCommentsReadRequest(BaseModel):
    comment_ids: list[str] = Field(..., min_length=1, description="Comments the agent has read")
