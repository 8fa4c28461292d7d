"""Agent chat models: user comments and the agent's responses."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class Comment(BaseModel):
    """A message a user posted to an agent's chat."""

    comment_id: str
    agent_id: str
    user_id: str
    message: str
    handle: str | None = None
    avatar: str | None = None
    read_by_agent: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AgentResponse(BaseModel):
    """Something an agent said back, optionally in reply to a comment."""

    response_id: str
    agent_id: str
    text: str
    thought: str | None = None
    reply_to_comment_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChatEntryType(str, Enum):
    COMMENT = "comment"
    RESPONSE = "response"


class ChatEntry(BaseModel):
    """One line of an agent's chat history."""

    model_config = {"use_enum_values": True}

    id: str
    type: ChatEntryType
    message: str
    sender: str
    handle: str | None = None
    avatar: str | None = None
    reply_to_comment_id: str | None = None
    created_at: datetime
