"""Response models for API endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from .agent import AccessType
from .chat import ChatEntry
from .session import SessionStatus
from .transaction import TransactionKind


class SessionResponse(BaseModel):
    """Session state as seen by its owner."""

    session_id: str
    agent_id: str
    status: SessionStatus
    duration: float
    points_cost: int
    queue_position: int | None = None
    estimated_wait_time: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    message: str | None = None


class CurrentSessionResponse(BaseModel):
    """The caller's open session, if any."""

    session: SessionResponse | None = None


class CancelResponse(BaseModel):
    """Outcome of cancelling a queued session."""

    session_id: str
    status: SessionStatus
    refunded: int
    new_balance: int | None = None


class ActiveSessionSummary(BaseModel):
    """Who currently holds an agent and for how long."""

    session_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    remaining_seconds: float


class QueueSnapshotEntry(BaseModel):
    """One line of an agent's waiting list."""

    user_id: str
    session_id: str
    queue_position: int
    estimated_wait_time: int
    added_at: datetime


class AgentAvailabilityResponse(BaseModel):
    """Active session summary and queue snapshot for one agent."""

    agent_id: str
    available: bool
    active_session: ActiveSessionSummary | None = None
    queue: list[QueueSnapshotEntry] = Field(default_factory=list)
    queue_length: int = 0


class AgentInfo(BaseModel):
    """Catalog entry with its effective policy."""

    agent_id: str
    display_name: str
    access_type: AccessType
    points_cost: int
    session_duration_minutes: float
    is_active: bool
    description: str | None = None


class AgentListResponse(BaseModel):
    """Response for listing the agent catalog."""

    agents: list[AgentInfo]
    total: int


class PointsBalanceResponse(BaseModel):
    """Balance and regeneration info."""

    user_id: str
    points: int
    max_points: int
    daily_regen_amount: int
    next_regen_at: datetime | None = None


class TransactionInfo(BaseModel):
    """Ledger entry as returned to clients."""

    transaction_id: str
    kind: TransactionKind
    amount: int
    description: str
    related_id: str | None = None
    balance_before: int
    balance_after: int
    created_at: datetime


class SpendPointsResponse(BaseModel):
    """Response for spending points."""

    success: bool = True
    new_balance: int
    transaction: TransactionInfo


class TransactionListResponse(BaseModel):
    """Paginated ledger history, newest first."""

    transactions: list[TransactionInfo]
    total: int
    limit: int
    offset: int
    has_more: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    uptime: str
    database_connected: bool
    regeneration_running: bool = False
    active_sessions: int = 0


class VersionResponse(BaseModel):
    """Version information response."""

    service_version: str


class CommentInfo(BaseModel):
    """Comment as returned to clients."""

    comment_id: str
    agent_id: str
    user_id: str
    message: str
    handle: str | None = None
    avatar: str | None = None
    read_by_agent: bool
    created_at: datetime


class UnreadCommentsResponse(BaseModel):
    """Recent unread comments for an agent, newest first."""

    comments: list[CommentInfo]
    count: int
    since: datetime
    has_more: bool


class MarkCommentsReadResponse(BaseModel):
    success: bool = True
    modified_count: int


class AgentResponseInfo(BaseModel):
    """Agent response as returned to clients."""

    response_id: str
    agent_id: str
    text: str
    thought: str | None = None
    reply_to_comment_id: str | None = None
    created_at: datetime


class ChatHistoryResponse(BaseModel):
    """A page of an agent's chat, newest first.

    Pass oldest_message_date as `before` to fetch the next page.
    """

    chat_history: list[ChatEntry]
    has_more: bool
    oldest_message_date: datetime | None = None


class AgentStatsResponse(BaseModel):
    """Chat activity counters for one agent."""

    agent_id: str
    comments: int
    unread_comments: int
    responses: int
