"""Data models for the Agent Booking service."""

from .agent import AccessType, Agent, AgentPolicy
from .chat import AgentResponse, ChatEntry, ChatEntryType, Comment
from .requests import (
    AgentResponseRequest,
    AgentUpsertRequest,
    BookSessionRequest,
    MarkCommentsReadRequest,
    PostCommentRequest,
    SpendPointsRequest,
)
from .responses import (
    ActiveSessionSummary,
    AgentAvailabilityResponse,
    AgentInfo,
    AgentListResponse,
    AgentResponseInfo,
    AgentStatsResponse,
    CancelResponse,
    ChatHistoryResponse,
    CommentInfo,
    CurrentSessionResponse,
    HealthResponse,
    MarkCommentsReadResponse,
    PointsBalanceResponse,
    QueueSnapshotEntry,
    SessionResponse,
    SpendPointsResponse,
    TransactionInfo,
    TransactionListResponse,
    UnreadCommentsResponse,
    VersionResponse,
)
from .session import (
    OPEN_STATUSES,
    ActiveSession,
    QueueEntry,
    Session,
    SessionStatus,
    SessionType,
)
from .transaction import Transaction, TransactionKind
from .user import User

__all__ = [
    # Records
    "User",
    "Transaction",
    "TransactionKind",
    "Session",
    "SessionStatus",
    "SessionType",
    "OPEN_STATUSES",
    "QueueEntry",
    "ActiveSession",
    "Agent",
    "AccessType",
    "AgentPolicy",
    "Comment",
    "AgentResponse",
    "ChatEntry",
    "ChatEntryType",
    # Request models
    "BookSessionRequest",
    "SpendPointsRequest",
    "AgentUpsertRequest",
    "PostCommentRequest",
    "AgentResponseRequest",
    "MarkCommentsReadRequest",
    # Response models
    "SessionResponse",
    "CurrentSessionResponse",
    "CancelResponse",
    "ActiveSessionSummary",
    "QueueSnapshotEntry",
    "AgentAvailabilityResponse",
    "AgentInfo",
    "AgentListResponse",
    "PointsBalanceResponse",
    "TransactionInfo",
    "SpendPointsResponse",
    "TransactionListResponse",
    "HealthResponse",
    "VersionResponse",
    "CommentInfo",
    "UnreadCommentsResponse",
    "MarkCommentsReadResponse",
    "AgentResponseInfo",
    "ChatHistoryResponse",
    "AgentStatsResponse",
]
