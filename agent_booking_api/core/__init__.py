"""Core booking logic: points economy, agent queues and session lifecycle."""

from .agents import AgentCatalog
from .balance import BalanceChange, BalanceService, RegenOutcome
from .chat import (
    AgentChatStats,
    ChatHistory,
    ChatService,
    CommentPosted,
    ResponseRecorded,
    UnreadComments,
)
from .ledger import Ledger
from .lifecycle import (
    BookingOutcome,
    CancelOutcome,
    RecoveryReport,
    SessionLifecycleController,
)
from .locks import KeyedLock
from .notifications import EventHub, NotificationSink, NullSink, agent_channel
from .regeneration import RegenerationReport, RegenerationScheduler
from .registry import AgentSessionRegistry
from .results import ErrorKind, Result
from .runtime import CoreServices, build_core, get_core, set_core
from .timers import SessionTimers

__all__ = [
    "AgentCatalog",
    "AgentChatStats",
    "AgentSessionRegistry",
    "BalanceChange",
    "BalanceService",
    "BookingOutcome",
    "CancelOutcome",
    "ChatHistory",
    "ChatService",
    "CommentPosted",
    "CoreServices",
    "ErrorKind",
    "EventHub",
    "KeyedLock",
    "Ledger",
    "NotificationSink",
    "NullSink",
    "RecoveryReport",
    "RegenOutcome",
    "RegenerationReport",
    "RegenerationScheduler",
    "ResponseRecorded",
    "Result",
    "SessionLifecycleController",
    "SessionTimers",
    "UnreadComments",
    "agent_channel",
    "build_core",
    "get_core",
    "set_core",
]
