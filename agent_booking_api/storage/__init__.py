"""Storage layer: record store contract and its backends."""

from .base import (
    AGENT_RESPONSES,
    AGENTS,
    COMMENTS,
    SESSIONS,
    TRANSACTIONS,
    USERS,
    Condition,
    DuplicateRecordError,
    RecordStore,
    eq,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
)
from .database import Database, close_database, init_database
from .memory import MemoryStore

__all__ = [
    "RecordStore",
    "Database",
    "MemoryStore",
    "DuplicateRecordError",
    "Condition",
    "USERS",
    "TRANSACTIONS",
    "SESSIONS",
    "AGENTS",
    "COMMENTS",
    "AGENT_RESPONSES",
    "eq",
    "ne",
    "lt",
    "lte",
    "gt",
    "gte",
    "in_",
    "init_database",
    "close_database",
]
