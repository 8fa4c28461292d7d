"""Record store contract shared by every storage backend.

The core only ever talks to storage through the five primitives defined
on RecordStore. Filters are plain dicts mapping a field to either a value
(equality, None meaning IS NULL) or a Condition built with the helpers below.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

USERS = "users"
TRANSACTIONS = "transactions"
SESSIONS = "sessions"
AGENTS = "agents"
COMMENTS = "comments"
AGENT_RESPONSES = "agent_responses"

# Primary key column of every entity
ENTITY_KEYS: dict[str, str] = {
    USERS: "user_id",
    TRANSACTIONS: "transaction_id",
    SESSIONS: "session_id",
    AGENTS: "agent_id",
    COMMENTS: "comment_id",
    AGENT_RESPONSES: "response_id",
}

Record = dict[str, Any]


class DuplicateRecordError(Exception):
    """Raised when creating a record whose key (or unique field) already exists."""


@dataclass(frozen=True)
class Condition:
    """A single comparison in a where-clause."""

    op: str
    value: Any

    OPERATORS = ("eq", "ne", "lt", "lte", "gt", "gte", "in")

    def __post_init__(self) -> None:
        if self.op not in self.OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")

    def matches(self, actual: Any) -> bool:
        """Evaluate the condition against a field value."""
        if self.op == "eq":
            return actual is None if self.value is None else actual == self.value
        if self.op == "ne":
            return actual is not None if self.value is None else actual != self.value
        if self.op == "in":
            return actual in self.value
        if actual is None:
            return False
        if self.op == "lt":
            return actual < self.value
        if self.op == "lte":
            return actual <= self.value
        if self.op == "gt":
            return actual > self.value
        return actual >= self.value


def eq(value: Any) -> Condition:
    return Condition("eq", value)


def ne(value: Any) -> Condition:
    return Condition("ne", value)


def lt(value: Any) -> Condition:
    return Condition("lt", value)


def lte(value: Any) -> Condition:
    return Condition("lte", value)


def gt(value: Any) -> Condition:
    return Condition("gt", value)


def gte(value: Any) -> Condition:
    return Condition("gte", value)


def in_(values: Any) -> Condition:
    return Condition("in", tuple(values))


def normalize_where(where: dict[str, Any] | None) -> list[tuple[str, Condition]]:
    """Turn a filter dict into (field, Condition) pairs."""
    if not where:
        return []
    return [
        (field, value if isinstance(value, Condition) else eq(value))
        for field, value in where.items()
    ]


def check_entity(entity: str) -> str:
    """Validate an entity name and return its key column."""
    try:
        return ENTITY_KEYS[entity]
    except KeyError:
        raise ValueError(f"Unknown entity: {entity}") from None


class RecordStore(ABC):
    """Durable record store reachable through simple CRUD primitives."""

    async def connect(self) -> None:
        """Open connections and prepare the schema."""

    async def disconnect(self) -> None:
        """Release connections."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""

    @abstractmethod
    async def find_by_id(self, entity: str, record_id: str) -> Record | None:
        """Fetch one record by primary key."""

    @abstractmethod
    async def find_where(
        self,
        entity: str,
        where: dict[str, Any] | None = None,
        order_by: list[tuple[str, str]] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """Fetch records matching all conditions.

        Args:
            entity: Entity name (users, transactions, sessions, agents, comments, agent_responses)
            where: Field filters, combined with AND
            order_by: (field, "asc" | "desc") pairs, applied in order
            limit: Maximum number of records
            offset: Number of records to skip
        """

    @abstractmethod
    async def create(self, entity: str, fields: Record) -> Record:
        """Insert a record and return it as stored.

        Raises:
            DuplicateRecordError: If the key is already taken
        """

    @abstractmethod
    async def update(
        self, entity: str, target: str | dict[str, Any], fields: Record
    ) -> int:
        """Update records by primary key or filter; return the number changed."""

    @abstractmethod
    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int:
        """Count records matching all conditions."""
