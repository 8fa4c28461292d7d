"""Outcome type returned by every core operation.

Domain failures (not enough points, already booked, ...) come back as a
failed Result. Only unexpected faults, such as the store being unreachable,
are raised.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why a core operation was refused."""

    USER_NOT_FOUND = "user_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ALREADY_HAS_SESSION = "already_has_session"
    NOT_CANCELLABLE = "not_cancellable"
    AGENT_UNAVAILABLE = "agent_unavailable"
    NOT_FOUND = "not_found"
    INVALID_AMOUNT = "invalid_amount"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an ErrorKind with a human-readable detail."""

    value: T | None = None
    error: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str | None = None) -> "Result[T]":
        return cls(error=error, detail=detail or error.value.replace("_", " "))

    def unwrap(self) -> T:
        """Return the value, raising if the operation failed."""
        if self.error is not None:
            raise RuntimeError(f"Operation failed: {self.error.value} ({self.detail})")
        return self.value  # type: ignore[return-value]
