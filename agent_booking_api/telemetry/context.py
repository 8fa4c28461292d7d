"""
Request Context and Correlation IDs

Request-scoped properties kept in a ContextVar so every telemetry event
emitted while serving a request carries the same request_id and user_id.
"""

import uuid
from contextvars import ContextVar
from typing import Any

_request_context: ContextVar[dict[str, Any] | None] = ContextVar("request_context", default=None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())


def set_request_context(request_id: str, user_id: str | None = None, **kwargs: Any) -> None:
    """Set the context for the current request."""
    _request_context.set(
        {
            "request_id": request_id,
            "user_id": user_id or "anonymous",
            **kwargs,
        }
    )


def get_request_context() -> dict[str, Any]:
    """Get a copy of the current request context (empty outside requests)."""
    return dict(_request_context.get() or {})


def clear_request_context() -> None:
    """Clear the request context for the current async context."""
    _request_context.set(None)
