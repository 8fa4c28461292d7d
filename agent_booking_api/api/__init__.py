"""API endpoints for the Agent Booking service."""

from .agents import router as agents_router
from .chat import router as chat_router
from .events import router as events_router
from .health import router as health_router
from .points import router as points_router
from .sessions import router as sessions_router

__all__ = [
    "sessions_router",
    "agents_router",
    "chat_router",
    "points_router",
    "events_router",
    "health_router",
]
