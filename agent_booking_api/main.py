"""Main FastAPI application for the Agent Booking service."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from . import __version__
from .api import (
    agents_router,
    chat_router,
    events_router,
    health_router,
    points_router,
    sessions_router,
)
from .config import settings
from .core import build_core, set_core
from .middleware import AuthMiddleware
from .storage import close_database, init_database
from .telemetry import (
    TelemetryEvents,
    TelemetryMiddleware,
    flush_telemetry,
    initialize_telemetry,
    track_event,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown."""
    # Startup
    logger.info("Starting Agent Booking service...")
    logger.info(f"Service version: {app.version}")
    logger.info(f"Host: {settings.service_host}:{settings.service_port}")

    # Initialize telemetry
    initialize_telemetry()
    logger.info("Telemetry initialized")

    # Initialize database
    store = await init_database()
    logger.info(f"Record store initialized ({settings.database_backend})")

    # Build the core and rebuild queues, markers and timers from the store
    core = build_core(store, settings)
    set_core(core)
    await core.lifecycle.recover()
    core.regeneration.start()

    track_event(TelemetryEvents.APP_STARTED, {"version": __version__})
    logger.info("Agent Booking service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Agent Booking service...")
    await core.shutdown()
    set_core(None)

    track_event(TelemetryEvents.APP_STOPPED, {"version": __version__})

    # Flush telemetry before shutdown
    flush_telemetry()
    logger.info("Telemetry flushed")

    await close_database()
    logger.info("Agent Booking service stopped")


# Create FastAPI application
app = FastAPI(
    title="Agent Booking API",
    description="""
Points-gated session booking and queueing for live AI agents.

## Concepts

### Points
Every user holds a non-negative balance. Booking a private session costs
points up front; points regenerate daily up to a cap. Every movement is
recorded in an append-only ledger.

### Sessions
A session grants one user exclusive access to one agent for a fixed time.
If the agent is busy the booking waits in a FIFO queue and is admitted
automatically when the current session ends. Queued sessions can be
cancelled for a full refund.

### Events
`GET /events/stream` delivers session, queue and points notifications as
Server-Sent Events.

## API Endpoints

### Sessions
- `POST /sessions` - Book a session
- `GET /sessions/current` - Current queued or active session
- `GET /sessions/{id}` - Get session
- `POST /sessions/{id}/cancel` - Cancel a queued session

### Agents
- `GET /agents` - List catalog
- `PUT /agents/{id}` - Register or update an agent
- `GET /agents/{id}/availability` - Active session and queue

### Points
- `GET /points` - Balance and regeneration info
- `POST /points/spend` - Spend points
- `GET /points/transactions` - Ledger history

### Health
- `GET /health` - Health check
""",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Authentication middleware (inside telemetry, so failed auth is still tracked)
app.add_middleware(AuthMiddleware)

# Telemetry middleware (wraps auth and the routes to capture all requests)
app.add_middleware(TelemetryMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Trusted host middleware (security)
if settings.service_host != "0.0.0.0":
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=[settings.service_host, "localhost", "127.0.0.1"],
    )

# Register routers
app.include_router(health_router)
app.include_router(sessions_router)
app.include_router(agents_router)
app.include_router(chat_router)
app.include_router(points_router)
app.include_router(events_router)


def main() -> None:
    """Main entry point for running the service."""
    import uvicorn

    # Queues, active markers and timers live in this process: one worker only
    uvicorn.run(
        "agent_booking_api.main:app",
        host=settings.service_host,
        port=settings.service_port,
        workers=1,
        log_level=settings.log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
