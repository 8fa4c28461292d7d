"""Health check and version endpoints."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends

from .. import __version__
from ..core import CoreServices
from ..models import HealthResponse, VersionResponse
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Track service start time
_start_time = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check(core: CoreServices = Depends(get_services)) -> HealthResponse:
    """Health check endpoint."""
    uptime = time.time() - _start_time

    # Check database connectivity
    db_connected = False
    try:
        db_connected = await core.store.ping()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    days, remainder = divmod(int(uptime), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        version=__version__,
        uptime=f"Days: {days}, Hours: {hours}, Minutes: {minutes}, Seconds: {seconds}",
        database_connected=db_connected,
        regeneration_running=core.regeneration.running,
        active_sessions=core.registry.active_count(),
    )


@router.get("/version", response_model=VersionResponse)
async def get_version() -> VersionResponse:
    """Get version information."""
    return VersionResponse(service_version=__version__)


@router.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with service information."""
    return {
        "service": "Agent Booking API",
        "version": __version__,
        "description": "Points-gated session booking and queueing for live AI agents",
        "docs": "/docs",
        "health": "/health",
    }
