"""Server-Sent Events stream of the caller's notifications."""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ..core import CoreServices, agent_channel
from .deps import get_services, get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

KEEPALIVE_SECONDS = 15.0


@router.get("/stream")
async def stream_events(
    request: Request,
    agent_id: str | None = Query(
        default=None, description="Also receive chat events broadcast for this agent"
    ),
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> StreamingResponse:
    """Stream session, queue and points notifications using Server-Sent Events (SSE).

    With agent_id, comments and agent responses posted to that agent's
    chat are delivered on the same stream.

    Disconnecting does not affect the caller's session or queue entry;
    events sent while no stream is open are simply not delivered.
    """

    async def event_generator():
        """Generate SSE events from the user's subscription."""
        channels = [agent_channel(agent_id)] if agent_id else []
        async with core.events.subscribe(user_id, *channels) as queue:
            # Send connection acknowledgment
            yield f"data: {json.dumps({'type': 'connected', 'user_id': user_id})}\n\n"

            while True:
                if await request.is_disconnected():
                    logger.debug(f"Event stream closed by {user_id}")
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                yield (
                    f"event: {message['event']}\n"
                    f"data: {json.dumps({**message['payload'], 'sent_at': message['sent_at']})}\n\n"
                )

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
