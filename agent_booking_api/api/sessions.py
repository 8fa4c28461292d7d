"""Session booking API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..core import CoreServices
from ..models import (
    BookSessionRequest,
    CancelResponse,
    CurrentSessionResponse,
    Session,
    SessionResponse,
)
from .deps import get_services, get_user_id, raise_for_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _to_response(session: Session, message: str | None = None) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        agent_id=session.agent_id,
        status=session.status,
        duration=session.duration,
        points_cost=session.points_cost,
        queue_position=session.queue_position,
        estimated_wait_time=session.estimated_wait_time,
        start_time=session.start_time,
        end_time=session.end_time,
        message=message,
    )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=201,
    summary="Book a private session with an agent",
    description="""
Book exclusive access to an agent for a fixed time.

The session cost is deducted up front. If the agent is idle the session
starts immediately (201, status=active, with start and end time).
Otherwise the booking joins the agent's queue (202, status=queued, with
queue position and estimated wait in minutes).

A user can hold only one queued or active session at a time.
""",
    responses={
        202: {"model": SessionResponse, "description": "Booking queued"},
        400: {"description": "Insufficient points"},
        409: {"description": "User already has a queued or active session"},
        503: {"description": "Agent not accepting bookings"},
    },
)
async def book_session(
    body: BookSessionRequest,
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
):
    """Book a session; start now or join the queue."""
    result = await core.lifecycle.book(user_id, body.agent_id, body.duration_minutes)
    if not result.ok:
        raise_for_error(result)

    outcome = result.value
    response = _to_response(outcome.session, outcome.message)
    if outcome.admitted:
        return response
    return JSONResponse(status_code=202, content=response.model_dump(mode="json"))


@router.get("/current", response_model=CurrentSessionResponse)
async def get_current_session(
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> CurrentSessionResponse:
    """Get the caller's queued or active session."""
    session = await core.lifecycle.get_current_session(user_id)
    return CurrentSessionResponse(session=_to_response(session) if session else None)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> SessionResponse:
    """Get one of the caller's sessions."""
    result = await core.lifecycle.get_session(session_id, user_id=user_id)
    if not result.ok:
        raise_for_error(result)
    return _to_response(result.value)


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> CancelResponse:
    """Cancel a queued session and refund its cost."""
    try:
        result = await core.lifecycle.cancel(session_id, user_id)
    except Exception as e:
        logger.error(f"Error cancelling session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to cancel session") from None

    if not result.ok:
        raise_for_error(result)

    outcome = result.value
    return CancelResponse(
        session_id=outcome.session.session_id,
        status=outcome.session.status,
        refunded=outcome.refunded,
        new_balance=outcome.new_balance,
    )
