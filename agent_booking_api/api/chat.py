"""Agent chat endpoints: comments, agent responses and history."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..core import CoreServices
from ..models import (
    AgentResponseInfo,
    AgentResponseRequest,
    AgentStatsResponse,
    ChatHistoryResponse,
    CommentInfo,
    MarkCommentsReadRequest,
    MarkCommentsReadResponse,
    PostCommentRequest,
    UnreadCommentsResponse,
)
from .deps import get_services, get_user_id, raise_for_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents/{agent_id}", tags=["chat"])


@router.post(
    "/comments",
    response_model=CommentInfo,
    status_code=201,
    summary="Post a comment to an agent's chat",
    description="""
Post a comment as the caller. Everyone streaming `/events/stream?agent_id=...`
receives it as a `comment_received` event.

Supplying `comment_id` makes the post idempotent: repeating it returns the
stored comment with 200 instead of creating a second one.
""",
    responses={
        200: {"model": CommentInfo, "description": "Comment already posted"},
        400: {"description": "Empty, too long, or id used by another comment"},
        403: {"description": "Account deactivated"},
    },
)
async def post_comment(
    agent_id: str,
    body: PostCommentRequest,
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
):
    result = await core.chat.post_comment(
        user_id,
        agent_id,
        body.message,
        comment_id=body.comment_id,
        handle=body.handle,
        avatar=body.avatar,
    )
    if not result.ok:
        raise_for_error(result)

    posted = result.value
    response = CommentInfo(**posted.comment.model_dump())
    if posted.created:
        return response
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))


@router.get("/comments/unread", response_model=UnreadCommentsResponse)
async def get_unread_comments(
    agent_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    core: CoreServices = Depends(get_services),
) -> UnreadCommentsResponse:
    """Recent comments the agent has not read yet, newest first."""
    unread = await core.chat.unread_comments(agent_id, limit=limit)
    return UnreadCommentsResponse(
        comments=[CommentInfo(**c.model_dump()) for c in unread.comments],
        count=len(unread.comments),
        since=unread.since,
        has_more=unread.has_more,
    )


@router.post("/comments/mark-read", response_model=MarkCommentsReadResponse)
async def mark_comments_read(
    agent_id: str,
    body: MarkCommentsReadRequest,
    core: CoreServices = Depends(get_services),
) -> MarkCommentsReadResponse:
    """Mark comments as read by the agent."""
    result = await core.chat.mark_read(agent_id, body.comment_ids)
    if not result.ok:
        raise_for_error(result)
    return MarkCommentsReadResponse(modified_count=result.value)


@router.post(
    "/responses",
    response_model=AgentResponseInfo,
    status_code=201,
    responses={200: {"model": AgentResponseInfo, "description": "Response already recorded"}},
)
async def record_response(
    agent_id: str,
    body: AgentResponseRequest,
    core: CoreServices = Depends(get_services),
):
    """Record what the agent said and broadcast it as an `agent_response` event."""
    result = await core.chat.record_response(
        agent_id,
        body.text,
        thought=body.thought,
        response_id=body.response_id,
        reply_to_comment_id=body.reply_to_comment_id,
    )
    if not result.ok:
        raise_for_error(result)

    recorded = result.value
    response = AgentResponseInfo(**recorded.response.model_dump())
    if recorded.created:
        return response
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))


@router.get("/chat-history", response_model=ChatHistoryResponse)
async def get_chat_history(
    agent_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    before: datetime | None = Query(default=None, description="Only entries older than this"),
    core: CoreServices = Depends(get_services),
) -> ChatHistoryResponse:
    """Comments and agent responses, newest first, paged by `before`."""
    history = await core.chat.chat_history(agent_id, limit=limit, before=before)
    return ChatHistoryResponse(
        chat_history=history.entries,
        has_more=history.has_more,
        oldest_message_date=history.oldest,
    )


@router.get("/stats", response_model=AgentStatsResponse)
async def get_agent_stats(
    agent_id: str,
    core: CoreServices = Depends(get_services),
) -> AgentStatsResponse:
    """Comment and response counters for an agent."""
    stats = await core.chat.stats(agent_id)
    return AgentStatsResponse(
        agent_id=agent_id,
        comments=stats.comments,
        unread_comments=stats.unread_comments,
        responses=stats.responses,
    )
