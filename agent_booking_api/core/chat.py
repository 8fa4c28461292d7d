"""Agent chat: comments users post to an agent and what the agent says back.

Creation is idempotent on the caller-supplied id. The store's primary key
decides which of two racing posts wins; the other reads the stored row back
instead of inserting a second copy.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..config import Settings
from ..models import AgentResponse, ChatEntry, ChatEntryType, Comment
from ..storage import (
    AGENT_RESPONSES,
    COMMENTS,
    USERS,
    DuplicateRecordError,
    RecordStore,
    gte,
    in_,
    lt,
)
from ..telemetry import TelemetryEvents, track_event
from .notifications import NotificationSink
from .results import ErrorKind, Result

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", "desc"), ("seq", "desc")]


@dataclass(frozen=True)
class CommentPosted:
    comment: Comment
    created: bool


@dataclass(frozen=True)
class ResponseRecorded:
    response: AgentResponse
    created: bool


@dataclass(frozen=True)
class UnreadComments:
    """Unread comments for an agent within the look-back window, newest first."""

    comments: list[Comment]
    since: datetime
    has_more: bool


@dataclass(frozen=True)
class ChatHistory:
    """A page of an agent's chat, newest first."""

    entries: list[ChatEntry]
    has_more: bool

    @property
    def oldest(self) -> datetime | None:
        return self.entries[-1].created_at if self.entries else None


@dataclass(frozen=True)
class AgentChatStats:
    comments: int
    unread_comments: int
    responses: int


class ChatService:
    """Stores and serves an agent's chat."""

    def __init__(self, store: RecordStore, notifier: NotificationSink, settings: Settings):
        self.store = store
        self.notifier = notifier
        self.settings = settings

    async def post_comment(
        self,
        user_id: str,
        agent_id: str,
        message: str,
        comment_id: str | None = None,
        handle: str | None = None,
        avatar: str | None = None,
    ) -> Result[CommentPosted]:
        """Post a comment to an agent's chat.

        Args:
            user_id: Author
            agent_id: Agent whose chat receives the comment
            message: Comment text (trimmed)
            comment_id: Client-generated id; posting the same id again is a no-op
            handle: Display handle (defaults to the author's name or id)
            avatar: Avatar URL

        Returns:
            Result holding the stored comment and whether this call created it
        """
        message = message.strip()
        if not message:
            return self._reject(user_id, agent_id, "Comment must not be empty")
        if len(message) > self.settings.max_comment_length:
            return self._reject(
                user_id,
                agent_id,
                f"Comment is longer than {self.settings.max_comment_length} characters",
            )

        user = await self.store.find_by_id(USERS, user_id)
        if user is None:
            return Result.failure(ErrorKind.USER_NOT_FOUND, f"User {user_id} not found")
        if not user["is_active"]:
            return Result.failure(ErrorKind.ACCOUNT_DEACTIVATED, "Account is deactivated")

        comment_id = comment_id or str(uuid.uuid4())
        try:
            row = await self.store.create(
                COMMENTS,
                {
                    "comment_id": comment_id,
                    "agent_id": agent_id,
                    "user_id": user_id,
                    "message": message,
                    "handle": handle or user.get("name") or user_id,
                    "avatar": avatar,
                    "read_by_agent": False,
                    "created_at": datetime.now(UTC),
                },
            )
        except DuplicateRecordError:
            row = await self.store.find_by_id(COMMENTS, comment_id)
            if row is None:
                raise
            if row["user_id"] != user_id or row["agent_id"] != agent_id:
                return self._reject(user_id, agent_id, f"Comment id {comment_id} is already used")
            logger.info(f"Duplicate comment {comment_id} on {agent_id} ignored")
            return Result.success(CommentPosted(comment=Comment(**row), created=False))

        comment = Comment(**row)
        logger.info(f"Comment {comment_id} posted to {agent_id} by {user_id}")
        track_event(
            TelemetryEvents.COMMENT_CREATED,
            {"comment_id": comment_id, "agent_id": agent_id, "user_id": user_id},
        )
        self.notifier.notify_agent(
            agent_id, "comment_received", comment.model_dump(mode="json")
        )
        return Result.success(CommentPosted(comment=comment, created=True))

    async def unread_comments(
        self, agent_id: str, limit: int = 10, now: datetime | None = None
    ) -> UnreadComments:
        """Comments the agent has not read yet, limited to the recent window."""
        now = now or datetime.now(UTC)
        since = now - timedelta(minutes=self.settings.unread_comment_window_minutes)
        rows = await self.store.find_where(
            COMMENTS,
            {"agent_id": agent_id, "read_by_agent": False, "created_at": gte(since)},
            order_by=NEWEST_FIRST,
            limit=limit + 1,
        )
        return UnreadComments(
            comments=[Comment(**row) for row in rows[:limit]],
            since=since,
            has_more=len(rows) > limit,
        )

    async def mark_read(self, agent_id: str, comment_ids: list[str]) -> Result[int]:
        """Flag comments as read by the agent; returns how many matched."""
        if not comment_ids:
            return self._reject(None, agent_id, "comment_ids must not be empty")

        updated = await self.store.update(
            COMMENTS,
            {"agent_id": agent_id, "comment_id": in_(comment_ids)},
            {"read_by_agent": True},
        )
        if updated == 0:
            return Result.failure(ErrorKind.NOT_FOUND, "No comments found")

        logger.info(f"Marked {updated} comments read on {agent_id}")
        track_event(
            TelemetryEvents.COMMENTS_MARKED_READ, {"agent_id": agent_id, "count": updated}
        )
        return Result.success(updated)

    async def record_response(
        self,
        agent_id: str,
        text: str,
        thought: str | None = None,
        response_id: str | None = None,
        reply_to_comment_id: str | None = None,
    ) -> Result[ResponseRecorded]:
        """Store what an agent said and broadcast it to the agent's watchers.

        A reply marks the comment it answers as read.
        """
        text = text.strip()
        if not text:
            return self._reject(None, agent_id, "Response text must not be empty")

        response_id = response_id or str(uuid.uuid4())
        try:
            row = await self.store.create(
                AGENT_RESPONSES,
                {
                    "response_id": response_id,
                    "agent_id": agent_id,
                    "text": text,
                    "thought": thought,
                    "reply_to_comment_id": reply_to_comment_id,
                    "created_at": datetime.now(UTC),
                },
            )
        except DuplicateRecordError:
            row = await self.store.find_by_id(AGENT_RESPONSES, response_id)
            if row is None:
                raise
            if row["agent_id"] != agent_id:
                return self._reject(None, agent_id, f"Response id {response_id} is already used")
            logger.info(f"Duplicate response {response_id} on {agent_id} ignored")
            return Result.success(ResponseRecorded(response=AgentResponse(**row), created=False))

        if reply_to_comment_id:
            await self.store.update(
                COMMENTS,
                {"agent_id": agent_id, "comment_id": reply_to_comment_id},
                {"read_by_agent": True},
            )

        response = AgentResponse(**row)
        track_event(
            TelemetryEvents.AGENT_RESPONSE_RECORDED,
            {"response_id": response_id, "agent_id": agent_id},
        )
        self.notifier.notify_agent(agent_id, "agent_response", response.model_dump(mode="json"))
        return Result.success(ResponseRecorded(response=response, created=True))

    async def chat_history(
        self, agent_id: str, limit: int = 50, before: datetime | None = None
    ) -> ChatHistory:
        """Comments and responses older than `before`, newest first."""
        where = {"agent_id": agent_id, "created_at": lt(before or datetime.now(UTC))}
        comments = await self.store.find_where(
            COMMENTS, where, order_by=NEWEST_FIRST, limit=limit + 1
        )
        responses = await self.store.find_where(
            AGENT_RESPONSES, where, order_by=NEWEST_FIRST, limit=limit + 1
        )

        entries = [
            ChatEntry(
                id=row["comment_id"],
                type=ChatEntryType.COMMENT,
                message=row["message"],
                sender=row["user_id"],
                handle=row.get("handle"),
                avatar=row.get("avatar"),
                created_at=row["created_at"],
            )
            for row in comments
        ] + [
            ChatEntry(
                id=row["response_id"],
                type=ChatEntryType.RESPONSE,
                message=row["text"],
                sender=agent_id,
                reply_to_comment_id=row.get("reply_to_comment_id"),
                created_at=row["created_at"],
            )
            for row in responses
        ]
        entries.sort(key=lambda entry: entry.created_at, reverse=True)

        return ChatHistory(entries=entries[:limit], has_more=len(entries) > limit)

    async def stats(self, agent_id: str) -> AgentChatStats:
        return AgentChatStats(
            comments=await self.store.count(COMMENTS, {"agent_id": agent_id}),
            unread_comments=await self.store.count(
                COMMENTS, {"agent_id": agent_id, "read_by_agent": False}
            ),
            responses=await self.store.count(AGENT_RESPONSES, {"agent_id": agent_id}),
        )

    @staticmethod
    def _reject(user_id: str | None, agent_id: str, detail: str) -> Result:
        logger.warning(f"Chat request on {agent_id} rejected (user={user_id}): {detail}")
        return Result.failure(ErrorKind.INVALID_REQUEST, detail)
