"""Tests for agent chat: comments, responses and history."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

from agent_booking_api.core import ErrorKind, build_core
from agent_booking_api.storage import AGENT_RESPONSES, COMMENTS, USERS


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id}


async def _seed_comment(store, comment_id, agent_id="borp", minutes_ago=0.0, read=False):
    await store.create(
        COMMENTS,
        {
            "comment_id": comment_id,
            "agent_id": agent_id,
            "user_id": "alice",
            "message": f"comment {comment_id}",
            "handle": "alice",
            "avatar": None,
            "read_by_agent": read,
            "created_at": datetime.now(UTC) - timedelta(minutes=minutes_ago),
        },
    )


async def _seed_response(store, response_id, agent_id="borp", minutes_ago=0.0):
    await store.create(
        AGENT_RESPONSES,
        {
            "response_id": response_id,
            "agent_id": agent_id,
            "text": f"response {response_id}",
            "thought": None,
            "reply_to_comment_id": None,
            "created_at": datetime.now(UTC) - timedelta(minutes=minutes_ago),
        },
    )


@pytest.mark.asyncio
class TestComments:
    """Test posting comments."""

    async def test_post_comment(self, core, make_user, hub):
        """Test that a comment is stored and broadcast to the agent's watchers."""
        await make_user("alice")

        result = await core.chat.post_comment("alice", "borp", "  hello there  ")

        assert result.ok
        posted = result.value
        assert posted.created is True
        assert posted.comment.message == "hello there"
        assert posted.comment.handle == "alice"
        assert posted.comment.read_by_agent is False
        broadcast = hub.of("agent:borp", "comment_received")
        assert [p["comment_id"] for p in broadcast] == [posted.comment.comment_id]

    async def test_same_id_posted_twice(self, core, make_user, store, hub):
        """Test that re-posting a comment id stores it once."""
        await make_user("alice")

        first = await core.chat.post_comment("alice", "borp", "hi", comment_id="c-1")
        second = await core.chat.post_comment("alice", "borp", "hi", comment_id="c-1")

        assert first.value.created is True
        assert second.value.created is False
        assert second.value.comment.comment_id == "c-1"
        assert await store.count(COMMENTS) == 1
        assert len(hub.of("agent:borp", "comment_received")) == 1

    async def test_id_taken_by_another_user(self, core, make_user):
        """Test that a comment id cannot be reused by someone else."""
        await make_user("alice")
        await make_user("bob")
        await core.chat.post_comment("alice", "borp", "hi", comment_id="c-1")

        result = await core.chat.post_comment("bob", "borp", "hi", comment_id="c-1")

        assert result.error == ErrorKind.INVALID_REQUEST

    async def test_racing_duplicate_posts(self, yielding_store, test_settings, hub):
        """Test that two simultaneous posts with one id create one comment."""
        core = build_core(yielding_store, test_settings, hub)
        try:
            await yielding_store.create(
                USERS, {"user_id": "alice", "points": 100, "is_active": True, "total_sessions": 0}
            )

            results = await asyncio.gather(
                core.chat.post_comment("alice", "borp", "hi", comment_id="c-1"),
                core.chat.post_comment("alice", "borp", "hi", comment_id="c-1"),
            )

            assert sorted(r.value.created for r in results) == [False, True]
            assert await yielding_store.count(COMMENTS) == 1
        finally:
            await core.shutdown()

    @pytest.mark.parametrize("message", ["", "   ", "x" * 501])
    async def test_invalid_message(self, core, make_user, store, message):
        """Test that blank and oversized comments are refused."""
        await make_user("alice")

        result = await core.chat.post_comment("alice", "borp", message)

        assert result.error == ErrorKind.INVALID_REQUEST
        assert await store.count(COMMENTS) == 0

    async def test_unknown_and_deactivated_users(self, core, make_user):
        """Test who may not comment."""
        await make_user("gone", is_active=False)

        missing = await core.chat.post_comment("ghost", "borp", "hi")
        deactivated = await core.chat.post_comment("gone", "borp", "hi")

        assert missing.error == ErrorKind.USER_NOT_FOUND
        assert deactivated.error == ErrorKind.ACCOUNT_DEACTIVATED


@pytest.mark.asyncio
class TestUnreadAndMarkRead:
    """Test the agent's view of unread comments."""

    async def test_unread_window_and_order(self, core, store):
        """Test that only recent unread comments for the agent come back, newest first."""
        await _seed_comment(store, "old", minutes_ago=30)
        await _seed_comment(store, "read", minutes_ago=2, read=True)
        await _seed_comment(store, "other-agent", agent_id="zorp", minutes_ago=1)
        await _seed_comment(store, "earlier", minutes_ago=5)
        await _seed_comment(store, "latest", minutes_ago=1)

        unread = await core.chat.unread_comments("borp")

        assert [c.comment_id for c in unread.comments] == ["latest", "earlier"]
        assert unread.has_more is False

    async def test_unread_limit(self, core, store):
        """Test that has_more reports comments beyond the limit."""
        for i in range(3):
            await _seed_comment(store, f"c-{i}", minutes_ago=3 - i)

        unread = await core.chat.unread_comments("borp", limit=2)

        assert [c.comment_id for c in unread.comments] == ["c-2", "c-1"]
        assert unread.has_more is True

    async def test_mark_read(self, core, store):
        """Test that marked comments drop out of the unread list."""
        await _seed_comment(store, "a", minutes_ago=2)
        await _seed_comment(store, "b", minutes_ago=1)
        await _seed_comment(store, "z", agent_id="zorp", minutes_ago=1)

        result = await core.chat.mark_read("borp", ["a", "z"])

        assert result.value == 1
        unread = await core.chat.unread_comments("borp")
        assert [c.comment_id for c in unread.comments] == ["b"]
        assert (await store.find_by_id(COMMENTS, "z"))["read_by_agent"] is False

    async def test_mark_read_nothing_found(self, core):
        """Test marking ids that do not exist."""
        assert (await core.chat.mark_read("borp", ["nope"])).error == ErrorKind.NOT_FOUND
        assert (await core.chat.mark_read("borp", [])).error == ErrorKind.INVALID_REQUEST


@pytest.mark.asyncio
class TestResponsesAndHistory:
    """Test agent responses, chat history and stats."""

    async def test_response_marks_reply_read(self, core, store, hub):
        """Test that replying to a comment marks it read and broadcasts."""
        await _seed_comment(store, "c-1")

        result = await core.chat.record_response(
            "borp", "Hello alice", thought="be nice", reply_to_comment_id="c-1"
        )

        assert result.ok
        assert result.value.created is True
        assert (await store.find_by_id(COMMENTS, "c-1"))["read_by_agent"] is True
        broadcast = hub.of("agent:borp", "agent_response")
        assert broadcast[0]["text"] == "Hello alice"

    async def test_duplicate_response(self, core, store):
        """Test that a retried response is stored once."""
        await core.chat.record_response("borp", "hi", response_id="r-1")
        again = await core.chat.record_response("borp", "hi", response_id="r-1")

        assert again.value.created is False
        assert await store.count(AGENT_RESPONSES) == 1

    async def test_blank_response(self, core):
        """Test that an empty response is refused."""
        result = await core.chat.record_response("borp", "   ")
        assert result.error == ErrorKind.INVALID_REQUEST

    async def test_history_merges_newest_first(self, core, store):
        """Test that comments and responses interleave by time."""
        await _seed_comment(store, "c-1", minutes_ago=4)
        await _seed_response(store, "r-1", minutes_ago=3)
        await _seed_comment(store, "c-2", minutes_ago=2)
        await _seed_response(store, "r-2", minutes_ago=1)
        await _seed_comment(store, "elsewhere", agent_id="zorp", minutes_ago=1)

        history = await core.chat.chat_history("borp")

        assert [(e.id, e.type) for e in history.entries] == [
            ("r-2", "response"),
            ("c-2", "comment"),
            ("r-1", "response"),
            ("c-1", "comment"),
        ]
        assert history.entries[0].sender == "borp"
        assert history.entries[1].sender == "alice"
        assert history.has_more is False

    async def test_history_paging(self, core, store):
        """Test paging backwards with before."""
        for i in range(5):
            await _seed_comment(store, f"c-{i}", minutes_ago=10 - i)

        first = await core.chat.chat_history("borp", limit=2)
        second = await core.chat.chat_history("borp", limit=2, before=first.oldest)

        assert [e.id for e in first.entries] == ["c-4", "c-3"]
        assert first.has_more is True
        assert [e.id for e in second.entries] == ["c-2", "c-1"]

    async def test_stats(self, core, store):
        """Test per-agent chat counters."""
        await _seed_comment(store, "a")
        await _seed_comment(store, "b", read=True)
        await _seed_comment(store, "z", agent_id="zorp")
        await _seed_response(store, "r")

        stats = await core.chat.stats("borp")

        assert (stats.comments, stats.unread_comments, stats.responses) == (2, 1, 1)


@pytest.mark.asyncio
class TestChatAPI:
    """Test the chat endpoints."""

    async def test_post_comment_idempotent(self, client: AsyncClient):
        """Test 201 on first post and 200 on a repeated id."""
        body = {"message": "hello", "comment_id": "c-1"}

        first = await client.post("/agents/borp/comments", json=body, headers=_as("alice"))
        second = await client.post("/agents/borp/comments", json=body, headers=_as("alice"))

        assert first.status_code == 201
        assert first.json()["user_id"] == "alice"
        assert second.status_code == 200
        assert second.json()["comment_id"] == "c-1"

    async def test_blank_comment_rejected(self, client: AsyncClient):
        """Test request validation of the message."""
        response = await client.post(
            "/agents/borp/comments", json={"message": "   "}, headers=_as("alice")
        )
        assert response.status_code == 422

    async def test_unread_and_mark_read(self, client: AsyncClient):
        """Test the agent-side read flow."""
        await client.post(
            "/agents/borp/comments", json={"message": "hi", "comment_id": "c-1"}, headers=_as("a")
        )

        unread = await client.get("/agents/borp/comments/unread")
        assert unread.status_code == 200
        assert unread.json()["count"] == 1

        marked = await client.post("/agents/borp/comments/mark-read", json={"comment_ids": ["c-1"]})
        assert marked.status_code == 200
        assert marked.json()["modified_count"] == 1

        missing = await client.post("/agents/borp/comments/mark-read", json={"comment_ids": ["x"]})
        assert missing.status_code == 404
        assert missing.json()["detail"]["error"] == "not_found"

    async def test_responses_history_and_stats(self, client: AsyncClient):
        """Test recording a response and reading the chat back."""
        await client.post(
            "/agents/borp/comments", json={"message": "hi", "comment_id": "c-1"}, headers=_as("a")
        )
        recorded = await client.post(
            "/agents/borp/responses",
            json={"text": "hello a", "response_id": "r-1", "reply_to_comment_id": "c-1"},
        )
        assert recorded.status_code == 201

        history = await client.get("/agents/borp/chat-history", params={"limit": 10})
        assert history.status_code == 200
        data = history.json()
        assert {e["id"] for e in data["chat_history"]} == {"c-1", "r-1"}
        assert data["has_more"] is False

        stats = (await client.get("/agents/borp/stats")).json()
        assert stats == {"agent_id": "borp", "comments": 1, "unread_comments": 0, "responses": 1}
