"""
Tests for the Reply Repository

Tests reply creation against open and locked threads, oldest-first
listing, deletion, and the thread counters that follow replies.
"""

import pytest
import pytest_asyncio

from core.error_handler import ErrorHandler, StoreWriteError
from core.sql_store import SQLDocumentStore
from logic.reply_repository import ReplyRepository
from logic.thread_repository import ThreadRepository
from models.forum import REPLIES_COLLECTION, THREADS_COLLECTION


@pytest.fixture
def store(tmp_path):
    """Create and initialize a document store."""
    store = SQLDocumentStore(tmp_path / "test.db")
    store.initialize_database()
    yield store
    store.close()


@pytest.fixture
def threads(store):
    """Create a ThreadRepository."""
    return ThreadRepository(store, ErrorHandler())


@pytest.fixture
def replies(store, threads):
    """Create a ReplyRepository sharing the thread repository."""
    return ReplyRepository(store, threads, ErrorHandler())


@pytest_asyncio.fixture
async def thread_id(threads):
    """Create a thread to reply to."""
    result = await threads.create_thread(
        "Office hours", "When are office hours this week?", "courses", "user-1", "Alice"
    )
    return result.id


class TestCreateReply:
    """Test reply creation."""

    @pytest.mark.asyncio
    async def test_replies_in_creation_order(self, replies, store, thread_id):
        """Test two replies come back in order and are counted."""
        r1 = await replies.create_reply(thread_id, "Tuesday at 3pm", "user-2", "Bob")
        r2 = await replies.create_reply(thread_id, "And Thursday too", "user-3", "Carol")
        assert r1.success and r2.success

        result = await replies.get_replies(thread_id)
        assert result.success
        assert [r.id for r in result.replies] == [r1.id, r2.id]

        thread = await store.get(THREADS_COLLECTION, thread_id)
        assert thread.get("replyCount") == 2
        assert thread.get("lastReplyBy") == "Carol"

    @pytest.mark.asyncio
    async def test_reply_bumps_last_reply_at(self, replies, store, thread_id):
        """Test lastReplyAt moves forward with a new reply."""
        before = (await store.get(THREADS_COLLECTION, thread_id)).get("lastReplyAt")

        await replies.create_reply(thread_id, "Tuesday at 3pm", "user-2", "Bob")

        after = (await store.get(THREADS_COLLECTION, thread_id)).get("lastReplyAt")
        assert after > before

    @pytest.mark.asyncio
    async def test_reply_requires_author(self, replies, thread_id):
        """Test anonymous users cannot reply."""
        result = await replies.create_reply(thread_id, "Hello there", None, "Anon")

        assert not result.success
        assert result.error == "You must be logged in to reply"

    @pytest.mark.asyncio
    async def test_blank_reply_rejected(self, replies, store, thread_id):
        """Test whitespace-only replies are rejected and nothing is written."""
        result = await replies.create_reply(thread_id, "   \n", "user-2", "Bob")

        assert not result.success
        assert result.error == "Reply cannot be empty."
        assert await store.query(REPLIES_COLLECTION) == []

    @pytest.mark.asyncio
    async def test_reply_to_missing_thread(self, replies, store):
        """Test replying to a missing thread creates no orphan."""
        result = await replies.create_reply("missing", "Hello there", "user-2", "Bob")

        assert not result.success
        assert result.error == "Thread not found"
        assert await store.query(REPLIES_COLLECTION) == []

    @pytest.mark.asyncio
    async def test_reply_to_locked_thread(self, replies, threads, thread_id):
        """Test locked threads refuse replies."""
        await threads.set_locked(thread_id, True)

        result = await replies.create_reply(thread_id, "Hello there", "user-2", "Bob")
        assert not result.success
        assert result.error == "This thread is locked"

    @pytest.mark.asyncio
    async def test_batch_failure_writes_nothing(self, replies, store, thread_id, monkeypatch):
        """Test a failed batch leaves neither reply nor counter change."""
        def failing(operations):
            raise StoreWriteError("disk full")

        monkeypatch.setattr(store, "_commit_batch_sync", failing)
        result = await replies.create_reply(thread_id, "Hello there", "user-2", "Bob")

        assert not result.success
        assert result.error == "disk full"
        assert await store.query(REPLIES_COLLECTION) == []
        assert (await store.get(THREADS_COLLECTION, thread_id)).get("replyCount") == 0

    @pytest.mark.asyncio
    async def test_unbatched_counter_failure_keeps_reply(self, replies, store, thread_id, monkeypatch):
        """Test without batches a failed counter update still keeps the reply."""
        monkeypatch.setattr(store, "supports_batches", False)

        async def failing(*args, **kwargs):
            raise StoreWriteError("quota exceeded")

        monkeypatch.setattr(replies.threads, "update_thread_counters", failing)
        result = await replies.create_reply(thread_id, "Hello there", "user-2", "Bob")

        assert result.success
        assert len(await store.query(REPLIES_COLLECTION)) == 1
        assert (await store.get(THREADS_COLLECTION, thread_id)).get("replyCount") == 0


class TestGetReplies:
    """Test reply listing."""

    @pytest.mark.asyncio
    async def test_only_replies_of_thread(self, replies, threads, thread_id):
        """Test replies of other threads are excluded."""
        other = await threads.create_thread(
            "Another thread", "Unrelated discussion here", "general", "user-1", "Alice"
        )
        await replies.create_reply(thread_id, "Reply on first", "user-2", "Bob")
        await replies.create_reply(other.id, "Reply on second", "user-2", "Bob")

        result = await replies.get_replies(thread_id)
        assert [r.content for r in result.replies] == ["Reply on first"]

    @pytest.mark.asyncio
    async def test_missing_thread_id(self, replies):
        """Test a missing thread id is reported, not raised."""
        result = await replies.get_replies(None)

        assert not result.success
        assert result.error == "Thread id is required"

    @pytest.mark.asyncio
    async def test_no_replies(self, replies, thread_id):
        """Test a thread with no replies returns an empty list."""
        result = await replies.get_replies(thread_id)

        assert result.success
        assert result.replies == []


class TestDeleteReply:
    """Test reply deletion."""

    @pytest.mark.asyncio
    async def test_delete_decrements_count(self, replies, store, thread_id):
        """Test deleting a reply removes it and decrements replyCount."""
        r1 = await replies.create_reply(thread_id, "First reply", "user-2", "Bob")
        await replies.create_reply(thread_id, "Second reply", "user-3", "Carol")

        result = await replies.delete_reply(r1.id, thread_id)
        assert result.success

        assert await store.get(REPLIES_COLLECTION, r1.id) is None
        assert (await store.get(THREADS_COLLECTION, thread_id)).get("replyCount") == 1

    @pytest.mark.asyncio
    async def test_delete_missing_reply(self, replies, thread_id):
        """Test deleting a missing reply fails."""
        result = await replies.delete_reply("missing", thread_id)

        assert not result.success
        assert result.error == "Reply not found"

    @pytest.mark.asyncio
    async def test_delete_with_wrong_thread(self, replies, store, thread_id):
        """Test a reply cannot be deleted through another thread."""
        r1 = await replies.create_reply(thread_id, "First reply", "user-2", "Bob")

        result = await replies.delete_reply(r1.id, "other-thread")

        assert not result.success
        assert await store.get(REPLIES_COLLECTION, r1.id) is not None

    @pytest.mark.asyncio
    async def test_unbatched_delete(self, replies, store, thread_id, monkeypatch):
        """Test deletion through separate writes."""
        monkeypatch.setattr(store, "supports_batches", False)
        r1 = await replies.create_reply(thread_id, "First reply", "user-2", "Bob")

        result = await replies.delete_reply(r1.id, thread_id)

        assert result.success
        assert (await store.get(THREADS_COLLECTION, thread_id)).get("replyCount") == 0

    @pytest.mark.asyncio
    async def test_delete_reply_of_deleted_thread(self, replies, store, thread_id):
        """Test a reply left behind by a deleted thread can still be removed."""
        r1 = await replies.create_reply(thread_id, "First reply", "user-2", "Bob")
        await store.delete(THREADS_COLLECTION, thread_id)

        result = await replies.delete_reply(r1.id, thread_id)

        assert result.success
        assert await store.get(REPLIES_COLLECTION, r1.id) is None
        assert await store.get(THREADS_COLLECTION, thread_id) is None

    @pytest.mark.asyncio
    async def test_unbatched_reply_to_thread_deleted_mid_write(self, replies, store, thread_id, monkeypatch):
        """Test a reply whose thread vanishes before the counter update is removed."""
        monkeypatch.setattr(store, "supports_batches", False)
        insert = store.insert

        async def insert_then_delete_thread(collection, fields, document_id=None):
            reply_id = await insert(collection, fields, document_id)
            await store.delete(THREADS_COLLECTION, thread_id)
            return reply_id

        monkeypatch.setattr(store, "insert", insert_then_delete_thread)
        result = await replies.create_reply(thread_id, "Hello there", "user-2", "Bob")

        assert not result.success
        assert result.error == "Thread not found"
        assert await store.query(REPLIES_COLLECTION) == []
