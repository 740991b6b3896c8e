"""
Tests for the Engagement Engine

Tests like toggling on threads and replies, reporting, the view
deduplication window, and view count display rounding.
"""

import asyncio
import pytest

from core.error_handler import ErrorHandler
from core.sql_store import SQLDocumentStore
from logic.engagement import EngagementEngine, ViewTracker, display_view_count
from models.forum import REPLIES_COLLECTION, THREADS_COLLECTION


@pytest.fixture
def store(tmp_path):
    """Create and initialize a document store."""
    store = SQLDocumentStore(tmp_path / "test.db")
    store.initialize_database()
    yield store
    store.close()


@pytest.fixture
def engine(store):
    """Create an EngagementEngine."""
    return EngagementEngine(store, ErrorHandler())


class FakeClock:
    """Manually advanced clock for the view tracker."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestToggleLike:
    """Test like toggling."""

    @pytest.mark.asyncio
    async def test_like_then_unlike(self, engine, store):
        """Test liking twice by the same user ends unliked."""
        thread_id = await store.insert(THREADS_COLLECTION, {"title": "Thread", "likedBy": []})

        first = await engine.toggle_thread_like(thread_id, "user-1")
        assert first.success
        assert first.liked is True
        assert first.like_count == 1

        second = await engine.toggle_thread_like(thread_id, "user-1")
        assert second.liked is False
        assert second.like_count == 0

    @pytest.mark.asyncio
    async def test_likes_from_several_users(self, engine, store):
        """Test the count reflects distinct users."""
        thread_id = await store.insert(THREADS_COLLECTION, {"likedBy": ["user-1"]})

        result = await engine.toggle_thread_like(thread_id, "user-2")

        assert result.liked is True
        assert result.like_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_likes_store_user_once(self, engine, store):
        """Test two concurrent likes by one user never duplicate the user."""
        thread_id = await store.insert(THREADS_COLLECTION, {"likedBy": []})

        await asyncio.gather(
            engine.toggle_thread_like(thread_id, "user-1"),
            engine.toggle_thread_like(thread_id, "user-1"),
        )

        snapshot = await store.get(THREADS_COLLECTION, thread_id)
        assert snapshot.get("likedBy").count("user-1") <= 1

    @pytest.mark.asyncio
    async def test_like_reply(self, engine, store):
        """Test replies use the same toggle."""
        reply_id = await store.insert(REPLIES_COLLECTION, {"threadId": "t1", "likedBy": []})

        result = await engine.toggle_reply_like(reply_id, "user-1")

        assert result.liked is True
        snapshot = await store.get(REPLIES_COLLECTION, reply_id)
        assert snapshot.get("likedBy") == ["user-1"]

    @pytest.mark.asyncio
    async def test_like_without_user(self, engine, store):
        """Test anonymous likes are rejected without writing."""
        thread_id = await store.insert(THREADS_COLLECTION, {"likedBy": []})

        result = await engine.toggle_thread_like(thread_id, None)

        assert not result.success
        assert result.error == "You must be logged in to like posts"
        assert (await store.get(THREADS_COLLECTION, thread_id)).get("likedBy") == []

    @pytest.mark.asyncio
    async def test_like_missing_entities(self, engine):
        """Test missing threads and replies report not found."""
        thread_result = await engine.toggle_thread_like("missing", "user-1")
        reply_result = await engine.toggle_reply_like("missing", "user-1")

        assert thread_result.error == "Thread not found"
        assert reply_result.error == "Reply not found"


class TestReport:
    """Test reporting."""

    @pytest.mark.asyncio
    async def test_repeated_reports_counted_once(self, engine, store):
        """Test a user can only report an entity once."""
        thread_id = await store.insert(THREADS_COLLECTION, {"reportedBy": []})

        assert (await engine.report(THREADS_COLLECTION, thread_id, "user-1")).success
        assert (await engine.report(THREADS_COLLECTION, thread_id, "user-1")).success

        snapshot = await store.get(THREADS_COLLECTION, thread_id)
        assert snapshot.get("reportedBy") == ["user-1"]

    @pytest.mark.asyncio
    async def test_report_without_user(self, engine, store):
        """Test anonymous reports are rejected."""
        thread_id = await store.insert(THREADS_COLLECTION, {"reportedBy": []})

        result = await engine.report(THREADS_COLLECTION, thread_id, "")

        assert not result.success
        assert result.error == "You must be logged in to report posts"


class TestViewTracker:
    """Test view deduplication."""

    def test_repeat_within_window_not_counted(self):
        """Test a second open within the window is ignored."""
        clock = FakeClock()
        tracker = ViewTracker(window_seconds=5, clock=clock)

        assert tracker.should_count("user-1", "t1") is True
        clock.now += 1
        assert tracker.should_count("user-1", "t1") is False

    def test_counted_again_after_window(self):
        """Test the viewer counts again once the window passes."""
        clock = FakeClock()
        tracker = ViewTracker(window_seconds=5, clock=clock)

        tracker.should_count("user-1", "t1")
        clock.now += 5
        assert tracker.should_count("user-1", "t1") is True

    def test_viewers_and_threads_are_independent(self):
        """Test keys combine viewer and thread."""
        tracker = ViewTracker(window_seconds=5, clock=FakeClock())

        assert tracker.should_count("user-1", "t1") is True
        assert tracker.should_count("user-2", "t1") is True
        assert tracker.should_count("user-1", "t2") is True


class TestDisplayViewCount:
    """Test view count rounding."""

    @pytest.mark.parametrize("stored,shown", [
        (0, 0),
        (0.5, 1),
        (1.0, 1),
        (1.5, 2),
        (2.5, 3),
        (None, 0),
    ])
    def test_rounds_half_up(self, stored, shown):
        """Test stored fractional counts display rounded half up."""
        assert display_view_count(stored) == shown
