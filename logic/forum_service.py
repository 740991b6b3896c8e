"""
Forum Service for the Course Forum

Orchestrates the thread and reply repositories and the engagement engine
into the operations a forum UI needs, including cascade delete and
reply count reconciliation.
"""

import asyncio
import logging
from typing import Iterable, Optional, Union

from config.config_manager import ForumConfig
from core.document_store import DocumentSnapshot, DocumentStore
from core.error_handler import ErrorHandler, ForumError, ThreadNotFound, get_error_handler
from logic.engagement import EngagementEngine, ViewTracker
from logic.reply_repository import ReplyRepository
from logic.thread_repository import ThreadRepository
from models.forum import (
    REPLIES_COLLECTION,
    THREADS_COLLECTION,
    ForumCategory,
    LikeResult,
    OperationResult,
    ReconcileResult,
    ReplyListResult,
    SearchResult,
    ThreadPage,
    ThreadResult,
)


logger = logging.getLogger(__name__)


class ForumService:
    """
    Entry point for forum operations.

    Responsibilities:
    - List threads page by page and search them
    - Open a thread, counting the view once per viewer
    - Create threads and replies, delete replies
    - Like and report threads and replies, pin and lock threads
    - Delete a thread together with all of its replies
    - Repair a thread's replyCount from its replies
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[ForumConfig] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        """
        Initialize ForumService.

        Args:
            store: Document store holding the forum collections
            config: Forum settings; defaults to ForumConfig()
            error_handler: Error handler; defaults to the global one
        """
        self.store = store
        self.config = config or ForumConfig()
        self.error_handler = error_handler or get_error_handler()

        self.threads = ThreadRepository(
            store,
            self.error_handler,
            view_increment=self.config.view_increment,
            search_limit=self.config.search_limit
        )
        self.replies = ReplyRepository(store, self.threads, self.error_handler)
        self.engagement = EngagementEngine(store, self.error_handler)
        self.view_tracker = ViewTracker(self.config.view_dedupe_seconds)

    # Threads

    async def list_threads(
        self,
        category: Union[str, ForumCategory, None] = None,
        cursor: Optional[DocumentSnapshot] = None,
        page_size: Optional[int] = None
    ) -> ThreadPage:
        if page_size is None:
            page_size = self.config.page_size
        return await self.threads.get_threads(category, page_size, cursor)

    async def search(
        self,
        term: str,
        category: Union[str, ForumCategory, None] = None
    ) -> SearchResult:
        return await self.threads.search_threads(term, category)

    async def open_thread(self, thread_id: str, viewer_key: Optional[str] = None) -> ThreadResult:
        """
        Read a thread for display.

        With a ``viewer_key`` (user id or session id) the view is counted
        as one whole view the first time within the dedupe window and not
        at all on repeats. Without one, the repository's per-read
        increment applies.
        """
        if viewer_key is None:
            return await self.threads.get_thread(thread_id)

        increment = 1.0 if self.view_tracker.should_count(viewer_key, thread_id) else 0
        return await self.threads.get_thread(thread_id, view_increment=increment)

    async def create_thread(
        self,
        title: str,
        content: str,
        category: Union[str, ForumCategory],
        author_id: str,
        author_name: str,
        tags: Union[str, Iterable[str], None] = None,
        author_email: Optional[str] = None,
        author_avatar: Optional[str] = None
    ) -> OperationResult:
        return await self.threads.create_thread(
            title, content, category, author_id, author_name,
            tags=tags, author_email=author_email, author_avatar=author_avatar
        )

    async def delete_thread(self, thread_id: str) -> OperationResult:
        """
        Delete a thread and every reply referencing it.

        The thread is locked first so no new replies are accepted, then
        replies are removed concurrently and the thread last. An
        interruption part-way leaves a locked thread with fewer replies,
        never a reply without its thread. Replies that committed while the
        deletion was running are swept after the thread is gone. Replies
        already orphaned by an earlier run are removed too when the thread
        itself no longer exists.
        """
        try:
            if await self.store.get(THREADS_COLLECTION, thread_id) is not None:
                await self.store.update(THREADS_COLLECTION, thread_id, {"isLocked": True})

            removed = await self._remove_replies(thread_id)
            await self.threads.remove_thread_document(thread_id)
            removed += await self._remove_replies(thread_id)
        except ForumError as e:
            context = self.error_handler.handle_error(e, "delete_thread", thread_id=thread_id)
            return OperationResult(success=False, error=context.user_message)

        logger.info(f"Deleted thread {thread_id[:8]} and {removed} replies")
        return OperationResult(success=True, id=thread_id)

    async def _remove_replies(self, thread_id: str) -> int:
        reply_ids = await self.replies.reply_ids_for_thread(thread_id)
        await asyncio.gather(
            *(self.replies.remove_reply_document(reply_id) for reply_id in reply_ids)
        )
        return len(reply_ids)

    async def set_pinned(self, thread_id: str, pinned: bool) -> OperationResult:
        return await self.threads.set_pinned(thread_id, pinned)

    async def set_locked(self, thread_id: str, locked: bool) -> OperationResult:
        return await self.threads.set_locked(thread_id, locked)

    # Replies

    async def get_replies(self, thread_id: str) -> ReplyListResult:
        return await self.replies.get_replies(thread_id)

    async def create_reply(
        self,
        thread_id: str,
        content: str,
        author_id: str,
        author_name: str,
        author_email: Optional[str] = None,
        author_avatar: Optional[str] = None
    ) -> OperationResult:
        return await self.replies.create_reply(
            thread_id, content, author_id, author_name,
            author_email=author_email, author_avatar=author_avatar
        )

    async def delete_reply(self, reply_id: str, thread_id: str) -> OperationResult:
        return await self.replies.delete_reply(reply_id, thread_id)

    # Engagement

    async def toggle_thread_like(self, thread_id: str, user_id: Optional[str]) -> LikeResult:
        return await self.engagement.toggle_thread_like(thread_id, user_id)

    async def toggle_reply_like(self, reply_id: str, user_id: Optional[str]) -> LikeResult:
        return await self.engagement.toggle_reply_like(reply_id, user_id)

    async def report_thread(self, thread_id: str, user_id: Optional[str]) -> OperationResult:
        return await self.engagement.report(THREADS_COLLECTION, thread_id, user_id)

    async def report_reply(self, reply_id: str, user_id: Optional[str]) -> OperationResult:
        return await self.engagement.report(REPLIES_COLLECTION, reply_id, user_id)

    # Maintenance

    async def reconcile_reply_count(self, thread_id: str) -> ReconcileResult:
        """
        Recompute a thread's replyCount from a full scan of its replies.

        Safe to run repeatedly; the stored count is overwritten with the
        number of replies found.
        """
        try:
            snapshot = await self.store.get(THREADS_COLLECTION, thread_id)
            if snapshot is None:
                raise ThreadNotFound(thread_id)
            previous = int(snapshot.get("replyCount") or 0)

            reply_ids = await self.replies.reply_ids_for_thread(thread_id)
            await self.store.update(THREADS_COLLECTION, thread_id, {"replyCount": len(reply_ids)})
        except ForumError as e:
            context = self.error_handler.handle_error(e, "reconcile_reply_count", thread_id=thread_id)
            return ReconcileResult(success=False, error=context.user_message)

        if previous != len(reply_ids):
            logger.warning(
                f"Thread {thread_id[:8]} replyCount was {previous}, corrected to {len(reply_ids)}"
            )
        return ReconcileResult(success=True, reply_count=len(reply_ids), previous_count=previous)
