"""
Reply Repository for the Course Forum

Creates, lists, and deletes replies and keeps the parent thread's
reply counter in step with them.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from core.document_store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore
from core.error_handler import (
    ErrorHandler,
    ForumError,
    ReplyNotFound,
    ThreadNotFound,
    ValidationError,
    get_error_handler,
)
from logic.thread_repository import ThreadRepository
from models.forum import (
    REPLIES_COLLECTION,
    THREADS_COLLECTION,
    OperationResult,
    Reply,
    ReplyListResult,
)


logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_oldest_first(replies: List[Reply]) -> List[Reply]:
    """Sort by creation time ascending; replies without one go last."""
    return sorted(
        replies,
        key=lambda r: (r.created_at is None, r.created_at or _EPOCH),
    )


class ReplyRepository:
    """
    CRUD operations over reply documents.

    A reply write and the matching counter update on its thread go through
    one write batch when the store supports batches. Otherwise they are two
    separate writes and a failure in between leaves replyCount behind; the
    reconciliation routine in ``ForumService`` repairs that.
    """

    def __init__(
        self,
        store: DocumentStore,
        threads: ThreadRepository,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.store = store
        self.threads = threads
        self.error_handler = error_handler or get_error_handler()

    def _report(self, error: ForumError, operation: str, **context) -> str:
        return self.error_handler.handle_error(error, operation, **context).user_message

    async def create_reply(
        self,
        thread_id: str,
        content: str,
        author_id: str,
        author_name: str,
        author_email: Optional[str] = None,
        author_avatar: Optional[str] = None
    ) -> OperationResult:
        """
        Add a reply to a thread and bump the thread's counters.

        Args:
            thread_id: Parent thread id
            content: Reply body (must not be blank)
            author_id: Id of the authenticated author
            author_name: Display name, also stored as the thread's lastReplyBy
            author_email: Optional author email
            author_avatar: Optional avatar URL

        Returns:
            OperationResult with the new reply id on success
        """
        try:
            if not author_id:
                raise ValidationError("You must be logged in to reply")
            if not content or not content.strip():
                raise ValidationError("Reply cannot be empty.")

            thread = await self.store.get(THREADS_COLLECTION, thread_id)
            if thread is None:
                raise ThreadNotFound(thread_id)
            if thread.get("isLocked"):
                raise ValidationError("This thread is locked")

            fields = {
                "threadId": thread_id,
                "content": content,
                "authorId": author_id,
                "authorName": author_name,
                "authorEmail": author_email,
                "authorAvatar": author_avatar,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "likedBy": [],
                "reportedBy": [],
            }
            counters = self.threads.counter_fields(1, author_name)

            if self.store.supports_batches:
                batch = self.store.batch()
                reply_id = batch.insert(REPLIES_COLLECTION, fields)
                batch.update(THREADS_COLLECTION, thread_id, counters)
                await batch.commit()
            else:
                reply_id = await self.store.insert(REPLIES_COLLECTION, fields)
        except ForumError as e:
            return OperationResult(
                success=False,
                error=self._report(e, "create_reply", thread_id=thread_id, user_id=author_id)
            )

        if not self.store.supports_batches:
            try:
                await self.threads.update_thread_counters(thread_id, 1, author_name)
            except ThreadNotFound as e:
                # Thread deleted after the check above; the reply must not outlive it
                try:
                    await self.remove_reply_document(reply_id)
                except ForumError as cleanup_error:
                    self.error_handler.handle_error(
                        cleanup_error, "remove_orphan_reply", thread_id=thread_id,
                        reply_id=reply_id, show_notification=False
                    )
                return OperationResult(
                    success=False,
                    error=self._report(e, "create_reply", thread_id=thread_id, user_id=author_id)
                )
            except ForumError as e:
                # The reply exists; replyCount stays behind until reconciled
                self.error_handler.handle_error(
                    e, "update_reply_count", thread_id=thread_id,
                    reply_id=reply_id, show_notification=False
                )

        logger.info(f"Created reply {reply_id[:8]} in thread {thread_id[:8]}")
        return OperationResult(success=True, id=reply_id)

    async def get_replies(self, thread_id: str) -> ReplyListResult:
        """
        Fetch every reply of a thread, oldest first.

        Args:
            thread_id: Thread identifier

        Returns:
            ReplyListResult; on failure an empty list with the error message
        """
        try:
            snapshots = await self._thread_replies(thread_id)
        except ForumError as e:
            return ReplyListResult(
                success=False,
                error=self._report(e, "get_replies", thread_id=thread_id)
            )

        replies = sort_oldest_first([Reply.from_snapshot(s) for s in snapshots])
        logger.debug(f"Retrieved {len(replies)} replies for thread {thread_id[:8]}")
        return ReplyListResult(success=True, replies=replies)

    async def delete_reply(self, reply_id: str, thread_id: str) -> OperationResult:
        """
        Delete a reply and decrement its thread's replyCount.

        A reply whose thread no longer exists is deleted without touching
        any counter.

        Args:
            reply_id: Reply identifier
            thread_id: Thread the reply belongs to
        """
        try:
            snapshot = await self.store.get(REPLIES_COLLECTION, reply_id)
            if snapshot is None:
                raise ReplyNotFound(reply_id)
            if snapshot.get("threadId") != thread_id:
                raise ValidationError("Reply does not belong to this thread")

            counters = self.threads.counter_fields(-1)
            if await self.store.get(THREADS_COLLECTION, thread_id) is None:
                logger.warning(f"Reply {reply_id[:8]} outlived thread {thread_id[:8]}")
                await self.store.delete(REPLIES_COLLECTION, reply_id)
            elif self.store.supports_batches:
                batch = self.store.batch()
                batch.delete(REPLIES_COLLECTION, reply_id)
                batch.update(THREADS_COLLECTION, thread_id, counters)
                await batch.commit()
            else:
                await self.store.delete(REPLIES_COLLECTION, reply_id)
                await self.threads.update_thread_counters(thread_id, -1)
        except ForumError as e:
            return OperationResult(
                success=False,
                error=self._report(e, "delete_reply", thread_id=thread_id, reply_id=reply_id)
            )

        logger.info(f"Deleted reply {reply_id[:8]} from thread {thread_id[:8]}")
        return OperationResult(success=True, id=reply_id)

    async def reply_ids_for_thread(self, thread_id: str) -> List[str]:
        """
        Ids of every reply referencing a thread.

        Raises:
            ForumError: If the query fails
        """
        snapshots = await self._thread_replies(thread_id)
        return [s.id for s in snapshots]

    async def _thread_replies(self, thread_id: str) -> List[DocumentSnapshot]:
        if not thread_id or not isinstance(thread_id, str):
            raise ValidationError("Thread id is required")
        return await self.store.query(REPLIES_COLLECTION, where=("threadId", thread_id))

    async def remove_reply_document(self, reply_id: str) -> None:
        """Delete a reply document without touching counters."""
        await self.store.delete(REPLIES_COLLECTION, reply_id)
