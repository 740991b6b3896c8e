"""
Thread Repository for the Course Forum

Creates, lists, searches, and maintains forum thread documents.
Listing and search use single-predicate queries and sort on the client,
so the store never needs a composite index.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from core.document_store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Increment,
)
from core.error_handler import (
    ErrorHandler,
    ForumError,
    NotFoundError,
    ThreadNotFound,
    ValidationError,
    get_error_handler,
)
from models.forum import (
    THREADS_COLLECTION,
    ForumCategory,
    OperationResult,
    SearchResult,
    Thread,
    ThreadPage,
    ThreadResult,
)


logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 200
CONTENT_MIN_LENGTH = 10
CONTENT_MAX_LENGTH = 5000

DEFAULT_PAGE_SIZE = 10
DEFAULT_SEARCH_LIMIT = 20
DEFAULT_VIEW_INCREMENT = 0.5

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def normalize_category(category: Union[str, ForumCategory]) -> str:
    """Return the stored value of a category, rejecting unknown ones."""
    try:
        return ForumCategory(category).value
    except ValueError:
        raise ValidationError(f"Unknown category: {category}")


def normalize_tags(tags: Union[str, Iterable[str], None]) -> List[str]:
    """Accept a comma-separated string or a sequence; trim and drop empties."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [tag.strip() for tag in tags if tag and tag.strip()]


def sort_newest_first(threads: List[Thread]) -> List[Thread]:
    """Sort by creation time descending; threads without one go last."""
    return sorted(
        threads,
        key=lambda t: (t.created_at is not None, t.created_at or _EPOCH),
        reverse=True,
    )


class ThreadRepository:
    """
    CRUD and query operations over thread documents.

    Expected failures (validation, missing threads, store errors) are
    reported through result objects; they are also passed to the error
    handler so they get logged and can be shown to the user.
    """

    def __init__(
        self,
        store: DocumentStore,
        error_handler: Optional[ErrorHandler] = None,
        view_increment: float = DEFAULT_VIEW_INCREMENT,
        search_limit: int = DEFAULT_SEARCH_LIMIT
    ):
        """
        Initialize ThreadRepository.

        Args:
            store: Document store holding the threads collection
            error_handler: Error handler; defaults to the global one
            view_increment: Amount added to viewCount per read
            search_limit: Maximum number of search results
        """
        self.store = store
        self.error_handler = error_handler or get_error_handler()
        self.view_increment = view_increment
        self.search_limit = search_limit

    def _report(self, error: ForumError, operation: str, **context) -> str:
        return self.error_handler.handle_error(error, operation, **context).user_message

    def _validate(self, title: str, content: str, author_id: str) -> None:
        if not author_id:
            raise ValidationError("You must be logged in to create a thread")

        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) < TITLE_MIN_LENGTH:
            raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters long")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be less than {TITLE_MAX_LENGTH} characters long")

        content = (content or "").strip()
        if not content:
            raise ValidationError("Content is required")
        if len(content) < CONTENT_MIN_LENGTH:
            raise ValidationError(f"Content must be at least {CONTENT_MIN_LENGTH} characters long")
        if len(content) > CONTENT_MAX_LENGTH:
            raise ValidationError(f"Content must be less than {CONTENT_MAX_LENGTH} characters long")

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
        """
        Create a new thread.

        Args:
            title: Thread title (5-200 characters)
            content: Thread body (10-5000 characters)
            category: One of ForumCategory
            author_id: Id of the authenticated author
            author_name: Display name of the author
            tags: Tags as a list or comma-separated string
            author_email: Optional author email
            author_avatar: Optional avatar URL

        Returns:
            OperationResult with the new thread id on success
        """
        try:
            self._validate(title, content, author_id)
            fields = {
                "title": title.strip(),
                "content": content,
                "category": normalize_category(category),
                "tags": normalize_tags(tags),
                "authorId": author_id,
                "authorName": author_name,
                "authorEmail": author_email,
                "authorAvatar": author_avatar,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "lastReplyAt": SERVER_TIMESTAMP,
                "viewCount": 0,
                "replyCount": 0,
                "isPinned": False,
                "isLocked": False,
                "likedBy": [],
                "reportedBy": [],
            }
            thread_id = await self.store.insert(THREADS_COLLECTION, fields)
        except ForumError as e:
            return OperationResult(
                success=False,
                error=self._report(e, "create_thread", user_id=author_id)
            )

        logger.info(f"Created thread '{title.strip()}' with ID {thread_id[:8]}")
        return OperationResult(success=True, id=thread_id)

    async def get_threads(
        self,
        category: Union[str, ForumCategory, None] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[DocumentSnapshot] = None
    ) -> ThreadPage:
        """
        Fetch one page of threads, newest first.

        Args:
            category: Optional category filter
            page_size: Maximum threads per page
            cursor: Cursor returned with the previous page

        Returns:
            ThreadPage; on failure an empty page with the error message
        """
        try:
            if page_size < 1:
                raise ValidationError("Page size must be at least 1")

            where = ("category", normalize_category(category)) if category else None
            snapshots = await self.store.query(
                THREADS_COLLECTION,
                where=where,
                limit=page_size,
                start_after=cursor
            )
        except ForumError as e:
            return ThreadPage(success=False, error=self._report(e, "get_threads"))

        threads = sort_newest_first([Thread.from_snapshot(s) for s in snapshots])
        logger.debug(f"Fetched {len(threads)} threads (category={category})")

        return ThreadPage(
            success=True,
            threads=threads,
            cursor=snapshots[-1] if snapshots else None,
            has_more=len(snapshots) == page_size
        )

    async def get_thread(
        self,
        thread_id: str,
        view_increment: Optional[float] = None
    ) -> ThreadResult:
        """
        Read a thread and count a view.

        The view count update is best effort: a failure is logged and the
        thread is still returned.

        Args:
            thread_id: Thread identifier
            view_increment: Amount to add to viewCount; defaults to the
                repository setting, 0 skips counting

        Returns:
            ThreadResult with the thread as read before the increment
        """
        try:
            snapshot = await self.store.get(THREADS_COLLECTION, thread_id)
            if snapshot is None:
                raise ThreadNotFound(thread_id)
        except ForumError as e:
            return ThreadResult(
                success=False,
                error=self._report(e, "get_thread", thread_id=thread_id)
            )

        increment = self.view_increment if view_increment is None else view_increment
        if increment:
            try:
                await self.store.update(
                    THREADS_COLLECTION, thread_id, {"viewCount": Increment(increment)}
                )
            except ForumError as e:
                self.error_handler.handle_error(
                    e, "increment_view_count", thread_id=thread_id, show_notification=False
                )

        return ThreadResult(success=True, thread=Thread.from_snapshot(snapshot))

    async def search_threads(
        self,
        term: str,
        category: Union[str, ForumCategory, None] = None
    ) -> SearchResult:
        """
        Case-insensitive substring search over titles and contents.

        Results are newest first and capped at the search limit; search
        is not paginated.
        """
        try:
            needle = (term or "").strip().lower()
            if not needle:
                raise ValidationError("Search term is required")

            where = ("category", normalize_category(category)) if category else None
            snapshots = await self.store.query(THREADS_COLLECTION, where=where)
        except ForumError as e:
            return SearchResult(success=False, error=self._report(e, "search_threads"))

        matches = [
            Thread.from_snapshot(s)
            for s in snapshots
            if needle in (s.get("title") or "").lower()
            or needle in (s.get("content") or "").lower()
        ]
        logger.debug(f"Search '{term}' matched {len(matches)} threads")

        return SearchResult(
            success=True,
            threads=sort_newest_first(matches)[:self.search_limit]
        )

    def counter_fields(self, delta: int, last_reply_by: Optional[str] = None) -> Dict[str, Any]:
        """Update fields that shift replyCount by ``delta``; new replies also stamp lastReply*."""
        fields: Dict[str, Any] = {"replyCount": Increment(delta)}
        if delta > 0:
            fields["lastReplyAt"] = SERVER_TIMESTAMP
            fields["lastReplyBy"] = last_reply_by
        return fields

    async def update_thread_counters(
        self,
        thread_id: str,
        delta: int,
        last_reply_by: Optional[str] = None
    ) -> None:
        """
        Atomically shift a thread's replyCount.

        Raises:
            ThreadNotFound: If the thread is missing
            ForumError: If the write fails
        """
        try:
            await self.store.update(
                THREADS_COLLECTION, thread_id, self.counter_fields(delta, last_reply_by)
            )
        except NotFoundError:
            raise ThreadNotFound(thread_id)

    async def _set_flag(self, thread_id: str, field: str, value: bool, operation: str) -> OperationResult:
        try:
            snapshot = await self.store.get(THREADS_COLLECTION, thread_id)
            if snapshot is None:
                raise ThreadNotFound(thread_id)
            await self.store.update(
                THREADS_COLLECTION, thread_id, {field: value, "updatedAt": SERVER_TIMESTAMP}
            )
        except ForumError as e:
            return OperationResult(
                success=False,
                error=self._report(e, operation, thread_id=thread_id)
            )

        logger.info(f"Set {field}={value} on thread {thread_id[:8]}")
        return OperationResult(success=True, id=thread_id)

    async def set_pinned(self, thread_id: str, pinned: bool) -> OperationResult:
        return await self._set_flag(thread_id, "isPinned", pinned, "set_pinned")

    async def set_locked(self, thread_id: str, locked: bool) -> OperationResult:
        return await self._set_flag(thread_id, "isLocked", locked, "set_locked")

    async def remove_thread_document(self, thread_id: str) -> None:
        """
        Delete only the thread document.

        Callers must remove the thread's replies first; see
        ``ForumService.delete_thread``.
        """
        await self.store.delete(THREADS_COLLECTION, thread_id)
