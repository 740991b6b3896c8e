"""
Engagement Engine for the Course Forum

Like toggling, reporting, and view counting for threads and replies.
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

from core.document_store import ArrayRemove, ArrayUnion, DocumentStore
from core.error_handler import (
    ErrorHandler,
    ForumError,
    NotFoundError,
    ReplyNotFound,
    ThreadNotFound,
    ValidationError,
    get_error_handler,
)
from models.forum import (
    REPLIES_COLLECTION,
    THREADS_COLLECTION,
    LikeResult,
    OperationResult,
)


logger = logging.getLogger(__name__)


def display_view_count(value: float) -> int:
    """Round a stored view count half up for display."""
    return int(math.floor((value or 0) + 0.5))


def _not_found(collection: str, entity_id: str) -> NotFoundError:
    if collection == THREADS_COLLECTION:
        return ThreadNotFound(entity_id)
    if collection == REPLIES_COLLECTION:
        return ReplyNotFound(entity_id)
    return NotFoundError(f"No document {collection}/{entity_id}")


class EngagementEngine:
    """
    Applies likes and reports to threads and replies.

    Membership changes use the store's atomic array union/remove, so two
    concurrent likes by the same user can never store the user twice.
    """

    def __init__(self, store: DocumentStore, error_handler: Optional[ErrorHandler] = None):
        self.store = store
        self.error_handler = error_handler or get_error_handler()

    async def toggle_like(self, collection: str, entity_id: str, user_id: Optional[str]) -> LikeResult:
        """
        Flip a user's membership in an entity's likedBy set.

        Args:
            collection: THREADS_COLLECTION or REPLIES_COLLECTION
            entity_id: Thread or reply id
            user_id: Authenticated user id; callers prompt for login when absent

        Returns:
            LikeResult with the resulting liked state and like count
        """
        try:
            if not user_id:
                raise ValidationError("You must be logged in to like posts")

            snapshot = await self.store.get(collection, entity_id)
            if snapshot is None:
                raise _not_found(collection, entity_id)

            if user_id in (snapshot.get("likedBy") or []):
                change = ArrayRemove(user_id)
            else:
                change = ArrayUnion(user_id)
            data = await self.store.update(collection, entity_id, {"likedBy": change})
        except ForumError as e:
            context = self.error_handler.handle_error(e, "toggle_like", user_id=user_id)
            return LikeResult(success=False, error=context.user_message)

        liked_by = data.get("likedBy") or []
        liked = user_id in liked_by
        logger.debug(f"User {user_id} {'liked' if liked else 'unliked'} {collection}/{entity_id[:8]}")
        return LikeResult(success=True, liked=liked, like_count=len(liked_by))

    async def toggle_thread_like(self, thread_id: str, user_id: Optional[str]) -> LikeResult:
        return await self.toggle_like(THREADS_COLLECTION, thread_id, user_id)

    async def toggle_reply_like(self, reply_id: str, user_id: Optional[str]) -> LikeResult:
        return await self.toggle_like(REPLIES_COLLECTION, reply_id, user_id)

    async def report(self, collection: str, entity_id: str, user_id: Optional[str]) -> OperationResult:
        """Add a user to an entity's reportedBy set; repeated reports are no-ops."""
        try:
            if not user_id:
                raise ValidationError("You must be logged in to report posts")

            snapshot = await self.store.get(collection, entity_id)
            if snapshot is None:
                raise _not_found(collection, entity_id)

            await self.store.update(collection, entity_id, {"reportedBy": ArrayUnion(user_id)})
        except ForumError as e:
            context = self.error_handler.handle_error(e, "report", user_id=user_id)
            return OperationResult(success=False, error=context.user_message)

        logger.info(f"User {user_id} reported {collection}/{entity_id[:8]}")
        return OperationResult(success=True, id=entity_id)


class ViewTracker:
    """
    Counts one view per viewer and thread within a time window.

    Guards the view handler against being invoked more than once for the
    same navigation, such as by a view that mounts twice.
    """

    def __init__(self, window_seconds: float = 5, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._seen: Dict[Tuple[str, str], float] = {}

    def should_count(self, viewer_key: str, thread_id: str) -> bool:
        """Return True the first time a viewer opens a thread within the window."""
        now = self._clock()
        self._prune(now)

        key = (viewer_key, thread_id)
        if key in self._seen:
            return False
        self._seen[key] = now
        return True

    def _prune(self, now: float) -> None:
        expired = [k for k, seen_at in self._seen.items() if now - seen_at >= self.window_seconds]
        for key in expired:
            del self._seen[key]
