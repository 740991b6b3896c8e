"""
Forum domain types.

Threads and replies are read from document snapshots and exposed as
dataclasses with timestamps converted to ``datetime``. Operation results
use a uniform ``success``/``error`` shape so callers can render failures
inline without exception handling.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from core.document_store import DocumentSnapshot, Timestamp


THREADS_COLLECTION = "forum_threads"
REPLIES_COLLECTION = "forum_replies"


class ForumCategory(str, Enum):
    """Thread categories."""
    GENERAL = "general"
    COURSES = "courses"
    AI_ML = "ai_ml"
    CAREERS = "careers"
    PROJECTS = "projects"
    HELP = "help"


CATEGORY_LABELS = {
    ForumCategory.GENERAL: "General Discussion",
    ForumCategory.COURSES: "Course Discussions",
    ForumCategory.AI_ML: "AI & Machine Learning",
    ForumCategory.CAREERS: "Career Advice",
    ForumCategory.PROJECTS: "Project Showcase",
    ForumCategory.HELP: "Help & Support",
}


def to_datetime(value: Any) -> Optional[datetime]:
    """Convert a stored timestamp to a datetime (None when absent)."""
    if isinstance(value, Timestamp):
        return value.to_datetime()
    if isinstance(value, datetime):
        return value
    return None


@dataclass
class Thread:
    """A top-level forum discussion post."""
    id: str
    title: str
    content: str
    category: str
    author_id: str
    author_name: str
    tags: List[str] = field(default_factory=list)
    author_email: Optional[str] = None
    author_avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_reply_at: Optional[datetime] = None
    last_reply_by: Optional[str] = None
    view_count: float = 0
    reply_count: int = 0
    is_pinned: bool = False
    is_locked: bool = False
    liked_by: List[str] = field(default_factory=list)
    reported_by: List[str] = field(default_factory=list)

    @property
    def like_count(self) -> int:
        return len(self.liked_by)

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Thread":
        data = snapshot.data
        return cls(
            id=snapshot.id,
            title=data.get("title", ""),
            content=data.get("content", ""),
            category=data.get("category", ForumCategory.GENERAL.value),
            author_id=data.get("authorId", ""),
            author_name=data.get("authorName", ""),
            tags=list(data.get("tags") or []),
            author_email=data.get("authorEmail"),
            author_avatar=data.get("authorAvatar"),
            created_at=to_datetime(data.get("createdAt")),
            updated_at=to_datetime(data.get("updatedAt")),
            last_reply_at=to_datetime(data.get("lastReplyAt")),
            last_reply_by=data.get("lastReplyBy"),
            view_count=data.get("viewCount") or 0,
            reply_count=int(data.get("replyCount") or 0),
            is_pinned=bool(data.get("isPinned", False)),
            is_locked=bool(data.get("isLocked", False)),
            liked_by=list(data.get("likedBy") or []),
            reported_by=list(data.get("reportedBy") or []),
        )


@dataclass
class Reply:
    """A response attached to exactly one thread."""
    id: str
    thread_id: str
    content: str
    author_id: str
    author_name: str
    author_email: Optional[str] = None
    author_avatar: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    liked_by: List[str] = field(default_factory=list)
    reported_by: List[str] = field(default_factory=list)

    @property
    def like_count(self) -> int:
        return len(self.liked_by)

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Reply":
        data = snapshot.data
        return cls(
            id=snapshot.id,
            thread_id=data.get("threadId", ""),
            content=data.get("content", ""),
            author_id=data.get("authorId", ""),
            author_name=data.get("authorName", ""),
            author_email=data.get("authorEmail"),
            author_avatar=data.get("authorAvatar"),
            created_at=to_datetime(data.get("createdAt")),
            updated_at=to_datetime(data.get("updatedAt")),
            liked_by=list(data.get("likedBy") or []),
            reported_by=list(data.get("reportedBy") or []),
        )


# Operation results

@dataclass
class OperationResult:
    """Outcome of a write; ``id`` is set for creations."""
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ThreadPage:
    """
    One page of threads.

    ``cursor`` references the last fetched document in store order and is
    passed back to fetch the next page. ``has_more`` is true when the page
    came back full, which may overestimate by one page.
    """
    success: bool
    threads: List[Thread] = field(default_factory=list)
    cursor: Optional[DocumentSnapshot] = None
    has_more: bool = False
    error: Optional[str] = None


@dataclass
class ThreadResult:
    success: bool
    thread: Optional[Thread] = None
    error: Optional[str] = None


@dataclass
class SearchResult:
    success: bool
    threads: List[Thread] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ReplyListResult:
    success: bool
    replies: List[Reply] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class LikeResult:
    success: bool
    liked: bool = False
    like_count: int = 0
    error: Optional[str] = None


@dataclass
class ReconcileResult:
    success: bool
    reply_count: int = 0
    previous_count: int = 0
    error: Optional[str] = None
