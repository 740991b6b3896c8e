"""
Application Logic Layer for the Course Forum

This module provides the forum's business logic: repositories over the
thread and reply collections, the engagement engine, and the ForumService
facade that UI code calls.
"""

from logic.thread_repository import ThreadRepository
from logic.reply_repository import ReplyRepository
from logic.engagement import EngagementEngine, ViewTracker, display_view_count
from logic.forum_service import ForumService

__all__ = [
    'ThreadRepository',
    'ReplyRepository',
    'EngagementEngine',
    'ViewTracker',
    'display_view_count',
    'ForumService',
]
