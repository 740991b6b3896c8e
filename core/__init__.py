"""
Core module for the Course Forum.

This module contains the core infrastructure:
- The document store contract and its SQL-backed adapter
- Error taxonomy and centralized error handling
"""

__version__ = "0.1.0"

from core.document_store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    Increment,
    Timestamp,
    WriteBatch,
)
from core.error_handler import (
    ForumError,
    NotFoundError,
    ReplyNotFound,
    StoreReadError,
    StoreWriteError,
    ThreadNotFound,
    ValidationError,
)

__all__ = [
    'SERVER_TIMESTAMP',
    'ArrayRemove',
    'ArrayUnion',
    'DocumentSnapshot',
    'DocumentStore',
    'Increment',
    'Timestamp',
    'WriteBatch',
    'ForumError',
    'NotFoundError',
    'ReplyNotFound',
    'StoreReadError',
    'StoreWriteError',
    'ThreadNotFound',
    'ValidationError',
]
