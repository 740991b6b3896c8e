"""
Data models module for the Course Forum.

This module contains:
- The SQLAlchemy ORM model backing the document store
- Forum domain types: categories, threads, replies, and operation results
"""
