"""
SQLAlchemy database models for the Course Forum document store.

Forum threads and replies are schemaless documents grouped into named
collections. Each row stores one document body as JSON together with its
arrival position, which the adapter uses for cursor pagination.
"""

from sqlalchemy import Column, String, Integer, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Document(Base):
    """
    Represents a single document in a collection.

    ``seq`` is assigned on insert and never reused, so ordering by it
    yields arrival order.
    """
    __tablename__ = 'documents'

    seq = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String, nullable=False)
    document_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('collection', 'document_id', name='ux_collection_document'),
        Index('ix_documents_collection_seq', 'collection', 'seq'),
        {'sqlite_autoincrement': True},
    )

    def __repr__(self):
        return f"<Document(collection={self.collection}, id={self.document_id})>"
