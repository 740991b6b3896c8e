"""
SQL-backed document store for the Course Forum.

This module provides the SQLDocumentStore class, which implements the
``DocumentStore`` contract on top of SQLAlchemy. Documents are stored as
JSON rows; blocking database work runs in worker threads so the public
coroutine API never blocks the event loop.
"""

import asyncio
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from core.document_store import (
    BatchOperation,
    DocumentSnapshot,
    DocumentStore,
    Timestamp,
    apply_transforms,
)
from core.error_handler import NotFoundError, StoreReadError, StoreWriteError, ValidationError
from models.database import Base, Document


logger = logging.getLogger(__name__)


class SQLDocumentStore(DocumentStore):
    """
    Document store backed by a SQLite database.

    Write transactions are serialised with a process-level lock, which makes
    field transforms (increments, array union/remove) atomic for every caller
    sharing this instance. Write batches commit in a single transaction.
    """

    supports_batches = True

    def __init__(self, db_path: Path, echo: bool = False):
        """
        Initialize the document store.

        Args:
            db_path: Path to the SQLite database file
            echo: Log emitted SQL statements
        """
        self.db_path = db_path
        self.echo = echo
        self.engine = None
        self.SessionLocal = None
        self._write_lock = threading.RLock()
        self._last_timestamp: Optional[datetime] = None

    def initialize_database(self):
        """
        Initialize the database by creating the schema if it doesn't exist.

        Creates all tables defined in the models and sets up the session factory.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_url = f"sqlite:///{self.db_path}"
        self.engine = create_engine(
            db_url,
            echo=self.echo,
            connect_args={"check_same_thread": False, "timeout": 30}
        )

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        Base.metadata.create_all(self.engine)

        # expire_on_commit=False to avoid detached instance errors
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Document store ready at {self.db_path}")

    def close(self) -> None:
        """Release pooled connections."""
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def get_session(self) -> Session:
        """
        Context manager for database sessions with automatic rollback on error.

        Yields:
            Session: SQLAlchemy session object
        """
        if self.SessionLocal is None:
            raise StoreReadError("Document store is not initialized")
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def new_document_id(self) -> str:
        return str(uuid.uuid4())

    def _server_now(self) -> Timestamp:
        """Current time, strictly increasing across writes of this store."""
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return Timestamp(now)

    # Encoding

    def _encode(self, value: Any) -> Any:
        if isinstance(value, Timestamp):
            return value.to_json()
        if isinstance(value, dict):
            return {k: self._encode(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._encode(v) for v in value]
        return value

    def _decode(self, value: Any) -> Any:
        if Timestamp.is_encoded(value):
            return Timestamp.from_json(value)
        if isinstance(value, dict):
            return {k: self._decode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._decode(v) for v in value]
        return value

    def _snapshot(self, row: Document) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=row.document_id,
            collection=row.collection,
            data=self._decode(row.data or {}),
            position=row.seq,
        )

    def _select_one(self, session: Session, collection: str, document_id: str) -> Optional[Document]:
        return session.execute(
            select(Document).where(
                Document.collection == collection,
                Document.document_id == document_id
            )
        ).scalar_one_or_none()

    def _equals(self, field: str, value: Any):
        """Build an equality predicate on a top-level JSON field."""
        element = Document.data[field]
        if isinstance(value, bool):
            return element.as_boolean() == value
        if isinstance(value, int):
            return element.as_integer() == value
        if isinstance(value, float):
            return element.as_float() == value
        if isinstance(value, str):
            return element.as_string() == value
        raise ValidationError(f"Unsupported filter value for {field}: {value!r}")

    # Write primitives (caller holds the session)

    def _add(
        self,
        session: Session,
        collection: str,
        fields: Dict[str, Any],
        document_id: Optional[str],
        now: Timestamp
    ) -> str:
        document_id = document_id or self.new_document_id()
        data = apply_transforms({}, fields, now)
        session.add(Document(
            collection=collection,
            document_id=document_id,
            data=self._encode(data)
        ))
        session.flush()
        return document_id

    def _modify(
        self,
        session: Session,
        collection: str,
        document_id: str,
        fields: Dict[str, Any],
        now: Timestamp
    ) -> Dict[str, Any]:
        row = self._select_one(session, collection, document_id)
        if row is None:
            raise NotFoundError(f"No document {collection}/{document_id}")
        data = apply_transforms(self._decode(row.data or {}), fields, now)
        row.data = self._encode(data)
        session.flush()
        return data

    def _remove(self, session: Session, collection: str, document_id: str) -> None:
        session.execute(
            delete(Document).where(
                Document.collection == collection,
                Document.document_id == document_id
            )
        )

    # Blocking implementations

    def _insert_sync(self, collection: str, fields: Dict[str, Any], document_id: Optional[str]) -> str:
        with self._write_lock:
            try:
                with self.get_session() as session:
                    return self._add(session, collection, fields, document_id, self._server_now())
            except SQLAlchemyError as e:
                raise StoreWriteError(f"Failed to insert into {collection}: {e}") from e

    def _get_sync(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        try:
            with self.get_session() as session:
                row = self._select_one(session, collection, document_id)
                return self._snapshot(row) if row else None
        except SQLAlchemyError as e:
            raise StoreReadError(f"Failed to read {collection}/{document_id}: {e}") from e

    def _query_sync(
        self,
        collection: str,
        where: Optional[Tuple[str, Any]],
        limit: Optional[int],
        start_after: Optional[DocumentSnapshot]
    ) -> List[DocumentSnapshot]:
        try:
            with self.get_session() as session:
                stmt = select(Document).where(Document.collection == collection)
                if where is not None:
                    field, value = where
                    stmt = stmt.where(self._equals(field, value))
                if start_after is not None:
                    position = start_after.position
                    if position is None:
                        row = self._select_one(session, collection, start_after.id)
                        if row is None:
                            raise StoreReadError(f"Cursor document {start_after.id} no longer exists")
                        position = row.seq
                    stmt = stmt.where(Document.seq > position)
                stmt = stmt.order_by(Document.seq.asc())
                if limit is not None:
                    stmt = stmt.limit(limit)
                rows = session.execute(stmt).scalars().all()
                return [self._snapshot(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreReadError(f"Failed to query {collection}: {e}") from e

    def _update_sync(self, collection: str, document_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._write_lock:
            try:
                with self.get_session() as session:
                    return self._modify(session, collection, document_id, fields, self._server_now())
            except SQLAlchemyError as e:
                raise StoreWriteError(f"Failed to update {collection}/{document_id}: {e}") from e

    def _delete_sync(self, collection: str, document_id: str) -> None:
        with self._write_lock:
            try:
                with self.get_session() as session:
                    self._remove(session, collection, document_id)
            except SQLAlchemyError as e:
                raise StoreWriteError(f"Failed to delete {collection}/{document_id}: {e}") from e

    def _commit_batch_sync(self, operations: List[BatchOperation]) -> None:
        with self._write_lock:
            try:
                with self.get_session() as session:
                    now = self._server_now()
                    for op in operations:
                        if op.kind == "insert":
                            self._add(session, op.collection, op.fields or {}, op.document_id, now)
                        elif op.kind == "update":
                            self._modify(session, op.collection, op.document_id, op.fields or {}, now)
                        elif op.kind == "delete":
                            self._remove(session, op.collection, op.document_id)
                        else:
                            raise ValueError(f"Unknown batch operation: {op.kind}")
            except SQLAlchemyError as e:
                raise StoreWriteError(f"Batch write failed: {e}") from e

    # DocumentStore API

    async def insert(
        self,
        collection: str,
        fields: Dict[str, Any],
        document_id: Optional[str] = None
    ) -> str:
        return await asyncio.to_thread(self._insert_sync, collection, fields, document_id)

    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        return await asyncio.to_thread(self._get_sync, collection, document_id)

    async def query(
        self,
        collection: str,
        where: Optional[Tuple[str, Any]] = None,
        limit: Optional[int] = None,
        start_after: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        return await asyncio.to_thread(self._query_sync, collection, where, limit, start_after)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(self._update_sync, collection, document_id, fields)

    async def delete(self, collection: str, document_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, collection, document_id)

    async def commit_batch(self, operations: List[BatchOperation]) -> None:
        await asyncio.to_thread(self._commit_batch_sync, list(operations))
