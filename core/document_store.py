"""
Document store contract for the Course Forum.

Defines the collection-oriented interface the forum repositories consume:
create, point-read, single-equality query with limit and cursor, update
with atomic field transforms, delete, and write batches. Concrete adapters
(see ``core.sql_store``) implement the abstract ``DocumentStore``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


class _ServerTimestamp:
    """Sentinel resolved to the store's current time at write time."""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Atomically add ``delta`` to a numeric field (missing counts as 0)."""
    delta: float


class ArrayUnion:
    """Atomically add values to an array field, skipping ones already present."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def __repr__(self):
        return f"ArrayUnion({self.values!r})"


class ArrayRemove:
    """Atomically remove every occurrence of the values from an array field."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def __repr__(self):
        return f"ArrayRemove({self.values!r})"


@dataclass(frozen=True, order=True)
class Timestamp:
    """Server-assigned point in time, as stored by the document store."""
    value: datetime

    TAG = "__timestamp__"

    @classmethod
    def now(cls) -> "Timestamp":
        return cls(datetime.now(timezone.utc))

    def to_datetime(self) -> datetime:
        return self.value

    def to_json(self) -> Dict[str, str]:
        return {self.TAG: self.value.isoformat()}

    @classmethod
    def from_json(cls, data: Dict[str, str]) -> "Timestamp":
        return cls(datetime.fromisoformat(data[cls.TAG]))

    @classmethod
    def is_encoded(cls, value: Any) -> bool:
        return isinstance(value, dict) and len(value) == 1 and cls.TAG in value


@dataclass
class DocumentSnapshot:
    """A document read from a collection."""
    id: str
    collection: str
    data: Dict[str, Any] = field(default_factory=dict)
    # Arrival position assigned by the store; used to resume queries
    position: Optional[int] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def apply_transforms(
    current: Dict[str, Any],
    fields: Dict[str, Any],
    now: Timestamp
) -> Dict[str, Any]:
    """
    Apply an update's field values and transforms to a document body.

    Plain values overwrite, ``Increment`` adds to the current number,
    ``ArrayUnion``/``ArrayRemove`` edit array fields as sets and
    ``SERVER_TIMESTAMP`` becomes ``now``.

    Args:
        current: Existing document data (not modified)
        fields: Partial fields to apply
        now: Timestamp used for SERVER_TIMESTAMP values

    Returns:
        New document data
    """
    result = dict(current)
    for key, value in fields.items():
        if value is SERVER_TIMESTAMP:
            result[key] = now
        elif isinstance(value, Increment):
            result[key] = (result.get(key) or 0) + value.delta
        elif isinstance(value, ArrayUnion):
            items = list(result.get(key) or [])
            for item in value.values:
                if item not in items:
                    items.append(item)
            result[key] = items
        elif isinstance(value, ArrayRemove):
            items = list(result.get(key) or [])
            result[key] = [item for item in items if item not in value.values]
        else:
            result[key] = value
    return result


@dataclass
class BatchOperation:
    """A single write queued in a ``WriteBatch``."""
    kind: str  # 'insert', 'update', 'delete'
    collection: str
    document_id: str
    fields: Optional[Dict[str, Any]] = None


class WriteBatch:
    """
    Group of writes committed together.

    Adapters that support transactions apply all queued writes atomically;
    a failure in any of them leaves the store unchanged.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._operations: List[BatchOperation] = []

    def insert(self, collection: str, fields: Dict[str, Any]) -> str:
        """Queue an insert and return the id the document will get."""
        document_id = self._store.new_document_id()
        self._operations.append(
            BatchOperation("insert", collection, document_id, dict(fields))
        )
        return document_id

    def update(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        self._operations.append(
            BatchOperation("update", collection, document_id, dict(fields))
        )

    def delete(self, collection: str, document_id: str) -> None:
        self._operations.append(BatchOperation("delete", collection, document_id))

    @property
    def operations(self) -> List[BatchOperation]:
        return list(self._operations)

    async def commit(self) -> None:
        await self._store.commit_batch(self._operations)
        self._operations = []


class DocumentStore(ABC):
    """
    Asynchronous document store interface.

    Errors are reported with the forum error taxonomy: ``StoreReadError``
    for failed reads, ``StoreWriteError`` for failed writes and
    ``NotFoundError`` when updating a document that does not exist.
    """

    supports_batches: bool = False

    @abstractmethod
    def new_document_id(self) -> str:
        """Generate an id for a document that is about to be inserted."""

    @abstractmethod
    async def insert(
        self,
        collection: str,
        fields: Dict[str, Any],
        document_id: Optional[str] = None
    ) -> str:
        """Insert a document and return its id."""

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[DocumentSnapshot]:
        """Return the document, or None when it does not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: Optional[Tuple[str, Any]] = None,
        limit: Optional[int] = None,
        start_after: Optional[DocumentSnapshot] = None
    ) -> List[DocumentSnapshot]:
        """
        Return documents in arrival order.

        Args:
            collection: Collection name
            where: Optional ``(field, value)`` equality filter
            limit: Optional maximum number of documents
            start_after: Optional last snapshot of a previous page
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        fields: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Apply ``fields`` atomically and return the updated document data."""

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def commit_batch(self, operations: List[BatchOperation]) -> None:
        """
        Apply queued writes.

        The default applies them one at a time; adapters with transactions
        override this and set ``supports_batches``.
        """
        for op in operations:
            if op.kind == "insert":
                await self.insert(op.collection, op.fields or {}, document_id=op.document_id)
            elif op.kind == "update":
                await self.update(op.collection, op.document_id, op.fields or {})
            elif op.kind == "delete":
                await self.delete(op.collection, op.document_id)
            else:
                raise ValueError(f"Unknown batch operation: {op.kind}")
