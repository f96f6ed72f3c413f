"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep ledger and migration logic decoupled from the storage backend
2. Use in-memory storage for testing and offline mode
3. Swap Google Sheets for a hosted document database later

The store speaks in documents addressed by slash-separated paths, the way
the data has always been laid out:

    users/{uid}                              -> document
    users/{uid}/months                       -> collection
    users/{uid}/months/{YYYY-MM}/bills/{id}  -> document

A path with an even number of segments is a document, an odd number is a
collection.

Every write goes through `commit_batch`, which is all-or-nothing. Single
writes are just batches of one.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, Literal, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel


class _DeleteField:
    """Sentinel type for removing a field in a merge write."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __deepcopy__(self, memo):
        return self


DELETE_FIELD = _DeleteField()

SnapshotCallback = Callable[[list[str]], None]


# =============================================================================
# PATHS
# =============================================================================

def split_path(path: str) -> list[str]:
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if not segments:
        raise ValueError("Empty store path")
    return segments


def is_document_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 0


def validate_document_path(path: str) -> str:
    if not is_document_path(path):
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(split_path(path))


def validate_collection_path(path: str) -> str:
    if is_document_path(path):
        raise ValueError(f"Not a collection path: {path!r}")
    return "/".join(split_path(path))


def parent_of(path: str) -> str:
    """Collection path containing a document."""
    segments = split_path(path)
    return "/".join(segments[:-1])


def document_id(path: str) -> str:
    return split_path(path)[-1]


# =============================================================================
# SNAPSHOTS AND WRITES
# =============================================================================

class DocumentSnapshot(BaseModel):
    """A document as read from the store. `data` is None when it doesn't exist."""

    path: str
    data: Optional[dict[str, Any]] = None

    @property
    def id(self) -> str:
        return document_id(self.path)

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field, default)


class WriteOp(BaseModel):
    """One staged write."""

    kind: Literal["set", "delete"]
    path: str
    data: Optional[dict[str, Any]] = None
    merge: bool = False


def merge_fields(existing: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """
    Merge `update` into `existing`.

    Nested dicts are merged recursively; DELETE_FIELD removes the key.
    """
    merged = dict(existing)
    for key, value in update.items():
        if value is DELETE_FIELD:
            merged.pop(key, None)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_fields(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def strip_delete_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: strip_delete_fields(value) if isinstance(value, dict) else copy.deepcopy(value)
        for key, value in data.items()
        if value is not DELETE_FIELD
    }


def apply_write(
    existing: Optional[dict[str, Any]],
    op: WriteOp,
) -> Optional[dict[str, Any]]:
    """
    Result of applying one write to a document.

    Returns None when the document no longer exists.
    """
    if op.kind == "delete":
        return None
    data = op.data or {}
    if op.merge and existing is not None:
        return merge_fields(existing, data)
    return strip_delete_fields(data)


class WriteBatch:
    """
    Collects writes and commits them as one atomic unit.

    Either every staged write lands or none does.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    @property
    def ops(self) -> list[WriteOp]:
        return list(self._ops)

    def new_document_path(self, collection_path: str) -> str:
        """Path for a new document with a store-generated id."""
        collection_path = validate_collection_path(collection_path)
        return f"{collection_path}/{self._store.generate_id()}"

    def set(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> "WriteBatch":
        self._ensure_open()
        self._ops.append(
            WriteOp(kind="set", path=validate_document_path(path), data=data, merge=merge)
        )
        return self

    def delete(self, path: str) -> "WriteBatch":
        self._ensure_open()
        self._ops.append(WriteOp(kind="delete", path=validate_document_path(path)))
        return self

    async def commit(self) -> None:
        """
        Commit all staged writes atomically.

        Raises:
            BatchCommitError: If the backend rejected the batch (nothing written)
        """
        self._ensure_open()
        self._committed = True
        if self._ops:
            await self._store.commit_batch(self._ops)

    def _ensure_open(self) -> None:
        if self._committed:
            raise StorageError("Batch has already been committed")


# =============================================================================
# STORE
# =============================================================================

class DocumentStore(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation (Google Sheets, in-memory, ...)
    must implement `get`, `list_documents` and `commit_batch`. Everything
    else is built on those three.
    """

    def __init__(self):
        self._listeners: dict[int, tuple[str, SnapshotCallback]] = {}
        self._next_listener_id = 0
        self._logger = structlog.get_logger(__name__)

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        """
        Read one document.

        Args:
            path: Document path

        Returns:
            Snapshot (with `exists == False` if the document is missing)
        """
        pass

    @abstractmethod
    async def list_documents(
        self,
        collection_path: str,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        """
        List the documents directly inside a collection, ordered by document id.

        Args:
            collection_path: Collection path
            descending: Reverse the id ordering
            limit: Maximum number of documents to return

        Returns:
            Snapshots of existing documents
        """
        pass

    @abstractmethod
    async def commit_batch(self, ops: list[WriteOp]) -> None:
        """
        Apply a list of writes atomically, in order.

        Implementations must call `self._notify()` with the written paths
        after a successful commit.

        Raises:
            BatchCommitError: If the writes could not be applied (none were)
        """
        pass

    def generate_id(self) -> str:
        """New random document id (20 characters)."""
        return uuid4().hex[:20]

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def set(
        self,
        path: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self.batch().set(path, data, merge=merge).commit()

    async def add(self, collection_path: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id. Returns the id."""
        batch = self.batch()
        path = batch.new_document_path(collection_path)
        await batch.set(path, data).commit()
        return document_id(path)

    async def delete(self, path: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        await self.batch().delete(path).commit()

    # -------------------------------------------------------------------------
    # Snapshot listeners
    # -------------------------------------------------------------------------

    def on_snapshot(self, path: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Call `callback` after every commit touching `path`.

        `path` may be a document or a collection; a collection listener
        fires for writes to any document beneath it. The callback receives
        the list of written document paths.

        Returns:
            A function that removes the listener
        """
        watched = "/".join(split_path(path))
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (watched, callback)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self, paths: list[str]) -> None:
        for watched, callback in list(self._listeners.values()):
            touched = [
                p for p in paths
                if p == watched or p.startswith(watched + "/")
            ]
            if not touched:
                continue
            try:
                callback(touched)
            except Exception as e:
                # A broken listener must not fail the write that triggered it
                self._logger.error(
                    "snapshot_listener_failed",
                    watched=watched,
                    error=str(e),
                )


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class BatchCommitError(StorageError):
    """A batch was rejected; none of its writes were applied."""
    pass
