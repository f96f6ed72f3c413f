"""
Storage Services Package

Provides the abstract document store interface and concrete implementations.
Google Sheets is the remote backend; the in-memory store serves tests and
offline use.
"""

from balanceview.services.storage.interface import (
    DELETE_FIELD,
    BatchCommitError,
    ConnectionError,
    DocumentSnapshot,
    DocumentStore,
    NotFoundError,
    StorageError,
    WriteBatch,
    WriteOp,
)
from balanceview.services.storage.memory import InMemoryDocumentStore
from balanceview.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interface
    "DELETE_FIELD",
    "DocumentSnapshot",
    "DocumentStore",
    "WriteBatch",
    "WriteOp",
    # Exceptions
    "BatchCommitError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
