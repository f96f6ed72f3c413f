"""
Services package.

Only the leaf services (storage, authentication) are re-exported here.
The ledger, migration, profile and writer modules depend on the audit
logger, which itself depends on storage; import them from their modules,
e.g. `from balanceview.services.ledger import LedgerService`.
"""

from balanceview.services.auth import (
    AuthError,
    AuthProvider,
    IdentityToolkitAuth,
    StaticAuthProvider,
    UserIdentity,
)
from balanceview.services.storage import (
    DELETE_FIELD,
    BatchCommitError,
    ConnectionError,
    DocumentSnapshot,
    DocumentStore,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    WriteBatch,
    WriteOp,
)

__all__ = [
    # Auth
    "AuthError",
    "AuthProvider",
    "IdentityToolkitAuth",
    "StaticAuthProvider",
    "UserIdentity",
    # Storage
    "DELETE_FIELD",
    "BatchCommitError",
    "ConnectionError",
    "DocumentSnapshot",
    "DocumentStore",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
    "WriteBatch",
    "WriteOp",
]
