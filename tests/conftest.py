"""Shared fixtures. No test touches the network."""

import pytest

from balanceview.audit import AuditLogger
from balanceview.services.storage import InMemoryDocumentStore

USER_ID = "user-1"


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_logger(store):
    return AuditLogger(store)


@pytest.fixture
def audit_types(store):
    """Event types persisted for a user, in no particular order."""
    def read(uid=USER_ID):
        prefix = f"users/{uid}/audit/"
        return [
            data["event_type"]
            for path, data in store.dump().items()
            if path.startswith(prefix)
        ]
    return read
