"""
In-Memory Document Store

Used by the test suite and by the app when no Google Sheets backend is
configured. Commits are staged on a copy of the document map and swapped in
only when every write has been applied, so a failing batch leaves no trace.
"""

import asyncio
import copy
from typing import Any, Optional

from balanceview.services.storage.interface import (
    BatchCommitError,
    DocumentSnapshot,
    DocumentStore,
    WriteOp,
    apply_write,
    parent_of,
    validate_collection_path,
    validate_document_path,
)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document store."""

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None):
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {}
        for path, data in (documents or {}).items():
            self._documents[validate_document_path(path)] = copy.deepcopy(data)
        self._fail_at_op: Optional[int] = None
        self._failure_message = "Injected failure"
        self.commit_count = 0

    def inject_failure(self, at_op: int = 0, message: str = "Injected failure") -> None:
        """Make the next commit fail while applying its `at_op`-th write."""
        self._fail_at_op = at_op
        self._failure_message = message

    def dump(self) -> dict[str, dict[str, Any]]:
        """Copy of every stored document, keyed by path."""
        return copy.deepcopy(self._documents)

    async def get(self, path: str) -> DocumentSnapshot:
        path = validate_document_path(path)
        await asyncio.sleep(0)
        data = self._documents.get(path)
        return DocumentSnapshot(path=path, data=copy.deepcopy(data) if data is not None else None)

    async def list_documents(
        self,
        collection_path: str,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        collection_path = validate_collection_path(collection_path)
        await asyncio.sleep(0)
        paths = sorted(
            (p for p in self._documents if parent_of(p) == collection_path),
            key=lambda p: p.rsplit("/", 1)[-1],
            reverse=descending,
        )
        if limit is not None:
            paths = paths[:limit]
        return [
            DocumentSnapshot(path=p, data=copy.deepcopy(self._documents[p]))
            for p in paths
        ]

    async def commit_batch(self, ops: list[WriteOp]) -> None:
        await asyncio.sleep(0)
        staged = dict(self._documents)
        fail_at, self._fail_at_op = self._fail_at_op, None
        try:
            for index, op in enumerate(ops):
                if fail_at is not None and index == fail_at:
                    raise RuntimeError(self._failure_message)
                result = apply_write(staged.get(op.path), op)
                if result is None:
                    staged.pop(op.path, None)
                else:
                    staged[op.path] = result
        except Exception as e:
            raise BatchCommitError(f"Batch of {len(ops)} write(s) rejected: {e}") from e

        self._documents = staged
        self.commit_count += 1
        self._notify([op.path for op in ops])
