"""
Google Sheets Document Store

DESIGN DECISION: Google Sheets is used as the remote document store because:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

LAYOUT: One worksheet, one document per row:

    path | parent | doc_id | data_json | updated_at

Deleted documents leave a blank row behind; blank rows are skipped on read.

ATOMICITY: A commit reads the sheet once, computes every changed row in
memory, and sends them all in a single values.batchUpdate request. The Sheets
API applies that request as a whole or rejects it as a whole, which gives us
all-or-nothing batches. Document ids are generated before the commit, so
replaying a batch after a lost response rewrites the same rows instead of
duplicating them.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Commits from one process are serialised; two processes committing at the
  same moment can still race (last write wins)
- Queries are done in Python over the whole sheet
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from balanceview.config import get_settings
from balanceview.services.storage.interface import (
    BatchCommitError,
    ConnectionError,
    DocumentSnapshot,
    DocumentStore,
    StorageError,
    WriteOp,
    apply_write,
    document_id,
    parent_of,
    validate_collection_path,
    validate_document_path,
)


DOCUMENT_COLUMNS = [
    "path",
    "parent",
    "doc_id",
    "data_json",
    "updated_at",
]

BLANK_ROW = [""] * len(DOCUMENT_COLUMNS)

_api_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _row_range(row_number: int) -> str:
    return f"A{row_number}:E{row_number}"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_documents_sheet(self) -> gspread.Worksheet:
        """Get or create the Documents worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.documents_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.documents_sheet_name,
                rows=1000,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        return sheet


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    Document bodies are JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()
        # Row numbers are planned from a fresh read, so commits must not overlap
        self._commit_lock = asyncio.Lock()

    def _document_to_row(self, path: str, data: dict[str, Any]) -> list[str]:
        return [
            path,
            parent_of(path),
            document_id(path),
            json.dumps(data, default=str, sort_keys=True),
            datetime.utcnow().isoformat(),
        ]

    def _row_to_snapshot(self, row: list[str]) -> DocumentSnapshot:
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        data_json = safe_get(3)
        return DocumentSnapshot(
            path=safe_get(0),
            data=json.loads(data_json) if data_json else {},
        )

    @_api_retry
    def _read_rows(self) -> tuple[gspread.Worksheet, list[list[str]]]:
        """The worksheet and all of its rows, header included."""
        sheet = self._client.get_documents_sheet()
        return sheet, sheet.get_all_values()

    @_api_retry
    def _write_rows(
        self,
        sheet: gspread.Worksheet,
        updates: list[dict[str, Any]],
        last_row: int,
    ) -> None:
        if last_row > sheet.row_count:
            sheet.add_rows(last_row - sheet.row_count)
        sheet.batch_update(updates, value_input_option="RAW")

    async def get(self, path: str) -> DocumentSnapshot:
        """Read a document by path."""
        path = validate_document_path(path)
        try:
            _, rows = await asyncio.to_thread(self._read_rows)
        except Exception as e:
            raise StorageError(f"Failed to read document {path}: {e}")

        for row in rows[1:]:
            if row and row[0] == path:
                try:
                    return self._row_to_snapshot(row)
                except ValueError as e:
                    raise StorageError(f"Document {path} is unreadable: {e}")
        return DocumentSnapshot(path=path)

    async def list_documents(
        self,
        collection_path: str,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        """List documents in a collection, ordered by id."""
        collection_path = validate_collection_path(collection_path)
        try:
            _, rows = await asyncio.to_thread(self._read_rows)
        except Exception as e:
            raise StorageError(f"Failed to list {collection_path}: {e}")

        snapshots = []
        for row in rows[1:]:
            if not row or not row[0]:  # Skip blank rows
                continue
            if len(row) < 2 or row[1] != collection_path:
                continue
            try:
                snapshots.append(self._row_to_snapshot(row))
            except ValueError:
                self._logger.warning("malformed_document_row", path=row[0])
                continue

        snapshots.sort(key=lambda s: s.id, reverse=descending)
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    def _plan_commit(
        self,
        rows: list[list[str]],
        ops: list[WriteOp],
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Work out the row updates for a batch.

        Returns the update list for values.batchUpdate and the highest row
        number it touches.
        """
        row_numbers: dict[str, int] = {}
        current: dict[str, Optional[dict[str, Any]]] = {}
        for row_number, row in enumerate(rows[1:], start=2):
            if row and row[0]:
                row_numbers[row[0]] = row_number
                try:
                    current[row[0]] = self._row_to_snapshot(row).data
                except ValueError:
                    # Unreadable rows keep their place; a write replaces them whole
                    self._logger.warning("malformed_document_row", path=row[0])

        staged: dict[str, Optional[dict[str, Any]]] = {}
        for op in ops:
            existing = staged[op.path] if op.path in staged else current.get(op.path)
            staged[op.path] = apply_write(existing, op)

        next_row = max(len(rows), 1) + 1
        last_row = len(rows)
        updates = []
        for path, data in staged.items():
            row_number = row_numbers.get(path)
            if row_number is None:
                if data is None:
                    continue  # deleting a document that never existed
                row_number = next_row
                next_row += 1
            values = BLANK_ROW if data is None else self._document_to_row(path, data)
            updates.append({"range": _row_range(row_number), "values": [values]})
            last_row = max(last_row, row_number)

        return updates, last_row

    async def commit_batch(self, ops: list[WriteOp]) -> None:
        """Apply writes in one values.batchUpdate request."""
        try:
            async with self._commit_lock:
                sheet, rows = await asyncio.to_thread(self._read_rows)
                updates, last_row = self._plan_commit(rows, ops)
                if updates:
                    await asyncio.to_thread(self._write_rows, sheet, updates, last_row)
        except Exception as e:
            raise BatchCommitError(f"Failed to commit {len(ops)} write(s): {e}") from e

        self._notify([op.path for op in ops])
