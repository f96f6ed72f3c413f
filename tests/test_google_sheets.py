"""Tests for the Google Sheets document store, against a fake worksheet."""

import asyncio
import json
import re

import pytest

from balanceview.services.ledger import LedgerService
from balanceview.services.storage import (
    DELETE_FIELD,
    BatchCommitError,
    GoogleSheetsDocumentStore,
    StorageError,
)
from balanceview.services.storage.google_sheets import DOCUMENT_COLUMNS

RANGE_PATTERN = re.compile(r"^A(\d+):E\1$")


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the store."""

    def __init__(self, rows=None, row_count=10):
        self.rows = [list(DOCUMENT_COLUMNS)] + [list(r) for r in (rows or [])]
        self.row_count = row_count
        self.batch_update_calls = []
        self.fail_next_update = False

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def add_rows(self, count):
        self.row_count += count

    def batch_update(self, updates, value_input_option=None):
        self.batch_update_calls.append(updates)
        if self.fail_next_update:
            self.fail_next_update = False
            raise RuntimeError("quota exceeded")
        for update in updates:
            row_number = int(RANGE_PATTERN.match(update["range"]).group(1))
            assert row_number <= self.row_count
            while len(self.rows) < row_number:
                self.rows.append([""] * len(DOCUMENT_COLUMNS))
            self.rows[row_number - 1] = list(update["values"][0])


class FakeSheetsClient:
    def __init__(self, sheet):
        self.sheet = sheet

    def get_documents_sheet(self):
        return self.sheet


def row(path, data):
    parent, doc_id = path.rsplit("/", 1)
    return [path, parent, doc_id, json.dumps(data), "2024-01-01T00:00:00"]


@pytest.fixture
def sheet():
    return FakeWorksheet([
        row("users/u1", {"monthlyIncome": 3000}),
        row("users/u1/bills/b1", {"name": "Rent", "amount": 1200}),
        ["", "", "", "", ""],
        row("users/u1/bills/b2", {"name": "Water", "amount": 40}),
    ])


@pytest.fixture
def sheets_store(sheet):
    return GoogleSheetsDocumentStore(FakeSheetsClient(sheet))


class TestGoogleSheetsDocumentStore:
    """Tests for reading and committing through one worksheet."""

    @pytest.mark.asyncio
    async def test_get_existing_and_missing(self, sheets_store):
        user = await sheets_store.get("users/u1")
        missing = await sheets_store.get("users/u2")
        assert user.get("monthlyIncome") == 3000
        assert not missing.exists

    @pytest.mark.asyncio
    async def test_list_skips_blank_rows(self, sheets_store):
        bills = await sheets_store.list_documents("users/u1/bills")
        assert [b.id for b in bills] == ["b1", "b2"]
        latest = await sheets_store.list_documents("users/u1/bills", descending=True, limit=1)
        assert [b.id for b in latest] == ["b2"]

    @pytest.mark.asyncio
    async def test_batch_is_one_update_request(self, sheets_store, sheet):
        batch = sheets_store.batch()
        batch.set("users/u1/months/2024-03", {"monthlyIncome": 3000}, merge=True)
        batch.set("users/u1/months/2024-03/bills/n1", {"name": "Rent", "recurring": True})
        batch.set("users/u1", {"legacyMigratedAt": "2024-03-15"}, merge=True)
        await batch.commit()

        assert len(sheet.batch_update_calls) == 1
        month = await sheets_store.get("users/u1/months/2024-03")
        user = await sheets_store.get("users/u1")
        assert month.get("monthlyIncome") == 3000
        assert user.data == {"monthlyIncome": 3000, "legacyMigratedAt": "2024-03-15"}

    @pytest.mark.asyncio
    async def test_new_rows_are_appended_and_sheet_grows(self, sheets_store, sheet):
        sheet.row_count = 5
        await sheets_store.set("users/u1/months/2024-03", {"monthlyIncome": 1})
        await sheets_store.set("users/u1/months/2024-04", {"monthlyIncome": 2})

        assert sheet.row_count >= 7
        assert sheet.rows[5][0] == "users/u1/months/2024-03"
        assert sheet.rows[6][0] == "users/u1/months/2024-04"
        assert sheet.rows[5][1] == "users/u1/months"

    @pytest.mark.asyncio
    async def test_delete_blanks_row(self, sheets_store, sheet):
        await sheets_store.delete("users/u1/bills/b1")
        assert sheet.rows[2] == [""] * len(DOCUMENT_COLUMNS)
        bills = await sheets_store.list_documents("users/u1/bills")
        assert [b.id for b in bills] == ["b2"]

    @pytest.mark.asyncio
    async def test_delete_missing_document_writes_nothing(self, sheets_store, sheet):
        await sheets_store.delete("users/u1/bills/nope")
        assert sheet.batch_update_calls == []

    @pytest.mark.asyncio
    async def test_merge_delete_field(self, sheets_store):
        await sheets_store.set("users/u1", {"monthlyIncome": DELETE_FIELD}, merge=True)
        assert (await sheets_store.get("users/u1")).data == {}

    @pytest.mark.asyncio
    async def test_failed_update_leaves_sheet_unchanged(self, sheets_store, sheet):
        before = sheet.get_all_values()
        sheet.fail_next_update = True
        with pytest.raises(BatchCommitError):
            await sheets_store.set("users/u1/months/2024-03", {"monthlyIncome": 1})
        assert sheet.get_all_values() == before

    @pytest.mark.asyncio
    async def test_listener_fires_after_commit(self, sheets_store):
        seen = []
        sheets_store.on_snapshot("users/u1/bills", seen.append)
        await sheets_store.delete("users/u1/bills/b2")
        assert seen == [["users/u1/bills/b2"]]


class TestOverlappingCommits:
    """Commits from one store never plan against the same sheet contents."""

    @pytest.mark.asyncio
    async def test_two_bills_added_back_to_back(self):
        store = GoogleSheetsDocumentStore(FakeSheetsClient(FakeWorksheet([], row_count=100)))
        ledger = LedgerService(store, "u1")

        first = ledger.add_bill("2024-03", "Rent", 1200, 1)
        second = ledger.add_bill("2024-03", "Electric", 75, 5)
        await first
        await second

        bills = await ledger.get_bills("2024-03")
        assert sorted(b.name for b in bills) == ["Electric", "Rent"]

    @pytest.mark.asyncio
    async def test_concurrent_new_documents_get_their_own_rows(self, sheet):
        store = GoogleSheetsDocumentStore(FakeSheetsClient(sheet))

        await asyncio.gather(
            store.set("users/u1/months/2024-03", {"monthlyIncome": 1}),
            store.set("users/u1/months/2024-04", {"monthlyIncome": 2}),
            store.set("users/u1/months/2024-05", {"monthlyIncome": 3}),
        )

        months = await store.list_documents("users/u1/months")
        assert [m.get("monthlyIncome") for m in months] == [1, 2, 3]


class TestMalformedRows:
    """A row with unreadable JSON only affects that one document."""

    @pytest.fixture
    def corrupt_sheet(self):
        return FakeWorksheet([
            row("users/u1", {"monthlyIncome": 3000}),
            ["users/other/x/y", "users/other/x", "y", "{not json", ""],
        ])

    @pytest.mark.asyncio
    async def test_writes_elsewhere_still_commit(self, corrupt_sheet):
        store = GoogleSheetsDocumentStore(FakeSheetsClient(corrupt_sheet))
        ledger = LedgerService(store, "u1")

        await ledger.set_income("2024-03", 2500)

        assert await ledger.get_income("2024-03") == 2500
        assert corrupt_sheet.rows[2][3] == "{not json"

    @pytest.mark.asyncio
    async def test_reading_the_bad_document_is_a_storage_error(self, corrupt_sheet):
        store = GoogleSheetsDocumentStore(FakeSheetsClient(corrupt_sheet))
        with pytest.raises(StorageError):
            await store.get("users/other/x/y")
        assert (await store.list_documents("users/other/x")) == []

    @pytest.mark.asyncio
    async def test_overwriting_the_bad_document_replaces_it(self, corrupt_sheet):
        store = GoogleSheetsDocumentStore(FakeSheetsClient(corrupt_sheet))

        await store.set("users/other/x/y", {"fixed": True}, merge=True)

        assert (await store.get("users/other/x/y")).data == {"fixed": True}
        assert len(corrupt_sheet.rows) == 3
