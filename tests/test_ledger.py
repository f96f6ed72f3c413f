"""Tests for month-keyed ledger reads and non-blocking writes."""

from decimal import Decimal

import pytest

from balanceview.services.ledger import LedgerService
from balanceview.services.storage import BatchCommitError, InMemoryDocumentStore
from balanceview.services.writes import WriteHandle

MONTH = "2024-03"


@pytest.fixture
def ledger(store, user_id, audit_logger):
    return LedgerService(store, user_id, audit_logger)


class TestLedgerReads:
    """Tests for reading month snapshots."""

    @pytest.mark.asyncio
    async def test_unwritten_month_is_empty(self, ledger):
        snapshot = await ledger.get_snapshot(MONTH)
        assert snapshot.month_key == MONTH
        assert snapshot.monthly_income == Decimal("0")
        assert snapshot.bills == []

    @pytest.mark.asyncio
    async def test_list_months_newest_first(self, user_id):
        store = InMemoryDocumentStore({
            f"users/{user_id}/months/2024-01": {"monthlyIncome": 1000},
            f"users/{user_id}/months/2024-03": {"monthlyIncome": 3000},
            f"users/{user_id}/months/2023-12": {},
        })
        ledger = LedgerService(store, user_id)

        months = await ledger.list_months()

        assert [m.month_key for m in months] == ["2024-03", "2024-01", "2023-12"]
        assert months[0].monthly_income == Decimal("3000")
        assert months[2].monthly_income == Decimal("0")

    @pytest.mark.asyncio
    async def test_list_months_limit_and_foreign_ids(self, user_id):
        store = InMemoryDocumentStore({
            f"users/{user_id}/months/2024-01": {"monthlyIncome": 1},
            f"users/{user_id}/months/2024-02": {"monthlyIncome": 2},
            f"users/{user_id}/months/notes": {"text": "not a month"},
        })
        ledger = LedgerService(store, user_id)

        months = await ledger.list_months(limit=1)

        assert [m.month_key for m in months] == ["2024-02"]

    @pytest.mark.asyncio
    async def test_malformed_bills_are_skipped(self, user_id):
        store = InMemoryDocumentStore({
            f"users/{user_id}/months/{MONTH}/bills/ok": {"name": "Rent", "amount": 1200},
            f"users/{user_id}/months/{MONTH}/bills/bad": {"name": "Broken", "amount": "lots"},
        })
        ledger = LedgerService(store, user_id)

        bills = await ledger.get_bills(MONTH)

        assert [b.id for b in bills] == ["ok"]

    @pytest.mark.asyncio
    async def test_months_are_isolated(self, ledger):
        await ledger.set_income("2024-03", 100)
        await ledger.add_bill("2024-04", "Rent", 50, 1)

        march = await ledger.get_snapshot("2024-03")
        april = await ledger.get_snapshot("2024-04")

        assert march.monthly_income == Decimal("100")
        assert march.bills == []
        assert april.monthly_income == Decimal("0")
        assert [b.name for b in april.bills] == ["Rent"]

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, store):
        alice = LedgerService(store, "alice")
        bob = LedgerService(store, "bob")

        await alice.set_income(MONTH, 500)

        assert await bob.get_income(MONTH) == Decimal("0")


class TestLedgerWrites:
    """Tests for set_income, add_bill and delete_bill."""

    @pytest.mark.asyncio
    async def test_end_to_end_month(self, ledger):
        ledger.set_income(MONTH, 2500)
        ledger.add_bill(MONTH, "Rent", 1200, 1)
        ledger.add_bill(MONTH, "Internet", 75, 15)
        await ledger.flush()

        snapshot = await ledger.get_snapshot(MONTH)

        assert snapshot.monthly_income == Decimal("2500")
        assert snapshot.total_bills == Decimal("1275")
        assert snapshot.balance == Decimal("1225")
        assert {b.name for b in snapshot.bills} == {"Rent", "Internet"}
        assert all(b.recurring is False for b in snapshot.bills)

    @pytest.mark.asyncio
    async def test_writes_return_handles_immediately(self, ledger):
        handle = ledger.set_income(MONTH, 2500)
        assert isinstance(handle, WriteHandle)
        assert not handle.done()
        await handle
        assert handle.succeeded

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [-100, "abc", float("nan"), None])
    async def test_bad_income_is_stored_as_zero(self, ledger, store, user_id, raw):
        await ledger.set_income(MONTH, raw)

        assert await ledger.get_income(MONTH) == Decimal("0")
        assert store.dump()[f"users/{user_id}/months/{MONTH}"] == {"monthlyIncome": 0.0}

    @pytest.mark.asyncio
    async def test_set_income_merges(self, ledger, store, user_id):
        await store.set(f"users/{user_id}/months/{MONTH}", {"note": "keep me"})
        await ledger.set_income(MONTH, 10)
        assert store.dump()[f"users/{user_id}/months/{MONTH}"] == {
            "note": "keep me",
            "monthlyIncome": 10.0,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name, amount, payment_date",
        [
            ("", 10, 1),
            ("Rent", 0, 1),
            ("Rent", -5, 1),
            ("Rent", "abc", 1),
            ("Rent", 10, "soon"),
        ],
    )
    async def test_invalid_bill_is_dropped(self, ledger, store, name, amount, payment_date):
        handle = ledger.add_bill(MONTH, name, amount, payment_date)
        await ledger.flush()

        assert handle is None
        assert store.dump() == {}

    @pytest.mark.asyncio
    async def test_add_bill_document_shape(self, ledger, store, user_id):
        handle = ledger.add_bill(
            MONTH, "Rent", "1200.50", "1", recurring=True, payment_account="Checking",
        )
        await handle

        bill_docs = {
            path: data for path, data in store.dump().items()
            if path.startswith(f"users/{user_id}/months/{MONTH}/bills/")
        }
        assert list(bill_docs.keys()) == [handle.path]
        assert list(bill_docs.values()) == [{
            "name": "Rent",
            "amount": 1200.5,
            "paymentDate": 1,
            "recurring": True,
            "paymentAccount": "Checking",
        }]

    @pytest.mark.asyncio
    async def test_bill_only_month_is_listed(self, ledger):
        await ledger.add_bill(MONTH, "Rent", 1200, 1)
        months = await ledger.list_months()
        assert [m.month_key for m in months] == [MONTH]

    @pytest.mark.asyncio
    async def test_delete_bill(self, ledger):
        await ledger.add_bill(MONTH, "Rent", 1200, 1)
        await ledger.add_bill(MONTH, "Water", 40, 5)
        bills = await ledger.get_bills(MONTH)
        rent = next(b for b in bills if b.name == "Rent")

        await ledger.delete_bill(MONTH, rent.id)

        assert [b.name for b in await ledger.get_bills(MONTH)] == ["Water"]

    @pytest.mark.asyncio
    async def test_delete_unknown_bill_is_noop(self, ledger):
        await ledger.add_bill(MONTH, "Rent", 1200, 1)
        handle = ledger.delete_bill(MONTH, "does-not-exist")
        await handle
        assert handle.succeeded
        assert len(await ledger.get_bills(MONTH)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bill_id", ["", None, "a/b"])
    async def test_delete_with_impossible_id_is_noop(self, ledger, store, bill_id):
        await ledger.add_bill(MONTH, "Rent", 1200, 1)
        before = store.dump()

        handle = ledger.delete_bill(MONTH, bill_id)
        await handle

        assert handle.succeeded
        assert store.dump() == before

    def test_invalid_month_key_raises(self, ledger):
        with pytest.raises(ValueError):
            ledger.set_income("2024-13", 100)
        with pytest.raises(ValueError):
            ledger.add_bill("March", "Rent", 1, 1)

    @pytest.mark.asyncio
    async def test_pending_writes_are_tracked(self, store, user_id):
        ledger = LedgerService(store, user_id)
        ledger.set_income(MONTH, 1)
        ledger.set_income(MONTH, 2)
        assert ledger.writer.pending_count == 2
        await ledger.flush()
        assert ledger.writer.pending_count == 0
        assert await ledger.get_income(MONTH) == Decimal("2")

    @pytest.mark.asyncio
    async def test_subscribe_month(self, ledger):
        seen = []
        unsubscribe = ledger.subscribe_month(MONTH, seen.append)

        await ledger.set_income(MONTH, 100)
        await ledger.add_bill(MONTH, "Rent", 50, 1)
        await ledger.set_income("2024-04", 1)
        unsubscribe()
        await ledger.set_income(MONTH, 200)

        assert len(seen) == 2


class TestWriteFailures:
    """Failed background writes are logged, never raised to the caller."""

    @pytest.mark.asyncio
    async def test_failed_write_does_not_raise(self, ledger, store, audit_types):
        store.inject_failure()

        handle = ledger.set_income(MONTH, 2500)
        await ledger.flush()

        assert handle.done()
        assert not handle.succeeded
        assert isinstance(handle.exception(), BatchCommitError)
        assert await ledger.get_income(MONTH) == Decimal("0")
        assert "write_failed" in audit_types()

    @pytest.mark.asyncio
    async def test_awaiting_a_failed_handle_raises(self, ledger, store):
        store.inject_failure()
        handle = ledger.add_bill(MONTH, "Rent", 1200, 1)
        with pytest.raises(BatchCommitError):
            await handle
        await ledger.flush()

    @pytest.mark.asyncio
    async def test_done_callback(self, ledger):
        outcomes = []
        handle = ledger.set_income(MONTH, 1)
        handle.add_done_callback(lambda h: outcomes.append(h.succeeded))
        await ledger.flush()
        assert outcomes == [True]

    @pytest.mark.asyncio
    async def test_successful_writes_are_audited(self, ledger, audit_types):
        ledger.set_income(MONTH, 2500)
        ledger.add_bill(MONTH, "Rent", 1200, 1)
        await ledger.flush()

        bill = (await ledger.get_bills(MONTH))[0]
        await ledger.delete_bill(MONTH, bill.id)

        assert sorted(audit_types()) == ["bill_added", "bill_deleted", "income_set"]
