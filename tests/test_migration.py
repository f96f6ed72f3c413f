"""Tests for detecting and migrating pre-monthly data."""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from balanceview.audit import AuditLogger
from balanceview.config import LegacyRetention
from balanceview.models.ledger import MigrationState
from balanceview.services.ledger import LedgerService
from balanceview.services.migration import (
    MARKER_FIELD,
    InvalidMigrationTransition,
    LegacyMigration,
)
from balanceview.services.storage import InMemoryDocumentStore

USER = "user-1"
NOW = datetime(2024, 3, 15, 9, 30)
MONTH = "2024-03"


def legacy_store(income=3000, bills=None):
    documents = {}
    if income is not None:
        documents[f"users/{USER}"] = {"monthlyIncome": income}
    if bills is None:
        bills = {
            "rent": {"name": "Rent", "amount": 1200, "paymentDate": 1, "paymentAccount": "Checking"},
            "water": {"name": "Water", "amount": 40, "paymentDate": 20},
        }
    for bill_id, data in bills.items():
        documents[f"users/{USER}/bills/{bill_id}"] = data
    return InMemoryDocumentStore(documents)


def month_bills(store, month=MONTH):
    prefix = f"users/{USER}/months/{month}/bills/"
    return [data for path, data in store.dump().items() if path.startswith(prefix)]


class TestDetection:
    """Tests for legacy data detection."""

    @pytest.mark.asyncio
    async def test_no_legacy_data(self):
        migration = LegacyMigration(InMemoryDocumentStore(), USER)
        assert await migration.detect() is False
        assert migration.state == MigrationState.NO_LEGACY_DATA
        assert not migration.can_migrate

    @pytest.mark.asyncio
    async def test_income_alone_is_not_legacy_data(self):
        migration = LegacyMigration(legacy_store(income=3000, bills={}), USER)
        assert await migration.detect() is False

    @pytest.mark.asyncio
    async def test_detection_is_repeatable(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)

        assert await migration.detect() is True
        assert await migration.detect() is True
        assert migration.state == MigrationState.LEGACY_DETECTED
        assert migration.has_legacy_data
        assert migration.can_migrate

    @pytest.mark.asyncio
    async def test_detection_writes_nothing(self):
        store = legacy_store()
        before = store.dump()
        await LegacyMigration(store, USER).detect()
        assert store.dump() == before

    @pytest.mark.asyncio
    async def test_marker_suppresses_detection(self):
        store = legacy_store()
        await store.set(f"users/{USER}", {MARKER_FIELD: NOW.isoformat()}, merge=True)

        migration = LegacyMigration(store, USER)

        assert await migration.detect() is False
        assert migration.state == MigrationState.NO_LEGACY_DATA

    @pytest.mark.asyncio
    async def test_detection_failure_is_not_raised(self):
        class BrokenStore(InMemoryDocumentStore):
            async def get(self, path):
                raise RuntimeError("offline")

        migration = LegacyMigration(BrokenStore(), USER)

        assert await migration.detect() is False
        assert migration.state == MigrationState.UNKNOWN

    @pytest.mark.asyncio
    async def test_detection_is_audited(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER, audit_logger=AuditLogger(store))
        await migration.detect()
        await migration.detect()

        prefix = f"users/{USER}/audit/"
        events = [d["event_type"] for p, d in store.dump().items() if p.startswith(prefix)]
        assert events == ["legacy_data_detected"]


class TestMigration:
    """Tests for the migration batch."""

    @pytest.mark.asyncio
    async def test_migrates_income_and_bills(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()

        result = await migration.migrate(now=NOW)

        assert result.success
        assert result.state == MigrationState.MIGRATED
        assert result.month_key == MONTH
        assert result.migrated_bill_count == 2
        assert result.income_migrated

        snapshot = await LedgerService(store, USER).get_snapshot(MONTH)
        assert snapshot.monthly_income == Decimal("3000")
        assert snapshot.total_bills == Decimal("1240")
        assert all(bill.recurring for bill in snapshot.bills)

    @pytest.mark.asyncio
    async def test_bill_fields_are_copied_verbatim(self):
        store = legacy_store(bills={
            "rent": {"name": "Rent", "amount": 1200, "paymentDate": 1,
                     "paymentAccount": "Checking", "extra": "kept"},
        })
        migration = LegacyMigration(store, USER)
        await migration.detect()
        await migration.migrate(now=NOW)

        assert month_bills(store) == [{
            "name": "Rent",
            "amount": 1200,
            "paymentDate": 1,
            "paymentAccount": "Checking",
            "extra": "kept",
            "recurring": True,
        }]

    @pytest.mark.asyncio
    async def test_legacy_data_is_retained_by_default(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()
        await migration.migrate(now=NOW)

        documents = store.dump()
        assert documents[f"users/{USER}"]["monthlyIncome"] == 3000
        assert documents[f"users/{USER}"][MARKER_FIELD] == NOW.isoformat()
        assert f"users/{USER}/bills/rent" in documents
        assert f"users/{USER}/bills/water" in documents

    @pytest.mark.asyncio
    async def test_delete_retention_removes_legacy_data(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER, retention=LegacyRetention.DELETE)
        await migration.detect()
        await migration.migrate(now=NOW)

        documents = store.dump()
        assert documents[f"users/{USER}"] == {MARKER_FIELD: NOW.isoformat()}
        assert not any(p.startswith(f"users/{USER}/bills/") for p in documents)
        assert len(month_bills(store)) == 2

    @pytest.mark.asyncio
    async def test_zero_income_is_not_migrated(self):
        store = legacy_store(income=0)
        await store.set(f"users/{USER}/months/{MONTH}", {"monthlyIncome": 500})
        migration = LegacyMigration(store, USER)
        await migration.detect()

        result = await migration.migrate(now=NOW)

        assert not result.income_migrated
        snapshot = await LedgerService(store, USER).get_snapshot(MONTH)
        assert snapshot.monthly_income == Decimal("500")

    @pytest.mark.asyncio
    async def test_migration_merges_into_existing_month(self):
        store = legacy_store()
        ledger = LedgerService(store, USER)
        await ledger.add_bill(MONTH, "Phone", 30, 10)
        migration = LegacyMigration(store, USER)
        await migration.detect()

        await migration.migrate(now=NOW)

        bills = await ledger.get_bills(MONTH)
        assert sorted(b.name for b in bills) == ["Phone", "Rent", "Water"]

    @pytest.mark.asyncio
    async def test_migration_is_one_commit(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()
        await migration.migrate(now=NOW)
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_failed_batch_writes_nothing_and_can_be_retried(self):
        store = legacy_store()
        before = store.dump()
        migration = LegacyMigration(store, USER)
        await migration.detect()

        store.inject_failure(at_op=2, message="network down")
        failed = await migration.migrate(now=NOW)

        assert not failed.success
        assert failed.state == MigrationState.FAILED
        assert "network down" in failed.error_message
        assert migration.error_message == failed.error_message
        assert migration.has_legacy_data
        assert store.dump() == before

        retried = await migration.migrate(now=NOW)

        assert retried.success
        assert migration.error_message is None
        assert len(month_bills(store)) == 2

    @pytest.mark.asyncio
    async def test_after_migration_the_prompt_stays_gone(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()
        await migration.migrate(now=NOW)

        assert migration.migration_complete
        assert not migration.has_legacy_data
        assert await migration.detect() is False

        next_session = LegacyMigration(store, USER)
        assert await next_session.detect() is False

    @pytest.mark.asyncio
    async def test_migration_is_audited(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER, audit_logger=AuditLogger(store))
        await migration.detect()
        await migration.migrate(now=NOW)

        prefix = f"users/{USER}/audit/"
        events = {d["event_type"] for p, d in store.dump().items() if p.startswith(prefix)}
        assert {"migration_started", "migration_completed"} <= events


class TestMigrationStateMachine:
    """Tests for guarded transitions."""

    @pytest.mark.asyncio
    async def test_cannot_migrate_before_detection(self):
        migration = LegacyMigration(legacy_store(), USER)
        with pytest.raises(InvalidMigrationTransition):
            await migration.migrate(now=NOW)

    @pytest.mark.asyncio
    async def test_cannot_migrate_without_legacy_data(self):
        migration = LegacyMigration(InMemoryDocumentStore(), USER)
        await migration.detect()
        with pytest.raises(InvalidMigrationTransition):
            await migration.migrate(now=NOW)

    @pytest.mark.asyncio
    async def test_cannot_migrate_twice(self):
        migration = LegacyMigration(legacy_store(), USER)
        await migration.detect()
        await migration.migrate(now=NOW)
        with pytest.raises(InvalidMigrationTransition):
            await migration.migrate(now=NOW)

    @pytest.mark.asyncio
    async def test_concurrent_migrations_are_rejected(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()

        results = await asyncio.gather(
            migration.migrate(now=NOW),
            migration.migrate(now=NOW),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        rejections = [r for r in results if isinstance(r, InvalidMigrationTransition)]
        assert len(successes) == 1 and successes[0].success
        assert len(rejections) == 1
        assert len(month_bills(store)) == 2

    @pytest.mark.asyncio
    async def test_failed_migration_finished_elsewhere(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        await migration.detect()
        store.inject_failure()
        await migration.migrate(now=NOW)
        assert migration.state == MigrationState.FAILED

        other_session = LegacyMigration(store, USER)
        await other_session.detect()
        await other_session.migrate(now=NOW)

        assert await migration.detect() is False
        assert migration.state == MigrationState.NO_LEGACY_DATA
        assert not migration.has_legacy_data
        assert not migration.can_migrate
        assert migration.error_message is None

    @pytest.mark.asyncio
    async def test_detected_data_removed_before_migrating(self):
        store = legacy_store()
        migration = LegacyMigration(store, USER)
        assert await migration.detect() is True

        for bill_id in ("rent", "water"):
            await store.delete(f"users/{USER}/bills/{bill_id}")

        assert await migration.detect() is False
        assert migration.state == MigrationState.NO_LEGACY_DATA
        with pytest.raises(InvalidMigrationTransition):
            await migration.migrate(now=NOW)
