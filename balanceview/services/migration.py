"""
Legacy Data Migration

Users created before the monthly model have a flat income on their user
document and a flat bill collection:

    users/{uid}            { monthlyIncome }
    users/{uid}/bills/{id} { name, amount, paymentDate, ... }

This module finds that data and, when the user asks for it, folds it into
the current month in ONE atomic batch:

1. Income (if set) is merged into users/{uid}/months/{YYYY-MM}
2. Every legacy bill is copied verbatim into that month, marked recurring
3. The user document is stamped with `legacyMigratedAt`

Either all of it lands or none of it does. Under the default retention
policy the flat data is left where it is; the marker is what stops the
prompt from coming back in the next session.

The session's progress is an explicit state machine (see MigrationState).
"""

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from balanceview.audit import AuditLogger, create_correlation_id
from balanceview.config import LegacyRetention
from balanceview.models.audit import AuditEventBuilder
from balanceview.models.ledger import LegacyUserRecord, MigrationResult, MigrationState
from balanceview.models.month_key import month_key_for
from balanceview.services.storage import DELETE_FIELD, DocumentStore
from balanceview.services.storage import paths

INCOME_FIELD = "monthlyIncome"
MARKER_FIELD = "legacyMigratedAt"

ALLOWED_TRANSITIONS: dict[MigrationState, set[MigrationState]] = {
    MigrationState.UNKNOWN: {MigrationState.NO_LEGACY_DATA, MigrationState.LEGACY_DETECTED},
    MigrationState.LEGACY_DETECTED: {MigrationState.MIGRATING, MigrationState.NO_LEGACY_DATA},
    MigrationState.MIGRATING: {MigrationState.MIGRATED, MigrationState.FAILED},
    MigrationState.FAILED: {MigrationState.MIGRATING, MigrationState.NO_LEGACY_DATA},
    MigrationState.NO_LEGACY_DATA: set(),
    MigrationState.MIGRATED: set(),
}

TERMINAL_STATES = {MigrationState.NO_LEGACY_DATA, MigrationState.MIGRATED}


class InvalidMigrationTransition(Exception):
    """The migration was asked to move to a state it cannot reach."""

    def __init__(self, current: MigrationState, target: MigrationState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move migration from {current.value} to {target.value}")


class LegacyMigration:
    """
    Detects and migrates one user's pre-monthly data.

    One instance per session. `detect()` runs on load; `migrate()` runs
    only when the user asks for it.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        retention: LegacyRetention = LegacyRetention.RETAIN,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._user_id = user_id
        self._retention = retention
        self._audit_logger = audit_logger
        self._state = MigrationState.UNKNOWN
        self._error_message: Optional[str] = None
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__).bind(user_id=user_id)

    @property
    def state(self) -> MigrationState:
        return self._state

    @property
    def has_legacy_data(self) -> bool:
        return self._state in (
            MigrationState.LEGACY_DETECTED,
            MigrationState.MIGRATING,
            MigrationState.FAILED,
        )

    @property
    def is_migrating(self) -> bool:
        return self._state == MigrationState.MIGRATING

    @property
    def migration_complete(self) -> bool:
        return self._state == MigrationState.MIGRATED

    @property
    def can_migrate(self) -> bool:
        return self._state in (MigrationState.LEGACY_DETECTED, MigrationState.FAILED)

    @property
    def error_message(self) -> Optional[str]:
        return self._error_message

    def _transition(self, target: MigrationState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidMigrationTransition(self._state, target)
        self._logger.debug("migration_state", previous=self._state.value, state=target.value)
        self._state = target

    async def detect(self) -> bool:
        """
        Check whether the user still has flat legacy bills.

        This is a presence check only. It can be repeated: without a
        migration in between it keeps answering True. Once the session is
        in a terminal state the cached answer is returned.

        Returns:
            True if there is legacy data to offer for migration
        """
        if self._state in TERMINAL_STATES or self._state == MigrationState.MIGRATING:
            return self.has_legacy_data

        try:
            user_doc = await self._store.get(paths.user_doc(self._user_id))
            record = LegacyUserRecord.model_validate(user_doc.data or {})
            if record.legacy_migrated_at is not None:
                found = False
            else:
                legacy = await self._store.list_documents(
                    paths.legacy_bills(self._user_id),
                    limit=1,
                )
                found = len(legacy) > 0
        except Exception as e:
            # Detection failing is not worth a banner; try again next load
            self._logger.info("legacy_detection_failed", error=str(e))
            return self.has_legacy_data

        if self._state == MigrationState.UNKNOWN:
            self._transition(
                MigrationState.LEGACY_DETECTED if found else MigrationState.NO_LEGACY_DATA
            )
            if found and self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.legacy_data_detected(self._user_id)
                )
        elif not found and self.can_migrate:
            # Migrated or removed elsewhere since this session detected it
            self._transition(MigrationState.NO_LEGACY_DATA)
            self._error_message = None
        return found

    async def migrate(self, now: Optional[datetime] = None) -> MigrationResult:
        """
        Fold legacy income and bills into the current month.

        Args:
            now: Wall-clock time that picks the target month (defaults to now)

        Returns:
            MigrationResult - on failure `error_message` is set and the
            migration can be retried

        Raises:
            InvalidMigrationTransition: If there is nothing to migrate, or a
                migration already ran or is running in this session
        """
        if self._lock.locked():
            raise InvalidMigrationTransition(self._state, MigrationState.MIGRATING)

        async with self._lock:
            self._transition(MigrationState.MIGRATING)
            self._error_message = None
            now = now or datetime.now()
            month_key = month_key_for(now)
            correlation_id = create_correlation_id()

            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.migration_started(
                    user_id=self._user_id,
                    month_key=month_key,
                    correlation_id=correlation_id,
                ))

            try:
                bill_count, income_migrated = await self._commit_migration(month_key, now)
            except Exception as e:
                self._error_message = str(e) or "Migration failed"
                self._transition(MigrationState.FAILED)
                self._logger.error(
                    "legacy_migration_failed",
                    month_key=month_key,
                    error=self._error_message,
                )
                if self._audit_logger:
                    await self._audit_logger.log(AuditEventBuilder.migration_failed(
                        user_id=self._user_id,
                        month_key=month_key,
                        error_message=self._error_message,
                        correlation_id=correlation_id,
                    ))
                return MigrationResult(
                    success=False,
                    state=self._state,
                    month_key=month_key,
                    error_message=self._error_message,
                )

            self._transition(MigrationState.MIGRATED)
            self._logger.info(
                "legacy_migration_completed",
                month_key=month_key,
                bill_count=bill_count,
                income_migrated=income_migrated,
            )
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.migration_completed(
                    user_id=self._user_id,
                    month_key=month_key,
                    bill_count=bill_count,
                    income_migrated=income_migrated,
                    correlation_id=correlation_id,
                ))
            return MigrationResult(
                success=True,
                state=self._state,
                month_key=month_key,
                migrated_bill_count=bill_count,
                income_migrated=income_migrated,
            )

    async def _commit_migration(self, month_key: str, now: datetime) -> tuple[int, bool]:
        """Read the legacy data and write it forward in one batch."""
        user_path = paths.user_doc(self._user_id)
        user_doc = await self._store.get(user_path)
        legacy_bills = await self._store.list_documents(paths.legacy_bills(self._user_id))

        batch = self._store.batch()

        legacy_income = user_doc.get(INCOME_FIELD)
        income_migrated = bool(legacy_income)
        batch.set(
            paths.month_doc(self._user_id, month_key),
            {INCOME_FIELD: legacy_income} if income_migrated else {},
            merge=True,
        )

        month_bills = paths.month_bills(self._user_id, month_key)
        for legacy_bill in legacy_bills:
            batch.set(
                batch.new_document_path(month_bills),
                {**(legacy_bill.data or {}), "recurring": True},
            )

        user_update = {MARKER_FIELD: now.isoformat()}
        if self._retention == LegacyRetention.DELETE:
            for legacy_bill in legacy_bills:
                batch.delete(legacy_bill.path)
            user_update[INCOME_FIELD] = DELETE_FIELD
        batch.set(user_path, user_update, merge=True)

        await batch.commit()
        return len(legacy_bills), income_migrated
