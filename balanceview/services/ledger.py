"""
Monthly Ledger Access

Reads and writes one user's month snapshots:

    users/{uid}/months/{YYYY-MM}            { monthlyIncome }
    users/{uid}/months/{YYYY-MM}/bills/{id} { name, amount, paymentDate, ... }

A month that was never written reads as an empty snapshot with zero income.
It comes into existence the first time income or a bill is written for it.

Writes (`set_income`, `add_bill`, `delete_bill`) do not wait for the store.
They return a WriteHandle right away; failures are logged by the writer.
Input problems are normalised or dropped here and never raised.
"""

from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from balanceview.audit import AuditLogger
from balanceview.models.audit import AuditEventBuilder
from balanceview.models.ledger import Bill, MonthSnapshot, MonthSummary
from balanceview.models.month_key import is_month_key, parse_month_key
from balanceview.services.storage import DocumentStore
from balanceview.services.storage import paths
from balanceview.services.writes import NonBlockingWriter, WriteHandle
from balanceview.validation import LedgerInputValidator, to_finite_number

INCOME_FIELD = "monthlyIncome"


class LedgerService:
    """
    Month-keyed ledger for a single user.

    The user id comes from the authentication provider and is fixed
    for the lifetime of the service.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerInputValidator] = None,
        writer: Optional[NonBlockingWriter] = None,
    ):
        self._store = store
        self._user_id = user_id
        self._audit_logger = audit_logger
        self._validator = validator or LedgerInputValidator()
        self._writer = writer or NonBlockingWriter(user_id, audit_logger)
        self._logger = structlog.get_logger(__name__).bind(user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def writer(self) -> NonBlockingWriter:
        return self._writer

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_income(self, month_key: str) -> Decimal:
        """Income for a month; 0 if the month was never written."""
        snapshot = await self._store.get(paths.month_doc(self._user_id, month_key))
        return MonthSummary(
            month_key=month_key,
            monthly_income=snapshot.get(INCOME_FIELD),
        ).monthly_income

    async def get_bills(self, month_key: str) -> list[Bill]:
        """Bills for a month, in store order. Unreadable documents are skipped."""
        documents = await self._store.list_documents(
            paths.month_bills(self._user_id, month_key)
        )
        bills = []
        for doc in documents:
            try:
                bills.append(Bill.from_document(doc.id, doc.data or {}))
            except ValueError as e:
                self._logger.warning(
                    "malformed_bill_skipped",
                    month_key=month_key,
                    bill_id=doc.id,
                    error=str(e),
                )
        return bills

    async def get_snapshot(self, month_key: str) -> MonthSnapshot:
        """Income and bills for a month (zero-value if never written)."""
        income = await self.get_income(month_key)
        bills = await self.get_bills(month_key)
        return MonthSnapshot(month_key=month_key, monthly_income=income, bills=bills)

    async def list_months(self, limit: Optional[int] = None) -> list[MonthSummary]:
        """
        Every month with data, newest first.

        Args:
            limit: Keep only the newest `limit` months
        """
        documents = await self._store.list_documents(
            paths.months(self._user_id),
            descending=True,
        )
        summaries = []
        for doc in documents:
            if not is_month_key(doc.id):
                self._logger.warning("unexpected_month_document", doc_id=doc.id)
                continue
            summaries.append(MonthSummary(
                month_key=doc.id,
                monthly_income=doc.get(INCOME_FIELD),
            ))
        # Enforce ordering here too; not every backend sorts by id natively
        summaries.sort(key=lambda s: s.month_key, reverse=True)
        if limit is not None:
            summaries = summaries[:limit]
        return summaries

    async def list_snapshots(self, limit: Optional[int] = None) -> list[MonthSnapshot]:
        """Like list_months, with each month's bills loaded."""
        summaries = await self.list_months(limit=limit)
        snapshots = []
        for summary in summaries:
            bills = await self.get_bills(summary.month_key)
            snapshots.append(MonthSnapshot(
                month_key=summary.month_key,
                monthly_income=summary.monthly_income,
                bills=bills,
            ))
        return snapshots

    def subscribe_month(
        self,
        month_key: str,
        callback: Callable[[list[str]], None],
    ) -> Callable[[], None]:
        """
        Call `callback` whenever the month's income or bills change.

        Returns a function that stops the subscription.
        """
        return self._store.on_snapshot(
            paths.month_doc(self._user_id, month_key),
            callback,
        )

    # -------------------------------------------------------------------------
    # Writes (non-blocking)
    # -------------------------------------------------------------------------

    def set_income(self, month_key: str, amount: Any) -> WriteHandle:
        """
        Store the month's income.

        Negative or non-numeric input is stored as 0.
        """
        path = paths.month_doc(self._user_id, month_key)
        income, normalized = self._validator.normalize_income(amount)
        if normalized:
            self._logger.debug("income_normalized", month_key=month_key, raw=repr(amount))

        async def write() -> None:
            await self._store.set(path, {INCOME_FIELD: float(income)}, merge=True)
            await self._audit(AuditEventBuilder.income_set(
                user_id=self._user_id,
                month_key=month_key,
                amount=str(income),
                normalized=normalized,
            ))

        return self._writer.submit("set_income", path, write())

    def add_bill(
        self,
        month_key: str,
        name: Any,
        amount: Any,
        payment_date: Any,
        recurring: bool = False,
        payment_account: Optional[str] = None,
    ) -> Optional[WriteHandle]:
        """
        Append a bill to the month.

        Returns None (and writes nothing) if the name is empty, the amount
        is not a positive number, or the payment date is not a number.
        """
        parse_month_key(month_key)
        issues = self._validator.check_bill(name, amount, payment_date)
        if issues:
            self._logger.debug(
                "bill_rejected",
                month_key=month_key,
                issues=[i.model_dump() for i in issues],
            )
            return None

        bill = Bill(
            name=name,
            amount=to_finite_number(amount),
            payment_date=int(to_finite_number(payment_date)),
            recurring=bool(recurring),
            payment_account=payment_account,
        )

        batch = self._store.batch()
        # An empty merge creates the month document so the month gets listed
        batch.set(paths.month_doc(self._user_id, month_key), {}, merge=True)
        path = batch.new_document_path(paths.month_bills(self._user_id, month_key))
        batch.set(path, bill.to_document())
        bill_id = path.rsplit("/", 1)[-1]

        async def write() -> None:
            await batch.commit()
            await self._audit(AuditEventBuilder.bill_added(
                user_id=self._user_id,
                month_key=month_key,
                bill_id=bill_id,
                name=bill.name,
                amount=str(bill.amount),
            ))

        return self._writer.submit("add_bill", path, write())

    def delete_bill(self, month_key: str, bill_id: str) -> WriteHandle:
        """Remove a bill from the month. Unknown ids are a no-op."""
        if not isinstance(bill_id, str) or not bill_id or "/" in bill_id:
            # No stored bill can have this id
            self._logger.warning("delete_bill_ignored", month_key=month_key, bill_id=repr(bill_id))
            path = paths.month_bills(self._user_id, month_key)

            async def nothing() -> None:
                return None

            return self._writer.submit("delete_bill", path, nothing())

        path = paths.month_bill(self._user_id, month_key, bill_id)

        async def write() -> None:
            await self._store.delete(path)
            await self._audit(AuditEventBuilder.bill_deleted(
                user_id=self._user_id,
                month_key=month_key,
                bill_id=bill_id,
            ))

        return self._writer.submit("delete_bill", path, write())

    async def flush(self) -> None:
        """Wait for all writes started by this service."""
        await self._writer.flush()

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)
