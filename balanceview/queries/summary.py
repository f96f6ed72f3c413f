"""
Budget Summaries

DESIGN DECISION: Every number shown to the user (and handed to the advice
agent) is computed here, deterministically, from ledger data. Nothing here
touches storage; callers pass in what the ledger service read.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from balanceview.models.ledger import Bill, MonthSnapshot
from balanceview.models.month_key import month_label

ZERO = Decimal("0")
UNASSIGNED_ACCOUNT = "Unassigned"
REMAINING_LABEL = "Remaining"


class BudgetSummary(BaseModel):
    """Totals for one month."""

    income: Decimal = ZERO
    total_bills: Decimal = ZERO
    balance: Decimal = ZERO
    bill_count: int = Field(default=0, ge=0)
    recurring_total: Decimal = ZERO

    @property
    def is_overspent(self) -> bool:
        return self.balance < 0

    @property
    def spent_ratio(self) -> Optional[float]:
        """Share of income already committed to bills (None without income)."""
        if self.income <= 0:
            return None
        return float(self.total_bills / self.income)


class AccountTotal(BaseModel):
    """Bills grouped by the account that pays them."""

    account: str
    total: Decimal
    bill_count: int


class ChartSlice(BaseModel):
    name: str
    value: Decimal


class TrendPoint(BaseModel):
    month_key: str
    label: str
    income: Decimal
    bills: Decimal

    @property
    def balance(self) -> Decimal:
        return self.income - self.bills


def summarize(income: Decimal, bills: Iterable[Bill]) -> BudgetSummary:
    """Income, bill total and what is left for one month."""
    bills = list(bills)
    total = sum((bill.amount for bill in bills), ZERO)
    recurring = sum((bill.amount for bill in bills if bill.recurring), ZERO)
    return BudgetSummary(
        income=income,
        total_bills=total,
        balance=income - total,
        bill_count=len(bills),
        recurring_total=recurring,
    )


def summarize_snapshot(snapshot: MonthSnapshot) -> BudgetSummary:
    return summarize(snapshot.monthly_income, snapshot.bills)


def breakdown_by_account(bills: Iterable[Bill]) -> list[AccountTotal]:
    """Bill totals per payment account, largest first."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for bill in bills:
        account = bill.payment_account or UNASSIGNED_ACCOUNT
        totals[account] += bill.amount
        counts[account] += 1

    return sorted(
        (
            AccountTotal(account=account, total=total, bill_count=counts[account])
            for account, total in totals.items()
        ),
        key=lambda item: (-item.total, item.account),
    )


def pie_slices(bills: Iterable[Bill], balance: Decimal) -> list[ChartSlice]:
    """One slice per bill, plus the remaining balance when it is positive."""
    slices = [ChartSlice(name=bill.name, value=bill.amount) for bill in bills]
    if balance > 0:
        slices.append(ChartSlice(name=REMAINING_LABEL, value=balance))
    return slices


def trend(snapshots: Iterable[MonthSnapshot]) -> list[TrendPoint]:
    """Income and bill totals per month, oldest first."""
    ordered = sorted(snapshots, key=lambda s: s.month_key)
    return [
        TrendPoint(
            month_key=snapshot.month_key,
            label=month_label(snapshot.month_key, "%b"),
            income=snapshot.monthly_income,
            bills=snapshot.total_bills,
        )
        for snapshot in ordered
    ]
