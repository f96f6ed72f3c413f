"""Tests for budget summaries, breakdowns and trends."""

from decimal import Decimal

from balanceview.models.ledger import Bill, MonthSnapshot
from balanceview.queries import (
    breakdown_by_account,
    pie_slices,
    summarize,
    summarize_snapshot,
    trend,
)

BILLS = [
    Bill(id="a", name="Rent", amount=1200, recurring=True, payment_account="Checking"),
    Bill(id="b", name="Internet", amount=75, payment_account="Card"),
    Bill(id="c", name="Water", amount=40, payment_account="Checking"),
    Bill(id="d", name="Gym", amount=30),
]


class TestSummarize:
    """Tests for month totals."""

    def test_end_to_end_numbers(self):
        summary = summarize(Decimal("2500"), BILLS[:2])
        assert summary.total_bills == Decimal("1275")
        assert summary.balance == Decimal("1225")
        assert summary.bill_count == 2
        assert summary.recurring_total == Decimal("1200")
        assert not summary.is_overspent
        assert summary.spent_ratio == 0.51

    def test_overspent(self):
        summary = summarize(Decimal("100"), BILLS)
        assert summary.balance == Decimal("-1245")
        assert summary.is_overspent

    def test_no_income_has_no_ratio(self):
        summary = summarize(Decimal("0"), BILLS)
        assert summary.spent_ratio is None

    def test_empty_month(self):
        summary = summarize_snapshot(MonthSnapshot.empty("2024-03"))
        assert summary.total_bills == Decimal("0")
        assert summary.balance == Decimal("0")
        assert summary.bill_count == 0


class TestBreakdowns:
    """Tests for per-account totals and chart slices."""

    def test_breakdown_by_account(self):
        totals = breakdown_by_account(BILLS)
        assert [(t.account, t.total, t.bill_count) for t in totals] == [
            ("Checking", Decimal("1240"), 2),
            ("Card", Decimal("75"), 1),
            ("Unassigned", Decimal("30"), 1),
        ]

    def test_pie_slices_include_remaining(self):
        slices = pie_slices(BILLS[:2], Decimal("1225"))
        assert [(s.name, s.value) for s in slices] == [
            ("Rent", Decimal("1200")),
            ("Internet", Decimal("75")),
            ("Remaining", Decimal("1225")),
        ]

    def test_pie_slices_skip_non_positive_remaining(self):
        assert [s.name for s in pie_slices(BILLS[:1], Decimal("0"))] == ["Rent"]
        assert [s.name for s in pie_slices(BILLS[:1], Decimal("-5"))] == ["Rent"]


class TestTrend:
    """Tests for the month-over-month series."""

    def test_trend_is_oldest_first(self):
        snapshots = [
            MonthSnapshot(month_key="2024-03", monthly_income=3000, bills=BILLS[:1]),
            MonthSnapshot(month_key="2023-12", monthly_income=1000),
            MonthSnapshot(month_key="2024-01", monthly_income=2000, bills=BILLS[1:2]),
        ]
        points = trend(snapshots)
        assert [p.month_key for p in points] == ["2023-12", "2024-01", "2024-03"]
        assert [p.label for p in points] == ["Dec", "Jan", "Mar"]
        assert points[2].bills == Decimal("1200")
        assert points[2].balance == Decimal("1800")

    def test_empty_trend(self):
        assert trend([]) == []
