"""Budget summaries package."""

from balanceview.queries.summary import (
    AccountTotal,
    BudgetSummary,
    ChartSlice,
    TrendPoint,
    breakdown_by_account,
    pie_slices,
    summarize,
    summarize_snapshot,
    trend,
)

__all__ = [
    "AccountTotal",
    "BudgetSummary",
    "ChartSlice",
    "TrendPoint",
    "breakdown_by_account",
    "pie_slices",
    "summarize",
    "summarize_snapshot",
    "trend",
]
