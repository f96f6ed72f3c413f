"""
Ledger Input Rules

DESIGN DECISION: Input rules are checked where the user submits data,
never after a write.

- Income is NORMALISED: anything negative, non-numeric, NaN or infinite
  becomes 0. The caller never sees an error.
- A new bill is either ACCEPTED or DROPPED: a bill with an empty name, a
  non-positive or non-numeric amount, or a non-numeric payment date is not
  written at all. The issues are returned for logging, not for display.

Storage does not re-check any of this, so downstream readers must still
tolerate out-of-range values already in the store.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from balanceview.models.ledger import ValidationIssue

ZERO = Decimal("0")


def to_finite_number(value: Any) -> Optional[Decimal]:
    """
    Parse user input as a finite number.

    Returns None for anything that isn't one (text, NaN, infinity, bool).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = str(value)
    try:
        number = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


class LedgerInputValidator:
    """Applies the submission rules for income and bills."""

    def normalize_income(self, value: Any) -> tuple[Decimal, bool]:
        """
        Income value to store.

        Returns:
            (amount, was_normalised) - amount is never negative
        """
        number = to_finite_number(value)
        if number is None or number < 0:
            return ZERO, True
        return number, False

    def check_bill(
        self,
        name: Any,
        amount: Any,
        payment_date: Any,
    ) -> list[ValidationIssue]:
        """
        Issues that block a new bill. An empty list means accept.
        """
        issues = []

        if not isinstance(name, str) or not name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Bill name is required",
            ))

        parsed_amount = to_finite_number(amount)
        if parsed_amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="not_a_number",
                message=f"Amount is not a number: {amount!r}",
            ))
        elif parsed_amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message="Amount must be greater than zero",
            ))

        if to_finite_number(payment_date) is None:
            issues.append(ValidationIssue(
                field="payment_date",
                issue_type="not_a_number",
                message=f"Payment date is not a number: {payment_date!r}",
            ))

        return issues
