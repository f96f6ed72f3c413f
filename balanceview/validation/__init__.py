"""Input validation package."""

from balanceview.validation.validator import LedgerInputValidator, to_finite_number

__all__ = ["LedgerInputValidator", "to_finite_number"]
