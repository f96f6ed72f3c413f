"""
Data Models Package

This package contains all Pydantic models used in BalanceView.
All data flowing through the system must conform to these schemas.
"""

from balanceview.models.ledger import (
    Bill,
    LegacyUserRecord,
    MigrationResult,
    MigrationState,
    MonthSnapshot,
    MonthSummary,
    Profile,
    ValidationIssue,
)
from balanceview.models.month_key import (
    current_month_key,
    is_month_key,
    month_key_for,
    month_label,
    parse_month_key,
    shift_month,
    sort_month_keys,
)
from balanceview.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Bill",
    "LegacyUserRecord",
    "MigrationResult",
    "MigrationState",
    "MonthSnapshot",
    "MonthSummary",
    "Profile",
    "ValidationIssue",
    # Month keys
    "current_month_key",
    "is_month_key",
    "month_key_for",
    "month_label",
    "parse_month_key",
    "shift_month",
    "sort_month_keys",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
