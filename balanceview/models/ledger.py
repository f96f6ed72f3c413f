"""
Core Data Models for BalanceView

These models define the shapes of all ledger data flowing through the system.
They are designed to:
1. Read whatever is already in storage without choking on it
2. Write documents with the field names existing data uses (camelCase)
3. Be serializable for storage and logging

DESIGN DECISION: Storage-facing models are LENIENT.
The store may already hold a bill with a zero amount or a payment date of 40;
nothing validates after a write. Input rules live in the validation package
and are applied only where the user submits data.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from balanceview.models.month_key import month_label, parse_month_key


def to_decimal(value: Any) -> Decimal:
    """
    Convert a stored number to Decimal.

    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a number: {value!r}")


class DocumentModel(BaseModel):
    """Base for models persisted as store documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# =============================================================================
# BILLS
# =============================================================================

class Bill(DocumentModel):
    """
    A single bill inside one month (or inside the legacy flat collection).

    `id` is the store document id; it is not part of the document body.
    """

    id: str = Field(
        default="",
        exclude=True,
        description="Store-generated document id"
    )
    name: str = Field(
        default="",
        description="What the bill is for"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Amount due"
    )
    payment_date: Optional[int] = Field(
        default=None,
        description="Day of month the bill is due (1-31)"
    )
    recurring: bool = Field(
        default=False,
        description="Applies to every month"
    )
    payment_account: Optional[str] = Field(
        default=None,
        description="Free-text label for the funding account"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator('payment_date', mode='before')
    @classmethod
    def coerce_payment_date(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        return int(float(v))

    @field_validator('payment_account', mode='before')
    @classmethod
    def blank_account_is_none(cls, v: Any) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_serializer('amount')
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Bill":
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> dict[str, Any]:
        """Document body for the store (camelCase, no id)."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# MONTHS
# =============================================================================

class MonthSnapshot(BaseModel):
    """
    Income and bills recorded for one month key.

    A month that was never written is represented by `MonthSnapshot.empty()`,
    not by None: absence is the zero-value state.
    """

    month_key: str
    monthly_income: Decimal = Field(default=Decimal("0"))
    bills: list[Bill] = Field(default_factory=list)

    @field_validator('month_key')
    @classmethod
    def validate_month_key(cls, v: str) -> str:
        parse_month_key(v)
        return v

    @field_validator('monthly_income', mode='before')
    @classmethod
    def coerce_income(cls, v: Any) -> Decimal:
        return Decimal("0") if v is None else to_decimal(v)

    @classmethod
    def empty(cls, month_key: str) -> "MonthSnapshot":
        return cls(month_key=month_key)

    @property
    def total_bills(self) -> Decimal:
        return sum((bill.amount for bill in self.bills), Decimal("0"))

    @property
    def balance(self) -> Decimal:
        return self.monthly_income - self.total_bills

    @property
    def label(self) -> str:
        return month_label(self.month_key)


class MonthSummary(BaseModel):
    """One row of the month overview list (no bills loaded)."""

    month_key: str
    monthly_income: Decimal = Field(default=Decimal("0"))

    @field_validator('monthly_income', mode='before')
    @classmethod
    def coerce_income(cls, v: Any) -> Decimal:
        return Decimal("0") if v is None else to_decimal(v)

    @property
    def label(self) -> str:
        return month_label(self.month_key)

    @property
    def has_income(self) -> bool:
        return self.monthly_income > 0


# =============================================================================
# LEGACY DATA
# =============================================================================

class LegacyUserRecord(DocumentModel):
    """
    The flat, pre-monthly user document.

    Only `monthly_income` is legacy data; `legacy_migrated_at` is the marker
    written by a successful migration.
    """

    monthly_income: Optional[Decimal] = None
    legacy_migrated_at: Optional[datetime] = None

    @field_validator('monthly_income', mode='before')
    @classmethod
    def coerce_income(cls, v: Any) -> Optional[Decimal]:
        if v is None or v == "":
            return None
        try:
            return to_decimal(v)
        except ValueError:
            return None


# =============================================================================
# PROFILE
# =============================================================================

class Profile(DocumentModel):
    """User profile used for currency display and advice context."""

    household_size: int = Field(
        default=1,
        ge=1,
        le=50,
        description="People in the household"
    )
    location: str = Field(
        default="",
        max_length=200,
    )
    occupation: str = Field(
        default="",
        max_length=200,
    )
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO currency code"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single input rule that a submission broke."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_a_number', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


# =============================================================================
# MIGRATION
# =============================================================================

class MigrationState(str, Enum):
    """
    States of the legacy migration for one session.

    UNKNOWN -> NO_LEGACY_DATA | LEGACY_DETECTED
    LEGACY_DETECTED -> MIGRATING -> MIGRATED | FAILED
    FAILED -> MIGRATING (retry)
    LEGACY_DETECTED | FAILED -> NO_LEGACY_DATA (data gone on a later detect)
    """
    UNKNOWN = "unknown"
    NO_LEGACY_DATA = "no_legacy_data"
    LEGACY_DETECTED = "legacy_detected"
    MIGRATING = "migrating"
    MIGRATED = "migrated"
    FAILED = "failed"


class MigrationResult(BaseModel):
    """Outcome of one migration attempt, shown to the user."""

    success: bool
    state: MigrationState
    month_key: Optional[str] = None
    migrated_bill_count: int = Field(default=0, ge=0)
    income_migrated: bool = False
    error_message: Optional[str] = None
