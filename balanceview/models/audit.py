"""
Audit Models for BalanceView

Every ledger write and every migration step is recorded as an audit event.
This provides:
1. A trace of writes that were fired without waiting for the result
2. Debugging information when a background write fails
3. A record of when legacy data was folded into the monthly model

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger writes
    INCOME_SET = "income_set"
    BILL_ADDED = "bill_added"
    BILL_DELETED = "bill_deleted"
    WRITE_FAILED = "write_failed"

    # Profile
    PROFILE_SAVED = "profile_saved"

    # Legacy migration
    LEGACY_DATA_DETECTED = "legacy_data_detected"
    MIGRATION_STARTED = "migration_started"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"

    # Advice
    ADVICE_GENERATED = "advice_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose data this is about
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the ledger the event touched"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bill', 'month', 'profile')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id or month key of the entity"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one migration run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Document body for persisting the event in the store."""
        return self.model_dump(mode="json", exclude={"event_id"})


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.bill_added(user_id, month_key, bill_id, name, amount)
        event = AuditEventBuilder.migration_failed(user_id, month_key, error, correlation_id)
    """

    @staticmethod
    def income_set(
        user_id: str,
        month_key: str,
        amount: str,
        normalized: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_SET,
            user_id=user_id,
            entity_type="month",
            entity_id=month_key,
            description=f"Income for {month_key} set to {amount}",
            details={
                "amount": amount,
                "normalized": normalized,
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_added(
        user_id: str,
        month_key: str,
        bill_id: str,
        name: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_ADDED,
            user_id=user_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Bill added to {month_key}: {name}",
            details={
                "month_key": month_key,
                "name": name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def bill_deleted(
        user_id: str,
        month_key: str,
        bill_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            user_id=user_id,
            entity_type="bill",
            entity_id=bill_id,
            description=f"Bill deleted from {month_key}",
            details={
                "month_key": month_key,
            },
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        user_id: str,
        operation: str,
        path: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="document",
            entity_id=path,
            description=f"Background write failed: {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def profile_saved(user_id: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_SAVED,
            user_id=user_id,
            entity_type="profile",
            description="Profile saved",
            details={"currency": currency},
            is_user_action=True,
        )

    @staticmethod
    def legacy_data_detected(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_DATA_DETECTED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            description="Pre-monthly bills found for user",
        )

    @staticmethod
    def migration_started(
        user_id: str,
        month_key: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_STARTED,
            user_id=user_id,
            entity_type="month",
            entity_id=month_key,
            correlation_id=correlation_id,
            description=f"Legacy migration into {month_key} started",
            is_user_action=True,
        )

    @staticmethod
    def migration_completed(
        user_id: str,
        month_key: str,
        bill_count: int,
        income_migrated: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            user_id=user_id,
            entity_type="month",
            entity_id=month_key,
            correlation_id=correlation_id,
            description=f"Migrated {bill_count} bill(s) into {month_key}",
            details={
                "bill_count": bill_count,
                "income_migrated": income_migrated,
            },
        )

    @staticmethod
    def migration_failed(
        user_id: str,
        month_key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="month",
            entity_id=month_key,
            correlation_id=correlation_id,
            description=f"Legacy migration into {month_key} failed",
            error_message=error_message,
        )

    @staticmethod
    def advice_generated(
        user_id: str,
        month_key: str,
        used_fallback: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_GENERATED,
            user_id=user_id,
            entity_type="month",
            entity_id=month_key,
            description=f"Advice generated for {month_key}",
            details={"used_fallback": used_fallback},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
