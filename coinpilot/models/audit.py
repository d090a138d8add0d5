"""
Audit Models for CoinPilot

Every change to a recurring expense is logged for audit purposes.
This provides:
1. Complete traceability of paid/unpaid transitions
2. Debugging information when a batch sweep partially fails
3. Ability to reconstruct an expense's payment history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every lifecycle transition of an expense has its own event type.
    """
    # Lifecycle
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_ACTIVE_TOGGLED = "expense_active_toggled"

    # Payment cycle
    EXPENSE_MARKED_PAID = "expense_marked_paid"
    EXPENSE_REACTIVATED = "expense_reactivated"
    EXPENSE_RESET = "expense_reset"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Persistence
    SAVE_FAILED = "save_failed"


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
    Every persisted state change creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
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

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="User the entity belongs to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all updates of one sweep)"
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

    # Error information (if applicable)
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
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         owner_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.owner_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(expense_id, owner_id, name, amount)
        event = AuditEventBuilder.expense_marked_paid(expense_id, owner_id, ...)
    """

    @staticmethod
    def expense_created(
        expense_id: UUID,
        owner_id: str,
        name: str,
        amount: str,
        frequency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description=f"Recurring expense created: {name} ({amount} {frequency})",
            details={
                "name": name,
                "amount": amount,
                "frequency": frequency,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(
        expense_id: UUID,
        owner_id: str,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description=f"Expense edited: {', '.join(changed_fields)}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        owner_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def expense_active_toggled(
        expense_id: UUID,
        owner_id: str,
        is_active: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ACTIVE_TOGGLED,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description="Expense activated" if is_active else "Expense deactivated",
            details={
                "is_active": is_active,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_marked_paid(
        expense_id: UUID,
        owner_id: str,
        paid_on: date,
        previous_due_date: date,
        next_due_date: date,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_MARKED_PAID,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description=f"Expense paid on {paid_on.isoformat()}, next due {next_due_date.isoformat()}",
            details={
                "paid_on": paid_on.isoformat(),
                "previous_due_date": previous_due_date.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_reactivated(
        expense_id: UUID,
        owner_id: str,
        stale_due_date: date,
        next_due_date: date,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_REACTIVATED,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Paid expense is due again",
            details={
                "stale_due_date": stale_due_date.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
        )

    @staticmethod
    def expense_reset(
        expense_id: UUID,
        owner_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RESET,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Expense reset to unpaid",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        owner_id: str,
        field: str,
        message: str,
        expense_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            description=f"Expense rejected: invalid {field}",
            error_message=message,
            details={
                "field": field,
            },
        )

    @staticmethod
    def save_failed(
        expense_id: UUID,
        owner_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=expense_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Failed to persist {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )
