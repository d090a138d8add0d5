"""
Audit Logger

DESIGN DECISION: Every persisted change to an expense is logged.
This provides:
1. Complete traceability of paid/unpaid transitions
2. Debugging capability for partially failed batch sweeps
3. User can see the payment history of an expense

The audit logger:
- Is async so it composes with the async storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the updates of one batch operation
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from coinpilot.models.audit import AuditEvent, AuditEventBuilder
from coinpilot.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_created(
        self,
        expense_id: UUID,
        owner_id: str,
        name: str,
        amount: str,
        frequency: str,
    ) -> None:
        await self.log(AuditEventBuilder.expense_created(
            expense_id=expense_id,
            owner_id=owner_id,
            name=name,
            amount=amount,
            frequency=frequency,
        ))

    async def log_expense_updated(
        self,
        expense_id: UUID,
        owner_id: str,
        changed_fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            owner_id=owner_id,
            changed_fields=changed_fields,
        ))

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        owner_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            owner_id=owner_id,
        ))

    async def log_active_toggled(
        self,
        expense_id: UUID,
        owner_id: str,
        is_active: bool,
    ) -> None:
        await self.log(AuditEventBuilder.expense_active_toggled(
            expense_id=expense_id,
            owner_id=owner_id,
            is_active=is_active,
        ))

    async def log_marked_paid(
        self,
        expense_id: UUID,
        owner_id: str,
        paid_on: date,
        previous_due_date: date,
        next_due_date: date,
    ) -> None:
        await self.log(AuditEventBuilder.expense_marked_paid(
            expense_id=expense_id,
            owner_id=owner_id,
            paid_on=paid_on,
            previous_due_date=previous_due_date,
            next_due_date=next_due_date,
        ))

    async def log_reactivated(
        self,
        expense_id: UUID,
        owner_id: str,
        stale_due_date: date,
        next_due_date: date,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_reactivated(
            expense_id=expense_id,
            owner_id=owner_id,
            stale_due_date=stale_due_date,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        ))

    async def log_reset(
        self,
        expense_id: UUID,
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_reset(
            expense_id=expense_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        owner_id: str,
        field: str,
        message: str,
        expense_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            owner_id=owner_id,
            field=field,
            message=message,
            expense_id=expense_id,
        ))

    async def log_save_failed(
        self,
        expense_id: UUID,
        owner_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            expense_id=expense_id,
            owner_id=owner_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a batch operation (e.g., a reactivation sweep)
    and pass it to every per-record event.
    """
    return uuid4()
