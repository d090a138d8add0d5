"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the hosted backend without touching business logic
2. Use in-memory storage for testing
3. Keep the engine decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the recurring expense service needs.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from coinpilot.models.audit import AuditEvent
from coinpilot.models.expense import RecurringExpense


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for recurring expense storage.

    Any storage implementation (Google Sheets, in-memory, a hosted
    database) must implement these methods.
    """

    @abstractmethod
    async def list_expenses(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
        is_paid: Optional[bool] = None,
    ) -> list[RecurringExpense]:
        """
        List one owner's expenses, ordered by due date.

        Args:
            owner_id: Owner whose expenses to list
            is_active: Filter by active flag if given
            is_paid: Filter by paid flag if given

        Returns:
            List of matching expenses
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[RecurringExpense]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_expense(self, expense: RecurringExpense) -> RecurringExpense:
        """
        Insert a new expense.

        Returns:
            The stored expense

        Raises:
            DuplicateError: If an expense with this ID already exists
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_expense(
        self,
        expense_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringExpense:
        """
        Apply a partial update to an expense.

        Args:
            expense_id: The expense to update
            changes: Field name -> new value

        Returns:
            The updated expense

        Raises:
            NotFoundError: If the expense doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Hard-delete an expense.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
