"""
In-Memory Storage Implementation

Used for tests and for running without a configured backend.
Records are kept as validated model copies, so callers can never
mutate stored state through a returned object.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError

from coinpilot.models.audit import AuditEvent
from coinpilot.models.expense import ExpenseUpdate, RecurringExpense
from coinpilot.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """Dictionary-backed expense store."""

    def __init__(self, expenses: Optional[list[RecurringExpense]] = None):
        self._expenses: dict[UUID, RecurringExpense] = {}
        for expense in expenses or []:
            self._expenses[expense.id] = expense.model_copy()

    async def list_expenses(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
        is_paid: Optional[bool] = None,
    ) -> list[RecurringExpense]:
        expenses = [
            expense.model_copy()
            for expense in self._expenses.values()
            if expense.owner_id == owner_id
            and (is_active is None or expense.is_active == is_active)
            and (is_paid is None or expense.is_paid == is_paid)
        ]
        expenses.sort(key=lambda e: e.due_date)
        return expenses

    async def get_expense(self, expense_id: UUID) -> Optional[RecurringExpense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy() if expense else None

    async def insert_expense(self, expense: RecurringExpense) -> RecurringExpense:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[expense.id] = expense.model_copy()
        return expense.model_copy()

    async def update_expense(
        self,
        expense_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringExpense:
        current = self._expenses.get(expense_id)
        if current is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        try:
            updated = ExpenseUpdate(expense_id=expense_id, changes=changes).apply_to(current)
        except ValidationError as e:
            raise StorageError(f"Failed to update expense: {e}")
        self._expenses[expense_id] = updated
        return updated.model_copy()

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit store."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            event for event in self._events
            if event.entity_type == entity_type and event.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
