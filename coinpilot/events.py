"""
Expense change notifications.

Views that show expense-derived figures (dashboard, budget, expenses list)
subscribe here and re-fetch when a change for their owner is emitted.
Subscriptions are explicit: subscribe() returns the function that removes
the listener again.
"""

from enum import Enum
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from coinpilot.models.expense import RecurringExpense


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ACTIVE_TOGGLED = "active_toggled"
    PAID = "paid"
    REACTIVATED = "reactivated"
    RESET = "reset"


class ExpenseChange(BaseModel):
    """A persisted change to one expense."""

    change_type: ChangeType
    owner_id: str
    expense_id: UUID
    expense: Optional[RecurringExpense] = Field(
        default=None,
        description="State after the change; None for deletions"
    )


ExpenseListener = Callable[[ExpenseChange], None]


class ExpenseEventBus:
    """
    Synchronous publish/subscribe for expense changes.

    A failing listener is logged and skipped; it never affects other
    listeners or the change that was already persisted.
    """

    def __init__(self):
        self._listeners: list[tuple[Optional[str], ExpenseListener]] = []
        self._logger = structlog.get_logger(__name__)

    def subscribe(
        self,
        listener: ExpenseListener,
        owner_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Register a listener, optionally only for one owner's changes.

        Returns a callable that unsubscribes the listener.
        """
        entry = (owner_id, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, change: ExpenseChange) -> None:
        for owner_id, listener in list(self._listeners):
            if owner_id is not None and owner_id != change.owner_id:
                continue
            try:
                listener(change)
            except Exception as e:
                self._logger.error(
                    "expense_listener_failed",
                    error=str(e),
                    change_type=change.change_type.value,
                    expense_id=str(change.expense_id),
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
