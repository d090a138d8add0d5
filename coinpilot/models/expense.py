"""
Core Data Models for CoinPilot Recurring Expenses

These models define the strict schemas for recurring expense records and
the values derived from them. They are designed to:
1. Enforce the record invariants at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Frequency and category are closed enums.
A frequency outside the enum is a validation error, never a silent
fallback to monthly.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """Recurrence interval of an expense."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ExpenseCategory(str, Enum):
    """
    Supported fixed-expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent categorization and enables reliable filtering.
    """
    SUBSCRIPTIONS = "subscriptions"
    CREDIT_CARD = "credit_card"
    RENT_MORTGAGE = "rent_mortgage"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    LOANS = "loans"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    ExpenseCategory.SUBSCRIPTIONS: "Subscriptions",
    ExpenseCategory.CREDIT_CARD: "Credit Card",
    ExpenseCategory.RENT_MORTGAGE: "Rent/Mortgage",
    ExpenseCategory.UTILITIES: "Utilities",
    ExpenseCategory.INSURANCE: "Insurance",
    ExpenseCategory.LOANS: "Loans",
    ExpenseCategory.OTHER: "Other",
}


class ExpenseState(str, Enum):
    """
    Lifecycle state of a recurring expense.

    INACTIVE absorbs the paid flag for aggregation purposes:
    inactive expenses contribute nothing to any total.
    """
    ACTIVE_UNPAID = "active_unpaid"
    ACTIVE_PAID = "active_paid"
    INACTIVE = "inactive"


class DueLevel(str, Enum):
    """How urgent an expense's due date is relative to today."""
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_TOMORROW = "due_tomorrow"
    DUE_SOON = "due_soon"
    UPCOMING = "upcoming"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class RecurringExpense(BaseModel):
    """
    One recurring obligation owned by a single user.

    `amount` is per occurrence and not normalized; use the engine's
    monthly_equivalent() to compare expenses of different frequencies.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID (owned by the store)"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="ID of the user who owns this expense"
    )

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display label"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Amount per occurrence, in the home currency"
    )
    category: ExpenseCategory = Field(
        default=ExpenseCategory.OTHER,
        description="Expense category"
    )
    frequency: Frequency = Field(
        ...,
        description="Recurrence interval"
    )
    due_date: date = Field(
        ...,
        description="Date of the next (or most recent) occurrence"
    )
    last_paid_date: Optional[date] = Field(
        default=None,
        description="Date of the last confirmed payment in the current cycle"
    )

    # Status tracking
    is_active: bool = Field(
        default=True,
        description="Inactive expenses are kept for history but excluded from totals"
    )
    is_paid: bool = Field(
        default=False,
        description="True between 'mark as paid' and the next rollover/reset"
    )

    description: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text notes"
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the expense was created"
    )

    @model_validator(mode='after')
    def validate_paid_state(self) -> 'RecurringExpense':
        """A paid expense must record when it was paid."""
        if self.is_paid and self.last_paid_date is None:
            raise ValueError("Paid expense must have a last paid date")
        return self

    @property
    def state(self) -> ExpenseState:
        if not self.is_active:
            return ExpenseState.INACTIVE
        if self.is_paid:
            return ExpenseState.ACTIVE_PAID
        return ExpenseState.ACTIVE_UNPAID


# Fields that may never change after creation
IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "created_at"})

MUTABLE_FIELDS = frozenset(RecurringExpense.model_fields) - IMMUTABLE_FIELDS


class ExpenseUpdate(BaseModel):
    """
    A partial change to one expense, ready to be persisted.

    The engine emits these; the service layer hands `changes` to the
    store. Keys are RecurringExpense field names.
    """

    expense_id: UUID
    changes: dict[str, Any] = Field(default_factory=dict)

    @field_validator('changes')
    @classmethod
    def validate_change_fields(cls, v: dict[str, Any]) -> dict[str, Any]:
        unknown = set(v) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        return v

    def apply_to(self, expense: RecurringExpense) -> RecurringExpense:
        """Return a re-validated copy of `expense` with the changes applied."""
        if expense.id != self.expense_id:
            raise ValueError(
                f"Update for {self.expense_id} applied to expense {expense.id}"
            )
        return RecurringExpense.model_validate(
            {**expense.model_dump(), **self.changes}
        )


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class DueStatus(BaseModel):
    """Where an expense stands relative to its due date."""

    expense_id: UUID
    due_date: date
    days_until: int = Field(
        ...,
        description="Days from today until the due date (negative when overdue)"
    )
    level: DueLevel

    @property
    def label(self) -> str:
        if self.level == DueLevel.OVERDUE:
            return "Overdue"
        if self.level == DueLevel.DUE_TODAY:
            return "Due today"
        if self.level == DueLevel.DUE_TOMORROW:
            return "Due tomorrow"
        return f"Due in {self.days_until} days"


class BudgetSummary(BaseModel):
    """
    Monthly-equivalent figures shown on the dashboards.

    pending_total + paid_total == reserve_total always holds, since all three
    are drawn from the same active expenses.
    """

    pending_total: Decimal = Field(
        ...,
        description="Active expenses still to pay this cycle"
    )
    paid_total: Decimal = Field(
        ...,
        description="Active expenses already paid this cycle"
    )
    reserve_total: Decimal = Field(
        ...,
        description="Steady-state monthly burden of all active expenses"
    )
    active_count: int = Field(ge=0)
    pending_count: int = Field(ge=0)
    paid_count: int = Field(ge=0)
    currency: str = Field(default="USD")


class BatchFailure(BaseModel):
    """One record of a batch operation that could not be persisted."""

    expense_id: UUID
    error_type: str
    error_message: str


class BatchResult(BaseModel):
    """
    Outcome of a fire-and-collect batch operation.

    Each record is persisted independently; failures never roll back
    the records that succeeded.
    """

    updated: list[RecurringExpense] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    @property
    def updated_count(self) -> int:
        return len(self.updated)
