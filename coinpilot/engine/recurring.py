"""
Recurring Expense Engine

DESIGN DECISION: Every function in this module is pure.
It takes a snapshot of expense records and returns new records or
ExpenseUpdate objects. Nothing here touches storage or the system
clock; the service layer fetches, calls the engine, and persists.

Monthly normalization uses fixed factors per frequency:

    weekly     x 4.33
    biweekly   x 2.17
    monthly    x 1
    quarterly  / 3
    yearly     / 12

Rollover advances a due date by one cadence step, clamping to the last
day of shorter months.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Iterable, Optional, Union
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta

from coinpilot.models.expense import (
    BudgetSummary,
    DueLevel,
    DueStatus,
    ExpenseState,
    ExpenseUpdate,
    Frequency,
    RecurringExpense,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")

# (multiplier, divisor) applied to the per-occurrence amount
MONTHLY_FACTORS: dict[Frequency, tuple[Decimal, Decimal]] = {
    Frequency.WEEKLY: (Decimal("4.33"), Decimal("1")),
    Frequency.BIWEEKLY: (Decimal("2.17"), Decimal("1")),
    Frequency.MONTHLY: (Decimal("1"), Decimal("1")),
    Frequency.QUARTERLY: (Decimal("1"), Decimal("3")),
    Frequency.YEARLY: (Decimal("1"), Decimal("12")),
}

ROLLOVER_STEPS: dict[Frequency, relativedelta] = {
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.BIWEEKLY: relativedelta(days=14),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY: relativedelta(years=1),
}


class CatchUp(str, Enum):
    """How far auto-reactivation advances a due date that is in the past."""
    SINGLE_STEP = "single"  # one cadence step, may still be in the past
    FULL = "full"           # step until the due date is today or later


ExpensePredicate = Callable[[RecurringExpense], bool]


# =============================================================================
# ERRORS
# =============================================================================

class RecurringExpenseError(Exception):
    """Base exception for engine operations."""
    pass


class ExpenseValidationError(RecurringExpenseError):
    """Input rejected before computing. Names the offending field."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class AlreadyPaidError(RecurringExpenseError):
    """mark_as_paid called on an expense that is already paid."""

    def __init__(self, expense_id: UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} is already paid for this cycle")


# =============================================================================
# INPUT COERCION
# =============================================================================

def coerce_frequency(
    value: Union[Frequency, str, None],
    strict: bool = True,
) -> Frequency:
    """
    Resolve a frequency value to the Frequency enum.

    With strict=False an unknown value is treated as monthly, which is
    what older records created before the enum existed rely on.
    """
    if isinstance(value, Frequency):
        return value
    if value is None or not str(value).strip():
        raise ExpenseValidationError("frequency", "Frequency is required")
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        if strict:
            allowed = ", ".join(f.value for f in Frequency)
            raise ExpenseValidationError(
                "frequency",
                f"Unknown frequency {value!r}. Allowed: {allowed}",
            )
        logger.warning("unknown_frequency_fallback", frequency=str(value))
        return Frequency.MONTHLY


def _coerce_amount(amount: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(amount, bool):
        raise ExpenseValidationError("amount", "Amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ExpenseValidationError("amount", f"Amount {amount!r} is not a number")
    if not value.is_finite():
        raise ExpenseValidationError("amount", "Amount must be finite")
    if value <= 0:
        raise ExpenseValidationError("amount", "Amount must be greater than zero")
    return value


def _coerce_date(value: Union[date, str, None], field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ExpenseValidationError(field, f"{value!r} is not a valid calendar date")


def _ensure_single_owner(expenses: list[RecurringExpense]) -> None:
    owners = {expense.owner_id for expense in expenses}
    if len(owners) > 1:
        raise ExpenseValidationError(
            "owner_id",
            f"Cannot aggregate expenses of {len(owners)} different owners",
        )


# =============================================================================
# NORMALIZATION AND AGGREGATION
# =============================================================================

def monthly_equivalent(
    amount: Union[Decimal, int, float, str],
    frequency: Union[Frequency, str],
    strict: bool = True,
) -> Decimal:
    """Normalize a per-occurrence amount to a per-month figure."""
    value = _coerce_amount(amount)
    multiplier, divisor = MONTHLY_FACTORS[coerce_frequency(frequency, strict)]
    return value * multiplier / divisor


def is_pending(expense: RecurringExpense) -> bool:
    """Active and still to pay this cycle."""
    return expense.is_active and not expense.is_paid


def is_paid_this_cycle(expense: RecurringExpense) -> bool:
    """Active and already paid this cycle."""
    return expense.is_active and expense.is_paid


def is_active(expense: RecurringExpense) -> bool:
    """Active regardless of paid state."""
    return expense.is_active


def total_monthly(
    expenses: Iterable[RecurringExpense],
    predicate: ExpensePredicate = is_active,
    strict: bool = True,
) -> Decimal:
    """Sum the monthly equivalents of the expenses matching `predicate`."""
    expenses = list(expenses)
    _ensure_single_owner(expenses)
    return sum(
        (
            monthly_equivalent(expense.amount, expense.frequency, strict)
            for expense in expenses
            if predicate(expense)
        ),
        ZERO,
    )


def budget_summary(
    expenses: Iterable[RecurringExpense],
    currency: str = "USD",
    strict: bool = True,
) -> BudgetSummary:
    """Pending, paid and reserve totals for one owner's expenses."""
    expenses = list(expenses)
    return BudgetSummary(
        pending_total=total_monthly(expenses, is_pending, strict),
        paid_total=total_monthly(expenses, is_paid_this_cycle, strict),
        reserve_total=total_monthly(expenses, is_active, strict),
        active_count=sum(1 for e in expenses if is_active(e)),
        pending_count=sum(1 for e in expenses if is_pending(e)),
        paid_count=sum(1 for e in expenses if is_paid_this_cycle(e)),
        currency=currency,
    )


def available_balance(
    balance: Union[Decimal, int, float, str],
    expenses: Iterable[RecurringExpense],
    strict: bool = True,
) -> Decimal:
    """Current balance minus what is still pending this cycle."""
    try:
        current = balance if isinstance(balance, Decimal) else Decimal(str(balance))
    except (InvalidOperation, ValueError):
        raise ExpenseValidationError("balance", f"Balance {balance!r} is not a number")
    return current - total_monthly(expenses, is_pending, strict)


# =============================================================================
# DUE DATES
# =============================================================================

def next_due_date(
    current_due_date: Union[date, str],
    frequency: Union[Frequency, str],
    strict: bool = True,
) -> date:
    """Advance a due date by exactly one cadence step."""
    current = _coerce_date(current_due_date, "due_date")
    return current + ROLLOVER_STEPS[coerce_frequency(frequency, strict)]


def due_status(
    expense: RecurringExpense,
    today: date,
    due_soon_days: int = 3,
) -> DueStatus:
    """Classify how close an expense is to its due date."""
    days_until = (expense.due_date - today).days
    if days_until < 0:
        level = DueLevel.OVERDUE
    elif days_until == 0:
        level = DueLevel.DUE_TODAY
    elif days_until == 1:
        level = DueLevel.DUE_TOMORROW
    elif days_until <= due_soon_days:
        level = DueLevel.DUE_SOON
    else:
        level = DueLevel.UPCOMING
    return DueStatus(
        expense_id=expense.id,
        due_date=expense.due_date,
        days_until=days_until,
        level=level,
    )


def next_payment_date(
    expenses: Iterable[RecurringExpense],
    today: date,
) -> date:
    """
    Earliest due date among pending expenses.

    Falls back to the last day of the current month when nothing is pending.
    """
    expenses = list(expenses)
    _ensure_single_owner(expenses)
    pending = [expense.due_date for expense in expenses if is_pending(expense)]
    if pending:
        return min(pending)
    return today + relativedelta(day=31)


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

def expense_state(expense: RecurringExpense) -> ExpenseState:
    return expense.state


def mark_as_paid_update(
    expense: RecurringExpense,
    today: date,
    strict: bool = True,
) -> ExpenseUpdate:
    """
    Changes that record a payment and pre-roll the due date.

    Raises AlreadyPaidError instead of advancing the due date twice.
    """
    if expense.is_paid:
        raise AlreadyPaidError(expense.id)
    return ExpenseUpdate(
        expense_id=expense.id,
        changes={
            "is_paid": True,
            "last_paid_date": today,
            "due_date": next_due_date(expense.due_date, expense.frequency, strict),
        },
    )


def mark_as_paid(
    expense: RecurringExpense,
    today: date,
    strict: bool = True,
) -> RecurringExpense:
    """Return the expense marked paid on `today` and rolled to its next due date."""
    return mark_as_paid_update(expense, today, strict).apply_to(expense)


def auto_reactivate(
    expenses: Iterable[RecurringExpense],
    today: date,
    catch_up: CatchUp = CatchUp.SINGLE_STEP,
    strict: bool = True,
) -> list[ExpenseUpdate]:
    """
    Flip paid expenses back to unpaid once their (already advanced) due
    date has passed, re-advancing the due date from the stale value.

    Idempotent: the emitted updates clear is_paid, so a second run with
    the same `today` selects nothing.
    """
    updates = []
    for expense in expenses:
        if not (expense.is_active and expense.is_paid and today > expense.due_date):
            continue

        new_due = next_due_date(expense.due_date, expense.frequency, strict)
        if catch_up == CatchUp.FULL:
            while new_due < today:
                new_due = next_due_date(new_due, expense.frequency, strict)

        updates.append(ExpenseUpdate(
            expense_id=expense.id,
            changes={"is_paid": False, "due_date": new_due},
        ))
    return updates


def reset_all_active(
    expenses: Iterable[RecurringExpense],
    today: Optional[date] = None,
) -> list[ExpenseUpdate]:
    """
    Start the cycle over for every active expense.

    Clears the paid flag and the last paid date. The due date is left
    untouched, so a reset right after paying keeps the advanced date.
    `today` is accepted alongside auto_reactivate's signature; the result
    does not depend on it.
    """
    return [
        ExpenseUpdate(
            expense_id=expense.id,
            changes={"is_paid": False, "last_paid_date": None},
        )
        for expense in expenses
        if expense.is_active
    ]


def toggle_active(expense: RecurringExpense) -> ExpenseUpdate:
    return ExpenseUpdate(
        expense_id=expense.id,
        changes={"is_active": not expense.is_active},
    )


def apply_updates(
    expenses: Iterable[RecurringExpense],
    updates: Iterable[ExpenseUpdate],
) -> list[RecurringExpense]:
    """Apply updates to a snapshot, keeping the input order."""
    by_id = {update.expense_id: update for update in updates}
    return [
        by_id[expense.id].apply_to(expense) if expense.id in by_id else expense
        for expense in expenses
    ]
