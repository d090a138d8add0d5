"""Recurring expense engine package."""

from coinpilot.engine.clock import Clock, FixedClock, SystemClock
from coinpilot.engine.budget import (
    allocate_budget,
    daily_weekly_budget,
    get_budget_plan,
)
from coinpilot.engine.recurring import (
    AlreadyPaidError,
    CatchUp,
    ExpenseValidationError,
    RecurringExpenseError,
    apply_updates,
    auto_reactivate,
    available_balance,
    budget_summary,
    coerce_frequency,
    due_status,
    expense_state,
    is_active,
    is_paid_this_cycle,
    is_pending,
    mark_as_paid,
    mark_as_paid_update,
    monthly_equivalent,
    next_due_date,
    next_payment_date,
    reset_all_active,
    toggle_active,
    total_monthly,
)

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Errors
    "AlreadyPaidError",
    "ExpenseValidationError",
    "RecurringExpenseError",
    # Engine
    "CatchUp",
    "apply_updates",
    "auto_reactivate",
    "available_balance",
    "budget_summary",
    "coerce_frequency",
    "due_status",
    "expense_state",
    "is_active",
    "is_paid_this_cycle",
    "is_pending",
    "mark_as_paid",
    "mark_as_paid_update",
    "monthly_equivalent",
    "next_due_date",
    "next_payment_date",
    "reset_all_active",
    "toggle_active",
    "total_monthly",
    # Budget
    "allocate_budget",
    "daily_weekly_budget",
    "get_budget_plan",
]
