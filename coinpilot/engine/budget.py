"""
Budget allocation.

Applies a BudgetPlan to the net balance, then divides each allocation
by the days and weeks left until the next payment. Pure functions, like
the rest of the engine.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Union

from coinpilot.engine.recurring import ZERO, ExpenseValidationError
from coinpilot.models.budget import (
    BUDGET_PLANS,
    BudgetAllocation,
    BudgetPace,
    BudgetPlan,
)


HUNDRED = Decimal("100")


def get_budget_plan(plan_id: str) -> BudgetPlan:
    """Look up a preset plan by id."""
    try:
        return BUDGET_PLANS[plan_id]
    except KeyError:
        allowed = ", ".join(BUDGET_PLANS)
        raise ExpenseValidationError(
            "plan", f"Unknown budget plan {plan_id!r}. Allowed: {allowed}"
        )


def allocate_budget(
    balance: Union[Decimal, int, float, str],
    plan: BudgetPlan,
) -> list[BudgetAllocation]:
    """
    Split `balance` across the plan's groups, in plan order.

    A balance of zero or less has nothing to allocate: every group gets 0.
    """
    try:
        net = balance if isinstance(balance, Decimal) else Decimal(str(balance))
    except (InvalidOperation, ValueError):
        raise ExpenseValidationError("balance", f"Balance {balance!r} is not a number")
    if not net.is_finite():
        raise ExpenseValidationError("balance", "Balance must be finite")

    return [
        BudgetAllocation(
            group=group,
            percentage=percentage,
            amount=net * percentage / HUNDRED if net > 0 else ZERO,
        )
        for group, percentage in plan.allocations.items()
    ]


def daily_weekly_budget(
    allocations: Iterable[BudgetAllocation],
    payment_date: date,
    today: date,
) -> BudgetPace:
    """Per-day and per-week spend for each allocation until `payment_date`."""
    days = max(1, (payment_date - today).days)
    weeks = max(1, -(-days // 7))  # ceil
    allocations = list(allocations)
    return BudgetPace(
        payment_date=payment_date,
        days_until_payment=days,
        weeks_until_payment=weeks,
        daily={a.group: a.amount / days for a in allocations},
        weekly={a.group: a.amount / weeks for a in allocations},
    )
