"""
Budget Plan Models

A budget plan splits the balance left after fixed expenses into
percentage groups (needs, wants, savings). Each group's amount is then
spread over the days and weeks left until the next payment.

DESIGN DECISION: The preset plans are data, not code paths.
A custom plan is just another BudgetPlan, so the allocation math is
shared by every plan.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# Allowed drift of the percentage total from 100 (equal splits don't divide evenly)
PERCENT_TOLERANCE = Decimal("0.01")


class BudgetGroup(str, Enum):
    """Spending groups used by the preset plans."""
    NEEDS = "needs"
    WANTS = "wants"
    SAVINGS = "savings"


class BudgetPlan(BaseModel):
    """Percentage split of the net balance across spending groups."""

    id: str = Field(
        ...,
        min_length=1,
        description="Plan identifier (e.g., '50-30-20')"
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Display name"
    )
    description: Optional[str] = None
    allocations: dict[str, Decimal] = Field(
        ...,
        description="Group name -> percentage of the net balance"
    )

    @field_validator('allocations')
    @classmethod
    def validate_allocations(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Percentages must be non-negative and add up to 100."""
        if not v:
            raise ValueError("A budget plan needs at least one group")
        if any(percentage < 0 for percentage in v.values()):
            raise ValueError("Percentages cannot be negative")
        total = sum(v.values(), Decimal("0"))
        if abs(total - Decimal("100")) > PERCENT_TOLERANCE:
            raise ValueError(f"Percentages must add up to 100, got {total}")
        return v

    @classmethod
    def equal_split(cls, groups: list[str], plan_id: str = "custom") -> "BudgetPlan":
        """A plan giving every group the same share."""
        if not groups:
            raise ValueError("A budget plan needs at least one group")
        share = Decimal("100") / len(groups)
        return cls(
            id=plan_id,
            name="Custom",
            description="Equal share per group",
            allocations={group: share for group in groups},
        )


def _preset(needs: int, wants: int, savings: int) -> BudgetPlan:
    return BudgetPlan(
        id=f"{needs}-{wants}-{savings}",
        name=f"{needs}-{wants}-{savings} rule",
        description=f"{needs}% needs, {wants}% wants, {savings}% savings",
        allocations={
            BudgetGroup.NEEDS.value: Decimal(needs),
            BudgetGroup.WANTS.value: Decimal(wants),
            BudgetGroup.SAVINGS.value: Decimal(savings),
        },
    )


BUDGET_PLANS: dict[str, BudgetPlan] = {
    plan.id: plan
    for plan in [
        _preset(50, 30, 20),
        _preset(60, 20, 20),
        _preset(70, 20, 10),
        _preset(80, 10, 10),
    ]
}


class BudgetAllocation(BaseModel):
    """One group's share of the net balance."""

    group: str
    percentage: Decimal = Field(..., ge=0)
    amount: Decimal


class BudgetPace(BaseModel):
    """
    Allocations spread over the time left until the next payment.

    Both counts are at least 1, so a payment due today (or already
    overdue) spreads the whole allocation over a single day and week.
    """

    payment_date: date
    days_until_payment: int = Field(..., ge=1)
    weeks_until_payment: int = Field(..., ge=1)
    daily: dict[str, Decimal] = Field(default_factory=dict)
    weekly: dict[str, Decimal] = Field(default_factory=dict)


class BudgetBreakdown(BaseModel):
    """Everything the budget page shows for one plan."""

    plan_id: str
    net_balance: Decimal = Field(
        ...,
        description="Balance minus pending fixed expenses"
    )
    allocations: list[BudgetAllocation] = Field(default_factory=list)
    pace: BudgetPace
    currency: str = Field(default="USD")
