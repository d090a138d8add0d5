"""
Data Models Package

This package contains all Pydantic models used by CoinPilot.
All data flowing through the system must conform to these schemas.
"""

from coinpilot.models.expense import (
    BatchFailure,
    BatchResult,
    BudgetSummary,
    DueLevel,
    DueStatus,
    ExpenseCategory,
    ExpenseState,
    ExpenseUpdate,
    Frequency,
    RecurringExpense,
)
from coinpilot.models.budget import (
    BUDGET_PLANS,
    BudgetAllocation,
    BudgetBreakdown,
    BudgetGroup,
    BudgetPace,
    BudgetPlan,
)
from coinpilot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BatchFailure",
    "BatchResult",
    "BudgetSummary",
    "DueLevel",
    "DueStatus",
    "ExpenseCategory",
    "ExpenseState",
    "ExpenseUpdate",
    "Frequency",
    "RecurringExpense",
    # Budget models
    "BUDGET_PLANS",
    "BudgetAllocation",
    "BudgetBreakdown",
    "BudgetGroup",
    "BudgetPace",
    "BudgetPlan",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
