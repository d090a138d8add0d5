"""Validation package."""

from coinpilot.validation.models import ValidationIssue, ValidationResult
from coinpilot.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator", "ValidationIssue", "ValidationResult"]
