"""
Two-Stage Expense Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amount in whole cents
- Known frequency and category
- Paid flag consistent with last paid date

STAGE 2 - SEMANTIC VALIDATION:
- Last paid date not in the future
- Absurd amount detection
- Stale due date detection

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and validate_or_raise() fails fast on the first error.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from coinpilot.config import AppSettings, get_settings
from coinpilot.engine.recurring import ExpenseValidationError, coerce_frequency
from coinpilot.models.expense import ExpenseCategory
from coinpilot.validation.models import ValidationIssue, ValidationResult


class ExpenseValidator:
    """
    Validates user-supplied expense fields before they reach the store.

    Works on a plain mapping of field values so that edits can be checked
    before a RecurringExpense is rebuilt from them.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        fields: Mapping[str, Any],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        name = fields.get("name")
        if name is None or not str(name).strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
                severity="error",
            ))

        amount = fields.get("amount")
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        else:
            try:
                value = Decimal(str(amount))
            except (InvalidOperation, ValueError):
                value = None
            if value is None or not value.is_finite():
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message=f"Amount {amount!r} is not a number",
                    severity="error",
                ))
            elif value <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                    suggested_fix="Enter the amount charged per occurrence",
                ))
            elif value.normalize().as_tuple().exponent < -2:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"Amount {amount!r} has more than two decimal places",
                    severity="error",
                    suggested_fix="Round the amount to whole cents",
                ))

        try:
            coerce_frequency(fields.get("frequency"), self._settings.strict_frequency)
        except ExpenseValidationError as e:
            issues.append(ValidationIssue(
                field="frequency",
                issue_type="invalid_value",
                message=e.message,
                severity="error",
            ))

        category = fields.get("category")
        if category is not None:
            try:
                ExpenseCategory(category)
            except ValueError:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="invalid_value",
                    message=f"Unknown category {category!r}",
                    severity="error",
                ))

        if not isinstance(fields.get("due_date"), date):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="invalid_format",
                message="Due date must be a valid calendar date",
                severity="error",
            ))

        last_paid = fields.get("last_paid_date")
        if last_paid is not None and not isinstance(last_paid, date):
            issues.append(ValidationIssue(
                field="last_paid_date",
                issue_type="invalid_format",
                message="Last paid date must be a valid calendar date",
                severity="error",
            ))
        if fields.get("is_paid") and last_paid is None:
            issues.append(ValidationIssue(
                field="last_paid_date",
                issue_type="missing",
                message="A paid expense must record when it was paid",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        fields: Mapping[str, Any],
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        last_paid = fields.get("last_paid_date")
        if last_paid is not None and last_paid > today:
            issues.append(ValidationIssue(
                field="last_paid_date",
                issue_type="future_date",
                message=f"Last paid date ({last_paid}) is in the future",
                severity="error",
            ))

        max_amount = Decimal(str(self._settings.max_expense_amount))
        amount = Decimal(str(fields["amount"]))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        oldest = today - timedelta(days=self._settings.stale_due_date_days)
        if fields["due_date"] < oldest:
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="suspicious_date",
                message=f"Due date ({fields['due_date']}) is more than "
                        f"{self._settings.stale_due_date_days} days ago",
                severity="warning",
                suggested_fix="Please verify the next due date",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        fields: Mapping[str, Any],
        today: date,
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            fields: Expense field values (RecurringExpense field names)
            today: Reference date for date checks

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(fields)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(fields, today)
            all_issues.extend(semantic_issues)

        warnings = [
            issue.message for issue in all_issues if issue.severity == "warning"
        ]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def validate_or_raise(
        self,
        fields: Mapping[str, Any],
        today: date,
    ) -> ValidationResult:
        """Validate and raise ExpenseValidationError on the first error."""
        result = self.validate(fields, today)
        for issue in result.issues:
            if issue.severity == "error":
                raise ExpenseValidationError(issue.field, issue.message)
        return result
