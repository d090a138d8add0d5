"""
Recurring Expense Service

This module ties the pure engine to the expense store and defines the
end-to-end flows for:
1. Expense CRUD (validate → persist → audit → notify)
2. Payment cycle (mark as paid, auto-reactivation sweep, reset all)
3. Dashboard figures (budget summary, next payment date, due statuses)
4. Budget plans (allocation of the net balance, daily and weekly pace)

DESIGN DECISION: The service enforces the boundaries:
- The engine decides, the service persists
- Single-record persistence errors propagate unchanged to the caller
- Batch operations persist each record independently and collect failures
- Every persisted change is audited and emitted to subscribers
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog

from coinpilot.audit import AuditLogger, create_correlation_id
from coinpilot.config import AppSettings, get_settings, validate_all_settings
from coinpilot.engine import (
    CatchUp,
    Clock,
    ExpenseValidationError,
    SystemClock,
    allocate_budget,
    auto_reactivate,
    available_balance,
    budget_summary,
    coerce_frequency,
    daily_weekly_budget,
    due_status,
    get_budget_plan,
    mark_as_paid_update,
    next_payment_date,
    reset_all_active,
    toggle_active,
)
from coinpilot.events import ChangeType, ExpenseChange, ExpenseEventBus
from coinpilot.models.budget import BudgetBreakdown, BudgetPlan
from coinpilot.models.expense import (
    IMMUTABLE_FIELDS,
    BatchFailure,
    BatchResult,
    BudgetSummary,
    DueStatus,
    ExpenseCategory,
    ExpenseUpdate,
    Frequency,
    RecurringExpense,
)
from coinpilot.services.storage import (
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryExpenseStorage,
    NotFoundError,
)
from coinpilot.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


class RecurringExpenseService:
    """
    Drives the recurring expense engine against an expense store.

    Flow for every operation:
    1. Fetch a snapshot from the store
    2. Let the engine compute the new state
    3. Persist the resulting updates
    4. Audit and notify subscribers
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        clock: Optional[Clock] = None,
        audit_logger: Optional[AuditLogger] = None,
        event_bus: Optional[ExpenseEventBus] = None,
        validator: Optional[ExpenseValidator] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._clock = clock or SystemClock()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app
        self._event_bus = event_bus or ExpenseEventBus()
        self._validator = validator or ExpenseValidator(self._settings)
        self._strict = self._settings.strict_frequency
        self._catch_up = CatchUp.FULL if self._settings.full_catch_up else CatchUp.SINGLE_STEP

    @property
    def events(self) -> ExpenseEventBus:
        return self._event_bus

    # =========================================================================
    # CRUD
    # =========================================================================

    async def list_expenses(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
        is_paid: Optional[bool] = None,
    ) -> list[RecurringExpense]:
        return await self._storage.list_expenses(
            owner_id, is_active=is_active, is_paid=is_paid
        )

    async def get_expense(self, expense_id: UUID) -> RecurringExpense:
        """Fetch an expense, raising NotFoundError if it doesn't exist."""
        expense = await self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        return expense

    async def create_expense(
        self,
        owner_id: str,
        name: str,
        amount: Union[Decimal, int, float, str],
        frequency: Union[Frequency, str],
        due_date: date,
        category: Union[ExpenseCategory, str] = ExpenseCategory.OTHER,
        description: Optional[str] = None,
    ) -> RecurringExpense:
        """
        Create a new expense in the Active-Unpaid state.

        Raises:
            ExpenseValidationError: If any field is invalid
            StorageError: If the insert fails
        """
        fields = {
            "name": name,
            "amount": amount,
            "frequency": frequency,
            "due_date": due_date,
            "category": category,
            "description": description,
        }
        await self._validate(owner_id, fields)

        expense = RecurringExpense(
            owner_id=owner_id,
            name=name,
            amount=Decimal(str(amount)).quantize(CENTS),
            category=ExpenseCategory(category),
            frequency=coerce_frequency(frequency, self._strict),
            due_date=due_date,
            description=description,
            is_active=True,
            is_paid=False,
        )
        stored = await self._storage.insert_expense(expense)

        if self._audit_logger:
            await self._audit_logger.log_expense_created(
                expense_id=stored.id,
                owner_id=owner_id,
                name=stored.name,
                amount=str(stored.amount),
                frequency=stored.frequency.value,
            )
        self._emit(ChangeType.CREATED, stored)
        return stored

    async def edit_expense(
        self,
        expense_id: UUID,
        **changes: Any,
    ) -> RecurringExpense:
        """
        Apply a direct edit to any mutable field.

        Raises:
            ExpenseValidationError: If a field is immutable or the result is invalid
            NotFoundError: If the expense doesn't exist
        """
        current = await self.get_expense(expense_id)

        for field in changes:
            if field in IMMUTABLE_FIELDS:
                raise ExpenseValidationError(field, "Field cannot be changed")

        merged = {**current.model_dump(), **changes}
        await self._validate(current.owner_id, merged, expense_id=expense_id)
        if "amount" in changes:
            changes["amount"] = Decimal(str(changes["amount"])).quantize(CENTS)
        if "frequency" in changes:
            changes["frequency"] = coerce_frequency(changes["frequency"], self._strict)

        updated = await self._storage.update_expense(expense_id, changes)

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(
                expense_id=expense_id,
                owner_id=current.owner_id,
                changed_fields=sorted(changes),
            )
        self._emit(ChangeType.UPDATED, updated)
        return updated

    async def delete_expense(self, expense_id: UUID) -> bool:
        """Hard-delete an expense. Returns False if it did not exist."""
        current = await self._storage.get_expense(expense_id)
        if current is None:
            return False

        deleted = await self._storage.delete_expense(expense_id)
        if deleted:
            if self._audit_logger:
                await self._audit_logger.log_expense_deleted(
                    expense_id=expense_id,
                    owner_id=current.owner_id,
                )
            self._event_bus.emit(ExpenseChange(
                change_type=ChangeType.DELETED,
                owner_id=current.owner_id,
                expense_id=expense_id,
            ))
        return deleted

    async def toggle_active(self, expense_id: UUID) -> RecurringExpense:
        current = await self.get_expense(expense_id)
        update = toggle_active(current)
        updated = await self._persist(current, update, "toggle_active")

        if self._audit_logger:
            await self._audit_logger.log_active_toggled(
                expense_id=expense_id,
                owner_id=current.owner_id,
                is_active=updated.is_active,
            )
        self._emit(ChangeType.ACTIVE_TOGGLED, updated)
        return updated

    # =========================================================================
    # PAYMENT CYCLE
    # =========================================================================

    async def mark_as_paid(self, expense_id: UUID) -> RecurringExpense:
        """
        Record a payment made today and roll the due date forward.

        Raises:
            AlreadyPaidError: If the expense is already paid this cycle
            NotFoundError: If the expense doesn't exist
            StorageError: If persisting fails (prior state is unchanged)
        """
        current = await self.get_expense(expense_id)
        today = self._clock.today()
        update = mark_as_paid_update(current, today, self._strict)
        updated = await self._persist(current, update, "mark_as_paid")

        if self._audit_logger:
            await self._audit_logger.log_marked_paid(
                expense_id=expense_id,
                owner_id=current.owner_id,
                paid_on=today,
                previous_due_date=current.due_date,
                next_due_date=updated.due_date,
            )
        self._emit(ChangeType.PAID, updated)
        return updated

    async def run_auto_reactivation(self, owner_id: str) -> BatchResult:
        """
        Flip paid expenses whose cycle has elapsed back to unpaid.

        Safe to run on every app start: a second run on the same day
        finds nothing to change.
        """
        snapshot = await self._storage.list_expenses(
            owner_id, is_active=True, is_paid=True
        )
        updates = auto_reactivate(
            snapshot, self._clock.today(), self._catch_up, self._strict
        )
        previous = {expense.id: expense for expense in snapshot}
        correlation_id = create_correlation_id()

        async def on_success(updated: RecurringExpense) -> None:
            if self._audit_logger:
                await self._audit_logger.log_reactivated(
                    expense_id=updated.id,
                    owner_id=owner_id,
                    stale_due_date=previous[updated.id].due_date,
                    next_due_date=updated.due_date,
                    correlation_id=correlation_id,
                )
            self._emit(ChangeType.REACTIVATED, updated)

        return await self._persist_batch(
            owner_id, updates, "auto_reactivate", correlation_id, on_success
        )

    async def reset_all(self, owner_id: str) -> BatchResult:
        """Mark every active expense unpaid again. Due dates are kept."""
        snapshot = await self._storage.list_expenses(owner_id, is_active=True)
        updates = reset_all_active(snapshot, self._clock.today())
        correlation_id = create_correlation_id()

        async def on_success(updated: RecurringExpense) -> None:
            if self._audit_logger:
                await self._audit_logger.log_reset(
                    expense_id=updated.id,
                    owner_id=owner_id,
                    correlation_id=correlation_id,
                )
            self._emit(ChangeType.RESET, updated)

        return await self._persist_batch(
            owner_id, updates, "reset_all", correlation_id, on_success
        )

    # =========================================================================
    # DASHBOARD FIGURES
    # =========================================================================

    async def budget_summary(self, owner_id: str) -> BudgetSummary:
        expenses = await self._storage.list_expenses(owner_id)
        return budget_summary(
            expenses, currency=self._settings.home_currency, strict=self._strict
        )

    async def next_payment_date(self, owner_id: str) -> date:
        expenses = await self._storage.list_expenses(owner_id, is_active=True)
        return next_payment_date(expenses, self._clock.today())

    async def due_statuses(self, owner_id: str) -> list[DueStatus]:
        """Due status of every active expense, soonest first."""
        today = self._clock.today()
        expenses = await self._storage.list_expenses(owner_id, is_active=True)
        statuses = [
            due_status(expense, today, self._settings.due_soon_days)
            for expense in expenses
        ]
        statuses.sort(key=lambda s: s.days_until)
        return statuses

    async def available_balance(
        self,
        owner_id: str,
        balance: Union[Decimal, int, float, str],
    ) -> Decimal:
        expenses = await self._storage.list_expenses(owner_id)
        return available_balance(balance, expenses, self._strict)

    async def plan_budget(
        self,
        owner_id: str,
        balance: Union[Decimal, int, float, str],
        plan: Union[BudgetPlan, str, None] = None,
        payment_date: Optional[date] = None,
    ) -> BudgetBreakdown:
        """
        Apply a budget plan to what is left after pending fixed expenses.

        Args:
            owner_id: Owner whose expenses to subtract
            balance: Current balance
            plan: A BudgetPlan or preset id; defaults to the configured plan
            payment_date: Override for the next payment date (must be in
                         the future); defaults to the earliest pending due date

        Raises:
            ExpenseValidationError: Unknown plan, bad balance or past payment date
        """
        today = self._clock.today()
        if plan is None:
            plan = self._settings.default_budget_plan
        if isinstance(plan, str):
            plan = get_budget_plan(plan)
        if payment_date is not None and payment_date <= today:
            raise ExpenseValidationError(
                "payment_date", "Next payment date must be in the future"
            )

        expenses = await self._storage.list_expenses(owner_id)
        net = available_balance(balance, expenses, self._strict)
        allocations = allocate_budget(net, plan)
        pace = daily_weekly_budget(
            allocations,
            payment_date or next_payment_date(expenses, today),
            today,
        )
        return BudgetBreakdown(
            plan_id=plan.id,
            net_balance=net,
            allocations=allocations,
            pace=pace,
            currency=self._settings.home_currency,
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _validate(
        self,
        owner_id: str,
        fields: dict[str, Any],
        expense_id: Optional[UUID] = None,
    ) -> None:
        try:
            self._validator.validate_or_raise(fields, self._clock.today())
        except ExpenseValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    owner_id=owner_id,
                    field=e.field,
                    message=e.message,
                    expense_id=expense_id,
                )
            raise

    async def _persist(
        self,
        current: RecurringExpense,
        update: ExpenseUpdate,
        operation: str,
    ) -> RecurringExpense:
        """Persist one update. Storage errors are audited and re-raised unchanged."""
        try:
            return await self._storage.update_expense(update.expense_id, update.changes)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    expense_id=update.expense_id,
                    owner_id=current.owner_id,
                    operation=operation,
                    error_message=str(e),
                )
            raise

    async def _persist_batch(
        self,
        owner_id: str,
        updates: list[ExpenseUpdate],
        operation: str,
        correlation_id: UUID,
        on_success: Callable[[RecurringExpense], Any],
    ) -> BatchResult:
        """
        Persist each update independently (fire-and-collect).

        One record's failure never blocks or rolls back the others.
        """
        outcomes = await asyncio.gather(
            *(
                self._storage.update_expense(update.expense_id, update.changes)
                for update in updates
            ),
            return_exceptions=True,
        )

        result = BatchResult()
        for update, outcome in zip(updates, outcomes):
            if isinstance(outcome, Exception):
                result.failures.append(BatchFailure(
                    expense_id=update.expense_id,
                    error_type=type(outcome).__name__,
                    error_message=str(outcome),
                ))
                if self._audit_logger:
                    await self._audit_logger.log_save_failed(
                        expense_id=update.expense_id,
                        owner_id=owner_id,
                        operation=operation,
                        error_message=str(outcome),
                        correlation_id=correlation_id,
                    )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.updated.append(outcome)
                await on_success(outcome)

        logger.info(
            "batch_persisted",
            operation=operation,
            owner_id=owner_id,
            correlation_id=str(correlation_id),
            updated=result.updated_count,
            failed=len(result.failures),
        )
        return result

    def _emit(self, change_type: ChangeType, expense: RecurringExpense) -> None:
        self._event_bus.emit(ExpenseChange(
            change_type=change_type,
            owner_id=expense.owner_id,
            expense_id=expense.id,
            expense=expense,
        ))


def create_expense_service(
    use_storage: bool = True,
    clock: Optional[Clock] = None,
) -> RecurringExpenseService:
    """
    Factory function to create the expense service.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.
        clock: Clock to use; defaults to the system date.
    """
    storage: ExpenseStorageInterface
    audit_logger: AuditLogger

    checks = validate_all_settings() if use_storage else {}

    if checks.get("google_sheets"):
        sheets_client = GoogleSheetsClient()
        storage = GoogleSheetsExpenseStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    elif use_storage:
        # Storage not configured - continue without it
        logger.warning("storage_not_configured", error=checks.get("google_sheets_error"))
        storage = InMemoryExpenseStorage()
        audit_logger = AuditLogger()  # Local-only logging
    else:
        storage = InMemoryExpenseStorage()
        audit_logger = AuditLogger()

    return RecurringExpenseService(
        storage=storage,
        clock=clock,
        audit_logger=audit_logger,
    )
