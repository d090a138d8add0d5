"""Tests for the recurring expense engine."""

import random
from datetime import date
from decimal import Decimal

import pytest

from coinpilot.engine import (
    AlreadyPaidError,
    CatchUp,
    ExpenseValidationError,
    FixedClock,
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
from coinpilot.models.expense import DueLevel, ExpenseState, Frequency
from tests.conftest import make_expense


def paid(**overrides):
    overrides.setdefault("last_paid_date", date(2024, 1, 1))
    return make_expense(is_paid=True, **overrides)


class TestMonthlyEquivalent:
    """Tests for monthly normalization."""

    @pytest.mark.parametrize("frequency,expected", [
        (Frequency.WEEKLY, Decimal("433")),
        (Frequency.BIWEEKLY, Decimal("217")),
        (Frequency.MONTHLY, Decimal("100")),
        (Frequency.QUARTERLY, Decimal("100") / Decimal("3")),
        (Frequency.YEARLY, Decimal("100") / Decimal("12")),
    ])
    def test_factor_table(self, frequency, expected):
        """Test each frequency uses its fixed factor."""
        assert monthly_equivalent(Decimal("100"), frequency) == expected

    def test_yearly_is_a_twelfth(self):
        """Test 100 yearly is 8.33... per month."""
        value = monthly_equivalent(100, "yearly")
        assert value.quantize(Decimal("0.01")) == Decimal("8.33")

    def test_accepts_string_frequency(self):
        """Test frequency strings are resolved case-insensitively."""
        assert monthly_equivalent("50", " Weekly ") == Decimal("216.50")

    @pytest.mark.parametrize("amount", [0, -5, "abc", float("nan"), True])
    def test_rejects_invalid_amount(self, amount):
        """Test invalid amounts name the amount field."""
        with pytest.raises(ExpenseValidationError) as exc_info:
            monthly_equivalent(amount, Frequency.MONTHLY)
        assert exc_info.value.field == "amount"

    def test_rejects_unknown_frequency_in_strict_mode(self):
        """Test an unknown frequency is an error by default."""
        with pytest.raises(ExpenseValidationError) as exc_info:
            monthly_equivalent(100, "daily")
        assert exc_info.value.field == "frequency"

    def test_lenient_mode_falls_back_to_monthly(self):
        """Test an unknown frequency counts as monthly when not strict."""
        assert coerce_frequency("fortnightly", strict=False) == Frequency.MONTHLY
        assert monthly_equivalent(100, "daily", strict=False) == Decimal("100")

    def test_missing_frequency_always_rejected(self):
        """Test a blank frequency is rejected even in lenient mode."""
        with pytest.raises(ExpenseValidationError):
            coerce_frequency("  ", strict=False)


class TestTotalMonthly:
    """Tests for aggregation."""

    @pytest.fixture
    def three_expenses(self):
        return [
            make_expense(amount=Decimal("1000"), frequency=Frequency.WEEKLY),
            paid(amount=Decimal("300"), frequency=Frequency.YEARLY),
            make_expense(
                amount=Decimal("500"), frequency=Frequency.MONTHLY, is_active=False
            ),
        ]

    def test_scenario_totals(self, three_expenses):
        """Test pending, paid and reserve totals of a mixed list."""
        assert total_monthly(three_expenses, is_pending) == Decimal("4330")
        assert total_monthly(three_expenses, is_paid_this_cycle) == Decimal("25")
        assert total_monthly(three_expenses, is_active) == Decimal("4355")

    @pytest.mark.parametrize("predicate", [is_pending, is_paid_this_cycle, is_active])
    def test_empty_list_is_zero(self, predicate):
        """Test that an empty list totals zero."""
        assert total_monthly([], predicate) == Decimal("0")

    def test_order_invariant(self, three_expenses):
        """Test that reordering the input doesn't change the total."""
        expected = total_monthly(three_expenses, is_active)
        shuffled = list(three_expenses)
        random.Random(7).shuffle(shuffled)
        assert total_monthly(shuffled, is_active) == expected
        assert total_monthly(reversed(three_expenses), is_active) == expected

    def test_inactive_paid_contributes_nothing(self):
        """Test inactive expenses are excluded even when paid."""
        expense = paid(is_active=False)
        assert total_monthly([expense], is_paid_this_cycle) == Decimal("0")
        assert total_monthly([expense], is_active) == Decimal("0")

    def test_rejects_mixed_owners(self):
        """Test that aggregation is scoped to one owner."""
        expenses = [make_expense(), make_expense(owner_id="user-2")]
        with pytest.raises(ExpenseValidationError) as exc_info:
            total_monthly(expenses)
        assert exc_info.value.field == "owner_id"

    def test_budget_summary(self, three_expenses):
        """Test budget summary figures add up."""
        summary = budget_summary(three_expenses, currency="EUR")
        assert summary.pending_total + summary.paid_total == summary.reserve_total
        assert summary.active_count == 2
        assert summary.pending_count == 1
        assert summary.paid_count == 1
        assert summary.currency == "EUR"

    def test_available_balance(self, three_expenses):
        """Test available balance subtracts only what is still pending."""
        assert available_balance("5000", three_expenses) == Decimal("670")

    def test_available_balance_rejects_garbage(self):
        """Test a non-numeric balance is rejected."""
        with pytest.raises(ExpenseValidationError) as exc_info:
            available_balance("lots", [])
        assert exc_info.value.field == "balance"


class TestNextDueDate:
    """Tests for due date rollover."""

    @pytest.mark.parametrize("frequency,expected", [
        (Frequency.WEEKLY, date(2024, 1, 22)),
        (Frequency.BIWEEKLY, date(2024, 1, 29)),
        (Frequency.MONTHLY, date(2024, 2, 15)),
        (Frequency.QUARTERLY, date(2024, 4, 15)),
        (Frequency.YEARLY, date(2025, 1, 15)),
    ])
    def test_one_step(self, frequency, expected):
        """Test each frequency advances by exactly one step."""
        assert next_due_date(date(2024, 1, 15), frequency) == expected

    @pytest.mark.parametrize("current,frequency,expected", [
        (date(2024, 1, 31), Frequency.MONTHLY, date(2024, 2, 29)),
        (date(2023, 1, 31), Frequency.MONTHLY, date(2023, 2, 28)),
        (date(2024, 3, 31), Frequency.MONTHLY, date(2024, 4, 30)),
        (date(2024, 11, 30), Frequency.QUARTERLY, date(2025, 2, 28)),
        (date(2024, 2, 29), Frequency.YEARLY, date(2025, 2, 28)),
    ])
    def test_month_end_clamping(self, current, frequency, expected):
        """Test month arithmetic clamps to the last day of shorter months."""
        assert next_due_date(current, frequency) == expected

    @pytest.mark.parametrize("frequency", list(Frequency))
    @pytest.mark.parametrize("current", [
        date(2024, 1, 31), date(2024, 2, 29), date(2023, 12, 31),
        date(2024, 6, 1), date(2024, 8, 31),
    ])
    def test_strictly_monotonic(self, current, frequency):
        """Test the next due date is always later."""
        assert next_due_date(current, frequency) > current

    def test_accepts_iso_string(self):
        """Test an ISO date string is accepted."""
        assert next_due_date("2024-01-15", "monthly") == date(2024, 2, 15)

    def test_rejects_invalid_date(self):
        """Test an invalid date names the due_date field."""
        with pytest.raises(ExpenseValidationError) as exc_info:
            next_due_date("2024-02-30", Frequency.MONTHLY)
        assert exc_info.value.field == "due_date"


class TestMarkAsPaid:
    """Tests for the paid transition."""

    def test_scenario(self):
        """Test paying a monthly expense before its due date."""
        expense = make_expense(amount=Decimal("120"), due_date=date(2024, 1, 15))
        result = mark_as_paid(expense, date(2024, 1, 10))
        assert result.is_paid is True
        assert result.last_paid_date == date(2024, 1, 10)
        assert result.due_date == date(2024, 2, 15)
        assert result.state == ExpenseState.ACTIVE_PAID
        # Input snapshot is untouched
        assert expense.is_paid is False

    @pytest.mark.parametrize("frequency", list(Frequency))
    def test_due_date_rolls_one_step(self, frequency):
        """Test the new due date is one step after the old one."""
        expense = make_expense(frequency=frequency, due_date=date(2024, 1, 31))
        update = mark_as_paid_update(expense, date(2024, 1, 20))
        assert update.changes["due_date"] == next_due_date(date(2024, 1, 31), frequency)

    def test_already_paid_rejected(self):
        """Test paying twice does not advance the due date twice."""
        expense = paid()
        with pytest.raises(AlreadyPaidError) as exc_info:
            mark_as_paid(expense, date(2024, 1, 10))
        assert exc_info.value.expense_id == expense.id


class TestAutoReactivate:
    """Tests for auto-reactivation."""

    def test_selects_only_stale_paid_active(self):
        """Test only active, paid, past-due expenses are selected."""
        stale = paid(due_date=date(2024, 2, 15))
        not_yet = paid(due_date=date(2024, 3, 1))
        unpaid = make_expense(due_date=date(2024, 2, 1))
        inactive = paid(due_date=date(2024, 2, 1), is_active=False)

        updates = auto_reactivate(
            [stale, not_yet, unpaid, inactive], date(2024, 3, 1)
        )

        assert [u.expense_id for u in updates] == [stale.id]
        assert updates[0].changes == {
            "is_paid": False,
            "due_date": date(2024, 3, 15),
        }

    def test_single_step_catch_up(self):
        """Test the default advances one step even if still in the past."""
        expense = paid(due_date=date(2024, 1, 1))
        updates = auto_reactivate([expense], date(2024, 3, 15))
        assert updates[0].changes["due_date"] == date(2024, 2, 1)

    def test_full_catch_up(self):
        """Test full catch-up advances until the due date is not in the past."""
        expense = paid(due_date=date(2024, 1, 1))
        updates = auto_reactivate([expense], date(2024, 3, 15), CatchUp.FULL)
        assert updates[0].changes["due_date"] == date(2024, 4, 1)

    def test_full_catch_up_lands_on_today(self):
        """Test full catch-up stops on a due date equal to today."""
        expense = paid(due_date=date(2024, 1, 1), frequency=Frequency.WEEKLY)
        updates = auto_reactivate([expense], date(2024, 1, 15), CatchUp.FULL)
        assert updates[0].changes["due_date"] == date(2024, 1, 15)

    def test_keeps_last_paid_date(self):
        """Test reactivation doesn't clear the payment history."""
        expense = paid(due_date=date(2024, 1, 1), last_paid_date=date(2023, 12, 28))
        [result] = apply_updates([expense], auto_reactivate([expense], date(2024, 1, 5)))
        assert result.last_paid_date == date(2023, 12, 28)
        assert result.is_paid is False

    @pytest.mark.parametrize("catch_up", list(CatchUp))
    def test_idempotent(self, catch_up):
        """Test that a second run on the same day changes nothing."""
        today = date(2024, 3, 15)
        expenses = [
            paid(due_date=date(2024, 1, 1)),
            paid(due_date=date(2024, 3, 10), frequency=Frequency.WEEKLY),
            paid(due_date=date(2024, 4, 1)),
        ]
        once = apply_updates(expenses, auto_reactivate(expenses, today, catch_up))
        twice = apply_updates(once, auto_reactivate(once, today, catch_up))
        assert twice == once
        assert auto_reactivate(once, today, catch_up) == []


class TestResetAndToggle:
    """Tests for reset all and active toggling."""

    def test_reset_only_touches_paid_flags_of_active(self):
        """Test reset never changes due dates or inactive records."""
        active_paid = paid(due_date=date(2024, 2, 15))
        active_unpaid = make_expense(due_date=date(2024, 1, 20))
        inactive = paid(is_active=False)

        updates = reset_all_active([active_paid, active_unpaid, inactive])

        assert {u.expense_id for u in updates} == {active_paid.id, active_unpaid.id}
        for update in updates:
            assert set(update.changes) == {"is_paid", "last_paid_date"}

        result = apply_updates([active_paid, active_unpaid, inactive], updates)
        assert [e.due_date for e in result] == [
            active_paid.due_date, active_unpaid.due_date, inactive.due_date
        ]
        assert result[0].is_paid is False
        assert result[0].last_paid_date is None
        assert result[2] == inactive

    def test_reset_does_not_depend_on_today(self):
        """Test reset gives the same updates whatever today is."""
        expenses = [paid(due_date=date(2024, 2, 15)), make_expense()]
        assert reset_all_active(expenses, date(2024, 1, 10)) == reset_all_active(expenses)
        assert reset_all_active(expenses, date(2030, 1, 1)) == reset_all_active(expenses)

    def test_reset_after_paying_keeps_advanced_due_date(self):
        """Test resetting right after paying keeps the rolled due date."""
        expense = mark_as_paid(make_expense(due_date=date(2024, 1, 15)), date(2024, 1, 10))
        [result] = apply_updates([expense], reset_all_active([expense]))
        assert result.due_date == date(2024, 2, 15)
        assert result.state == ExpenseState.ACTIVE_UNPAID

    def test_toggle_active(self):
        """Test toggling flips only the active flag."""
        expense = paid()
        update = toggle_active(expense)
        assert update.changes == {"is_active": False}
        result = update.apply_to(expense)
        assert result.state == ExpenseState.INACTIVE
        assert result.is_paid is True


class TestDueDates:
    """Tests for due status and next payment date."""

    @pytest.mark.parametrize("due,level", [
        (date(2024, 1, 9), DueLevel.OVERDUE),
        (date(2024, 1, 10), DueLevel.DUE_TODAY),
        (date(2024, 1, 11), DueLevel.DUE_TOMORROW),
        (date(2024, 1, 13), DueLevel.DUE_SOON),
        (date(2024, 1, 14), DueLevel.UPCOMING),
    ])
    def test_due_status_levels(self, due, level):
        """Test due status thresholds."""
        status = due_status(make_expense(due_date=due), date(2024, 1, 10))
        assert status.level == level
        assert status.days_until == (due - date(2024, 1, 10)).days

    def test_next_payment_date_is_earliest_pending(self):
        """Test the earliest pending due date wins."""
        expenses = [
            make_expense(due_date=date(2024, 1, 20)),
            make_expense(due_date=date(2024, 1, 12)),
            paid(due_date=date(2024, 1, 5)),
            make_expense(due_date=date(2024, 1, 3), is_active=False),
        ]
        assert next_payment_date(expenses, date(2024, 1, 10)) == date(2024, 1, 12)

    def test_next_payment_date_falls_back_to_month_end(self):
        """Test month end is used when nothing is pending."""
        assert next_payment_date([], date(2024, 2, 10)) == date(2024, 2, 29)
        assert next_payment_date([paid()], date(2023, 4, 2)) == date(2023, 4, 30)


class TestExpenseState:
    """Tests for the per-expense state machine."""

    def test_lifecycle(self):
        """Test unpaid -> paid -> reactivated -> inactive."""
        expense = make_expense(due_date=date(2024, 1, 15))
        assert expense_state(expense) == ExpenseState.ACTIVE_UNPAID

        expense = mark_as_paid(expense, date(2024, 1, 10))
        assert expense_state(expense) == ExpenseState.ACTIVE_PAID

        [expense] = apply_updates([expense], auto_reactivate([expense], date(2024, 2, 16)))
        assert expense_state(expense) == ExpenseState.ACTIVE_UNPAID

        expense = toggle_active(expense).apply_to(expense)
        assert expense_state(expense) == ExpenseState.INACTIVE


class TestFixedClock:
    """Tests for the fixed clock."""

    def test_advance_and_set(self):
        """Test the clock only moves when told to."""
        clock = FixedClock(date(2024, 1, 31))
        assert clock.today() == date(2024, 1, 31)
        assert clock.advance(1) == date(2024, 2, 1)
        clock.set(date(2024, 12, 25))
        assert clock.today() == date(2024, 12, 25)
