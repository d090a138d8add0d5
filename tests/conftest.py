"""Shared fixtures for CoinPilot tests."""

from datetime import date
from decimal import Decimal

import pytest

from coinpilot.config import AppSettings
from coinpilot.models.expense import Frequency, RecurringExpense


OWNER = "user-1"


def make_expense(**overrides) -> RecurringExpense:
    """Build a valid expense, overriding any field."""
    fields = {
        "owner_id": OWNER,
        "name": "Netflix",
        "amount": Decimal("15.99"),
        "frequency": Frequency.MONTHLY,
        "due_date": date(2024, 1, 15),
    }
    fields.update(overrides)
    return RecurringExpense(**fields)


@pytest.fixture
def app_settings() -> AppSettings:
    """Settings with defaults, independent of the environment."""
    return AppSettings(
        strict_frequency=True,
        reactivation_catch_up="single",
        due_soon_days=3,
        max_expense_amount=100000.0,
        stale_due_date_days=365,
    )
