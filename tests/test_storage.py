"""Tests for the storage backends (in-memory and Google Sheets with a fake worksheet)."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from coinpilot.models.audit import AuditEventBuilder
from coinpilot.models.expense import ExpenseCategory, Frequency
from coinpilot.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    StorageError,
)
from coinpilot.services.storage.google_sheets import AUDIT_COLUMNS, EXPENSE_COLUMNS
from tests.conftest import OWNER, make_expense


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage layer."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]
        self.writes = 0

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name=None, values=None, value_input_option=None):
        self.writes += 1
        start, _ = range_name.split(":")
        row = int(start.lstrip("ABCDEFGHIJKLMNOPQRSTUVWXYZ"))
        self.rows[row - 1] = [str(v) for v in values[0]]

    def delete_rows(self, index: int):
        del self.rows[index - 1]


class FailingWriteWorksheet(FakeWorksheet):
    """Worksheet whose row writes fail, like a quota error mid-request."""

    def update(self, range_name=None, values=None, value_input_option=None):
        raise RuntimeError("Quota exceeded for quota metric 'Write requests'")


class FakeSheetsClient:
    def __init__(self):
        self.expenses = FakeWorksheet(EXPENSE_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_expenses_sheet(self):
        return self.expenses

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture(params=["memory", "sheets"])
def store(request):
    if request.param == "memory":
        return InMemoryExpenseStorage()
    return GoogleSheetsExpenseStorage(FakeSheetsClient())


class TestExpenseStorage:
    """Behaviour shared by every expense store."""

    async def test_insert_and_get(self, store):
        """Test an inserted expense can be read back unchanged."""
        expense = make_expense(
            category=ExpenseCategory.SUBSCRIPTIONS,
            description="Family plan",
        )
        await store.insert_expense(expense)
        assert await store.get_expense(expense.id) == expense

    async def test_get_missing_returns_none(self, store):
        """Test reading an unknown ID."""
        assert await store.get_expense(uuid4()) is None

    async def test_duplicate_insert_rejected(self, store):
        """Test the same ID can't be inserted twice."""
        expense = make_expense()
        await store.insert_expense(expense)
        with pytest.raises(DuplicateError):
            await store.insert_expense(expense)

    async def test_list_filters_and_orders(self, store):
        """Test listing is scoped to the owner, filtered and ordered by due date."""
        late = make_expense(name="Late", due_date=date(2024, 3, 1))
        early = make_expense(name="Early", due_date=date(2024, 1, 1))
        paid = make_expense(
            name="Paid", is_paid=True, last_paid_date=date(2024, 1, 2)
        )
        inactive = make_expense(name="Off", is_active=False)
        other = make_expense(owner_id="user-2")
        for expense in [late, early, paid, inactive, other]:
            await store.insert_expense(expense)

        everything = await store.list_expenses(OWNER)
        assert len(everything) == 4
        assert everything[0].name == "Early"
        assert everything[-1].name == "Late"

        pending = await store.list_expenses(OWNER, is_active=True, is_paid=False)
        assert [e.name for e in pending] == ["Early", "Late"]
        assert [e.name for e in await store.list_expenses(OWNER, is_paid=True)] == ["Paid"]
        assert [e.name for e in await store.list_expenses(OWNER, is_active=False)] == ["Off"]

    async def test_update_applies_changes(self, store):
        """Test a partial update persists only the given fields."""
        expense = make_expense()
        await store.insert_expense(expense)

        updated = await store.update_expense(expense.id, {
            "is_paid": True,
            "last_paid_date": date(2024, 1, 10),
            "due_date": date(2024, 2, 15),
        })

        assert updated.is_paid is True
        assert updated.due_date == date(2024, 2, 15)
        assert updated.name == expense.name
        assert await store.get_expense(expense.id) == updated

    async def test_update_missing_raises(self, store):
        """Test updating an unknown ID."""
        with pytest.raises(NotFoundError):
            await store.update_expense(uuid4(), {"is_paid": False})

    async def test_update_invalid_result_raises(self, store):
        """Test an update that breaks the record invariants is rejected."""
        expense = make_expense()
        await store.insert_expense(expense)
        with pytest.raises(StorageError):
            await store.update_expense(expense.id, {"is_paid": True})
        assert (await store.get_expense(expense.id)).is_paid is False

    async def test_delete(self, store):
        """Test deleting an expense."""
        expense = make_expense()
        await store.insert_expense(expense)
        assert await store.delete_expense(expense.id) is True
        assert await store.get_expense(expense.id) is None
        assert await store.delete_expense(expense.id) is False


class TestInMemoryIsolation:
    """The in-memory store never shares objects with callers."""

    async def test_returned_copies_are_detached(self):
        """Test mutating a returned record doesn't change the store."""
        expense = make_expense()
        store = InMemoryExpenseStorage([expense])
        fetched = await store.get_expense(expense.id)
        fetched.name = "Changed"
        assert (await store.get_expense(expense.id)).name == "Netflix"


class TestGoogleSheetsRows:
    """Row conversion for the Google Sheets backend."""

    def test_row_round_trip_keeps_types(self):
        """Test a row converts back to an equal expense."""
        storage = GoogleSheetsExpenseStorage(FakeSheetsClient())
        expense = make_expense(
            amount=Decimal("1200.50"),
            frequency=Frequency.QUARTERLY,
            is_paid=True,
            last_paid_date=date(2024, 1, 3),
        )
        row = storage._expense_to_row(expense)
        assert len(row) == len(EXPENSE_COLUMNS)
        assert row[4] == "1200.50"
        assert storage._row_to_expense(row) == expense

    async def test_sheet_failure_becomes_storage_error(self):
        """Test backend errors surface as StorageError."""

        class BrokenClient:
            def get_expenses_sheet(self):
                raise RuntimeError("quota exceeded")

        storage = GoogleSheetsExpenseStorage(BrokenClient())
        with pytest.raises(StorageError, match="quota exceeded"):
            await storage.list_expenses(OWNER)


class TestAuditStorage:
    """Tests for audit storage backends."""

    @pytest.fixture(params=["memory", "sheets"])
    def audit_store(self, request):
        if request.param == "memory":
            return InMemoryAuditStorage()
        return GoogleSheetsAuditStorage(FakeSheetsClient())

    async def test_events_by_entity(self, audit_store):
        """Test events are filtered by entity, oldest first."""
        expense_id = uuid4()
        created = AuditEventBuilder.expense_created(
            expense_id=expense_id,
            owner_id=OWNER,
            name="Rent",
            amount="1200.00",
            frequency="monthly",
        )
        paid = AuditEventBuilder.expense_marked_paid(
            expense_id=expense_id,
            owner_id=OWNER,
            paid_on=date(2024, 1, 10),
            previous_due_date=date(2024, 1, 15),
            next_due_date=date(2024, 2, 15),
        )
        unrelated = AuditEventBuilder.expense_deleted(expense_id=uuid4(), owner_id=OWNER)
        for event in [created, paid, unrelated]:
            assert await audit_store.append_event(event) is True

        events = await audit_store.get_events_by_entity("expense", expense_id)
        assert [e.event_id for e in events] == [created.event_id, paid.event_id]
        assert events[1].details["next_due_date"] == "2024-02-15"

        recent = await audit_store.get_recent_events(limit=2)
        assert len(recent) == 2


class TestGoogleSheetsUpdate:
    """Row rewrites on the Google Sheets backend."""

    async def test_update_is_a_single_row_write(self):
        """Test an update rewrites the row in one call."""
        client = FakeSheetsClient()
        storage = GoogleSheetsExpenseStorage(client)
        expense = make_expense()
        await storage.insert_expense(expense)

        await storage.update_expense(expense.id, {"is_active": False})

        assert client.expenses.writes == 1
        assert client.expenses.rows[1][EXPENSE_COLUMNS.index("is_active")] == "False"

    async def test_failed_write_leaves_row_unchanged(self):
        """Test a failed write keeps every column of the prior record."""
        client = FakeSheetsClient()
        client.expenses = FailingWriteWorksheet(EXPENSE_COLUMNS)
        storage = GoogleSheetsExpenseStorage(client)
        expense = make_expense(due_date=date(2024, 1, 15))
        await storage.insert_expense(expense)

        with pytest.raises(StorageError, match="Quota exceeded"):
            await storage.update_expense(expense.id, {
                "is_paid": True,
                "last_paid_date": date(2024, 1, 10),
                "due_date": date(2024, 2, 15),
                "is_active": False,
            })

        assert await storage.get_expense(expense.id) == expense
