"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted backend for personal use because:
1. Users can view and export their expenses directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions across rows: each expense row is written independently,
  but a single row is always rewritten in one call
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the backend can be
swapped without changing the engine or the service layer.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coinpilot.config import GoogleSheetsSettings, get_settings
from coinpilot.models.audit import AuditEvent, AuditEventType, AuditSeverity
from coinpilot.models.expense import (
    ExpenseCategory,
    ExpenseUpdate,
    Frequency,
    RecurringExpense,
)
from coinpilot.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)


# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "owner_id",
    "created_at",
    "name",
    "amount",
    "category",
    "frequency",
    "due_date",
    "last_paid_date",
    "is_active",
    "is_paid",
    "description",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "owner_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        """Get or create the Expenses worksheet."""
        return self._get_or_create_sheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    One expense per row. Dates are ISO strings, flags are "True"/"False".
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _expense_to_row(self, expense: RecurringExpense) -> list:
        """Convert a RecurringExpense to a spreadsheet row."""
        return [
            str(expense.id),
            expense.owner_id,
            expense.created_at.isoformat(),
            expense.name,
            str(expense.amount),
            expense.category.value,
            expense.frequency.value,
            expense.due_date.isoformat(),
            expense.last_paid_date.isoformat() if expense.last_paid_date else "",
            str(expense.is_active),
            str(expense.is_paid),
            expense.description or "",
        ]

    def _row_to_expense(self, row: list) -> RecurringExpense:
        """Convert a spreadsheet row to a RecurringExpense."""
        safe_get = _safe_getter(row)

        return RecurringExpense(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            created_at=datetime.fromisoformat(safe_get(2)),
            name=safe_get(3),
            amount=Decimal(safe_get(4)),
            category=ExpenseCategory(safe_get(5, ExpenseCategory.OTHER.value)),
            frequency=Frequency(safe_get(6)),
            due_date=date.fromisoformat(safe_get(7)),
            last_paid_date=date.fromisoformat(safe_get(8)) if safe_get(8) else None,
            is_active=safe_get(9).lower() == "true",
            is_paid=safe_get(10).lower() == "true",
            description=safe_get(11) or None,
        )

    def _find_row(self, all_rows: list[list], expense_id: UUID) -> Optional[int]:
        """Return the 1-based sheet row index of an expense, or None."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == str(expense_id):
                return idx
        return None

    async def list_expenses(
        self,
        owner_id: str,
        is_active: Optional[bool] = None,
        is_paid: Optional[bool] = None,
    ) -> list[RecurringExpense]:
        """List one owner's expenses with optional flag filters."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        expenses = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            if len(row) < 2 or row[1] != owner_id:
                continue

            expense = self._row_to_expense(row)

            if is_active is not None and expense.is_active != is_active:
                continue
            if is_paid is not None and expense.is_paid != is_paid:
                continue

            expenses.append(expense)

        expenses.sort(key=lambda e: e.due_date)
        return expenses

    async def get_expense(self, expense_id: UUID) -> Optional[RecurringExpense]:
        """Retrieve an expense by its ID."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

        idx = self._find_row(all_rows, expense_id)
        if idx is None:
            return None
        return self._row_to_expense(all_rows[idx - 1])

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_expense(self, expense: RecurringExpense) -> RecurringExpense:
        """Append a new expense row."""
        if await self.get_expense(expense.id) is not None:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        try:
            sheet = self._client.get_expenses_sheet()
            sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
            return expense
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def update_expense(
        self,
        expense_id: UUID,
        changes: dict[str, Any],
    ) -> RecurringExpense:
        """Apply a partial update by rewriting the expense's row."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

        idx = self._find_row(all_rows, expense_id)
        if idx is None:
            raise NotFoundError(f"Expense not found: {expense_id}")

        current = self._row_to_expense(all_rows[idx - 1])
        try:
            updated = ExpenseUpdate(expense_id=expense_id, changes=changes).apply_to(current)
        except ValueError as e:
            raise StorageError(f"Failed to update expense: {e}")

        # One ranged write, so a failure never leaves a half-updated row
        row = self._expense_to_row(updated)
        cell_range = f"A{idx}:{rowcol_to_a1(idx, len(row))}"
        try:
            sheet.update(range_name=cell_range, values=[row], value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

        return updated

    async def delete_expense(self, expense_id: UUID) -> bool:
        """Delete an expense row by ID."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()

            idx = self._find_row(all_rows, expense_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            owner_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = [
            self._row_to_event(row)
            for row in all_rows
            if row
            and len(row) > 5
            and row[4] == entity_type
            and row[5] == str(entity_id)
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = [self._row_to_event(row) for row in all_rows if row and row[0]]

        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
