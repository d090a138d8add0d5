"""Services package."""

from coinpilot.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "InMemoryAuditStorage",
    "InMemoryExpenseStorage",
    "NotFoundError",
    "StorageError",
]
