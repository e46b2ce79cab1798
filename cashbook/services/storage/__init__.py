"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger and templates live in the in-memory backend; the audit trail
can additionally be mirrored to Google Sheets.
"""

from cashbook.services.storage.interface import (
    AuditStorageInterface,
    RecurringStorageInterface,
    TransactionStorageInterface,
)
from cashbook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    InMemoryTransactionStorage,
)
from cashbook.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    SheetsConnectionError,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecurringStorageInterface",
    "TransactionStorageInterface",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecurringStorage",
    "InMemoryTransactionStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "SheetsConnectionError",
]
