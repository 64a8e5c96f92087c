"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
An in-memory backend is used for tests and local runs; Google Sheets is the
durable backend. Both follow the same interface so they are swappable.
"""

from home_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerRepository,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from home_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
)
from home_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerRepository",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerRepository",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerRepository",
]
