"""Services package."""

from home_ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    LedgerRepository,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerRepository",
    "InMemoryAuditStorage",
    "InMemoryLedgerRepository",
    "LedgerRepository",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
]
