"""
Component Wiring for Home Ledger

This module ties together storage, audit logging and the engine services.
The HTTP layer and the daily scheduler (both outside this package) get
everything they need from create_app_components().

DESIGN DECISION: All services share one repository, one audit logger and
one lock registry. Sharing the lock registry is what makes a template
approval and a scheduled run exclude each other on the same template.
"""

from typing import NamedTuple, Optional

import structlog

from home_ledger.audit import AuditLogger, configure_logging
from home_ledger.config import get_settings
from home_ledger.engine import (
    EntityLocks,
    ExpenseLifecycleManager,
    PaymentLedger,
    RecurrenceEngine,
    SettlementCalculator,
)
from home_ledger.models.ledger import Category
from home_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    LedgerRepository,
)


logger = structlog.get_logger(__name__)

DEFAULT_CATEGORIES = [
    ("Rent", "building"),
    ("Bills", "receipt"),
    ("Groceries", "shopping-cart"),
    ("Home", "home"),
    ("Entertainment", "gamepad"),
    ("Transport", "car"),
    ("Health", "heart-pulse"),
    ("Clothing", "shirt"),
    ("Dining", "utensils"),
    ("Other", "ellipsis"),
]


class LedgerComponents(NamedTuple):
    """Everything the outer layers need, built around one repository."""

    repository: LedgerRepository
    audit_logger: AuditLogger
    expenses: ExpenseLifecycleManager
    recurring: RecurrenceEngine
    settlement: SettlementCalculator
    payments: PaymentLedger


def build_components(
    repository: LedgerRepository,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerComponents:
    """Wire the engine services around an existing repository."""
    ledger_settings = get_settings().ledger
    audit_logger = AuditLogger(audit_storage)
    locks = EntityLocks()
    settlement = SettlementCalculator(repository)

    return LedgerComponents(
        repository=repository,
        audit_logger=audit_logger,
        expenses=ExpenseLifecycleManager(
            repository,
            audit_logger=audit_logger,
            locks=locks,
            default_split_ratio=ledger_settings.default_split_ratio,
        ),
        recurring=RecurrenceEngine(
            repository,
            audit_logger=audit_logger,
            locks=locks,
            default_split_ratio=ledger_settings.default_split_ratio,
            stop_on_first_failure=ledger_settings.recurring_stop_on_first_failure,
        ),
        settlement=settlement,
        payments=PaymentLedger(
            repository,
            calculator=settlement,
            audit_logger=audit_logger,
            locks=locks,
        ),
    )


def create_app_components(
    storage_backend: Optional[str] = None,
) -> LedgerComponents:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets". Defaults to the
                         LEDGER_STORAGE_BACKEND setting.

    Falls back to in-memory storage when Google Sheets is not configured,
    so a missing credentials file never stops local development.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    backend = storage_backend or settings.ledger.storage_backend

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            return build_components(
                GoogleSheetsLedgerRepository(sheets_client),
                GoogleSheetsAuditStorage(sheets_client),
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", backend=backend, error=str(e))

    return build_components(InMemoryLedgerRepository(), InMemoryAuditStorage())


async def seed_default_categories(repository: LedgerRepository) -> list[Category]:
    """
    Create the standard household categories if none exist yet.

    Returns the categories that were created (empty when already seeded).
    """
    if await repository.find_categories():
        return []

    created = []
    for name, icon in DEFAULT_CATEGORIES:
        created.append(await repository.create_category(Category(name=name, icon=icon)))
    logger.info("categories_seeded", count=len(created))
    return created
