"""
Shared fixtures.

Every test gets a fresh in-memory repository seeded with a two-person
household (alice, bob), an admin, and two categories. No network access.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from home_ledger.audit import AuditLogger
from home_ledger.engine import (
    EntityLocks,
    ExpenseLifecycleManager,
    PaymentLedger,
    RecurrenceEngine,
    SettlementCalculator,
)
from home_ledger.models.ledger import Category, User
from home_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerRepository


class FakeClock:
    """Callable clock the tests can move forward month by month."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, year: int, month: int, day: int = 1) -> None:
        self.now = datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository():
    return InMemoryLedgerRepository()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
async def alice(repository):
    return await repository.create_user(User(username="alice", display_name="Alice"))


@pytest.fixture
async def bob(repository):
    return await repository.create_user(User(username="bob", display_name="Bob"))


@pytest.fixture
async def admin(repository):
    return await repository.create_user(
        User(username="admin", display_name="Admin", is_admin=True)
    )


@pytest.fixture
async def household(alice, bob, admin):
    """Create users in a fixed order: alice, bob, admin."""
    return alice, bob, admin


@pytest.fixture
async def groceries(repository):
    return await repository.create_category(Category(name="Groceries", icon="shopping-cart"))


@pytest.fixture
async def rent(repository):
    return await repository.create_category(Category(name="Rent", icon="building"))


@pytest.fixture
def locks():
    return EntityLocks()


@pytest.fixture
def expenses(repository, audit_logger, locks):
    return ExpenseLifecycleManager(
        repository,
        audit_logger=audit_logger,
        locks=locks,
        default_split_ratio=Decimal("50"),
    )


@pytest.fixture
def recurring(repository, audit_logger, locks, clock):
    return RecurrenceEngine(
        repository,
        audit_logger=audit_logger,
        locks=locks,
        clock=clock,
        default_split_ratio=Decimal("50"),
        stop_on_first_failure=False,
    )


@pytest.fixture
def calculator(repository):
    return SettlementCalculator(repository)


@pytest.fixture
def payments(repository, calculator, audit_logger, locks):
    return PaymentLedger(
        repository,
        calculator=calculator,
        audit_logger=audit_logger,
        locks=locks,
    )
