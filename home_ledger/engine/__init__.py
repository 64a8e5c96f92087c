"""
Expense lifecycle and settlement engine.

The four services here hold every business rule of the ledger.
They depend only on the abstract LedgerRepository.
"""

from home_ledger.engine.errors import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    LedgerError,
)
from home_ledger.engine.expenses import ExpenseLifecycleManager
from home_ledger.engine.locks import EntityLocks
from home_ledger.engine.payments import PaymentLedger
from home_ledger.engine.recurring import RecurrenceEngine
from home_ledger.engine.settlement import SettlementCalculator, round_money

__all__ = [
    # Errors
    "ConflictError",
    "EntityNotFoundError",
    "ForbiddenError",
    "InvalidArgumentError",
    "InvalidStateError",
    "LedgerError",
    # Services
    "EntityLocks",
    "ExpenseLifecycleManager",
    "PaymentLedger",
    "RecurrenceEngine",
    "SettlementCalculator",
    "round_money",
]
