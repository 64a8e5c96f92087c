"""
Business Rule Errors

Every rejected lifecycle transition raises one of these. Each carries a
stable `code` the HTTP layer maps to a status code; the engine itself never
produces wire-format output.

Infrastructure failures are a separate family (see StorageError).
"""

from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for business rule violations."""

    code = "ledger_error"

    def __init__(self, message: str, entity_id: Optional[UUID] = None):
        self.entity_id = entity_id
        super().__init__(message)


class EntityNotFoundError(LedgerError):
    """Referenced user, category, expense, template or payment does not exist."""

    code = "not_found"


class ForbiddenError(LedgerError):
    """Actor may not perform this transition (wrong creator, self-approval...)."""

    code = "forbidden"


class InvalidStateError(LedgerError):
    """Entity is not in the lifecycle state the transition requires."""

    code = "invalid_state"


class InvalidArgumentError(LedgerError):
    """Malformed input: missing installment count, bad amount, overpayment."""

    code = "invalid_argument"


class ConflictError(LedgerError):
    """Duplicate request, e.g. a second delete request on the same expense."""

    code = "conflict"
