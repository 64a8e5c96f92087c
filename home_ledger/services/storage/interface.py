"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the queries the lifecycle, recurrence and settlement services need.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from home_ledger.models.ledger import (
    ApprovalStatus,
    Category,
    Expense,
    Payment,
    RecurringExpense,
    User,
)
from home_ledger.models.audit import AuditEvent


class LedgerRepository(ABC):
    """
    Abstract interface for ledger persistence.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. Lookups by id return None when the
    entity does not exist; updates and deletes raise NotFoundError.
    """

    # -- Users and categories -------------------------------------------------

    @abstractmethod
    async def find_users(self, is_admin: Optional[bool] = None) -> list[User]:
        """
        List users, optionally filtered by the admin flag.

        Returns users in creation order.
        """

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def create_user(self, user: User) -> User:
        pass

    @abstractmethod
    async def find_categories(self) -> list[Category]:
        pass

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    async def create_category(self, category: Category) -> Category:
        pass

    # -- Expenses -------------------------------------------------------------

    @abstractmethod
    async def find_expenses(
        self,
        month: int,
        year: int,
        status: Optional[ApprovalStatus] = None,
        is_shared: Optional[bool] = None,
    ) -> list[Expense]:
        """
        List expenses of one calendar month.

        Args:
            month: Expense month (1-12)
            year: Expense year
            status: Only expenses in this approval state
            is_shared: Only shared (True) or personal (False) expenses

        Returns:
            Expenses ordered by expense_date descending,
            then created_at descending
        """

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    async def create_expense(self, expense: Expense) -> Expense:
        """
        Insert a new expense.

        Raises:
            DuplicateError: If the expense references a recurring template
                that already has an expense for the same month and year
        """

    @abstractmethod
    async def update_expense_fields(
        self,
        expense_id: UUID,
        fields: dict[str, Any],
    ) -> Expense:
        """
        Apply a partial update and return the stored result.

        Raises:
            NotFoundError: If the expense doesn't exist
        """

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Permanently delete an expense.

        Raises:
            NotFoundError: If the expense doesn't exist
        """

    @abstractmethod
    async def count_expenses_for_template_and_month(
        self,
        template_id: UUID,
        month: int,
        year: int,
    ) -> int:
        pass

    # -- Recurring templates --------------------------------------------------

    @abstractmethod
    async def find_templates(
        self,
        is_active: Optional[bool] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> list[RecurringExpense]:
        """List templates, newest first."""

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[RecurringExpense]:
        pass

    @abstractmethod
    async def create_template(self, template: RecurringExpense) -> RecurringExpense:
        pass

    @abstractmethod
    async def update_template_fields(
        self,
        template_id: UUID,
        fields: dict[str, Any],
    ) -> RecurringExpense:
        """
        Apply a partial update and return the stored result.

        Raises:
            NotFoundError: If the template doesn't exist
        """

    # -- Payments -------------------------------------------------------------

    @abstractmethod
    async def find_payments(self, month: int, year: int) -> list[Payment]:
        """List payments recorded for a month, newest first."""

    @abstractmethod
    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        pass

    @abstractmethod
    async def create_payment(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def delete_payment(self, payment_id: UUID) -> bool:
        """
        Delete a payment.

        Raises:
            NotFoundError: If the payment doesn't exist
        """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
