"""
In-Memory Storage Implementation

Dict-backed repository used by the test suite and for local runs without
a spreadsheet. Every read returns a copy so callers can never mutate
stored state behind the repository's back.

The (template, month, year) uniqueness that a database would enforce
with a unique index is enforced here explicitly.
"""

from typing import Any, Optional
from uuid import UUID

from home_ledger.models.audit import AuditEvent
from home_ledger.models.ledger import (
    ApprovalStatus,
    Category,
    Expense,
    Payment,
    RecurringExpense,
    User,
)
from home_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerRepository,
    NotFoundError,
)


class InMemoryLedgerRepository(LedgerRepository):
    """LedgerRepository kept entirely in process memory."""

    def __init__(self):
        self._users: dict[UUID, User] = {}
        self._categories: dict[UUID, Category] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._templates: dict[UUID, RecurringExpense] = {}
        self._payments: dict[UUID, Payment] = {}

    # -- Users and categories -------------------------------------------------

    async def find_users(self, is_admin: Optional[bool] = None) -> list[User]:
        return [
            user.model_copy(deep=True)
            for user in self._users.values()
            if is_admin is None or user.is_admin == is_admin
        ]

    async def get_user(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def create_user(self, user: User) -> User:
        if user.id in self._users:
            raise DuplicateError(f"User already exists: {user.id}")
        self._users[user.id] = user.model_copy(deep=True)
        return user

    async def find_categories(self) -> list[Category]:
        return [c.model_copy(deep=True) for c in self._categories.values()]

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy(deep=True) if category else None

    async def create_category(self, category: Category) -> Category:
        if category.id in self._categories:
            raise DuplicateError(f"Category already exists: {category.id}")
        self._categories[category.id] = category.model_copy(deep=True)
        return category

    # -- Expenses -------------------------------------------------------------

    async def find_expenses(
        self,
        month: int,
        year: int,
        status: Optional[ApprovalStatus] = None,
        is_shared: Optional[bool] = None,
    ) -> list[Expense]:
        expenses = [
            e.model_copy(deep=True)
            for e in self._expenses.values()
            if e.expense_month == month
            and e.expense_year == year
            and (status is None or e.status == status)
            and (is_shared is None or e.is_shared == is_shared)
        ]
        expenses.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return expenses

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def create_expense(self, expense: Expense) -> Expense:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        if expense.recurring_expense_id is not None:
            existing = await self.count_expenses_for_template_and_month(
                expense.recurring_expense_id,
                expense.expense_month,
                expense.expense_year,
            )
            if existing:
                raise DuplicateError(
                    f"Template {expense.recurring_expense_id} already has an expense "
                    f"for {expense.expense_month:02d}/{expense.expense_year}"
                )
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense

    async def update_expense_fields(
        self,
        expense_id: UUID,
        fields: dict[str, Any],
    ) -> Expense:
        current = self._expenses.get(expense_id)
        if current is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        # Re-validate so derived month/year follow a changed date
        updated = Expense.model_validate({**current.model_dump(), **fields})
        self._expenses[expense_id] = updated
        return updated.model_copy(deep=True)

    async def delete_expense(self, expense_id: UUID) -> bool:
        if self._expenses.pop(expense_id, None) is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        return True

    async def count_expenses_for_template_and_month(
        self,
        template_id: UUID,
        month: int,
        year: int,
    ) -> int:
        return sum(
            1
            for e in self._expenses.values()
            if e.recurring_expense_id == template_id
            and e.expense_month == month
            and e.expense_year == year
        )

    # -- Recurring templates --------------------------------------------------

    async def find_templates(
        self,
        is_active: Optional[bool] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> list[RecurringExpense]:
        templates = [
            t.model_copy(deep=True)
            for t in self._templates.values()
            if (is_active is None or t.is_active == is_active)
            and (status is None or t.status == status)
        ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    async def get_template(self, template_id: UUID) -> Optional[RecurringExpense]:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def create_template(self, template: RecurringExpense) -> RecurringExpense:
        if template.id in self._templates:
            raise DuplicateError(f"Template already exists: {template.id}")
        self._templates[template.id] = template.model_copy(deep=True)
        return template

    async def update_template_fields(
        self,
        template_id: UUID,
        fields: dict[str, Any],
    ) -> RecurringExpense:
        current = self._templates.get(template_id)
        if current is None:
            raise NotFoundError(f"Template not found: {template_id}")
        updated = RecurringExpense.model_validate({**current.model_dump(), **fields})
        self._templates[template_id] = updated
        return updated.model_copy(deep=True)

    # -- Payments -------------------------------------------------------------

    async def find_payments(self, month: int, year: int) -> list[Payment]:
        payments = [
            p
            for p in self._payments.values()
            if p.month == month and p.year == year
        ]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        return self._payments.get(payment_id)

    async def create_payment(self, payment: Payment) -> Payment:
        if payment.id in self._payments:
            raise DuplicateError(f"Payment already exists: {payment.id}")
        # Payments are frozen models, safe to share
        self._payments[payment.id] = payment
        return payment

    async def delete_payment(self, payment_id: UUID) -> bool:
        if self._payments.pop(payment_id, None) is None:
            raise NotFoundError(f"Payment not found: {payment_id}")
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
