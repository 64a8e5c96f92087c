"""
Expense Lifecycle Manager

Enforces the rules for single expense records:

    created ──► pending ──► approved | rejected      (shared expenses)
    created ──► approved                             (personal expenses)

DESIGN DECISION: The creator owns an expense for editing; the other
participant owns it for approval. Nobody approves, rejects or confirms
the deletion of their own request unless they are an admin.

Deletion follows the two-step policy: a non-admin only *requests*
deletion, and the other participant confirms it (or the requester
cancels). Admins delete directly.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from home_ledger.audit import AuditLogger
from home_ledger.config import get_settings
from home_ledger.engine.errors import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
)
from home_ledger.engine.locks import EntityLocks
from home_ledger.models.audit import AuditEventBuilder
from home_ledger.models.ledger import (
    ApprovalStatus,
    Expense,
    ExpensePatch,
    utcnow,
)
from home_ledger.services.storage import LedgerRepository


logger = structlog.get_logger(__name__)


def resolve_split_ratio(split_ratio: Optional[Decimal], default: Decimal) -> Decimal:
    """A missing or zero ratio means "use the household default"."""
    if split_ratio is None or Decimal(str(split_ratio)) == 0:
        return default
    return Decimal(str(split_ratio))


class ExpenseLifecycleManager:
    """
    Creation, editing, deletion and approval of expense records.

    All transitions on one expense are serialized through EntityLocks,
    so two people clicking "approve" at once cannot both succeed.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[EntityLocks] = None,
        default_split_ratio: Optional[Decimal] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger
        self._locks = locks or EntityLocks()
        if default_split_ratio is None:
            default_split_ratio = get_settings().ledger.default_split_ratio
        self._default_split_ratio = default_split_ratio

    async def _load(self, expense_id: UUID) -> Expense:
        expense = await self._repository.get_expense(expense_id)
        if expense is None:
            raise EntityNotFoundError(f"Expense not found: {expense_id}", expense_id)
        return expense

    async def _require_category(self, category_id: UUID) -> None:
        if await self._repository.get_category(category_id) is None:
            raise EntityNotFoundError(f"Category not found: {category_id}", category_id)

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # -- Queries --------------------------------------------------------------

    async def get_expense(self, expense_id: UUID) -> Expense:
        return await self._load(expense_id)

    async def list_expenses(self, month: int, year: int) -> list[Expense]:
        """All expenses of a month, newest expense date first."""
        return await self._repository.find_expenses(month, year)

    # -- Creation and editing -------------------------------------------------

    async def create_expense(
        self,
        creator_id: UUID,
        category_id: UUID,
        description: str,
        amount: Decimal,
        expense_date: date,
        is_shared: bool = True,
        split_ratio: Optional[Decimal] = None,
    ) -> Expense:
        """
        Record a new expense.

        Personal (non-shared) expenses concern only their creator,
        so they skip the approval step entirely.

        Raises:
            EntityNotFoundError: Unknown creator or category
            InvalidArgumentError: Non-positive amount or ratio outside 0-100
        """
        if await self._repository.get_user(creator_id) is None:
            raise EntityNotFoundError(f"User not found: {creator_id}", creator_id)
        await self._require_category(category_id)

        try:
            expense = Expense(
                created_by=creator_id,
                category_id=category_id,
                description=description,
                amount=amount,
                expense_date=expense_date,
                is_shared=is_shared,
                split_ratio=resolve_split_ratio(split_ratio, self._default_split_ratio),
                status=ApprovalStatus.PENDING if is_shared else ApprovalStatus.APPROVED,
            )
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid expense: {e}") from e

        await self._repository.create_expense(expense)

        await self._audit(AuditEventBuilder.expense_created(
            expense_id=expense.id,
            creator_id=creator_id,
            amount=expense.amount,
            status=expense.status.value,
        ))
        return expense

    async def update_expense(
        self,
        expense_id: UUID,
        actor_id: UUID,
        patch: ExpensePatch,
    ) -> Expense:
        """
        Apply a partial edit to a pending expense.

        Raises:
            ForbiddenError: Actor is not the creator
            InvalidStateError: Expense was already approved or rejected
        """
        async with self._locks.hold("expense", expense_id):
            expense = await self._load(expense_id)
            if expense.created_by != actor_id:
                raise ForbiddenError(
                    "Only the creator can edit an expense", expense_id
                )
            if not expense.is_pending:
                raise InvalidStateError(
                    "Only pending expenses can be edited", expense_id
                )

            changes = patch.changes()
            if not changes:
                return expense
            if "category_id" in changes:
                await self._require_category(changes["category_id"])
            if "split_ratio" in changes:
                changes["split_ratio"] = resolve_split_ratio(
                    changes["split_ratio"], self._default_split_ratio
                )

            try:
                updated = await self._repository.update_expense_fields(expense_id, changes)
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid expense update: {e}") from e

        await self._audit(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            actor_id=actor_id,
            fields=sorted(changes),
        ))
        return updated

    # -- Deletion -------------------------------------------------------------

    async def delete_expense(
        self,
        expense_id: UUID,
        actor_id: UUID,
        is_admin: bool = False,
    ) -> Optional[Expense]:
        """
        Delete (admin) or request deletion of (non-admin) an expense.

        Returns:
            None when the expense was deleted, otherwise the expense
            carrying the new delete request

        Raises:
            ConflictError: A delete request is already open
        """
        async with self._locks.hold("expense", expense_id):
            expense = await self._load(expense_id)

            if is_admin:
                await self._repository.delete_expense(expense_id)
                deleted = True
            else:
                if expense.has_delete_request:
                    raise ConflictError(
                        "A delete request already exists for this expense", expense_id
                    )
                expense = await self._repository.update_expense_fields(
                    expense_id, {"delete_requested_by": actor_id}
                )
                deleted = False

        if deleted:
            await self._audit(AuditEventBuilder.expense_deleted(
                expense_id=expense_id,
                actor_id=actor_id,
                requested_by=None,
            ))
            return None

        await self._audit(AuditEventBuilder.expense_delete_requested(expense_id, actor_id))
        return expense

    async def confirm_delete(self, expense_id: UUID, confirmer_id: UUID) -> None:
        """
        Second step of a two-party deletion.

        Raises:
            InvalidStateError: No delete request is open
            ForbiddenError: The requester tried to confirm their own request
        """
        async with self._locks.hold("expense", expense_id):
            expense = await self._load(expense_id)
            if not expense.has_delete_request:
                raise InvalidStateError(
                    "No delete request exists for this expense", expense_id
                )
            if expense.delete_requested_by == confirmer_id:
                raise ForbiddenError(
                    "You cannot confirm your own delete request", expense_id
                )
            await self._repository.delete_expense(expense_id)

        await self._audit(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            actor_id=confirmer_id,
            requested_by=expense.delete_requested_by,
        ))

    async def cancel_delete(self, expense_id: UUID, actor_id: UUID) -> Expense:
        """
        Withdraw an open delete request.

        Raises:
            InvalidStateError: No delete request is open
            ForbiddenError: Actor is not the requester
        """
        async with self._locks.hold("expense", expense_id):
            expense = await self._load(expense_id)
            if not expense.has_delete_request:
                raise InvalidStateError(
                    "No delete request exists for this expense", expense_id
                )
            if expense.delete_requested_by != actor_id:
                raise ForbiddenError(
                    "Only the requester can cancel a delete request", expense_id
                )
            expense = await self._repository.update_expense_fields(
                expense_id, {"delete_requested_by": None}
            )

        await self._audit(AuditEventBuilder.expense_delete_cancelled(expense_id, actor_id))
        return expense

    # -- Approval -------------------------------------------------------------

    async def approve_expense(
        self,
        expense_id: UUID,
        approver_id: UUID,
        is_admin: bool = False,
    ) -> Expense:
        """
        Approve a pending expense.

        Raises:
            ForbiddenError: A non-admin tried to approve their own expense
            InvalidStateError: Expense is not pending
        """
        return await self._decide(expense_id, approver_id, is_admin, approve=True)

    async def reject_expense(
        self,
        expense_id: UUID,
        approver_id: UUID,
        is_admin: bool = False,
    ) -> Expense:
        """Reject a pending expense. Same rules as approval; rejection is final."""
        return await self._decide(expense_id, approver_id, is_admin, approve=False)

    async def _decide(
        self,
        expense_id: UUID,
        actor_id: UUID,
        is_admin: bool,
        approve: bool,
    ) -> Expense:
        verb = "approve" if approve else "reject"
        async with self._locks.hold("expense", expense_id):
            expense = await self._load(expense_id)
            if not is_admin and expense.created_by == actor_id:
                raise ForbiddenError(
                    f"You cannot {verb} an expense you created", expense_id
                )
            if not expense.is_pending:
                raise InvalidStateError(
                    f"Expense is already {expense.status.value}", expense_id
                )

            if approve:
                fields = {
                    "status": ApprovalStatus.APPROVED,
                    "approved_by": actor_id,
                    "approved_at": utcnow(),
                }
            else:
                fields = {"status": ApprovalStatus.REJECTED}
            updated = await self._repository.update_expense_fields(expense_id, fields)

        logger.info(
            "expense_decided",
            expense_id=str(expense_id),
            status=updated.status.value,
        )
        await self._audit(AuditEventBuilder.expense_decided(
            expense_id=expense_id,
            actor_id=actor_id,
            approved=approve,
            by_admin=is_admin,
        ))
        return updated
