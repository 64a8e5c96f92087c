"""Tests for the expense lifecycle: creation, editing, approval, deletion."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from home_ledger.engine import (
    ConflictError,
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
)
from home_ledger.models.audit import AuditEventType
from home_ledger.models.ledger import ApprovalStatus, ExpensePatch


async def make_shared(expenses, creator, category, amount="100.00", **kwargs):
    return await expenses.create_expense(
        creator_id=creator.id,
        category_id=category.id,
        description="Weekly shop",
        amount=Decimal(amount),
        expense_date=kwargs.pop("expense_date", date(2024, 3, 10)),
        is_shared=True,
        **kwargs,
    )


class TestCreateExpense:
    """Creation rules."""

    async def test_shared_expense_starts_pending(self, expenses, household, groceries):
        """Shared expenses wait for the other participant."""
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        assert expense.status == ApprovalStatus.PENDING
        assert expense.expense_month == 3
        assert expense.expense_year == 2024

    async def test_personal_expense_is_auto_approved(self, expenses, household, groceries):
        """Non-shared expenses skip approval."""
        alice, _, _ = household
        expense = await expenses.create_expense(
            creator_id=alice.id,
            category_id=groceries.id,
            description="Haircut",
            amount=Decimal("25"),
            expense_date=date(2024, 3, 2),
            is_shared=False,
        )
        assert expense.status == ApprovalStatus.APPROVED

    async def test_zero_split_ratio_uses_default(self, expenses, household, groceries):
        """A zero ratio means 50/50."""
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries, split_ratio=Decimal("0"))
        assert expense.split_ratio == Decimal("50")

    async def test_explicit_split_ratio_is_kept(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries, split_ratio=Decimal("70"))
        assert expense.split_ratio == Decimal("70")

    async def test_unknown_category_is_rejected(self, expenses, household):
        alice, _, _ = household
        with pytest.raises(EntityNotFoundError):
            await expenses.create_expense(
                creator_id=alice.id,
                category_id=uuid4(),
                description="Mystery",
                amount=Decimal("10"),
                expense_date=date(2024, 3, 1),
            )

    async def test_unknown_creator_is_rejected(self, expenses, groceries):
        with pytest.raises(EntityNotFoundError):
            await expenses.create_expense(
                creator_id=uuid4(),
                category_id=groceries.id,
                description="Ghost",
                amount=Decimal("10"),
                expense_date=date(2024, 3, 1),
            )

    async def test_non_positive_amount_is_invalid(self, expenses, household, groceries):
        alice, _, _ = household
        with pytest.raises(InvalidArgumentError):
            await make_shared(expenses, alice, groceries, amount="0")

    async def test_creation_is_audited(self, expenses, household, groceries, audit_storage):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        events = await audit_storage.get_events_by_entity("expense", expense.id)
        assert [e.event_type for e in events] == [AuditEventType.EXPENSE_CREATED]


class TestUpdateExpense:
    """Editing is limited to the creator while pending."""

    async def test_creator_can_edit_pending_expense(self, expenses, household, groceries):
        """Only supplied fields change."""
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        updated = await expenses.update_expense(
            expense.id, alice.id, ExpensePatch(amount=Decimal("120.50"))
        )
        assert updated.amount == Decimal("120.50")
        assert updated.description == "Weekly shop"

    async def test_changing_date_moves_expense_to_new_month(
        self, expenses, household, groceries
    ):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        updated = await expenses.update_expense(
            expense.id, alice.id, ExpensePatch(expense_date=date(2024, 4, 2))
        )
        assert (updated.expense_month, updated.expense_year) == (4, 2024)
        assert await expenses.list_expenses(3, 2024) == []

    async def test_other_user_cannot_edit(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(ForbiddenError):
            await expenses.update_expense(
                expense.id, bob.id, ExpensePatch(description="Changed")
            )

    async def test_approved_expense_cannot_be_edited(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.approve_expense(expense.id, bob.id)
        with pytest.raises(InvalidStateError):
            await expenses.update_expense(
                expense.id, alice.id, ExpensePatch(description="Changed")
            )

    async def test_unknown_category_in_patch(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(EntityNotFoundError):
            await expenses.update_expense(
                expense.id, alice.id, ExpensePatch(category_id=uuid4())
            )

    def test_patch_rejects_unknown_fields(self):
        """Status cannot be smuggled in through an edit."""
        with pytest.raises(ValidationError):
            ExpensePatch(status="approved")


class TestApproval:
    """Approve / reject rules."""

    async def test_other_participant_approves(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        approved = await expenses.approve_expense(expense.id, bob.id)
        assert approved.status == ApprovalStatus.APPROVED
        assert approved.approved_by == bob.id
        assert approved.approved_at is not None

    async def test_self_approval_is_forbidden(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(ForbiddenError):
            await expenses.approve_expense(expense.id, alice.id)

    async def test_self_rejection_is_forbidden(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(ForbiddenError):
            await expenses.reject_expense(expense.id, alice.id)

    async def test_admin_may_approve_own_expense(self, expenses, household, groceries):
        _, _, admin = household
        expense = await make_shared(expenses, admin, groceries)
        approved = await expenses.approve_expense(expense.id, admin.id, is_admin=True)
        assert approved.status == ApprovalStatus.APPROVED

    async def test_decision_happens_only_once(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.reject_expense(expense.id, bob.id)
        with pytest.raises(InvalidStateError):
            await expenses.approve_expense(expense.id, bob.id)

    async def test_unknown_expense(self, expenses, household):
        _, bob, _ = household
        with pytest.raises(EntityNotFoundError):
            await expenses.approve_expense(uuid4(), bob.id)


class TestDeletion:
    """Two-step delete for participants, direct delete for admins."""

    async def test_admin_deletes_directly(self, expenses, household, groceries):
        alice, _, admin = household
        expense = await make_shared(expenses, alice, groceries)
        result = await expenses.delete_expense(expense.id, admin.id, is_admin=True)
        assert result is None
        with pytest.raises(EntityNotFoundError):
            await expenses.get_expense(expense.id)

    async def test_request_then_confirm(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)

        requested = await expenses.delete_expense(expense.id, alice.id)
        assert requested.delete_requested_by == alice.id
        # Still there until confirmed
        assert await expenses.get_expense(expense.id)

        await expenses.confirm_delete(expense.id, bob.id)
        with pytest.raises(EntityNotFoundError):
            await expenses.get_expense(expense.id)

    async def test_second_request_conflicts(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.delete_expense(expense.id, alice.id)
        with pytest.raises(ConflictError):
            await expenses.delete_expense(expense.id, bob.id)

    async def test_requester_cannot_confirm(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.delete_expense(expense.id, alice.id)
        with pytest.raises(ForbiddenError):
            await expenses.confirm_delete(expense.id, alice.id)

    async def test_confirm_without_request(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(InvalidStateError):
            await expenses.confirm_delete(expense.id, bob.id)

    async def test_requester_cancels(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.delete_expense(expense.id, alice.id)
        restored = await expenses.cancel_delete(expense.id, alice.id)
        assert restored.delete_requested_by is None

    async def test_only_requester_cancels(self, expenses, household, groceries):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.delete_expense(expense.id, alice.id)
        with pytest.raises(ForbiddenError):
            await expenses.cancel_delete(expense.id, bob.id)

    async def test_cancel_without_request(self, expenses, household, groceries):
        alice, _, _ = household
        expense = await make_shared(expenses, alice, groceries)
        with pytest.raises(InvalidStateError):
            await expenses.cancel_delete(expense.id, alice.id)

    async def test_delete_trail_is_audited(
        self, expenses, household, groceries, audit_storage
    ):
        alice, bob, _ = household
        expense = await make_shared(expenses, alice, groceries)
        await expenses.delete_expense(expense.id, alice.id)
        await expenses.confirm_delete(expense.id, bob.id)

        events = await audit_storage.get_events_by_entity("expense", expense.id)
        assert [e.event_type for e in events] == [
            AuditEventType.EXPENSE_CREATED,
            AuditEventType.EXPENSE_DELETE_REQUESTED,
            AuditEventType.EXPENSE_DELETED,
        ]
        assert events[-1].details["requested_by"] == str(alice.id)


class TestListing:

    async def test_list_orders_newest_date_first(self, expenses, household, groceries):
        alice, _, _ = household
        early = await make_shared(expenses, alice, groceries, expense_date=date(2024, 3, 1))
        late = await make_shared(expenses, alice, groceries, expense_date=date(2024, 3, 20))
        listed = await expenses.list_expenses(3, 2024)
        assert [e.id for e in listed] == [late.id, early.id]
