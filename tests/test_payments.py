"""Tests for partial debt payments."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from home_ledger.engine import (
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
)
from home_ledger.models.audit import AuditEventType


@pytest.fixture
async def bob_owes_fifty(expenses, household, groceries):
    """Alice paid 100 shared 50/50 in March 2024."""
    alice, bob, _ = household
    expense = await expenses.create_expense(
        creator_id=alice.id,
        category_id=groceries.id,
        description="Big shop",
        amount=Decimal("100.00"),
        expense_date=date(2024, 3, 5),
    )
    await expenses.approve_expense(expense.id, bob.id)
    return alice, bob


class TestAddPayment:

    async def test_partial_payments_reduce_remaining_debt(
        self, payments, calculator, bob_owes_fifty
    ):
        """30 then 20 pays off a debt of 50; nothing more is accepted."""
        alice, bob = bob_owes_fifty

        await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("30"))
        summary = await calculator.get_monthly_summary(3, 2024)
        assert summary.total_payments == Decimal("30.00")
        assert summary.remaining_debt == Decimal("20.00")

        with pytest.raises(InvalidArgumentError):
            await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("25"))

        await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("20"))
        summary = await calculator.get_monthly_summary(3, 2024)
        assert summary.remaining_debt == Decimal("0.00")

        with pytest.raises(InvalidStateError):
            await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("1"))

    async def test_nothing_owed(self, payments, household):
        alice, bob, _ = household
        with pytest.raises(InvalidStateError):
            await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("10"))

    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_amount_must_be_positive(self, payments, bob_owes_fifty, amount):
        alice, bob = bob_owes_fifty
        with pytest.raises(InvalidArgumentError):
            await payments.add_payment(3, 2024, bob.id, alice.id, Decimal(amount))

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), "abc", "NaN"])
    async def test_amount_must_be_a_number(self, payments, bob_owes_fifty, amount):
        """Non-numeric amounts come back as a business error."""
        alice, bob = bob_owes_fifty
        with pytest.raises(InvalidArgumentError):
            await payments.add_payment(3, 2024, bob.id, alice.id, amount)

    @pytest.mark.parametrize("month", [0, 13])
    async def test_month_must_be_a_calendar_month(self, payments, bob_owes_fifty, month):
        alice, bob = bob_owes_fifty
        with pytest.raises(InvalidArgumentError):
            await payments.add_payment(month, 2024, bob.id, alice.id, Decimal("10"))

    async def test_wrong_direction(self, payments, bob_owes_fifty):
        """The creditor cannot pay the debtor."""
        alice, bob = bob_owes_fifty
        with pytest.raises(InvalidArgumentError):
            await payments.add_payment(3, 2024, alice.id, bob.id, Decimal("10"))

    async def test_only_payer_records_payment(self, payments, bob_owes_fifty):
        alice, bob = bob_owes_fifty
        with pytest.raises(ForbiddenError):
            await payments.add_payment(
                3, 2024, bob.id, alice.id, Decimal("10"), actor_id=alice.id
            )

    async def test_float_amount_is_exact(self, payments, calculator, bob_owes_fifty):
        alice, bob = bob_owes_fifty
        payment = await payments.add_payment(3, 2024, bob.id, alice.id, 0.1)
        assert payment.amount == Decimal("0.1")
        summary = await calculator.get_monthly_summary(3, 2024)
        assert summary.remaining_debt == Decimal("49.90")

    async def test_payment_is_audited(self, payments, audit_storage, bob_owes_fifty):
        alice, bob = bob_owes_fifty
        payment = await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("5"))
        (event,) = await audit_storage.get_events_by_entity("payment", payment.id)
        assert event.event_type == AuditEventType.PAYMENT_ADDED
        assert event.actor_id == bob.id


class TestDeletePayment:

    async def test_deleted_payment_restores_debt(
        self, payments, calculator, bob_owes_fifty
    ):
        alice, bob = bob_owes_fifty
        payment = await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("50"))
        assert (await calculator.get_monthly_summary(3, 2024)).remaining_debt == 0

        await payments.delete_payment(payment.id)

        summary = await calculator.get_monthly_summary(3, 2024)
        assert summary.remaining_debt == Decimal("50.00")
        assert await payments.list_payments(3, 2024) == []

    async def test_unknown_payment(self, payments):
        with pytest.raises(EntityNotFoundError):
            await payments.delete_payment(uuid4())

    async def test_list_is_per_month(self, payments, bob_owes_fifty):
        alice, bob = bob_owes_fifty
        await payments.add_payment(3, 2024, bob.id, alice.id, Decimal("10"))
        assert len(await payments.list_payments(3, 2024)) == 1
        assert await payments.list_payments(4, 2024) == []
