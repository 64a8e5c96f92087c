"""Tests for monthly settlement."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from home_ledger.engine import InvalidArgumentError, InvalidStateError, round_money
from home_ledger.engine.settlement import split_shares
from home_ledger.models.ledger import Expense, User


async def approved_expense(
    expenses, creator, approver, category, amount, split_ratio=None,
    is_shared=True, day=10,
):
    expense = await expenses.create_expense(
        creator_id=creator.id,
        category_id=category.id,
        description="Household",
        amount=Decimal(amount),
        expense_date=date(2024, 3, day),
        is_shared=is_shared,
        split_ratio=Decimal(split_ratio) if split_ratio else None,
    )
    if is_shared:
        expense = await expenses.approve_expense(expense.id, approver.id)
    return expense


class TestRoundMoney:

    @pytest.mark.parametrize("value,expected", [
        ("33.335", "33.34"),
        ("33.334", "33.33"),
        ("0.005", "0.01"),
        ("-0.005", "-0.01"),
        ("10", "10.00"),
    ])
    def test_half_up_at_the_cent(self, value, expected):
        assert round_money(Decimal(value)) == Decimal(expected)

    def test_split_shares_add_back_up(self):
        """Unrounded shares always sum to the original amount."""
        expense = Expense(
            created_by=uuid4(),
            category_id=uuid4(),
            description="Odd split",
            amount=Decimal("100.01"),
            expense_date=date(2024, 3, 1),
            split_ratio=Decimal("33.33"),
        )
        creator_share, other_share = split_shares(expense)
        assert creator_share + other_share == expense.amount


class TestMonthlySummary:

    async def test_even_split(self, expenses, calculator, household, groceries):
        """Alice pays 100 at 50/50, so Bob owes her 50."""
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "100.00")

        summary = await calculator.get_monthly_summary(3, 2024)

        assert summary.total_expenses == Decimal("100.00")
        assert summary.shared_expenses == Decimal("100.00")
        a, b = summary.summary_for(alice.id), summary.summary_for(bob.id)
        assert (a.total_paid, a.total_share, a.balance) == (
            Decimal("100.00"), Decimal("50.00"), Decimal("50.00")
        )
        assert (b.total_paid, b.total_share, b.balance) == (
            Decimal("0.00"), Decimal("50.00"), Decimal("-50.00")
        )
        assert summary.creditor_id == alice.id
        assert summary.debtor_id == bob.id
        assert summary.debt_amount == Decimal("50.00")
        assert summary.remaining_debt == Decimal("50.00")

    async def test_uneven_split(self, expenses, calculator, household, groceries):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "200.00", split_ratio="70")

        summary = await calculator.get_monthly_summary(3, 2024)

        assert summary.summary_for(alice.id).total_share == Decimal("140.00")
        assert summary.summary_for(bob.id).total_share == Decimal("60.00")
        assert summary.debt_amount == Decimal("60.00")

    async def test_balances_sum_to_zero(self, expenses, calculator, household, groceries, rent):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "100.01", split_ratio="33.33")
        await approved_expense(expenses, bob, alice, rent, "59.99", split_ratio="61")
        await approved_expense(expenses, alice, bob, groceries, "12.50", is_shared=False)

        summary = await calculator.get_monthly_summary(3, 2024)

        total_share = sum(s.total_share for s in summary.user_summaries)
        assert abs(total_share - summary.total_expenses) <= Decimal("0.01")
        balances = sum(s.balance for s in summary.user_summaries)
        assert abs(balances) <= Decimal("0.01")

    async def test_cross_payments_offset(self, expenses, calculator, household, groceries):
        """Both pay the same shared amount: nobody owes anything."""
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "80.00")
        await approved_expense(expenses, bob, alice, groceries, "80.00")

        summary = await calculator.get_monthly_summary(3, 2024)

        assert not summary.has_settlement
        assert summary.debt_amount == Decimal("0")
        assert summary.remaining_debt == Decimal("0")

    async def test_personal_expense_only_counts_for_creator(
        self, expenses, calculator, household, groceries
    ):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "30.00", is_shared=False)

        summary = await calculator.get_monthly_summary(3, 2024)

        a = summary.summary_for(alice.id)
        assert a.total_paid == a.total_share == Decimal("30.00")
        assert summary.summary_for(bob.id).total_share == Decimal("0.00")
        assert summary.shared_expenses == Decimal("0.00")
        assert not summary.has_settlement

    async def test_shared_only_ignores_personal(
        self, expenses, calculator, household, groceries
    ):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "30.00", is_shared=False)
        await approved_expense(expenses, alice, bob, groceries, "10.00")

        summary = await calculator.get_monthly_summary(3, 2024, shared_only=True)

        assert summary.total_expenses == Decimal("10.00")
        assert summary.summary_for(alice.id).total_paid == Decimal("10.00")

    async def test_pending_and_rejected_are_excluded(
        self, expenses, calculator, household, groceries
    ):
        alice, bob, _ = household
        await expenses.create_expense(
            creator_id=alice.id,
            category_id=groceries.id,
            description="Waiting",
            amount=Decimal("50"),
            expense_date=date(2024, 3, 3),
        )
        rejected = await expenses.create_expense(
            creator_id=alice.id,
            category_id=groceries.id,
            description="Nope",
            amount=Decimal("70"),
            expense_date=date(2024, 3, 4),
        )
        await expenses.reject_expense(rejected.id, bob.id)

        summary = await calculator.get_monthly_summary(3, 2024)

        assert summary.total_expenses == Decimal("0.00")
        assert not summary.has_settlement

    async def test_other_months_are_ignored(self, expenses, calculator, household, groceries):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "100.00")
        summary = await calculator.get_monthly_summary(4, 2024)
        assert summary.total_expenses == Decimal("0.00")

    async def test_admin_is_not_a_participant(self, expenses, calculator, household, groceries):
        alice, bob, admin = household
        await approved_expense(expenses, alice, bob, groceries, "100.00")
        summary = await calculator.get_monthly_summary(3, 2024)
        assert [s.user_id for s in summary.user_summaries] == [alice.id, bob.id]
        assert summary.summary_for(admin.id) is None

    async def test_category_breakdown(self, expenses, calculator, household, groceries, rent):
        alice, bob, _ = household
        await approved_expense(expenses, alice, bob, groceries, "20.00")
        await approved_expense(expenses, alice, bob, groceries, "15.00", day=12)
        await approved_expense(expenses, bob, alice, rent, "900.00")

        summary = await calculator.get_monthly_summary(3, 2024)

        assert [(c.category_name, c.total) for c in summary.category_breakdown] == [
            ("Rent", Decimal("900.00")),
            ("Groceries", Decimal("35.00")),
        ]
        assert summary.category_breakdown[0].category_icon == "building"

    async def test_third_participant_is_rejected(
        self, calculator, repository, household
    ):
        await repository.create_user(User(username="carol", display_name="Carol"))
        with pytest.raises(InvalidStateError):
            await calculator.get_monthly_summary(3, 2024)

    async def test_single_participant_has_no_debt(self, calculator, repository, alice):
        summary = await calculator.get_monthly_summary(3, 2024)
        assert len(summary.user_summaries) == 1
        assert not summary.has_settlement

    @pytest.mark.parametrize("month,year", [(0, 2024), (13, 2024), (3, 0)])
    async def test_period_must_be_a_calendar_month(self, calculator, household, month, year):
        with pytest.raises(InvalidArgumentError):
            await calculator.get_monthly_summary(month, year)
