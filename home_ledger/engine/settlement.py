"""
Settlement Calculator

Computes who owes whom for one calendar month. Pure read: nothing is
written and nothing is cached, so a summary is always consistent with
the expenses and payments stored at the moment it is requested.

Allocation rules for each approved expense:
- The creator paid the full amount.
- Personal expense: the creator also carries the full amount as their share.
- Shared expense: the creator carries amount x split_ratio / 100,
  the other participant carries the rest.

CRITICAL: Rounding happens once per aggregate (per balance, per total),
half-up at the cent. Individual shares are never rounded, so a split
always adds back up to the original amount.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog

from home_ledger.engine.errors import InvalidArgumentError, InvalidStateError
from home_ledger.models.ledger import ApprovalStatus, Expense
from home_ledger.models.settlement import CategorySum, MonthlySummary, UserSummary
from home_ledger.services.storage import LedgerRepository


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Debtor/creditor resolution is only defined for a two-person household
SETTLEMENT_PARTICIPANTS = 2


def round_money(value: Decimal) -> Decimal:
    """Round half-up to the cent."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_period(month: int, year: int) -> None:
    """Reject a (month, year) that is not a calendar month."""
    if not 1 <= month <= 12 or year < 1:
        raise InvalidArgumentError(f"Invalid settlement period: {month}/{year}")


def split_shares(expense: Expense) -> tuple[Decimal, Decimal]:
    """
    Unrounded (creator_share, other_share) of a shared expense.

    creator_share + other_share == expense.amount exactly.
    """
    creator_share = expense.amount * expense.split_ratio / HUNDRED
    return creator_share, expense.amount - creator_share


class SettlementCalculator:
    """Monthly balances, debtor/creditor pair and remaining debt."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def get_monthly_summary(
        self,
        month: int,
        year: int,
        shared_only: bool = False,
    ) -> MonthlySummary:
        """
        Build the settlement summary for a month.

        Args:
            month: Calendar month (1-12)
            year: Calendar year
            shared_only: Ignore personal expenses entirely

        Raises:
            InvalidArgumentError: Month outside 1-12 or non-positive year
            InvalidStateError: More than two non-admin participants exist
        """
        validate_period(month, year)
        participants = await self._repository.find_users(is_admin=False)
        if len(participants) > SETTLEMENT_PARTICIPANTS:
            raise InvalidStateError(
                f"Settlement supports at most {SETTLEMENT_PARTICIPANTS} participants, "
                f"found {len(participants)}"
            )

        expenses = await self._repository.find_expenses(
            month,
            year,
            status=ApprovalStatus.APPROVED,
            is_shared=True if shared_only else None,
        )

        paid: dict[UUID, Decimal] = {user.id: ZERO for user in participants}
        share: dict[UUID, Decimal] = {user.id: ZERO for user in participants}
        by_category: dict[UUID, Decimal] = {}
        total_expenses = ZERO
        shared_expenses = ZERO

        for expense in expenses:
            creator = expense.created_by
            total_expenses += expense.amount
            by_category[expense.category_id] = (
                by_category.get(expense.category_id, ZERO) + expense.amount
            )
            if creator in paid:
                paid[creator] += expense.amount

            if not expense.is_shared:
                if creator in share:
                    share[creator] += expense.amount
                continue

            shared_expenses += expense.amount
            creator_share, other_share = split_shares(expense)
            for user_id in share:
                share[user_id] += creator_share if user_id == creator else other_share

        user_summaries = [
            UserSummary(
                user_id=user.id,
                display_name=user.display_name,
                total_paid=round_money(paid[user.id]),
                total_share=round_money(share[user.id]),
                balance=round_money(paid[user.id] - share[user.id]),
            )
            for user in participants
        ]

        summary = MonthlySummary(
            month=month,
            year=year,
            shared_only=shared_only,
            total_expenses=round_money(total_expenses),
            shared_expenses=round_money(shared_expenses),
            user_summaries=user_summaries,
        )

        if len(user_summaries) == SETTLEMENT_PARTICIPANTS:
            first, second = user_summaries
            if first.balance > 0:
                creditor, debtor = first, second
            elif second.balance > 0:
                creditor, debtor = second, first
            else:
                creditor = debtor = None
            if creditor is not None:
                summary.creditor_id = creditor.user_id
                summary.debtor_id = debtor.user_id
                summary.debt_amount = round_money(creditor.balance)

        payments = await self._repository.find_payments(month, year)
        total_payments = sum((p.amount for p in payments), ZERO)
        summary.total_payments = round_money(total_payments)
        summary.remaining_debt = max(ZERO, round_money(summary.debt_amount - total_payments))

        summary.category_breakdown = await self._category_breakdown(by_category)

        logger.debug(
            "monthly_summary_computed",
            month=month,
            year=year,
            expenses=len(expenses),
            remaining_debt=str(summary.remaining_debt),
        )
        return summary

    async def _category_breakdown(self, totals: dict[UUID, Decimal]) -> list[CategorySum]:
        categories = {c.id: c for c in await self._repository.find_categories()}
        breakdown = []
        for category_id, total in totals.items():
            category = categories.get(category_id)
            breakdown.append(CategorySum(
                category_id=category_id,
                category_name=category.name if category else "",
                category_icon=category.icon if category else "",
                total=round_money(total),
            ))
        breakdown.sort(key=lambda c: (-c.total, c.category_name))
        return breakdown
