"""
Settlement and Recurrence Result Models

These are read-only outputs. Nothing here is persisted; every summary is
recomputed from the stored expenses and payments on each request.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from home_ledger.models.ledger import utcnow


ZERO = Decimal("0")


class UserSummary(BaseModel):
    """
    One participant's position for the month.

    A positive balance means the user paid more than their share
    and is owed money. Negative means they owe.
    """

    user_id: UUID
    display_name: str
    total_paid: Decimal = ZERO
    total_share: Decimal = ZERO
    balance: Decimal = ZERO


class CategorySum(BaseModel):
    """Total spent in one category for the month."""

    category_id: UUID
    category_name: str = ""
    category_icon: str = ""
    total: Decimal = ZERO


class MonthlySummary(BaseModel):
    """
    Complete settlement picture for one calendar month.

    debtor_id / creditor_id are only set when exactly two
    participants exist and one of them has a positive balance.
    """

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1)
    shared_only: bool = False

    total_expenses: Decimal = ZERO
    shared_expenses: Decimal = ZERO
    user_summaries: list[UserSummary] = Field(default_factory=list)

    debtor_id: Optional[UUID] = None
    creditor_id: Optional[UUID] = None
    debt_amount: Decimal = ZERO
    total_payments: Decimal = ZERO
    remaining_debt: Decimal = ZERO

    category_breakdown: list[CategorySum] = Field(default_factory=list)

    @property
    def has_settlement(self) -> bool:
        return self.debtor_id is not None and self.creditor_id is not None

    def summary_for(self, user_id: UUID) -> Optional[UserSummary]:
        """Find a participant's summary by id."""
        for summary in self.user_summaries:
            if summary.user_id == user_id:
                return summary
        return None


class RecurrenceFailure(BaseModel):
    """A template that could not be materialized during a batch run."""

    template_id: UUID
    error_code: str
    error_message: str


class RecurrenceRunReport(BaseModel):
    """
    Outcome of one process_due() batch.

    Failures are isolated per template, so a run can be partially successful.
    """

    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    target_month: int
    target_year: int

    templates_checked: int = 0
    expenses_created: int = 0
    templates_skipped: int = 0
    failures: list[RecurrenceFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def failure_count(self) -> int:
        return len(self.failures)
