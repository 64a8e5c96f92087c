"""
Core Data Models for Home Ledger

These models define the strict schemas for everything the ledger stores.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always Decimal. Floats never enter the ledger,
so a split of 100.00 at 33.33% adds back up to exactly 100.00.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ApprovalStatus(str, Enum):
    """
    Approval state shared by expenses and recurring templates.

    PENDING is the only non-terminal state.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecurringType(str, Enum):
    """Kind of recurring template."""
    RECURRING = "recurring"      # Materializes every month until deactivated
    INSTALLMENT = "installment"  # Materializes a fixed number of times


# =============================================================================
# PARTICIPANTS
# =============================================================================

class User(BaseModel):
    """
    A ledger user.

    Admins manage the ledger but never take part in settlement.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    username: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    is_admin: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Category(BaseModel):
    """Expense category, used for the monthly breakdown only."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="", max_length=50)


# =============================================================================
# EXPENSES
# =============================================================================

class Expense(BaseModel):
    """
    A single spending record belonging to one calendar month.

    CRITICAL: expense_month / expense_year always follow expense_date.
    Settlement queries by month, never by date range.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    created_by: UUID
    category_id: UUID
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    expense_date: date
    expense_month: int = Field(default=0, ge=0, le=12)
    expense_year: int = Field(default=0, ge=0)

    is_shared: bool = True
    split_ratio: Decimal = Field(
        default=Decimal("50"),
        ge=0,
        le=100,
        description="Percent of the amount attributed to the creator"
    )

    # Set only on records materialized from a template
    is_installment: bool = False
    installment_no: Optional[int] = Field(default=None, ge=1)
    installment_total: Optional[int] = Field(default=None, ge=1)
    recurring_expense_id: Optional[UUID] = None

    status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    delete_requested_by: Optional[UUID] = None

    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def derive_period(self) -> 'Expense':
        """Keep the (month, year) bucket in step with the expense date."""
        self.expense_month = self.expense_date.month
        self.expense_year = self.expense_date.year
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    @property
    def has_delete_request(self) -> bool:
        return self.delete_requested_by is not None


class ExpensePatch(BaseModel):
    """
    Whitelisted partial update for an expense.

    Only fields explicitly set by the caller are applied.
    Unknown fields are rejected at the boundary.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category_id: Optional[UUID] = None
    expense_date: Optional[date] = None
    split_ratio: Optional[Decimal] = Field(default=None, ge=0, le=100)

    def changes(self) -> dict:
        """Fields the caller actually set, excluding explicit nulls."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


# =============================================================================
# RECURRING TEMPLATES
# =============================================================================

class RecurringExpense(BaseModel):
    """
    A template that materializes one expense per calendar month.

    For INSTALLMENT templates, installments_remaining counts down to zero,
    at which point the template deactivates itself.
    Templates are never deleted, only deactivated.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    created_by: UUID
    category_id: UUID
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    total_amount: Optional[Decimal] = Field(
        default=None,
        gt=0,
        decimal_places=2,
        description="Full price of an installment plan (informational)"
    )
    type: RecurringType

    installment_count: Optional[int] = Field(default=None, ge=1)
    installments_remaining: Optional[int] = Field(default=None, ge=0)

    is_shared: bool = True
    split_ratio: Decimal = Field(default=Decimal("50"), ge=0, le=100)

    is_active: bool = True
    status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: Optional[UUID] = None

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_installment(self) -> bool:
        return self.type == RecurringType.INSTALLMENT


class RecurringExpensePatch(BaseModel):
    """Whitelisted partial update for a recurring template."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    total_amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category_id: Optional[UUID] = None
    is_shared: Optional[bool] = None
    split_ratio: Optional[Decimal] = Field(default=None, ge=0, le=100)

    def changes(self) -> dict:
        """Fields the caller actually set, excluding explicit nulls."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


# =============================================================================
# PAYMENTS
# =============================================================================

class Payment(BaseModel):
    """
    A partial settlement of a month's debt.

    Immutable once recorded; the only allowed change is deletion.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1)
    payer_id: UUID
    payee_id: UUID
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_parties(self) -> 'Payment':
        if self.payer_id == self.payee_id:
            raise ValueError("Payer and payee must be different users")
        return self
