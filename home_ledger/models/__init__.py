"""
Data Models Package

This package contains all Pydantic models used in the Home Ledger system.
All data flowing through the system must conform to these schemas.
"""

from home_ledger.models.ledger import (
    ApprovalStatus,
    Category,
    Expense,
    ExpensePatch,
    Payment,
    RecurringExpense,
    RecurringExpensePatch,
    RecurringType,
    User,
    utcnow,
)
from home_ledger.models.settlement import (
    CategorySum,
    MonthlySummary,
    RecurrenceFailure,
    RecurrenceRunReport,
    UserSummary,
)
from home_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ApprovalStatus",
    "Category",
    "Expense",
    "ExpensePatch",
    "Payment",
    "RecurringExpense",
    "RecurringExpensePatch",
    "RecurringType",
    "User",
    "utcnow",
    # Settlement models
    "CategorySum",
    "MonthlySummary",
    "RecurrenceFailure",
    "RecurrenceRunReport",
    "UserSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
