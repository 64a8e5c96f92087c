"""
Audit Models for Home Ledger

Every lifecycle transition in the ledger is logged for audit purposes.
This provides:
1. A record of who approved, rejected or deleted what
2. Debugging information when a monthly balance looks wrong
3. History for recurring materializations and payments

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from home_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every transition of the expense, template and payment lifecycles
    has its own event type.
    """
    # Expense lifecycle
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    EXPENSE_DELETE_REQUESTED = "expense_delete_requested"
    EXPENSE_DELETE_CANCELLED = "expense_delete_cancelled"
    EXPENSE_DELETED = "expense_deleted"

    # Recurring templates
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_UPDATED = "template_updated"
    TEMPLATE_APPROVED = "template_approved"
    TEMPLATE_REJECTED = "template_rejected"
    TEMPLATE_DEACTIVATED = "template_deactivated"
    EXPENSE_MATERIALIZED = "expense_materialized"
    RECURRENCE_RUN_COMPLETED = "recurrence_run_completed"
    RECURRENCE_RUN_FAILED = "recurrence_run_failed"

    # Payments
    PAYMENT_ADDED = "payment_added"
    PAYMENT_DELETED = "payment_deleted"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every lifecycle transition creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'template', 'payment')"
    )
    entity_id: Optional[UUID] = None

    # Who triggered it (None for scheduled work)
    actor_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         actor_id, description, details_json, error_code, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.actor_id) if self.actor_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_approved(expense_id, approver_id)
        event = AuditEventBuilder.payment_added(payment_id, payer_id, amount)
    """

    @staticmethod
    def expense_created(
        expense_id: UUID,
        creator_id: UUID,
        amount: Decimal,
        status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=creator_id,
            description=f"Expense created for {amount} ({status})",
            details={"amount": str(amount), "status": status},
        )

    @staticmethod
    def expense_updated(
        expense_id: UUID,
        actor_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Expense updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def expense_decided(
        expense_id: UUID,
        actor_id: UUID,
        approved: bool,
        by_admin: bool,
    ) -> AuditEvent:
        verb = "approved" if approved else "rejected"
        return AuditEvent(
            event_type=(
                AuditEventType.EXPENSE_APPROVED
                if approved
                else AuditEventType.EXPENSE_REJECTED
            ),
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Expense {verb}",
            details={"by_admin": by_admin},
        )

    @staticmethod
    def expense_delete_requested(expense_id: UUID, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETE_REQUESTED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description="Deletion requested, waiting for the other participant",
        )

    @staticmethod
    def expense_delete_cancelled(expense_id: UUID, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETE_CANCELLED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description="Deletion request cancelled",
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        actor_id: UUID,
        requested_by: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description="Expense permanently deleted",
            details={
                "requested_by": str(requested_by) if requested_by else None,
            },
        )

    @staticmethod
    def template_event(
        event_type: AuditEventType,
        template_id: UUID,
        actor_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="template",
            entity_id=template_id,
            actor_id=actor_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def expense_materialized(
        expense_id: UUID,
        template_id: UUID,
        month: int,
        year: int,
        installment_no: Optional[int],
    ) -> AuditEvent:
        suffix = f" (installment {installment_no})" if installment_no else ""
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_MATERIALIZED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Recurring expense materialized for {month:02d}/{year}{suffix}",
            details={
                "template_id": str(template_id),
                "month": month,
                "year": year,
                "installment_no": installment_no,
            },
        )

    @staticmethod
    def recurrence_run(
        created: int,
        checked: int,
        failures: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.RECURRENCE_RUN_FAILED
                if failures
                else AuditEventType.RECURRENCE_RUN_COMPLETED
            ),
            severity=AuditSeverity.ERROR if failures else AuditSeverity.INFO,
            entity_type="recurrence_run",
            description=(
                f"Recurring run created {created} expenses "
                f"from {checked} templates, {len(failures)} failed"
            ),
            details={
                "expenses_created": created,
                "templates_checked": checked,
                "failures": failures,
            },
        )

    @staticmethod
    def payment_added(
        payment_id: UUID,
        payer_id: UUID,
        payee_id: UUID,
        amount: Decimal,
        month: int,
        year: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_ADDED,
            entity_type="payment",
            entity_id=payment_id,
            actor_id=payer_id,
            description=f"Payment of {amount} recorded for {month:02d}/{year}",
            details={
                "payee_id": str(payee_id),
                "amount": str(amount),
                "month": month,
                "year": year,
            },
        )

    @staticmethod
    def payment_deleted(payment_id: UUID, amount: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="payment",
            entity_id=payment_id,
            description=f"Payment of {amount} deleted",
            details={"amount": str(amount)},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
        )
