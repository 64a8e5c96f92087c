"""
Recurrence Engine

Owns recurring and installment templates and turns them into dated
expense records, one per template per calendar month.

Template lifecycle:

    pending ──► approved ──► (materializing monthly) ──► exhausted / deactivated
    pending ──► rejected                                  (never materializes)

DESIGN DECISION: Materialization is idempotent per (template, month, year).
It is serialized per template by a lock, and the repository refuses a second
expense for the same template and month. Either guard alone prevents a
double charge; a DuplicateError from the repository is treated as "someone
else already did it".

The daily timer lives outside this package. It only ever calls
process_due(), which is safe to run any number of times a day.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from home_ledger.audit import AuditLogger
from home_ledger.config import get_settings
from home_ledger.engine.errors import (
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
)
from home_ledger.engine.expenses import resolve_split_ratio
from home_ledger.engine.locks import EntityLocks
from home_ledger.models.audit import AuditEventBuilder, AuditEventType
from home_ledger.models.ledger import (
    ApprovalStatus,
    Expense,
    RecurringExpense,
    RecurringExpensePatch,
    RecurringType,
    utcnow,
)
from home_ledger.models.settlement import RecurrenceFailure, RecurrenceRunReport
from home_ledger.services.storage import (
    DuplicateError,
    LedgerRepository,
    StorageConnectionError,
)


logger = structlog.get_logger(__name__)


class RecurrenceEngine:
    """
    Template approval workflow plus monthly materialization.

    Args:
        repository: Ledger storage
        audit_logger: Optional audit trail
        locks: Shared lock registry (one lock per template)
        clock: Returns "now"; injectable for tests
        stop_on_first_failure: Abort process_due() on the first failing
            template instead of isolating the failure
    """

    def __init__(
        self,
        repository: LedgerRepository,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[EntityLocks] = None,
        clock: Callable[[], datetime] = utcnow,
        default_split_ratio: Optional[Decimal] = None,
        stop_on_first_failure: Optional[bool] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger
        self._locks = locks or EntityLocks()
        self._clock = clock

        ledger_settings = None
        if default_split_ratio is None or stop_on_first_failure is None:
            ledger_settings = get_settings().ledger
        self._default_split_ratio = (
            default_split_ratio
            if default_split_ratio is not None
            else ledger_settings.default_split_ratio
        )
        self._stop_on_first_failure = (
            stop_on_first_failure
            if stop_on_first_failure is not None
            else ledger_settings.recurring_stop_on_first_failure
        )

    async def _load(self, template_id: UUID) -> RecurringExpense:
        template = await self._repository.get_template(template_id)
        if template is None:
            raise EntityNotFoundError(f"Template not found: {template_id}", template_id)
        return template

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # -- Queries --------------------------------------------------------------

    async def get_template(self, template_id: UUID) -> RecurringExpense:
        return await self._load(template_id)

    async def list_templates(self) -> list[RecurringExpense]:
        """All templates, newest first, including deactivated ones."""
        return await self._repository.find_templates()

    # -- Template workflow ----------------------------------------------------

    async def create_template(
        self,
        creator_id: UUID,
        category_id: UUID,
        description: str,
        amount: Decimal,
        recurring_type: RecurringType,
        installment_count: Optional[int] = None,
        is_shared: bool = True,
        split_ratio: Optional[Decimal] = None,
        total_amount: Optional[Decimal] = None,
    ) -> RecurringExpense:
        """
        Create a pending template.

        Raises:
            InvalidArgumentError: Installment template without a positive count,
                or otherwise malformed input
            EntityNotFoundError: Unknown creator or category
        """
        try:
            recurring_type = RecurringType(recurring_type)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown template type: {recurring_type}") from e
        if recurring_type == RecurringType.INSTALLMENT:
            if installment_count is None or installment_count <= 0:
                raise InvalidArgumentError(
                    "Installment templates need a positive installment count"
                )
            installments_remaining = installment_count
        else:
            installment_count = None
            installments_remaining = None

        if await self._repository.get_user(creator_id) is None:
            raise EntityNotFoundError(f"User not found: {creator_id}", creator_id)
        if await self._repository.get_category(category_id) is None:
            raise EntityNotFoundError(f"Category not found: {category_id}", category_id)

        try:
            template = RecurringExpense(
                created_by=creator_id,
                category_id=category_id,
                description=description,
                amount=amount,
                total_amount=total_amount,
                type=recurring_type,
                installment_count=installment_count,
                installments_remaining=installments_remaining,
                is_shared=is_shared,
                split_ratio=resolve_split_ratio(split_ratio, self._default_split_ratio),
            )
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid template: {e}") from e

        await self._repository.create_template(template)
        await self._audit(AuditEventBuilder.template_event(
            AuditEventType.TEMPLATE_CREATED,
            template.id,
            creator_id,
            f"{recurring_type.value.capitalize()} template created for {template.amount}",
            {"installment_count": installment_count},
        ))
        return template

    async def update_template(
        self,
        template_id: UUID,
        actor_id: UUID,
        patch: RecurringExpensePatch,
    ) -> RecurringExpense:
        """
        Edit a template. Only affects months not yet materialized.

        Raises:
            ForbiddenError: Actor is not the creator
        """
        async with self._locks.hold("template", template_id):
            template = await self._load(template_id)
            if template.created_by != actor_id:
                raise ForbiddenError(
                    "Only the creator can edit a template", template_id
                )

            changes = patch.changes()
            if not changes:
                return template
            if "category_id" in changes:
                if await self._repository.get_category(changes["category_id"]) is None:
                    raise EntityNotFoundError(
                        f"Category not found: {changes['category_id']}",
                        changes["category_id"],
                    )
            if "split_ratio" in changes:
                changes["split_ratio"] = resolve_split_ratio(
                    changes["split_ratio"], self._default_split_ratio
                )
            updated = await self._repository.update_template_fields(template_id, changes)

        await self._audit(AuditEventBuilder.template_event(
            AuditEventType.TEMPLATE_UPDATED,
            template_id,
            actor_id,
            f"Template updated: {', '.join(sorted(changes))}",
        ))
        return updated

    async def deactivate_template(
        self,
        template_id: UUID,
        actor_id: UUID,
        is_admin: bool = False,
    ) -> RecurringExpense:
        """
        Stop a template from materializing. The template itself is kept.

        Raises:
            ForbiddenError: Actor is neither the creator nor an admin
        """
        async with self._locks.hold("template", template_id):
            template = await self._load(template_id)
            if not is_admin and template.created_by != actor_id:
                raise ForbiddenError(
                    "Only the creator can deactivate a template", template_id
                )
            if not template.is_active:
                return template
            updated = await self._repository.update_template_fields(
                template_id, {"is_active": False}
            )

        await self._audit(AuditEventBuilder.template_event(
            AuditEventType.TEMPLATE_DEACTIVATED,
            template_id,
            actor_id,
            "Template deactivated",
        ))
        return updated

    async def approve_template(
        self,
        template_id: UUID,
        approver_id: UUID,
        is_admin: bool = False,
    ) -> RecurringExpense:
        """
        Approve a pending template and materialize the current month at once.

        Raises:
            ForbiddenError: A non-admin tried to approve their own template
            InvalidStateError: Template is not pending
        """
        await self._decide(template_id, approver_id, is_admin, approve=True)
        await self.materialize_for_month(template_id, self._clock())
        return await self._load(template_id)

    async def reject_template(
        self,
        template_id: UUID,
        approver_id: UUID,
        is_admin: bool = False,
    ) -> RecurringExpense:
        """Reject a pending template. It will never materialize."""
        return await self._decide(template_id, approver_id, is_admin, approve=False)

    async def _decide(
        self,
        template_id: UUID,
        actor_id: UUID,
        is_admin: bool,
        approve: bool,
    ) -> RecurringExpense:
        verb = "approve" if approve else "reject"
        async with self._locks.hold("template", template_id):
            template = await self._load(template_id)
            if not is_admin and template.created_by == actor_id:
                raise ForbiddenError(
                    f"You cannot {verb} a template you created", template_id
                )
            if template.status != ApprovalStatus.PENDING:
                raise InvalidStateError(
                    f"Template is already {template.status.value}", template_id
                )

            if approve:
                fields = {"status": ApprovalStatus.APPROVED, "approved_by": actor_id}
            else:
                fields = {"status": ApprovalStatus.REJECTED}
            updated = await self._repository.update_template_fields(template_id, fields)

        await self._audit(AuditEventBuilder.template_event(
            AuditEventType.TEMPLATE_APPROVED if approve else AuditEventType.TEMPLATE_REJECTED,
            template_id,
            actor_id,
            f"Template {'approved' if approve else 'rejected'}",
            {"by_admin": is_admin},
        ))
        return updated

    # -- Materialization ------------------------------------------------------

    async def materialize_for_month(
        self,
        template: Union[RecurringExpense, UUID],
        target_date: Union[date, datetime],
    ) -> Optional[Expense]:
        """
        Create this month's expense for a template, at most once.

        The template is re-read under its lock, so the installment counter
        is always the stored one, never a stale copy held by the caller.

        Returns:
            The new expense, or None when nothing had to be created
            (already materialized, template inactive, or installments used up)

        Raises:
            InvalidStateError: Template has not been approved
        """
        template_id = template.id if isinstance(template, RecurringExpense) else template
        if isinstance(target_date, datetime):
            target_date = target_date.date()
        month, year = target_date.month, target_date.year

        async with self._locks.hold("template", template_id):
            current = await self._load(template_id)
            if current.status != ApprovalStatus.APPROVED:
                raise InvalidStateError(
                    "Only approved templates can be materialized", template_id
                )
            if not current.is_active:
                return None

            existing = await self._repository.count_expenses_for_template_and_month(
                template_id, month, year
            )
            if existing:
                return None

            if current.is_installment and (current.installments_remaining or 0) <= 0:
                # Counter drifted to zero without the template being closed
                await self._repository.update_template_fields(
                    template_id, {"is_active": False}
                )
                logger.warning(
                    "installment_template_exhausted",
                    template_id=str(template_id),
                )
                return None

            installment_no = None
            installment_total = None
            if current.is_installment:
                installment_no = current.installment_count - current.installments_remaining + 1
                installment_total = current.installment_count

            expense = Expense(
                created_by=current.created_by,
                category_id=current.category_id,
                description=current.description,
                amount=current.amount,
                expense_date=target_date,
                is_shared=current.is_shared,
                split_ratio=current.split_ratio,
                is_installment=current.is_installment,
                installment_no=installment_no,
                installment_total=installment_total,
                recurring_expense_id=template_id,
                # Approved template means its charges are trusted
                status=ApprovalStatus.APPROVED,
                approved_by=current.approved_by,
                approved_at=utcnow(),
            )

            try:
                await self._repository.create_expense(expense)
            except DuplicateError:
                logger.info(
                    "materialization_already_exists",
                    template_id=str(template_id),
                    month=month,
                    year=year,
                )
                return None

            if current.is_installment:
                remaining = current.installments_remaining - 1
                fields = {"installments_remaining": remaining}
                if remaining <= 0:
                    fields["is_active"] = False
                await self._repository.update_template_fields(template_id, fields)

        await self._audit(AuditEventBuilder.expense_materialized(
            expense_id=expense.id,
            template_id=template_id,
            month=month,
            year=year,
            installment_no=installment_no,
        ))
        return expense

    async def process_due(self, now: Optional[datetime] = None) -> RecurrenceRunReport:
        """
        Materialize the current month for every active, approved template.

        Safe to call repeatedly. A failing template is recorded in the
        report and the batch moves on, unless stop_on_first_failure is set.
        Losing the storage connection always aborts the run.
        """
        now = now or self._clock()
        report = RecurrenceRunReport(target_month=now.month, target_year=now.year)

        templates = await self._repository.find_templates(
            is_active=True, status=ApprovalStatus.APPROVED
        )
        logger.info("recurrence_run_started", templates=len(templates))

        for template in templates:
            report.templates_checked += 1
            try:
                created = await self.materialize_for_month(template, now)
            except StorageConnectionError:
                raise
            except Exception as e:
                logger.error(
                    "materialization_failed",
                    template_id=str(template.id),
                    error=str(e),
                )
                report.failures.append(RecurrenceFailure(
                    template_id=template.id,
                    error_code=getattr(e, "code", type(e).__name__),
                    error_message=str(e),
                ))
                if self._stop_on_first_failure:
                    await self._finish_run(report)
                    raise
                continue

            if created is None:
                report.templates_skipped += 1
            else:
                report.expenses_created += 1

        await self._finish_run(report)
        return report

    async def _finish_run(self, report: RecurrenceRunReport) -> None:
        report.finished_at = utcnow()
        logger.info(
            "recurrence_run_finished",
            created=report.expenses_created,
            skipped=report.templates_skipped,
            failed=report.failure_count,
        )
        await self._audit(AuditEventBuilder.recurrence_run(
            created=report.expenses_created,
            checked=report.templates_checked,
            failures=[f.model_dump(mode="json") for f in report.failures],
        ))
