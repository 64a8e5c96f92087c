"""
Payment Ledger

Records partial payments of a month's debt. Each new payment is checked
against the remaining debt as computed right now from the shared expenses,
so the ledger can never record more than is owed.

Payments are summed live by the settlement calculator; deleting one simply
makes the debt reappear on the next summary.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from home_ledger.audit import AuditLogger
from home_ledger.engine.errors import (
    EntityNotFoundError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
)
from home_ledger.engine.locks import EntityLocks
from home_ledger.engine.settlement import SettlementCalculator, validate_period
from home_ledger.models.audit import AuditEventBuilder
from home_ledger.models.ledger import Payment
from home_ledger.services.storage import LedgerRepository


logger = structlog.get_logger(__name__)


class PaymentLedger:
    """Adds and removes debt payments for a month."""

    def __init__(
        self,
        repository: LedgerRepository,
        calculator: Optional[SettlementCalculator] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[EntityLocks] = None,
    ):
        self._repository = repository
        self._calculator = calculator or SettlementCalculator(repository)
        self._audit_logger = audit_logger
        self._locks = locks or EntityLocks()

    async def list_payments(self, month: int, year: int) -> list[Payment]:
        """Payments recorded for a month, newest first."""
        return await self._repository.find_payments(month, year)

    async def add_payment(
        self,
        month: int,
        year: int,
        payer_id: UUID,
        payee_id: UUID,
        amount: Decimal,
        actor_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Record a payment from the debtor to the creditor.

        Args:
            month, year: The settlement period being paid off
            payer_id: Must be the month's debtor
            payee_id: Must be the month's creditor
            amount: Positive amount, at most the remaining debt
            actor_id: The user recording the payment; must be the payer

        Raises:
            InvalidArgumentError: Invalid period, non-numeric or non-positive
                amount, overpayment, or payer/payee not matching the debtor/creditor pair
            InvalidStateError: Nothing is owed for this month
            ForbiddenError: Someone other than the payer records it
        """
        validate_period(month, year)
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError) as e:
            raise InvalidArgumentError(f"Invalid payment amount: {amount!r}") from e
        if not amount.is_finite():
            raise InvalidArgumentError(f"Invalid payment amount: {amount}")
        if amount <= 0:
            raise InvalidArgumentError("Payment amount must be greater than zero")
        if actor_id is not None and actor_id != payer_id:
            raise ForbiddenError("Only the debtor can record a payment")

        # One payment at a time per month, so two concurrent payments
        # cannot both fit under the same remaining debt
        async with self._locks.hold("settlement", (month, year)):
            summary = await self._calculator.get_monthly_summary(
                month, year, shared_only=True
            )
            if summary.remaining_debt <= 0:
                raise InvalidStateError(
                    f"Nothing is owed for {month:02d}/{year}"
                )
            if amount > summary.remaining_debt:
                raise InvalidArgumentError(
                    f"Payment of {amount} exceeds the remaining debt "
                    f"of {summary.remaining_debt}"
                )
            if payer_id != summary.debtor_id or payee_id != summary.creditor_id:
                raise InvalidArgumentError(
                    "Payments must go from the month's debtor to its creditor"
                )

            try:
                payment = Payment(
                    month=month,
                    year=year,
                    payer_id=payer_id,
                    payee_id=payee_id,
                    amount=amount,
                )
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid payment: {e}") from e
            await self._repository.create_payment(payment)

        logger.info(
            "payment_added",
            payment_id=str(payment.id),
            remaining_before=str(summary.remaining_debt),
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.payment_added(
                payment_id=payment.id,
                payer_id=payer_id,
                payee_id=payee_id,
                amount=amount,
                month=month,
                year=year,
            ))
        return payment

    async def delete_payment(self, payment_id: UUID) -> None:
        """
        Remove a payment.

        Raises:
            EntityNotFoundError: Unknown payment id
        """
        payment = await self._repository.get_payment(payment_id)
        if payment is None:
            raise EntityNotFoundError(f"Payment not found: {payment_id}", payment_id)

        async with self._locks.hold("settlement", (payment.month, payment.year)):
            await self._repository.delete_payment(payment_id)

        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.payment_deleted(payment_id, payment.amount)
            )
