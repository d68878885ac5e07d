"""Payment recording and reconciliation onto invoices."""
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.metrics import payment_amount_total, payments_attempted_total
from usage_billing.models.invoice import Invoice, InvoiceStatus
from usage_billing.models.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)

# Statuses a processor notification may move a payment to; repeats of the current status are always accepted
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.CANCELED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.SUCCEEDED}),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.REFUNDED}),
}


def _payment_status(outcome: dict[str, Any]) -> PaymentStatus:
    if outcome.get("paid"):
        return PaymentStatus.SUCCEEDED
    if outcome.get("error"):
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


class PaymentService:
    """Service layer for payment operations."""

    def __init__(self, db: AsyncSession):
        """Initialize payment service with database session."""
        self.db = db

    async def record_payment(self, invoice: Invoice, outcome: dict[str, Any]) -> Payment:
        """
        Persist the outcome of a processor payment attempt on ``invoice``.

        A successful outcome also marks the invoice paid.

        Args:
            invoice: Invoice the attempt was made for
            outcome: Processor result (``paid``, ``payment_intent``, ``charge``,
                ``hosted_invoice_url`` and, for declines, ``error``)
        """
        status = _payment_status(outcome)
        now = datetime.utcnow()

        payment = Payment(
            organization_id=invoice.organization_id,
            invoice_id=invoice.id,
            amount_cents=invoice.total_cents,
            currency=invoice.currency,
            status=status,
            stripe_payment_intent_id=outcome.get("payment_intent"),
            stripe_charge_id=outcome.get("charge"),
            receipt_url=outcome.get("hosted_invoice_url"),
            failure_message=outcome.get("error"),
            processed_at=now,
        )
        self.db.add(payment)

        if status == PaymentStatus.SUCCEEDED:
            self._mark_invoice_paid(invoice, now)

        await self.db.flush()
        await self.db.refresh(payment)

        payments_attempted_total.labels(status=status.value, currency=payment.currency).inc()
        payment_amount_total.labels(status=status.value, currency=payment.currency).inc(payment.amount_cents)
        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            invoice_id=str(invoice.id),
            status=status.value,
            amount_cents=payment.amount_cents,
        )
        return payment

    async def update_payment_status(
        self,
        payment_intent_id: str,
        status: PaymentStatus,
        charge_id: str | None = None,
        receipt_url: str | None = None,
        failure_message: str | None = None,
    ) -> list[Payment]:
        """
        Apply an asynchronous processor notification to the payments of an intent.

        Statuses only move forward (see ``PAYMENT_TRANSITIONS``); a late or
        out-of-order notification is logged and ignored. Charge id and receipt
        url are only filled in, never cleared. A succeeded payment marks its
        invoice paid.

        Returns:
            The updated payments (empty if the intent is unknown or every update was ignored)
        """
        result = await self.db.execute(
            select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
        )
        payments = list(result.scalars().all())
        if not payments:
            logger.warning("payment_intent_not_found", payment_intent_id=payment_intent_id, status=status.value)
            return []

        now = datetime.utcnow()
        updated = []
        for payment in payments:
            if payment.status != status and status not in PAYMENT_TRANSITIONS.get(payment.status, frozenset()):
                logger.warning(
                    "payment_status_update_ignored",
                    payment_id=str(payment.id),
                    payment_intent_id=payment_intent_id,
                    current=payment.status.value,
                    reported=status.value,
                )
                continue

            updated.append(payment)
            payment.status = status
            payment.stripe_charge_id = charge_id or payment.stripe_charge_id
            payment.receipt_url = receipt_url or payment.receipt_url
            if failure_message:
                payment.failure_message = failure_message
            payment.processed_at = now

            if status == PaymentStatus.SUCCEEDED and payment.invoice_id:
                invoice = await self.db.get(Invoice, payment.invoice_id)
                if invoice:
                    self._mark_invoice_paid(invoice, now)

        await self.db.flush()
        logger.info(
            "payment_status_updated",
            payment_intent_id=payment_intent_id,
            status=status.value,
            payments=len(updated),
        )
        return updated

    async def update_receipt_by_charge(self, charge_id: str, receipt_url: str) -> int:
        """Backfill the receipt url of payments settled by ``charge_id``."""
        result = await self.db.execute(select(Payment).where(Payment.stripe_charge_id == charge_id))
        payments = list(result.scalars().all())
        for payment in payments:
            payment.receipt_url = receipt_url
        await self.db.flush()
        return len(payments)

    async def get_payment(self, payment_id: UUID) -> Payment | None:
        """Get payment by ID."""
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def list_payments(
        self,
        organization_id: UUID | None = None,
        invoice_id: UUID | None = None,
        status: PaymentStatus | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[Payment], int]:
        """
        List payments with pagination and filtering.

        Returns:
            Tuple of (payments, total_count), newest first
        """
        query = select(Payment)
        if organization_id:
            query = query.where(Payment.organization_id == organization_id)
        if invoice_id:
            query = query.where(Payment.invoice_id == invoice_id)
        if status:
            query = query.where(Payment.status == status)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        result = await self.db.execute(
            query.order_by(Payment.created_at.desc(), Payment.id).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total

    @staticmethod
    def _mark_invoice_paid(invoice: Invoice, when: datetime) -> None:
        if invoice.status in (InvoiceStatus.OPEN, InvoiceStatus.DRAFT, InvoiceStatus.UNCOLLECTIBLE):
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = when
            logger.info("invoice_marked_paid", invoice_id=str(invoice.id))
