"""Invoice lifecycle against the payment processor: sync, pay, void, uncollectible."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.adapters.stripe_adapter import StripeAdapter
from usage_billing.exceptions import InvalidStateError, NotFoundError
from usage_billing.metrics import invoices_synced_total, invoices_voided_total
from usage_billing.models.invoice import Invoice, InvoiceStatus
from usage_billing.models.organization import Organization
from usage_billing.models.payment import Payment
from usage_billing.services.payment_service import PaymentService

logger = structlog.get_logger(__name__)


class InvoiceLifecycleService:
    """
    Drives invoices through draft -> open -> paid, with void and uncollectible
    as side exits, mirroring each step on the payment processor.
    """

    def __init__(self, db: AsyncSession, processor: PaymentProcessor | None = None):
        """Initialize lifecycle service with database session and processor."""
        self.db = db
        self.processor = processor or StripeAdapter()
        self.payments = PaymentService(db)

    async def _get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    async def ensure_customer(self, organization: Organization) -> str:
        """
        Return a usable processor customer for the organization.

        A stored customer that no longer exists on the processor is replaced.
        """
        if organization.stripe_customer_id:
            if await self.processor.customer_exists(organization.stripe_customer_id):
                return organization.stripe_customer_id
            logger.warning(
                "stripe_customer_missing",
                organization_id=str(organization.id),
                stripe_customer_id=organization.stripe_customer_id,
            )

        customer_id = await self.processor.create_customer(
            email=organization.billing_email,
            name=organization.name,
            metadata={"organization_id": str(organization.id)},
        )
        organization.stripe_customer_id = customer_id
        await self.db.flush()

        logger.info("stripe_customer_created", organization_id=str(organization.id), stripe_customer_id=customer_id)
        return customer_id

    async def sync_invoice(self, invoice_id: UUID, auto_finalize: bool = False) -> Invoice:
        """
        Push a draft invoice and its lines to the processor.

        The invoice becomes OPEN, or PAID when finalizing reports it settled
        (e.g. a zero total or customer credit).

        Raises:
            NotFoundError: If the invoice does not exist
            InvalidStateError: If the invoice is not an unsynced draft
            ExternalProcessorError: If any processor call fails
        """
        invoice = await self._get_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT or invoice.stripe_invoice_id:
            raise InvalidStateError(
                f"Invoice {invoice_id} cannot be synced from status {invoice.status.value}",
                stripe_invoice_id=invoice.stripe_invoice_id,
            )

        organization = await self.db.get(Organization, invoice.organization_id)
        customer_id = await self.ensure_customer(organization)

        external = await self.processor.create_invoice(
            customer_id,
            invoice.currency,
            metadata={"invoice_id": str(invoice.id), "organization_id": str(invoice.organization_id)},
        )
        for item in invoice.items:
            await self.processor.add_invoice_item(
                customer_id,
                external["id"],
                amount_cents=item.final_unit_price_cents * item.quantity,
                currency=invoice.currency,
                description=item.code,
            )

        invoice.stripe_invoice_id = external["id"]
        invoice.status = InvoiceStatus.OPEN
        hosted_url = external.get("hosted_invoice_url")

        if auto_finalize:
            finalized = await self.processor.finalize_invoice(external["id"])
            now = datetime.utcnow()
            invoice.finalized_at = now
            hosted_url = finalized.get("hosted_invoice_url") or hosted_url
            if finalized.get("paid"):
                invoice.status = InvoiceStatus.PAID
                invoice.paid_at = now

        if hosted_url:
            invoice.extra_metadata = {**(invoice.extra_metadata or {}), "hosted_invoice_url": hosted_url}

        await self.db.flush()
        await self.db.refresh(invoice)

        invoices_synced_total.labels(status=invoice.status.value).inc()
        logger.info(
            "invoice_synced",
            invoice_id=str(invoice.id),
            stripe_invoice_id=invoice.stripe_invoice_id,
            status=invoice.status.value,
            finalized=auto_finalize,
        )
        return invoice

    async def pay_invoice(self, invoice_id: UUID) -> Payment:
        """
        Charge a synced, open invoice and record the attempt.

        Raises:
            NotFoundError: If the invoice does not exist
            InvalidStateError: If the invoice is not synced or not open
            ExternalProcessorError: If the processor call fails (declines are recorded, not raised)
        """
        invoice = await self._get_invoice(invoice_id)
        if not invoice.stripe_invoice_id:
            raise InvalidStateError("Invoice not synced", invoice_id=str(invoice_id))
        if invoice.status != InvoiceStatus.OPEN:
            raise InvalidStateError(f"Invoice {invoice_id} cannot be paid from status {invoice.status.value}")

        outcome = await self.processor.pay_invoice(invoice.stripe_invoice_id)
        payment = await self.payments.record_payment(invoice, outcome)

        logger.info(
            "invoice_payment_attempted",
            invoice_id=str(invoice.id),
            paid=bool(outcome.get("paid")),
            payment_status=payment.status.value,
        )
        return payment

    async def void_invoice(self, invoice_id: UUID, reason: str = "requested_by_admin") -> Invoice:
        """
        Void a draft or open invoice. Its period can be invoiced again afterwards.

        Raises:
            InvalidStateError: If the invoice is paid, void or uncollectible
        """
        invoice = await self._get_invoice(invoice_id)
        self._require_unsettled(invoice, "voided")

        if invoice.stripe_invoice_id and invoice.finalized_at:
            await self.processor.void_invoice(invoice.stripe_invoice_id)
        elif invoice.stripe_invoice_id:
            # Stripe drafts cannot be voided, only deleted
            await self.processor.delete_invoice(invoice.stripe_invoice_id)
            invoice.stripe_invoice_id = None

        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = datetime.utcnow()
        invoice.period_key = None
        invoice.extra_metadata = {**(invoice.extra_metadata or {}), "void_reason": reason}
        await self.db.flush()
        await self.db.refresh(invoice)

        invoices_voided_total.labels(reason="void").inc()
        logger.info("invoice_voided", invoice_id=str(invoice.id), reason=reason)
        return invoice

    async def mark_uncollectible(self, invoice_id: UUID) -> Invoice:
        """
        Write off a draft or open invoice.

        Raises:
            InvalidStateError: If the invoice is paid, void or uncollectible
        """
        invoice = await self._get_invoice(invoice_id)
        self._require_unsettled(invoice, "marked uncollectible")

        if invoice.stripe_invoice_id and invoice.finalized_at:
            await self.processor.mark_uncollectible(invoice.stripe_invoice_id)

        invoice.status = InvoiceStatus.UNCOLLECTIBLE
        await self.db.flush()
        await self.db.refresh(invoice)

        invoices_voided_total.labels(reason="uncollectible").inc()
        logger.info("invoice_marked_uncollectible", invoice_id=str(invoice.id))
        return invoice

    async def update_status_from_processor(self, stripe_invoice_id: str, status: InvoiceStatus) -> Invoice | None:
        """
        Apply a status reported by the processor (webhooks).

        A paid invoice is never moved back. Unknown processor invoices are ignored.
        """
        result = await self.db.execute(select(Invoice).where(Invoice.stripe_invoice_id == stripe_invoice_id))
        invoice = result.scalar_one_or_none()
        if not invoice:
            logger.warning("stripe_invoice_not_found", stripe_invoice_id=stripe_invoice_id, status=status.value)
            return None
        if invoice.status == status:
            return invoice
        if invoice.status == InvoiceStatus.PAID:
            logger.warning(
                "stripe_invoice_status_ignored",
                invoice_id=str(invoice.id),
                current=invoice.status.value,
                reported=status.value,
            )
            return invoice

        now = datetime.utcnow()
        invoice.status = status
        if status == InvoiceStatus.PAID:
            invoice.paid_at = now
        elif status == InvoiceStatus.VOID:
            invoice.voided_at = now
            invoice.period_key = None

        await self.db.flush()
        logger.info("invoice_status_updated_from_stripe", invoice_id=str(invoice.id), status=status.value)
        return invoice

    @staticmethod
    def _require_unsettled(invoice: Invoice, action: str) -> None:
        if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.OPEN):
            raise InvalidStateError(f"Invoice {invoice.id} cannot be {action} from status {invoice.status.value}")
