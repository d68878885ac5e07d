"""Invoice generation from priced usage, and invoice queries."""
from datetime import date, datetime, time
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from usage_billing.config import settings
from usage_billing.exceptions import InvalidStateError, NoUsageToInvoiceError, NotFoundError
from usage_billing.metrics import invoice_amount_total, invoices_generated_total
from usage_billing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from usage_billing.models.organization import Organization
from usage_billing.models.payment import PaymentStatus
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.schemas.invoice import InvoiceDetail
from usage_billing.schemas.payment import Payment as PaymentSchema
from usage_billing.services.pricing_service import PriceQuote, PricingService
from usage_billing.services.rule_usage_service import RuleUsageService, scope_dimensions
from usage_billing.services.usage_service import UsageService
from usage_billing.services.volume_pricing import build_order_line_items

logger = structlog.get_logger(__name__)


def period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """
    Closed datetime range for a billing period.

    Plain dates cover whole days: the start at midnight, the end at the last
    microsecond of its day. Datetimes are used as given.
    """
    start = period_start if isinstance(period_start, datetime) else datetime.combine(period_start, time.min)
    end = period_end if isinstance(period_end, datetime) else datetime.combine(period_end, time.max)
    return start, end


def period_key(organization_id: UUID, start: datetime, end: datetime) -> str:
    return f"{organization_id}:{start.date().isoformat()}:{end.date().isoformat()}"


class InvoiceService:
    """Service layer for invoice generation and lookup."""

    def __init__(self, db: AsyncSession, pricing: PricingService | None = None):
        """Initialize invoice service with database session."""
        self.db = db
        self.pricing = pricing or PricingService(db)
        self.usage = UsageService(db, pricing=self.pricing)
        self.rule_usage = RuleUsageService(db)

    async def generate_invoice(
        self,
        organization_id: UUID,
        period_start: date,
        period_end: date,
        now: datetime | None = None,
    ) -> Invoice:
        """
        Generate a draft invoice from an organization's usage in a period.

        Each line is priced at its aggregated quantity. When the winning rule is
        limited by a max_uses condition, a redemption slot is taken atomically; if
        another writer took the last slot first, the line is repriced without that rule.

        Raises:
            NotFoundError: If the organization does not exist
            NoUsageToInvoiceError: If the period has no billable usage
            InvalidStateError: If a non-void invoice already covers the period
        """
        organization = await self.db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found")

        start, end = period_bounds(period_start, period_end)
        now = now or datetime.utcnow()

        key = None if settings.allow_duplicate_invoices else period_key(organization_id, start, end)
        if key:
            existing = await self.db.scalar(select(Invoice.id).where(Invoice.period_key == key))
            if existing:
                raise InvalidStateError(
                    f"Invoice already exists for organization {organization_id} period {start.date()} - {end.date()}",
                    invoice_id=str(existing),
                )

        priced = await self.usage.price_usage(organization, start, end, now)
        if not priced:
            raise NoUsageToInvoiceError(organization_id=str(organization_id))

        items = []
        for item, quantity, quote in priced:
            quote = await self._redeem(organization, item, quantity, quote, now)
            items.append(
                InvoiceItem(
                    organization_id=organization_id,
                    pricebook_item_id=item.id,
                    pricing_rule_id=quote.pricing_rule_id,
                    code=item.code,
                    quantity=quantity,
                    base_unit_price_cents=quote.base_unit_price_cents,
                    discount_percent=quote.discount_percent,
                    discount_amount_cents=quote.discount_amount_cents,
                    final_unit_price_cents=quote.final_unit_price_cents,
                    total_cents=quote.final_unit_price_cents * quantity,
                    period=start.date(),
                )
            )

        invoice = Invoice(
            organization_id=organization_id,
            period_start=start.date(),
            period_end=end.date(),
            period_key=key,
            total_cents=sum(item.total_cents for item in items),
            currency=settings.billing_currency,
            status=InvoiceStatus.DRAFT,
            items=items,
        )
        self.db.add(invoice)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise InvalidStateError(
                f"Invoice already exists for organization {organization_id} period {start.date()} - {end.date()}"
            ) from e
        await self.db.refresh(invoice)

        invoices_generated_total.labels(currency=invoice.currency).inc()
        invoice_amount_total.labels(currency=invoice.currency).inc(invoice.total_cents)
        logger.info(
            "invoice_generated",
            invoice_id=str(invoice.id),
            organization_id=str(organization_id),
            period_start=str(invoice.period_start),
            period_end=str(invoice.period_end),
            items=len(items),
            total_cents=invoice.total_cents,
        )
        return invoice

    async def _redeem(
        self,
        organization: Organization,
        item: PricebookItem,
        quantity: int,
        quote: PriceQuote,
        now: datetime,
    ) -> PriceQuote:
        excluded: set[UUID] = set()
        while quote.pricing_rule_id and quote.max_uses_limit is not None:
            scope_org, scope_item = scope_dimensions(quote.max_uses_scope, organization.id, item.id)
            if await self.rule_usage.consume(quote.pricing_rule_id, quote.max_uses_limit, scope_org, scope_item):
                break

            logger.warning(
                "pricing_rule_exhausted_during_generation",
                pricing_rule_id=str(quote.pricing_rule_id),
                organization_id=str(organization.id),
                code=item.code,
            )
            excluded.add(quote.pricing_rule_id)
            quote = await self.pricing.quote(organization, item, quantity, now, exclude_rule_ids=excluded)
        return quote

    async def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        """Get invoice with its items."""
        result = await self.db.execute(select(Invoice).where(Invoice.id == invoice_id))
        return result.scalar_one_or_none()

    async def get_invoice_detail(self, invoice_id: UUID) -> InvoiceDetail:
        """
        Invoice with payments, the latest receipt and, for order invoices, the
        display lines priced from the order's cart snapshot.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        result = await self.db.execute(
            select(Invoice).options(selectinload(Invoice.payments)).where(Invoice.id == invoice_id)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        payments = sorted(invoice.payments, key=lambda p: p.created_at, reverse=True)
        receipt_url = next(
            (p.receipt_url for p in payments if p.status == PaymentStatus.SUCCEEDED and p.receipt_url),
            None,
        )
        cart_snapshot = (invoice.extra_metadata or {}).get("cart_snapshot")

        detail = InvoiceDetail.model_validate(invoice)
        detail.payments = [PaymentSchema.model_validate(p) for p in payments]
        detail.receipt_url = receipt_url
        detail.order_line_items = build_order_line_items(cart_snapshot) if cart_snapshot else []
        return detail

    async def list_invoices(
        self,
        organization_id: UUID | None = None,
        status: InvoiceStatus | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[Invoice], int]:
        """
        List invoices with pagination and filtering.

        Returns:
            Tuple of (invoices, total_count), newest first
        """
        query = select(Invoice)
        if organization_id:
            query = query.where(Invoice.organization_id == organization_id)
        if status:
            query = query.where(Invoice.status == status)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        result = await self.db.execute(
            query.order_by(Invoice.created_at.desc(), Invoice.id).offset((page - 1) * page_size).limit(page_size)
        )
        return list(result.scalars().all()), total
