"""Usage event recording and per-period usage aggregation."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.exceptions import NotFoundError
from usage_billing.metrics import usage_events_total
from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.models.usage_event import UsageEvent
from usage_billing.schemas.usage import UsageEventCreate, UsageSummary, UsageSummaryItem
from usage_billing.services.pricebook_service import PricebookService
from usage_billing.services.pricing_service import PriceQuote, PricingService

logger = structlog.get_logger(__name__)


class UsageService:
    """Service layer for usage events and usage summaries."""

    def __init__(self, db: AsyncSession, pricing: PricingService | None = None):
        """Initialize usage service with database session."""
        self.db = db
        self.pricebook = PricebookService(db)
        self.pricing = pricing or PricingService(db)

    async def record_usage(self, organization_id: UUID, usage_data: UsageEventCreate) -> UsageEvent:
        """
        Append a usage event for an organization.

        Codes are not checked against the pricebook here; events with an unknown
        code are stored and skipped when usage is priced.

        Raises:
            NotFoundError: If the organization does not exist
        """
        organization = await self.db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found")

        event = UsageEvent(
            organization_id=organization_id,
            code=usage_data.code,
            quantity=usage_data.quantity,
            effective_at=usage_data.effective_at or datetime.utcnow(),
            related_ids=usage_data.related_ids,
        )
        self.db.add(event)
        await self.db.flush()
        await self.db.refresh(event)

        usage_events_total.labels(code=event.code).inc()
        logger.info(
            "usage_event_recorded",
            organization_id=str(organization_id),
            code=event.code,
            quantity=event.quantity,
            effective_at=event.effective_at.isoformat(),
        )
        return event

    async def get_usage_event(self, event_id: UUID) -> UsageEvent | None:
        """Get usage event by ID."""
        result = await self.db.execute(select(UsageEvent).where(UsageEvent.id == event_id))
        return result.scalar_one_or_none()

    async def list_usage_events(
        self,
        organization_id: UUID | None = None,
        code: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[UsageEvent], int]:
        """
        List usage events with pagination and filtering.

        Returns:
            Tuple of (events, total_count), newest first
        """
        query = select(UsageEvent)
        if organization_id:
            query = query.where(UsageEvent.organization_id == organization_id)
        if code:
            query = query.where(UsageEvent.code == code)
        if start:
            query = query.where(UsageEvent.effective_at >= start)
        if end:
            query = query.where(UsageEvent.effective_at <= end)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        result = await self.db.execute(
            query.order_by(UsageEvent.effective_at.desc(), UsageEvent.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def list_usage_codes(self) -> list[str]:
        """Distinct codes seen in usage events."""
        result = await self.db.execute(select(distinct(UsageEvent.code)).order_by(UsageEvent.code))
        return list(result.scalars().all())

    async def aggregate_usage(
        self, organization_id: UUID, period_start: datetime, period_end: datetime
    ) -> dict[str, int]:
        """Total quantity per code for events with ``period_start <= effective_at <= period_end``."""
        result = await self.db.execute(
            select(UsageEvent.code, func.sum(UsageEvent.quantity))
            .where(
                UsageEvent.organization_id == organization_id,
                UsageEvent.effective_at >= period_start,
                UsageEvent.effective_at <= period_end,
            )
            .group_by(UsageEvent.code)
            .order_by(UsageEvent.code)
        )
        return {code: int(quantity) for code, quantity in result.all()}

    async def price_usage(
        self,
        organization: Organization,
        period_start: datetime,
        period_end: datetime,
        now: datetime | None = None,
    ) -> list[tuple[PricebookItem, int, PriceQuote]]:
        """Aggregate the period and quote each known code at its total quantity."""
        now = now or datetime.utcnow()
        quantities = await self.aggregate_usage(organization.id, period_start, period_end)
        catalog = await self.pricebook.get_items_by_codes(list(quantities))

        priced = []
        for code, quantity in quantities.items():
            item = catalog.get(code)
            if item is None:
                logger.debug("usage_code_not_in_pricebook", organization_id=str(organization.id), code=code)
                continue
            priced.append((item, quantity, await self.pricing.quote(organization, item, quantity, now)))
        return priced

    async def get_usage_summary(
        self,
        organization_id: UUID,
        period_start: datetime,
        period_end: datetime,
        now: datetime | None = None,
    ) -> UsageSummary:
        """
        Aggregate and price an organization's usage over a closed period.

        Each code is priced once at its aggregated quantity, so quantity-gated
        rules see the period total. Codes missing from the pricebook are skipped.
        Nothing is written; ``now`` decides which rules are active.

        Raises:
            NotFoundError: If the organization does not exist
        """
        organization = await self.db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found")

        items = [
            summary_item(item, quantity, quote)
            for item, quantity, quote in await self.price_usage(organization, period_start, period_end, now)
        ]
        return UsageSummary(
            organization_id=organization_id,
            period_start=period_start,
            period_end=period_end,
            items=items,
            total_cents=sum(item.total_cents for item in items),
        )


def summary_item(item: PricebookItem, quantity: int, quote: PriceQuote) -> UsageSummaryItem:
    """Summary line for ``quantity`` units of ``item`` at the quoted price."""
    return UsageSummaryItem(
        pricebook_item_id=item.id,
        code=item.code,
        name=item.name,
        quantity=quantity,
        base_unit_price_cents=quote.base_unit_price_cents,
        discount_percent=quote.discount_percent,
        discount_amount_cents=quote.discount_amount_cents,
        final_unit_price_cents=quote.final_unit_price_cents,
        total_cents=quote.final_unit_price_cents * quantity,
        pricing_rule_id=quote.pricing_rule_id,
    )
