"""Rule usage counters backing max_uses conditions."""
from datetime import datetime
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.exceptions import PersistenceError
from usage_billing.metrics import pricing_rule_redemptions_total
from usage_billing.models.pricing_rule_usage import PricingRuleUsage, build_scope_key

logger = structlog.get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def scope_dimensions(
    scope: str, organization_id: UUID | None, pricebook_item_id: UUID | None
) -> tuple[UUID | None, UUID | None]:
    """Reduce an (organization, item) context to the dimensions a max_uses scope counts by."""
    if scope == "per_org":
        return organization_id, None
    if scope == "per_item":
        return None, pricebook_item_id
    if scope == "per_org_item":
        return organization_id, pricebook_item_id
    return None, None


class RuleUsageService:
    """
    Atomic per-scope redemption counters.

    Every write is a single INSERT ... ON CONFLICT DO UPDATE statement, so
    concurrent callers never lose an increment and ``consume`` never lets a
    counter pass its limit.
    """

    def __init__(self, db: AsyncSession):
        """Initialize rule usage service with database session."""
        self.db = db

    async def get_usage(
        self,
        rule_id: UUID,
        organization_id: UUID | None = None,
        pricebook_item_id: UUID | None = None,
    ) -> int:
        """Current count for the scope, 0 if never redeemed."""
        result = await self.db.execute(
            select(PricingRuleUsage.usage_count).where(
                PricingRuleUsage.pricing_rule_id == rule_id,
                PricingRuleUsage.scope_key == build_scope_key(organization_id, pricebook_item_id),
            )
        )
        return result.scalar_one_or_none() or 0

    async def list_usage(self, rule_id: UUID) -> list[PricingRuleUsage]:
        """All counters recorded for a rule."""
        result = await self.db.execute(
            select(PricingRuleUsage)
            .where(PricingRuleUsage.pricing_rule_id == rule_id)
            .order_by(PricingRuleUsage.scope_key)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def increment(
        self,
        rule_id: UUID,
        organization_id: UUID | None = None,
        pricebook_item_id: UUID | None = None,
    ) -> int:
        """Unconditionally add one redemption and return the new count."""
        count = await self._upsert(rule_id, organization_id, pricebook_item_id, limit=None)
        return count or 0

    async def consume(
        self,
        rule_id: UUID,
        limit: int,
        organization_id: UUID | None = None,
        pricebook_item_id: UUID | None = None,
    ) -> bool:
        """
        Take one redemption slot if the counter is still below ``limit``.

        Returns:
            True if a slot was taken, False if the limit was already reached
        """
        if limit <= 0:
            consumed = False
        else:
            consumed = await self._upsert(rule_id, organization_id, pricebook_item_id, limit=limit) is not None

        pricing_rule_redemptions_total.labels(outcome="consumed" if consumed else "exhausted").inc()
        logger.info(
            "pricing_rule_redemption",
            pricing_rule_id=str(rule_id),
            scope_key=build_scope_key(organization_id, pricebook_item_id),
            limit=limit,
            consumed=consumed,
        )
        return consumed

    async def _upsert(
        self,
        rule_id: UUID,
        organization_id: UUID | None,
        pricebook_item_id: UUID | None,
        limit: int | None,
    ) -> int | None:
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise PersistenceError(f"Rule usage counters are not supported on {dialect}")

        now = datetime.utcnow()
        stmt = insert(PricingRuleUsage).values(
            id=uuid4(),
            pricing_rule_id=rule_id,
            organization_id=organization_id,
            pricebook_item_id=pricebook_item_id,
            scope_key=build_scope_key(organization_id, pricebook_item_id),
            usage_count=1,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PricingRuleUsage.pricing_rule_id, PricingRuleUsage.scope_key],
            set_={"usage_count": PricingRuleUsage.usage_count + 1, "updated_at": now},
            where=(PricingRuleUsage.usage_count < limit) if limit is not None else None,
        ).returning(PricingRuleUsage.usage_count)

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update usage counter for rule {rule_id}") from e
        return result.scalar_one_or_none()
