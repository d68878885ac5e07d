"""Price resolution: rule selection, condition evaluation and rule application."""
from datetime import datetime
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.models.pricing_rule import ConditionType, PricingRule, PricingRuleCondition
from usage_billing.schemas.pricing_rule import MaxUsesValue
from usage_billing.services.condition_evaluator import ConditionEvaluator, EvaluationContext
from usage_billing.services.price_calculator import PriceResult, apply_pricing_rule
from usage_billing.services.pricing_rule_service import PricingRuleService
from usage_billing.services.rule_usage_service import RuleUsageService

logger = structlog.get_logger(__name__)


class PriceQuote(PriceResult):
    """Price result plus the redemption limit of the condition group that let the rule apply."""

    max_uses_limit: int | None = None
    max_uses_scope: str | None = None


def _max_uses_of(group: list[PricingRuleCondition]) -> MaxUsesValue | None:
    for condition in group:
        if condition.condition_type == ConditionType.MAX_USES.value:
            return MaxUsesValue.model_validate(condition.value)
    return None


class PricingService:
    """
    Resolves the unit price of a pricebook item for an organization.

    Only the first candidate rule (highest priority) whose conditions pass is
    applied; lower-priority rules are never combined with it.
    """

    def __init__(self, db: AsyncSession, evaluator: ConditionEvaluator | None = None):
        """Initialize pricing service with database session."""
        self.db = db
        self.rules = PricingRuleService(db)
        self.evaluator = evaluator or ConditionEvaluator(RuleUsageService(db))

    async def select_rule(
        self,
        organization: Organization,
        item: PricebookItem,
        quantity: int,
        now: datetime | None = None,
        exclude_rule_ids: Iterable[UUID] = (),
    ) -> tuple[PricingRule, list[PricingRuleCondition]] | None:
        """Return the winning rule and its passing condition group, or None."""
        now = now or datetime.utcnow()
        excluded = set(exclude_rule_ids)
        context = EvaluationContext(
            organization_id=organization.id,
            pricebook_item_id=item.id,
            quantity=quantity,
            org_segment=organization.segment,
            current_date=now,
        )

        for rule in await self.rules.list_applicable_rules(organization.id, item.id, now):
            if rule.id in excluded:
                continue
            group = await self.evaluator.matching_group(rule, context)
            if group is not None:
                return rule, group
        return None

    async def quote(
        self,
        organization: Organization,
        item: PricebookItem,
        quantity: int,
        now: datetime | None = None,
        exclude_rule_ids: Iterable[UUID] = (),
    ) -> PriceQuote:
        """Unit price of ``item`` for ``organization`` at ``quantity``."""
        selected = await self.select_rule(organization, item, quantity, now, exclude_rule_ids)
        rule, group = selected if selected else (None, [])
        result = apply_pricing_rule(item.base_unit_price_cents, rule)

        logger.debug(
            "price_resolved",
            organization_id=str(organization.id),
            code=item.code,
            quantity=quantity,
            pricing_rule_id=str(rule.id) if rule else None,
            final_unit_price_cents=result.final_unit_price_cents,
        )
        max_uses = _max_uses_of(group)
        return PriceQuote(
            **result.model_dump(),
            max_uses_limit=max_uses.limit if max_uses else None,
            max_uses_scope=max_uses.scope if max_uses else None,
        )
