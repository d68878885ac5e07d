"""Pricing rule store: CRUD, validation and candidate selection."""
from collections import Counter
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.exceptions import NotFoundError, ValidationError
from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.models.pricing_rule import PricingRule, PricingRuleCondition, RuleScope, RuleType
from usage_billing.schemas.pricing_rule import ConditionCreate, PricingRuleCreate, PricingRuleUpdate

logger = structlog.get_logger(__name__)


def _build_condition(condition: ConditionCreate) -> PricingRuleCondition:
    return PricingRuleCondition(
        condition_type=condition.condition_type,
        operator=condition.operator.value,
        value=condition.value.model_dump(mode="json"),
        group_id=condition.group_id,
    )


class PricingRuleService:
    """Service layer for pricing rule storage and lookup."""

    def __init__(self, db: AsyncSession):
        """Initialize pricing rule service with database session."""
        self.db = db

    async def create_rule(self, rule_data: PricingRuleCreate) -> PricingRule:
        """
        Create a rule together with its conditions.

        Raises:
            ValidationError: If scope, value or conditions are inconsistent
            NotFoundError: If the referenced organization or pricebook item is missing
        """
        fields = rule_data.model_dump(exclude={"conditions"})
        await self._validate(fields, rule_data.conditions)

        rule = PricingRule(**fields)
        rule.conditions = [_build_condition(c) for c in rule_data.conditions]
        self.db.add(rule)
        await self.db.flush()

        logger.info(
            "pricing_rule_created",
            pricing_rule_id=str(rule.id),
            rule_type=rule.rule_type.value,
            scope_type=rule.scope_type.value,
            priority=rule.priority,
            conditions=len(rule.conditions),
        )
        return await self.get_rule(rule.id)

    async def get_rule(self, rule_id: UUID) -> PricingRule | None:
        """Get a rule with freshly loaded conditions."""
        result = await self.db.execute(
            select(PricingRule).where(PricingRule.id == rule_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_rules(
        self,
        scope_type: RuleScope | None = None,
        organization_id: UUID | None = None,
        pricebook_item_id: UUID | None = None,
    ) -> list[PricingRule]:
        """List rules, highest priority first."""
        query = select(PricingRule)
        if scope_type:
            query = query.where(PricingRule.scope_type == scope_type)
        if organization_id:
            query = query.where(PricingRule.organization_id == organization_id)
        if pricebook_item_id:
            query = query.where(PricingRule.pricebook_item_id == pricebook_item_id)

        result = await self.db.execute(
            query.order_by(PricingRule.priority.desc(), PricingRule.created_at, PricingRule.id)
        )
        return list(result.scalars().all())

    async def update_rule(self, rule_id: UUID, update_data: PricingRuleUpdate) -> PricingRule:
        """
        Update a rule. Conditions, when supplied, replace the existing set.

        Raises:
            NotFoundError: If the rule does not exist
            ValidationError: If the resulting rule is inconsistent
        """
        rule = await self.get_rule(rule_id)
        if not rule:
            raise NotFoundError(f"Pricing rule {rule_id} not found")

        changes = update_data.model_dump(exclude_unset=True, exclude={"conditions"})
        merged = {
            "scope_type": rule.scope_type,
            "organization_id": rule.organization_id,
            "pricebook_item_id": rule.pricebook_item_id,
            "rule_type": rule.rule_type,
            "value": rule.value,
            "active_from": rule.active_from,
            "active_to": rule.active_to,
        }
        merged.update(changes)
        await self._validate(merged, update_data.conditions)

        for field, value in changes.items():
            setattr(rule, field, value)
        if update_data.conditions is not None:
            rule.conditions = [_build_condition(c) for c in update_data.conditions]

        await self.db.flush()

        logger.info(
            "pricing_rule_updated",
            pricing_rule_id=str(rule.id),
            fields=sorted(changes),
            conditions_replaced=update_data.conditions is not None,
        )
        return await self.get_rule(rule.id)

    async def delete_rule(self, rule_id: UUID) -> None:
        """Delete a rule; its conditions and usage counters go with it."""
        rule = await self.get_rule(rule_id)
        if not rule:
            raise NotFoundError(f"Pricing rule {rule_id} not found")

        await self.db.delete(rule)
        await self.db.flush()
        logger.info("pricing_rule_deleted", pricing_rule_id=str(rule_id))

    async def delete_condition(self, condition_id: UUID) -> None:
        """Remove a single condition from its rule."""
        result = await self.db.execute(select(PricingRuleCondition).where(PricingRuleCondition.id == condition_id))
        condition = result.scalar_one_or_none()
        if not condition:
            raise NotFoundError(f"Pricing rule condition {condition_id} not found")

        await self.db.delete(condition)
        await self.db.flush()
        logger.info(
            "pricing_rule_condition_deleted",
            condition_id=str(condition_id),
            pricing_rule_id=str(condition.pricing_rule_id),
        )

    async def list_applicable_rules(
        self,
        organization_id: UUID | None,
        pricebook_item_id: UUID | None,
        now: datetime | None = None,
    ) -> list[PricingRule]:
        """
        Active candidate rules for an (organization, item) pair.

        Global rules always qualify; organization and item rules only for their own
        target. Ordered by priority (highest first), then insertion order.
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(PricingRule)
            .where(
                PricingRule.active_from <= now,
                or_(PricingRule.active_to.is_(None), PricingRule.active_to > now),
                or_(
                    PricingRule.scope_type == RuleScope.GLOBAL,
                    and_(
                        PricingRule.scope_type == RuleScope.ORGANIZATION,
                        PricingRule.organization_id == organization_id,
                    ),
                    and_(
                        PricingRule.scope_type == RuleScope.ITEM,
                        PricingRule.pricebook_item_id == pricebook_item_id,
                    ),
                ),
            )
            .order_by(PricingRule.priority.desc(), PricingRule.created_at, PricingRule.id)
        )
        return list(result.scalars().all())

    async def _validate(self, fields: dict[str, Any], conditions: list[ConditionCreate] | None) -> None:
        scope = fields["scope_type"]
        organization_id = fields.get("organization_id")
        item_id = fields.get("pricebook_item_id")

        if scope == RuleScope.GLOBAL and (organization_id or item_id):
            raise ValidationError("Global rules cannot target an organization or pricebook item")
        if scope == RuleScope.ORGANIZATION and (not organization_id or item_id):
            raise ValidationError("Organization rules require organization_id and no pricebook_item_id")
        if scope == RuleScope.ITEM and (not item_id or organization_id):
            raise ValidationError("Item rules require pricebook_item_id and no organization_id")

        if fields["rule_type"] == RuleType.PERCENT_DISCOUNT and not 0 <= fields["value"] <= 100:
            raise ValidationError("Percent discounts must be between 0 and 100", value=fields["value"])
        if fields["value"] < 0:
            raise ValidationError("Rule value must not be negative", value=fields["value"])

        active_to = fields.get("active_to")
        if active_to is not None and active_to <= fields["active_from"]:
            raise ValidationError("active_to must be after active_from")

        if conditions:
            max_uses_per_group = Counter(c.group_id for c in conditions if c.condition_type == "max_uses")
            crowded = [group for group, count in max_uses_per_group.items() if count > 1]
            if crowded:
                raise ValidationError("At most one max_uses condition is allowed per group", groups=crowded)

        if organization_id and not await self.db.get(Organization, organization_id):
            raise NotFoundError(f"Organization {organization_id} not found")
        if item_id and not await self.db.get(PricebookItem, item_id):
            raise NotFoundError(f"Pricebook item {item_id} not found")
