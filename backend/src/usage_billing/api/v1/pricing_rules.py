"""Pricing rule API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.api.deps import get_db
from usage_billing.exceptions import NotFoundError
from usage_billing.models.pricing_rule import RuleScope
from usage_billing.schemas.pricing_rule import PricingRule, PricingRuleCreate, PricingRuleUpdate, PricingRuleUsage
from usage_billing.services.pricing_rule_service import PricingRuleService
from usage_billing.services.rule_usage_service import RuleUsageService

router = APIRouter(prefix="/pricing-rules", tags=["Pricing Rules"])


@router.get("", response_model=list[PricingRule])
async def list_pricing_rules(
    scope_type: RuleScope | None = Query(default=None, description="Filter by scope"),
    organization_id: UUID | None = Query(default=None, description="Filter by organization"),
    pricebook_item_id: UUID | None = Query(default=None, description="Filter by pricebook item"),
    db: AsyncSession = Depends(get_db),
) -> list[PricingRule]:
    """List rules with their conditions, highest priority first."""
    return await PricingRuleService(db).list_rules(scope_type, organization_id, pricebook_item_id)


@router.post("", response_model=PricingRule, status_code=status.HTTP_201_CREATED)
async def create_pricing_rule(
    rule_data: PricingRuleCreate,
    db: AsyncSession = Depends(get_db),
) -> PricingRule:
    """
    Create a pricing rule with its conditions.

    **Rule types** (``value`` meaning):
    - **percent_discount**: percent off the base price (0-100)
    - **fixed_discount**: cents off the base price, never below zero
    - **override_price**: absolute unit price in cents

    **Conditions** sharing a ``group_id`` must all hold; any one passing group
    lets the rule apply. Only the highest-priority passing rule is applied.
    """
    return await PricingRuleService(db).create_rule(rule_data)


@router.get("/{rule_id}", response_model=PricingRule)
async def get_pricing_rule(rule_id: UUID, db: AsyncSession = Depends(get_db)) -> PricingRule:
    """Get rule by ID."""
    rule = await PricingRuleService(db).get_rule(rule_id)
    if not rule:
        raise NotFoundError(f"Pricing rule {rule_id} not found")
    return rule


@router.patch("/{rule_id}", response_model=PricingRule)
async def update_pricing_rule(
    rule_id: UUID,
    update_data: PricingRuleUpdate,
    db: AsyncSession = Depends(get_db),
) -> PricingRule:
    """Update a rule. A supplied ``conditions`` list replaces all existing conditions."""
    return await PricingRuleService(db).update_rule(rule_id, update_data)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pricing_rule(rule_id: UUID, db: AsyncSession = Depends(get_db)) -> Response:
    """Delete a rule and its conditions."""
    await PricingRuleService(db).delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/conditions/{condition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pricing_rule_condition(condition_id: UUID, db: AsyncSession = Depends(get_db)) -> Response:
    """Remove one condition from its rule."""
    await PricingRuleService(db).delete_condition(condition_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{rule_id}/usage", response_model=list[PricingRuleUsage])
async def get_pricing_rule_usage(rule_id: UUID, db: AsyncSession = Depends(get_db)) -> list[PricingRuleUsage]:
    """Redemption counters recorded for a rule's max_uses conditions."""
    if not await PricingRuleService(db).get_rule(rule_id):
        raise NotFoundError(f"Pricing rule {rule_id} not found")
    return await RuleUsageService(db).list_usage(rule_id)
