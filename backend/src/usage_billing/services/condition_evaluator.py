"""Evaluation of pricing rule conditions against a pricing context."""
from datetime import datetime
from itertools import groupby
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from usage_billing.config import settings
from usage_billing.models.pricing_rule import ConditionOperator, ConditionType, PricingRule, PricingRuleCondition
from usage_billing.schemas.pricing_rule import (
    DateRangeCondition,
    MaxUsesCondition,
    MinQuantityCondition,
    OrganizationCondition,
    OrgSegmentCondition,
    PricebookItemCondition,
    condition_adapter,
)
from usage_billing.services.rule_usage_service import RuleUsageService, scope_dimensions

logger = structlog.get_logger(__name__)

_KNOWN_TYPES = {member.value for member in ConditionType}


class EvaluationContext(BaseModel):
    """Facts a rule's conditions are checked against."""

    organization_id: UUID | None = None
    pricebook_item_id: UUID | None = None
    quantity: int = Field(default=0, ge=0)
    org_segment: str | None = None
    current_date: datetime = Field(default_factory=datetime.utcnow)


def _membership(operator: ConditionOperator, candidate, allowed) -> bool:
    if candidate is None:
        return False
    if operator == ConditionOperator.IN:
        return candidate in allowed
    if operator == ConditionOperator.NOT_IN:
        return candidate not in allowed
    return False


class ConditionEvaluator:
    """
    Decides whether a rule's conditions hold.

    Conditions are partitioned by ``group_id``: every condition of a group must
    pass (AND) and at least one group must pass (OR). A rule without conditions
    always passes.
    """

    def __init__(self, rule_usage: RuleUsageService, fail_closed_unknown: bool | None = None):
        self.rule_usage = rule_usage
        if fail_closed_unknown is None:
            fail_closed_unknown = settings.pricing_fail_closed_unknown_conditions
        self.fail_closed_unknown = fail_closed_unknown

    async def evaluate(self, rule: PricingRule, context: EvaluationContext) -> bool:
        """True if the rule's conditions hold for ``context``."""
        return await self.matching_group(rule, context) is not None

    async def matching_group(
        self, rule: PricingRule, context: EvaluationContext
    ) -> list[PricingRuleCondition] | None:
        """
        Find the first condition group that passes.

        Returns:
            The passing group's conditions (empty for an unconditional rule), or
            None if no group passes
        """
        conditions = sorted(rule.conditions, key=lambda c: c.group_id)
        if not conditions:
            return []

        for _, group in groupby(conditions, key=lambda c: c.group_id):
            group = list(group)
            if await self._group_passes(rule, group, context):
                return group
        return None

    async def _group_passes(
        self, rule: PricingRule, group: list[PricingRuleCondition], context: EvaluationContext
    ) -> bool:
        for condition in group:
            if not await self.evaluate_condition(rule, condition, context):
                return False
        return True

    async def evaluate_condition(
        self, rule: PricingRule, condition: PricingRuleCondition, context: EvaluationContext
    ) -> bool:
        """Evaluate a single stored condition."""
        if condition.condition_type not in _KNOWN_TYPES:
            logger.warning(
                "unknown_condition_type",
                pricing_rule_id=str(rule.id),
                condition_type=condition.condition_type,
                fail_closed=self.fail_closed_unknown,
            )
            return not self.fail_closed_unknown

        try:
            parsed = condition_adapter.validate_python(
                {
                    "condition_type": condition.condition_type,
                    "operator": condition.operator,
                    "value": condition.value or {},
                    "group_id": condition.group_id,
                }
            )
        except PydanticValidationError as e:
            logger.warning(
                "malformed_condition",
                pricing_rule_id=str(rule.id),
                condition_id=str(condition.id),
                errors=e.error_count(),
            )
            return False

        if isinstance(parsed, OrganizationCondition):
            return _membership(parsed.operator, context.organization_id, parsed.value.ids)

        if isinstance(parsed, PricebookItemCondition):
            return _membership(parsed.operator, context.pricebook_item_id, parsed.value.ids)

        if isinstance(parsed, OrgSegmentCondition):
            return _membership(parsed.operator, context.org_segment, parsed.value.segments)

        if isinstance(parsed, MinQuantityCondition):
            threshold = parsed.value.value
            if parsed.operator == ConditionOperator.EQ:
                return context.quantity == threshold
            if parsed.operator == ConditionOperator.LTE:
                return context.quantity <= threshold
            return context.quantity >= threshold

        if isinstance(parsed, DateRangeCondition):
            today = context.current_date.date()
            if parsed.value.start and today < parsed.value.start:
                return False
            if parsed.value.end and today > parsed.value.end:
                return False
            return True

        if isinstance(parsed, MaxUsesCondition):
            organization_id, item_id = scope_dimensions(
                parsed.value.scope, context.organization_id, context.pricebook_item_id
            )
            used = await self.rule_usage.get_usage(rule.id, organization_id, item_id)
            return used < parsed.value.limit

        return True
