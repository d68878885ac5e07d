"""Unit tests for pricing rule condition evaluation."""
from datetime import datetime
from itertools import product
from uuid import UUID, uuid4

import pytest

from usage_billing.models.pricing_rule import PricingRule, PricingRuleCondition, RuleType
from usage_billing.services.condition_evaluator import ConditionEvaluator, EvaluationContext


class StubRuleUsage:
    """Returns fixed redemption counts instead of querying the database."""

    def __init__(self, counts: dict[tuple, int] | None = None):
        self.counts = counts or {}
        self.lookups: list[tuple] = []

    async def get_usage(self, rule_id: UUID, organization_id: UUID | None = None, pricebook_item_id: UUID | None = None) -> int:
        key = (rule_id, organization_id, pricebook_item_id)
        self.lookups.append(key)
        return self.counts.get(key, 0)


def _condition(condition_type: str, value: dict, operator: str = "in", group_id: int = 0) -> PricingRuleCondition:
    return PricingRuleCondition(
        id=uuid4(), condition_type=condition_type, operator=operator, value=value, group_id=group_id
    )


def _rule(*conditions: PricingRuleCondition) -> PricingRule:
    return PricingRule(
        id=uuid4(), name="Test rule", rule_type=RuleType.PERCENT_DISCOUNT, value=10, conditions=list(conditions)
    )


ORG_A = uuid4()
ORG_B = uuid4()
ITEM = uuid4()


@pytest.fixture
def evaluator() -> ConditionEvaluator:
    return ConditionEvaluator(StubRuleUsage(), fail_closed_unknown=False)


def _context(**overrides) -> EvaluationContext:
    data = {
        "organization_id": ORG_A,
        "pricebook_item_id": ITEM,
        "quantity": 10,
        "org_segment": "smb",
        "current_date": datetime(2024, 6, 15, 12, 0),
    }
    data.update(overrides)
    return EvaluationContext(**data)


@pytest.mark.asyncio
async def test_rule_without_conditions_always_passes(evaluator: ConditionEvaluator) -> None:
    rule = _rule()

    assert await evaluator.evaluate(rule, _context())
    assert await evaluator.matching_group(rule, _context()) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("org_matches,quantity_matches,segment_matches", list(product([True, False], repeat=3)))
async def test_groups_combine_with_and_inside_or_across(
    evaluator: ConditionEvaluator, org_matches: bool, quantity_matches: bool, segment_matches: bool
) -> None:
    """(org in [A] AND quantity >= 5) OR (segment in [enterprise])."""
    rule = _rule(
        _condition("organization", {"ids": [str(ORG_A)]}, group_id=0),
        _condition("min_quantity", {"value": 5}, operator="gte", group_id=0),
        _condition("org_segment", {"segments": ["enterprise"]}, group_id=1),
    )
    context = _context(
        organization_id=ORG_A if org_matches else ORG_B,
        quantity=10 if quantity_matches else 4,
        org_segment="enterprise" if segment_matches else "smb",
    )

    assert await evaluator.evaluate(rule, context) == ((org_matches and quantity_matches) or segment_matches)


@pytest.mark.asyncio
async def test_matching_group_returns_passing_group(evaluator: ConditionEvaluator) -> None:
    rule = _rule(
        _condition("organization", {"ids": [str(ORG_B)]}, group_id=0),
        _condition("org_segment", {"segments": ["smb"]}, group_id=3),
    )

    group = await evaluator.matching_group(rule, _context())

    assert [c.group_id for c in group] == [3]


@pytest.mark.asyncio
async def test_not_in_operator(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("organization", {"ids": [str(ORG_B)]}, operator="not_in"))

    assert await evaluator.evaluate(rule, _context())
    assert not await evaluator.evaluate(rule, _context(organization_id=ORG_B))


@pytest.mark.asyncio
async def test_membership_fails_without_context_value(evaluator: ConditionEvaluator) -> None:
    """A condition on a fact the context does not carry never passes, even with not_in."""
    rule = _rule(_condition("org_segment", {"segments": ["smb"]}, operator="not_in"))

    assert not await evaluator.evaluate(rule, _context(org_segment=None))


@pytest.mark.asyncio
async def test_pricebook_item_condition(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("pricebook_item", {"ids": [str(ITEM)]}))

    assert await evaluator.evaluate(rule, _context())
    assert not await evaluator.evaluate(rule, _context(pricebook_item_id=uuid4()))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "operator,quantity,expected",
    [
        ("gte", 5, True),
        ("gte", 4, False),
        ("lte", 5, True),
        ("lte", 6, False),
        ("eq", 5, True),
        ("eq", 6, False),
    ],
)
async def test_min_quantity_operators(evaluator: ConditionEvaluator, operator: str, quantity: int, expected: bool) -> None:
    rule = _rule(_condition("min_quantity", {"value": 5}, operator=operator))

    assert await evaluator.evaluate(rule, _context(quantity=quantity)) is expected


@pytest.mark.asyncio
async def test_date_range_is_inclusive(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("date_range", {"start": "2024-06-01", "end": "2024-06-30"}, operator="between"))

    assert await evaluator.evaluate(rule, _context(current_date=datetime(2024, 6, 1, 0, 0)))
    assert await evaluator.evaluate(rule, _context(current_date=datetime(2024, 6, 30, 23, 59)))
    assert not await evaluator.evaluate(rule, _context(current_date=datetime(2024, 7, 1, 0, 0)))
    assert not await evaluator.evaluate(rule, _context(current_date=datetime(2024, 5, 31, 23, 59)))


@pytest.mark.asyncio
async def test_open_ended_date_range(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("date_range", {"start": "2024-06-01"}, operator="between"))

    assert await evaluator.evaluate(rule, _context(current_date=datetime(2030, 1, 1)))
    assert not await evaluator.evaluate(rule, _context(current_date=datetime(2024, 1, 1)))


@pytest.mark.asyncio
async def test_max_uses_compares_scoped_usage_with_limit() -> None:
    """Per-org limits look up the counter of the context organization only."""
    rule = _rule(_condition("max_uses", {"limit": 3, "scope": "per_org"}, operator="lte"))
    usage = StubRuleUsage({(rule.id, ORG_A, None): 3, (rule.id, ORG_B, None): 2})
    evaluator = ConditionEvaluator(usage, fail_closed_unknown=False)

    assert not await evaluator.evaluate(rule, _context(organization_id=ORG_A))
    assert await evaluator.evaluate(rule, _context(organization_id=ORG_B))
    assert usage.lookups == [(rule.id, ORG_A, None), (rule.id, ORG_B, None)]


@pytest.mark.asyncio
async def test_max_uses_global_scope_ignores_context() -> None:
    rule = _rule(_condition("max_uses", {"limit": 1}, operator="lte"))
    usage = StubRuleUsage({(rule.id, None, None): 1})

    assert not await ConditionEvaluator(usage, fail_closed_unknown=False).evaluate(rule, _context())


@pytest.mark.asyncio
async def test_unknown_condition_type_fails_open_by_default(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("loyalty_tier", {"tier": "gold"}))

    assert await evaluator.evaluate(rule, _context())


@pytest.mark.asyncio
async def test_unknown_condition_type_fails_closed_when_configured() -> None:
    rule = _rule(_condition("loyalty_tier", {"tier": "gold"}))
    evaluator = ConditionEvaluator(StubRuleUsage(), fail_closed_unknown=True)

    assert not await evaluator.evaluate(rule, _context())


@pytest.mark.asyncio
async def test_malformed_known_condition_fails(evaluator: ConditionEvaluator) -> None:
    """A known condition type whose payload does not parse never passes."""
    rule = _rule(_condition("min_quantity", {"value": "lots"}, operator="gte"))

    assert not await evaluator.evaluate(rule, _context())


@pytest.mark.asyncio
async def test_unsupported_membership_operator_fails(evaluator: ConditionEvaluator) -> None:
    rule = _rule(_condition("organization", {"ids": [str(ORG_A)]}, operator="gte"))

    assert not await evaluator.evaluate(rule, _context())
