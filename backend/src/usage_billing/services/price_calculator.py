"""Application of a single pricing rule to a base unit price."""
from uuid import UUID

from pydantic import BaseModel

from usage_billing.models.pricing_rule import PricingRule, RuleType


class PriceResult(BaseModel):
    """Unit price after a rule was applied, with the discount it reports."""

    base_unit_price_cents: int
    final_unit_price_cents: int
    discount_percent: int | None = None
    discount_amount_cents: int | None = None
    pricing_rule_id: UUID | None = None


def percent_of(amount: int, percent: int) -> int:
    """``amount * percent / 100`` rounded half up to whole cents."""
    return (amount * percent + 50) // 100


def apply_pricing_rule(base_unit_price_cents: int, rule: PricingRule | None) -> PriceResult:
    """
    Compute the final unit price for ``base_unit_price_cents`` under ``rule``.

    Fixed discounts never drive the price below zero. Overrides replace the price
    outright; the reported discount is negative when the override is a markup.
    """
    if rule is None:
        return PriceResult(
            base_unit_price_cents=base_unit_price_cents,
            final_unit_price_cents=base_unit_price_cents,
        )

    if rule.rule_type == RuleType.PERCENT_DISCOUNT:
        discount = percent_of(base_unit_price_cents, rule.value)
        return PriceResult(
            base_unit_price_cents=base_unit_price_cents,
            final_unit_price_cents=base_unit_price_cents - discount,
            discount_percent=rule.value,
            discount_amount_cents=discount,
            pricing_rule_id=rule.id,
        )

    if rule.rule_type == RuleType.FIXED_DISCOUNT:
        return PriceResult(
            base_unit_price_cents=base_unit_price_cents,
            final_unit_price_cents=max(0, base_unit_price_cents - rule.value),
            discount_amount_cents=rule.value,
            pricing_rule_id=rule.id,
        )

    if rule.rule_type == RuleType.OVERRIDE_PRICE:
        return PriceResult(
            base_unit_price_cents=base_unit_price_cents,
            final_unit_price_cents=rule.value,
            discount_amount_cents=base_unit_price_cents - rule.value,
            pricing_rule_id=rule.id,
        )

    raise ValueError(f"Unsupported rule type {rule.rule_type}")
