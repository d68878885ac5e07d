"""Pydantic schemas for pricing rules and their conditions.

Conditions are a tagged union keyed by ``condition_type``; each variant carries a
typed ``value`` payload. Stored rows are re-parsed through ``condition_adapter``
when rules are evaluated.
"""
from datetime import date, datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from usage_billing.models.pricing_rule import ConditionOperator, RuleScope, RuleType
from usage_billing.schemas.types import UtcDateTime


class IdsValue(BaseModel):
    """Payload for organization and pricebook_item conditions."""

    ids: list[UUID] = Field(default_factory=list)


class MaxUsesValue(BaseModel):
    """Payload for max_uses conditions."""

    limit: int = Field(..., ge=0, description="Maximum number of redemptions")
    scope: Literal["global", "per_org", "per_item", "per_org_item"] = Field(default="global")


class MinQuantityValue(BaseModel):
    """Payload for min_quantity conditions."""

    value: int = Field(..., ge=0)


class DateRangeValue(BaseModel):
    """Payload for date_range conditions (both bounds inclusive)."""

    start: date | None = None
    end: date | None = None

    @model_validator(mode="after")
    def check_order(self) -> "DateRangeValue":
        if self.start and self.end and self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class SegmentsValue(BaseModel):
    """Payload for org_segment conditions."""

    segments: list[str] = Field(default_factory=list)


class ConditionBase(BaseModel):
    """Fields shared by every condition variant."""

    operator: ConditionOperator = Field(default=ConditionOperator.IN)
    group_id: int = Field(default=0, ge=0, description="Conditions in the same group are AND-ed; groups are OR-ed")


class OrganizationCondition(ConditionBase):
    condition_type: Literal["organization"]
    value: IdsValue


class PricebookItemCondition(ConditionBase):
    condition_type: Literal["pricebook_item"]
    value: IdsValue


class MaxUsesCondition(ConditionBase):
    condition_type: Literal["max_uses"]
    operator: ConditionOperator = Field(default=ConditionOperator.LTE)
    value: MaxUsesValue


class MinQuantityCondition(ConditionBase):
    condition_type: Literal["min_quantity"]
    operator: ConditionOperator = Field(default=ConditionOperator.GTE)
    value: MinQuantityValue


class DateRangeCondition(ConditionBase):
    condition_type: Literal["date_range"]
    operator: ConditionOperator = Field(default=ConditionOperator.BETWEEN)
    value: DateRangeValue


class OrgSegmentCondition(ConditionBase):
    condition_type: Literal["org_segment"]
    value: SegmentsValue


ConditionCreate = Annotated[
    Union[
        OrganizationCondition,
        PricebookItemCondition,
        MaxUsesCondition,
        MinQuantityCondition,
        DateRangeCondition,
        OrgSegmentCondition,
    ],
    Field(discriminator="condition_type"),
]

condition_adapter: TypeAdapter[ConditionCreate] = TypeAdapter(ConditionCreate)


class PricingRuleCondition(BaseModel):
    """Schema for returning a stored condition."""

    id: UUID
    condition_type: str
    operator: str
    value: dict[str, Any]
    group_id: int

    model_config = ConfigDict(from_attributes=True)


class PricingRuleBase(BaseModel):
    """Base pricing rule schema with common fields."""

    name: str = Field(..., min_length=1, max_length=255, description="Rule name")
    description: str | None = Field(default=None, max_length=1000)
    scope_type: RuleScope = Field(default=RuleScope.GLOBAL)
    organization_id: UUID | None = Field(default=None, description="Required for organization-scoped rules")
    pricebook_item_id: UUID | None = Field(default=None, description="Required for item-scoped rules")
    rule_type: RuleType
    value: int = Field(..., ge=0, description="Percent (0-100) or amount in cents, depending on rule_type")
    priority: int = Field(default=0, description="Higher priority rules are evaluated first")
    active_from: UtcDateTime = Field(default_factory=datetime.utcnow)
    active_to: UtcDateTime | None = Field(default=None, description="Exclusive end (None for open-ended)")


class PricingRuleCreate(PricingRuleBase):
    """Schema for creating a pricing rule with its conditions.

    Example (15% off for 100+ mailboxes, first 50 redemptions only):
        ```json
        {
            "name": "Bulk mailbox discount",
            "scope_type": "item",
            "pricebook_item_id": "7c1e...",
            "rule_type": "percent_discount",
            "value": 15,
            "priority": 10,
            "conditions": [
                {"condition_type": "min_quantity", "operator": "gte", "value": {"value": 100}, "group_id": 0},
                {"condition_type": "max_uses", "value": {"limit": 50, "scope": "global"}, "group_id": 0}
            ]
        }
        ```
    """

    conditions: list[ConditionCreate] = Field(default_factory=list)


# Columns a rule cannot exist without; omit them from an update to keep the current value
REQUIRED_RULE_FIELDS = ("name", "scope_type", "rule_type", "value", "priority", "active_from")


class PricingRuleUpdate(BaseModel):
    """Schema for updating a pricing rule. Supplied conditions replace the existing set."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    scope_type: RuleScope | None = None
    organization_id: UUID | None = None
    pricebook_item_id: UUID | None = None
    rule_type: RuleType | None = None
    value: int | None = Field(default=None, ge=0)
    priority: int | None = None
    active_from: UtcDateTime | None = None
    active_to: UtcDateTime | None = None
    conditions: list[ConditionCreate] | None = None

    @model_validator(mode="after")
    def check_required_not_cleared(self) -> "PricingRuleUpdate":
        cleared = sorted(f for f in REQUIRED_RULE_FIELDS if f in self.model_fields_set and getattr(self, f) is None)
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class PricingRule(PricingRuleBase):
    """Schema for returning pricing rule data."""

    id: UUID
    conditions: list[PricingRuleCondition] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PricingRuleUsage(BaseModel):
    """Redemption count of a rule at one scope."""

    pricing_rule_id: UUID
    organization_id: UUID | None
    pricebook_item_id: UUID | None
    scope_key: str
    usage_count: int

    model_config = ConfigDict(from_attributes=True)
