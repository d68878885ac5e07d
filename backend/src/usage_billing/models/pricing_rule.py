"""Pricing rule and condition models."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Uuid, CheckConstraint
from sqlalchemy.orm import relationship

from usage_billing.models.base import Base, JSONType


class RuleScope(enum.Enum):
    """Which pricing requests a rule is a candidate for."""

    GLOBAL = "global"
    ORGANIZATION = "organization"
    ITEM = "item"


class RuleType(enum.Enum):
    """How a rule changes the base unit price."""

    PERCENT_DISCOUNT = "percent_discount"
    FIXED_DISCOUNT = "fixed_discount"
    OVERRIDE_PRICE = "override_price"


class ConditionType(str, enum.Enum):
    """Known condition types. Stored as plain strings so unknown rows stay loadable."""

    ORGANIZATION = "organization"
    PRICEBOOK_ITEM = "pricebook_item"
    MAX_USES = "max_uses"
    MIN_QUANTITY = "min_quantity"
    DATE_RANGE = "date_range"
    ORG_SEGMENT = "org_segment"


class ConditionOperator(str, enum.Enum):
    """Comparison operators a condition may use."""

    IN = "in"
    NOT_IN = "not_in"
    EQ = "eq"
    NEQ = "neq"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"


class PricingRule(Base):
    """
    Discount or price override applied to pricebook items.

    Only the highest-priority active rule whose conditions pass is applied to a
    line; rules never stack.
    """

    __tablename__ = "pricing_rules"
    __table_args__ = (
        CheckConstraint("value >= 0", name="ck_pricing_rules_value_non_negative"),
    )

    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    scope_type = Column(SQLEnum(RuleScope), nullable=False, default=RuleScope.GLOBAL, index=True)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    pricebook_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("pricebook_items.id", ondelete="CASCADE"), nullable=True, index=True
    )
    rule_type = Column(SQLEnum(RuleType), nullable=False)
    value = Column(Integer, nullable=False)  # percent (0-100) or cents, depending on rule_type
    priority = Column(Integer, nullable=False, default=0, index=True)
    active_from = Column(DateTime, nullable=False, index=True)
    active_to = Column(DateTime, nullable=True)

    # Relationships
    conditions = relationship(
        "PricingRuleCondition",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="PricingRuleCondition.group_id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<PricingRule(id={self.id}, name={self.name}, rule_type={self.rule_type.value}, priority={self.priority})>"


class PricingRuleCondition(Base):
    """
    Predicate gating a pricing rule.

    Conditions sharing a ``group_id`` are AND-ed; distinct groups are OR-ed.
    """

    __tablename__ = "pricing_rule_conditions"

    pricing_rule_id = Column(
        Uuid(as_uuid=True), ForeignKey("pricing_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    condition_type = Column(String(50), nullable=False)
    operator = Column(String(20), nullable=False)
    value = Column(JSONType, nullable=False, default=dict)
    group_id = Column(Integer, nullable=False, default=0)

    # Relationships
    rule = relationship("PricingRule", back_populates="conditions")

    def __repr__(self) -> str:
        """String representation."""
        return f"<PricingRuleCondition(type={self.condition_type}, operator={self.operator}, group={self.group_id})>"
