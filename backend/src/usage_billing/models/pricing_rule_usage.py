"""Rule usage counter model backing max_uses conditions."""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, Uuid

from usage_billing.models.base import Base

# Placeholder for an unscoped dimension in scope_key
ANY_SCOPE = "*"


def build_scope_key(organization_id=None, pricebook_item_id=None) -> str:
    """Compose the counter key for a (organization, item) scope."""
    return f"{organization_id or ANY_SCOPE}:{pricebook_item_id or ANY_SCOPE}"


class PricingRuleUsage(Base):
    """
    Redemption counter for a rule at a given scope.

    ``scope_key`` is never null so the (rule, scope) pair can be unique on every
    backend. ``usage_count`` only ever increases.
    """

    __tablename__ = "pricing_rule_usage"
    __table_args__ = (UniqueConstraint("pricing_rule_id", "scope_key", name="uq_pricing_rule_usage_scope"),)

    pricing_rule_id = Column(
        Uuid(as_uuid=True), ForeignKey("pricing_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id = Column(Uuid(as_uuid=True), nullable=True)
    pricebook_item_id = Column(Uuid(as_uuid=True), nullable=True)
    scope_key = Column(String(80), nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return f"<PricingRuleUsage(rule={self.pricing_rule_id}, scope={self.scope_key}, count={self.usage_count})>"
