"""SQLAlchemy ORM models for the usage billing engine."""
# Import all models here to ensure they are registered with Alembic

from usage_billing.models.base import Base
from usage_billing.models.organization import Organization, OrganizationStatus
from usage_billing.models.pricebook_item import BillingStrategy, PricebookItem
from usage_billing.models.pricing_rule import (
    ConditionOperator,
    ConditionType,
    PricingRule,
    PricingRuleCondition,
    RuleScope,
    RuleType,
)
from usage_billing.models.pricing_rule_usage import PricingRuleUsage
from usage_billing.models.usage_event import UsageEvent
from usage_billing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from usage_billing.models.payment import Payment, PaymentStatus

__all__ = [
    "Base",
    "Organization",
    "OrganizationStatus",
    "BillingStrategy",
    "PricebookItem",
    "ConditionOperator",
    "ConditionType",
    "PricingRule",
    "PricingRuleCondition",
    "RuleScope",
    "RuleType",
    "PricingRuleUsage",
    "UsageEvent",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "Payment",
    "PaymentStatus",
]
