"""Pydantic schemas for API request/response validation."""

from usage_billing.schemas.invoice import (
    Invoice,
    InvoiceBatchGenerate,
    InvoiceBatchResult,
    InvoiceDetail,
    InvoiceGenerate,
    InvoiceItem,
    InvoiceList,
)
from usage_billing.schemas.organization import Organization, OrganizationCreate
from usage_billing.schemas.payment import Payment, PaymentList, PaymentMethod
from usage_billing.schemas.pricebook import (
    MailboxPricing,
    MailboxQuote,
    PricebookItem,
    PricebookItemCreate,
    PricebookItemUpdate,
)
from usage_billing.schemas.pricing_rule import (
    ConditionCreate,
    PricingRule,
    PricingRuleCreate,
    PricingRuleUpdate,
)
from usage_billing.schemas.usage import UsageEvent, UsageEventCreate, UsageSummary, UsageSummaryItem

__all__ = [
    "Invoice",
    "InvoiceBatchGenerate",
    "InvoiceBatchResult",
    "InvoiceDetail",
    "InvoiceGenerate",
    "InvoiceItem",
    "InvoiceList",
    "Organization",
    "OrganizationCreate",
    "Payment",
    "PaymentList",
    "PaymentMethod",
    "MailboxPricing",
    "MailboxQuote",
    "PricebookItem",
    "PricebookItemCreate",
    "PricebookItemUpdate",
    "ConditionCreate",
    "PricingRule",
    "PricingRuleCreate",
    "PricingRuleUpdate",
    "UsageEvent",
    "UsageEventCreate",
    "UsageSummary",
    "UsageSummaryItem",
]
