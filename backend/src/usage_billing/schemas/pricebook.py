"""Pydantic schemas for the pricebook catalog and mailbox pricing."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from usage_billing.models.pricebook_item import BillingStrategy


class PricebookItemBase(BaseModel):
    """Base pricebook item schema with common fields."""

    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$", description="Stable billable code")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    description: str | None = Field(default=None, max_length=1000)
    base_unit_price_cents: int = Field(..., ge=0, description="List price per unit in cents")
    billing_strategy: BillingStrategy = Field(default=BillingStrategy.PER_EVENT)
    billing_period_months: int | None = Field(default=None, ge=1, description="Months per period for recurring items")
    extra_metadata: dict[str, Any] = Field(default_factory=dict, description="Extensible custom fields")


class PricebookItemCreate(PricebookItemBase):
    """Schema for creating a pricebook item.

    Example:
        ```json
        {
            "code": "mailbox_created",
            "name": "Mailbox (monthly)",
            "base_unit_price_cents": 350,
            "billing_strategy": "monthly_recurring",
            "billing_period_months": 1
        }
        ```
    """

    pass


class PricebookItemUpdate(BaseModel):
    """Schema for updating a pricebook item (all fields optional)."""

    code: str | None = Field(default=None, min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    base_unit_price_cents: int | None = Field(default=None, ge=0)
    billing_strategy: BillingStrategy | None = None
    billing_period_months: int | None = Field(default=None, ge=1)
    extra_metadata: dict[str, Any] | None = None


class PricebookItem(PricebookItemBase):
    """Schema for returning pricebook item data."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MailboxPricingTier(BaseModel):
    """One published mailbox volume tier."""

    min_quantity: int
    max_quantity: int | None = Field(default=None, description="Inclusive upper bound (None for the last tier)")
    unit_price_cents: int
    price_formatted: str


class MailboxPricing(BaseModel):
    """Published mailbox volume price table."""

    base_unit_price_cents: int
    tiers: list[MailboxPricingTier]


class MailboxQuote(BaseModel):
    """Price for adding mailboxes to an organization's existing count."""

    existing_quantity: int = Field(..., ge=0)
    new_quantity: int = Field(..., ge=0)
    total_quantity: int
    unit_price_cents: int
    total_cents: int = Field(..., description="Charge for the new mailboxes only")
