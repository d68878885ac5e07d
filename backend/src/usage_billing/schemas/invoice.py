"""Pydantic schemas for Invoice model."""
from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from usage_billing.models.invoice import InvoiceStatus
from usage_billing.schemas.payment import Payment


class BillingPeriod(BaseModel):
    """Closed date range to bill; both days are included in full."""

    period_start: date = Field(..., description="First day of the period")
    period_end: date = Field(..., description="Last day of the period (inclusive)")

    @model_validator(mode="after")
    def check_period(self) -> "BillingPeriod":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class InvoiceGenerate(BillingPeriod):
    """Schema for generating one organization's usage invoice."""

    pass


class InvoiceBatchGenerate(BillingPeriod):
    """Schema for generating invoices for every active organization (or one)."""

    organization_id: UUID | None = Field(default=None, description="Restrict the run to one organization")
    auto_sync: bool = Field(default=False, description="Push each generated invoice to Stripe")


class InvoiceSync(BaseModel):
    """Schema for pushing a draft invoice to Stripe."""

    auto_finalize: bool = Field(default=False, description="Finalize the Stripe invoice after adding line items")


class InvoiceVoid(BaseModel):
    """Schema for voiding an invoice."""

    reason: str = Field(default="requested_by_admin", min_length=1, description="Reason for voiding invoice")


class InvoiceItem(BaseModel):
    """Schema for returning an invoice line."""

    id: UUID
    pricebook_item_id: UUID
    pricing_rule_id: UUID | None
    code: str
    quantity: int
    base_unit_price_cents: int
    discount_percent: int | None
    discount_amount_cents: int | None
    final_unit_price_cents: int
    total_cents: int
    period: date

    model_config = ConfigDict(from_attributes=True)


class Invoice(BaseModel):
    """Schema for returning invoice data."""

    id: UUID
    organization_id: UUID
    order_id: UUID | None
    period_start: date
    period_end: date
    total_cents: int
    currency: str
    status: InvoiceStatus
    stripe_invoice_id: str | None
    finalized_at: datetime | None
    paid_at: datetime | None
    voided_at: datetime | None
    items: list[InvoiceItem] = Field(default_factory=list)
    extra_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderLineItem(BaseModel):
    """Display line of an order invoice priced from its cart snapshot."""

    type: Literal["domain", "mailbox"]
    description: str
    domain: str | None = None
    provider: str | None = Field(default=None, description="Mailbox provider (google or microsoft)")
    quantity: int
    unit_price_cents: int
    total_cents: int


class InvoiceDetail(Invoice):
    """Invoice with its payments and display helpers."""

    payments: list[Payment] = Field(default_factory=list)
    receipt_url: str | None = None
    order_line_items: list[OrderLineItem] = Field(default_factory=list)


class InvoiceList(BaseModel):
    """Schema for paginated invoice list."""

    items: list[Invoice]
    total: int
    page: int
    page_size: int


class InvoiceBatchError(BaseModel):
    """Failure of one organization inside a batch run."""

    organization_id: UUID
    code: str
    error: str


class InvoiceBatchResult(BaseModel):
    """Outcome of a batch invoice run."""

    invoice_ids: list[UUID] = Field(default_factory=list)
    synced_invoice_ids: list[UUID] = Field(default_factory=list)
    errors: list[InvoiceBatchError] = Field(default_factory=list)
