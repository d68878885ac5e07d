"""Pydantic schemas for Payment model and stored payment methods."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from usage_billing.models.payment import PaymentStatus


class Payment(BaseModel):
    """Schema for returning payment data."""

    id: UUID
    organization_id: UUID
    invoice_id: UUID | None
    amount_cents: int
    currency: str
    status: PaymentStatus
    stripe_payment_intent_id: str | None
    stripe_charge_id: str | None
    receipt_url: str | None
    failure_message: str | None
    processed_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentList(BaseModel):
    """Schema for paginated payment list."""

    items: list[Payment]
    total: int
    page: int
    page_size: int


class CardDetails(BaseModel):
    """Card summary of a stored payment method."""

    brand: str | None = None
    last4: str | None = None
    exp_month: int | None = None
    exp_year: int | None = None


class PaymentMethod(BaseModel):
    """Payment method stored with the payment processor."""

    id: str
    type: str
    card: CardDetails | None = None
