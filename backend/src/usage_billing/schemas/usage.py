"""Pydantic schemas for usage events and usage summaries."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from usage_billing.schemas.types import UtcDateTime


class UsageEventCreate(BaseModel):
    """Schema for recording a usage event.

    Example:
        ```json
        {
            "code": "mailbox_created",
            "quantity": 5,
            "effective_at": "2024-03-14T09:30:00Z",
            "related_ids": {"domain_id": "dom_123"}
        }
        ```
    """

    code: str = Field(..., min_length=1, max_length=100, description="Pricebook item code")
    quantity: int = Field(default=1, ge=1, description="Units consumed")
    effective_at: UtcDateTime | None = Field(default=None, description="When the usage happened (defaults to now)")
    related_ids: dict[str, Any] = Field(default_factory=dict, description="References to the resources involved")


class UsageEvent(BaseModel):
    """Schema for returning a usage event."""

    id: UUID
    organization_id: UUID
    code: str
    quantity: int
    effective_at: datetime
    related_ids: dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UsageEventList(BaseModel):
    """Schema for paginated usage event list."""

    items: list[UsageEvent]
    total: int
    page: int
    page_size: int


class UsageSummaryItem(BaseModel):
    """Aggregated and priced usage of one pricebook code."""

    pricebook_item_id: UUID
    code: str
    name: str
    quantity: int
    base_unit_price_cents: int
    discount_percent: int | None = None
    discount_amount_cents: int | None = None
    final_unit_price_cents: int
    total_cents: int
    pricing_rule_id: UUID | None = Field(default=None, description="Rule that produced the final price")


class UsageSummary(BaseModel):
    """Priced usage of an organization over a closed period."""

    organization_id: UUID
    period_start: datetime
    period_end: datetime
    items: list[UsageSummaryItem]
    total_cents: int
