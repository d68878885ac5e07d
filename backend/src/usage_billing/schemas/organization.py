"""Pydantic schemas for Organization model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from usage_billing.models.organization import OrganizationStatus


class OrganizationBase(BaseModel):
    """Base organization schema with common fields."""

    name: str = Field(..., min_length=1, max_length=255, description="Organization display name")
    billing_email: EmailStr | None = Field(default=None, description="Address invoices are sent to")
    segment: str | None = Field(default=None, max_length=100, description="Segment tag used by pricing rules")


class OrganizationCreate(OrganizationBase):
    """Schema for creating an organization."""

    pass


class Organization(OrganizationBase):
    """Schema for returning organization data."""

    id: UUID
    status: OrganizationStatus
    stripe_customer_id: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
