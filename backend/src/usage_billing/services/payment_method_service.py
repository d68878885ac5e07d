"""Payment methods stored with the payment processor."""
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.adapters.stripe_adapter import StripeAdapter
from usage_billing.exceptions import ExternalProcessorError, NotFoundError
from usage_billing.models.organization import Organization

logger = structlog.get_logger(__name__)


class PaymentMethodService:
    """Lists and removes an organization's saved payment methods."""

    def __init__(self, db: AsyncSession, processor: PaymentProcessor | None = None):
        self.db = db
        self.processor = processor or StripeAdapter()

    async def _get_organization(self, organization_id: UUID) -> Organization:
        organization = await self.db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found")
        return organization

    async def list_payment_methods(self, organization_id: UUID) -> list[dict[str, Any]]:
        """Saved cards; empty when the organization has never been synced."""
        organization = await self._get_organization(organization_id)
        if not organization.stripe_customer_id:
            return []
        return await self.processor.list_payment_methods(organization.stripe_customer_id)

    async def detach_payment_method(self, organization_id: UUID, payment_method_id: str) -> None:
        """
        Remove a saved payment method after checking it belongs to the organization.

        Raises:
            NotFoundError: If the method is unknown or owned by another customer
        """
        organization = await self._get_organization(organization_id)
        if not organization.stripe_customer_id:
            raise NotFoundError("Payment method not found or does not belong to this organization")

        try:
            payment_method = await self.processor.retrieve_payment_method(payment_method_id)
        except ExternalProcessorError as e:
            if e.details.get("stripe_code") != "resource_missing":
                raise
            raise NotFoundError("Payment method not found or does not belong to this organization") from e
        if payment_method.get("customer") != organization.stripe_customer_id:
            raise NotFoundError("Payment method not found or does not belong to this organization")

        await self.processor.detach_payment_method(payment_method_id)
        logger.info(
            "payment_method_detached",
            organization_id=str(organization_id),
            payment_method_id=payment_method_id,
        )
