"""Pricebook catalog service."""
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.exceptions import InvalidStateError, NotFoundError, ValidationError
from usage_billing.models.invoice import InvoiceItem
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.schemas.pricebook import PricebookItemCreate, PricebookItemUpdate

logger = structlog.get_logger(__name__)


class PricebookService:
    """Service layer for pricebook catalog operations."""

    def __init__(self, db: AsyncSession):
        """Initialize pricebook service with database session."""
        self.db = db

    async def create_item(self, item_data: PricebookItemCreate) -> PricebookItem:
        """
        Add a billable code to the catalog.

        Raises:
            ValidationError: If the code is already in use
        """
        if await self.get_item_by_code(item_data.code):
            raise ValidationError(f"Pricebook code {item_data.code} already exists", code=item_data.code)

        item = PricebookItem(**item_data.model_dump())
        self.db.add(item)
        await self.db.flush()
        await self.db.refresh(item)

        logger.info("pricebook_item_created", code=item.code, base_unit_price_cents=item.base_unit_price_cents)
        return item

    async def get_item(self, item_id: UUID) -> PricebookItem | None:
        """Get pricebook item by ID."""
        result = await self.db.execute(select(PricebookItem).where(PricebookItem.id == item_id))
        return result.scalar_one_or_none()

    async def get_item_by_code(self, code: str) -> PricebookItem | None:
        """Get pricebook item by code."""
        result = await self.db.execute(select(PricebookItem).where(PricebookItem.code == code))
        return result.scalar_one_or_none()

    async def get_items_by_codes(self, codes: list[str]) -> dict[str, PricebookItem]:
        """Load the catalog entries for ``codes``; unknown codes are simply absent from the result."""
        if not codes:
            return {}
        result = await self.db.execute(select(PricebookItem).where(PricebookItem.code.in_(codes)))
        return {item.code: item for item in result.scalars().all()}

    async def list_items(self) -> list[PricebookItem]:
        """List the whole catalog ordered by code."""
        result = await self.db.execute(select(PricebookItem).order_by(PricebookItem.code))
        return list(result.scalars().all())

    async def update_item(self, item_id: UUID, update_data: PricebookItemUpdate) -> PricebookItem:
        """
        Update a pricebook item.

        Price changes only affect charges computed afterwards. The code of an item
        that already appears on invoices cannot change.

        Raises:
            NotFoundError: If the item does not exist
            InvalidStateError: If renaming a code referenced by invoice items
            ValidationError: If the new code is taken
        """
        item = await self.get_item(item_id)
        if not item:
            raise NotFoundError(f"Pricebook item {item_id} not found")

        changes = update_data.model_dump(exclude_unset=True)
        new_code = changes.get("code")
        if new_code and new_code != item.code:
            referenced = await self.db.scalar(
                select(func.count()).select_from(InvoiceItem).where(InvoiceItem.pricebook_item_id == item.id)
            )
            if referenced:
                raise InvalidStateError(f"Pricebook code {item.code} is referenced by {referenced} invoice items")
            if await self.get_item_by_code(new_code):
                raise ValidationError(f"Pricebook code {new_code} already exists", code=new_code)

        for field, value in changes.items():
            setattr(item, field, value)

        await self.db.flush()
        await self.db.refresh(item)

        logger.info("pricebook_item_updated", code=item.code, fields=sorted(changes))
        return item
