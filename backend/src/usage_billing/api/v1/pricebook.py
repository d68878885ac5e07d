"""Pricebook catalog and mailbox pricing endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.api.deps import get_db
from usage_billing.exceptions import NotFoundError
from usage_billing.schemas.pricebook import (
    MailboxPricing,
    MailboxQuote,
    PricebookItem,
    PricebookItemCreate,
    PricebookItemUpdate,
)
from usage_billing.services.pricebook_service import PricebookService
from usage_billing.services.volume_pricing import get_mailbox_pricing_tiers, quote_mailboxes

router = APIRouter(tags=["Pricebook"])


@router.get("/pricebook", response_model=list[PricebookItem])
async def list_pricebook_items(db: AsyncSession = Depends(get_db)) -> list[PricebookItem]:
    """List the whole catalog ordered by code."""
    return await PricebookService(db).list_items()


@router.post("/pricebook", response_model=PricebookItem, status_code=status.HTTP_201_CREATED)
async def create_pricebook_item(
    item_data: PricebookItemCreate,
    db: AsyncSession = Depends(get_db),
) -> PricebookItem:
    """
    Add a billable code to the catalog.

    Usage events reference items by **code**; the code must be unique.
    """
    return await PricebookService(db).create_item(item_data)


@router.get("/pricebook/{item_id}", response_model=PricebookItem)
async def get_pricebook_item(item_id: UUID, db: AsyncSession = Depends(get_db)) -> PricebookItem:
    """Get pricebook item by ID."""
    item = await PricebookService(db).get_item(item_id)
    if not item:
        raise NotFoundError(f"Pricebook item {item_id} not found")
    return item


@router.patch("/pricebook/{item_id}", response_model=PricebookItem)
async def update_pricebook_item(
    item_id: UUID,
    update_data: PricebookItemUpdate,
    db: AsyncSession = Depends(get_db),
) -> PricebookItem:
    """
    Update a pricebook item.

    Price changes apply to invoices generated afterwards; existing invoice lines
    keep the price they were generated with.
    """
    return await PricebookService(db).update_item(item_id, update_data)


@router.get("/pricing/mailboxes", response_model=MailboxPricing)
async def get_mailbox_pricing() -> MailboxPricing:
    """Published mailbox volume tiers."""
    return get_mailbox_pricing_tiers()


@router.get("/pricing/mailboxes/quote", response_model=MailboxQuote)
async def get_mailbox_quote(
    existing: int = Query(default=0, ge=0, description="Mailboxes the organization already has"),
    new: int = Query(..., ge=0, description="Mailboxes being added"),
) -> MailboxQuote:
    """Price new mailboxes at the tier reached by existing + new."""
    return quote_mailboxes(existing, new)
