"""Integration tests for the pricebook catalog."""
from datetime import date, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.exceptions import InvalidStateError, NotFoundError, ValidationError
from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.schemas.pricebook import PricebookItemCreate, PricebookItemUpdate
from usage_billing.schemas.usage import UsageEventCreate
from usage_billing.services.invoice_service import InvoiceService
from usage_billing.services.pricebook_service import PricebookService
from usage_billing.services.usage_service import UsageService

from utils.factories import PricebookItemFactory


@pytest.mark.asyncio
async def test_create_and_lookup_item(db_session: AsyncSession) -> None:
    service = PricebookService(db_session)

    item = await service.create_item(PricebookItemCreate(**PricebookItemFactory.create({"code": "api_call"})))

    assert item.id is not None
    assert (await service.get_item(item.id)).code == "api_call"
    assert (await service.get_item_by_code("api_call")).id == item.id
    assert await service.get_item_by_code("missing") is None


@pytest.mark.asyncio
async def test_duplicate_code_rejected(db_session: AsyncSession, mailbox_item: PricebookItem) -> None:
    service = PricebookService(db_session)

    with pytest.raises(ValidationError, match="already exists"):
        await service.create_item(PricebookItemCreate(**PricebookItemFactory.create({"code": "mailbox_created"})))


@pytest.mark.asyncio
async def test_get_items_by_codes_omits_unknown(
    db_session: AsyncSession, mailbox_item: PricebookItem, domain_item: PricebookItem
) -> None:
    items = await PricebookService(db_session).get_items_by_codes(["mailbox_created", "sms_sent"])

    assert list(items) == ["mailbox_created"]
    assert await PricebookService(db_session).get_items_by_codes([]) == {}


@pytest.mark.asyncio
async def test_list_items_ordered_by_code(
    db_session: AsyncSession, mailbox_item: PricebookItem, domain_item: PricebookItem
) -> None:
    items = await PricebookService(db_session).list_items()

    assert [item.code for item in items] == ["domain_registered", "mailbox_created"]


@pytest.mark.asyncio
async def test_update_price(db_session: AsyncSession, mailbox_item: PricebookItem) -> None:
    item = await PricebookService(db_session).update_item(
        mailbox_item.id, PricebookItemUpdate(base_unit_price_cents=400)
    )

    assert item.base_unit_price_cents == 400
    assert item.code == "mailbox_created"


@pytest.mark.asyncio
async def test_update_missing_item(db_session: AsyncSession) -> None:
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await PricebookService(db_session).update_item(uuid4(), PricebookItemUpdate(name="Nope"))


@pytest.mark.asyncio
async def test_code_of_invoiced_item_cannot_change(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    """Renaming is allowed until the code appears on an invoice; price edits stay allowed."""
    service = PricebookService(db_session)
    await service.update_item(mailbox_item.id, PricebookItemUpdate(code="mailbox_seat"))
    await service.update_item(mailbox_item.id, PricebookItemUpdate(code="mailbox_created"))

    await UsageService(db_session).record_usage(
        test_organization.id,
        UsageEventCreate(code="mailbox_created", quantity=2, effective_at=datetime(2024, 5, 10, 9, 0)),
    )
    invoice = await InvoiceService(db_session).generate_invoice(
        test_organization.id, date(2024, 5, 1), date(2024, 5, 31)
    )

    with pytest.raises(InvalidStateError):
        await service.update_item(mailbox_item.id, PricebookItemUpdate(code="mailbox_seat"))

    await service.update_item(mailbox_item.id, PricebookItemUpdate(base_unit_price_cents=500))
    refreshed = await InvoiceService(db_session).get_invoice(invoice.id)
    assert refreshed.items[0].base_unit_price_cents == 350
