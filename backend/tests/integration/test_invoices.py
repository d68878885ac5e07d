"""Integration tests for invoice generation."""
from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.config import settings
from usage_billing.exceptions import InvalidStateError, NoUsageToInvoiceError, NotFoundError
from usage_billing.models.invoice import Invoice, InvoiceStatus
from usage_billing.models.organization import Organization
from usage_billing.models.payment import Payment, PaymentStatus
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.schemas.pricing_rule import PricingRuleCreate
from usage_billing.schemas.usage import UsageEventCreate
from usage_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from usage_billing.services.invoice_service import InvoiceService, period_bounds
from usage_billing.services.pricing_rule_service import PricingRuleService
from usage_billing.services.rule_usage_service import RuleUsageService
from usage_billing.services.usage_service import UsageService

from utils.factories import PricingRuleFactory

MAY_START = date(2024, 5, 1)
MAY_END = date(2024, 5, 31)


async def _usage(db_session: AsyncSession, organization_id, code: str, quantity: int, day: int = 10) -> None:
    await UsageService(db_session).record_usage(
        organization_id,
        UsageEventCreate(code=code, quantity=quantity, effective_at=datetime(2024, 5, day, 12, 0)),
    )


async def _invoice_count(db_session: AsyncSession) -> int:
    return await db_session.scalar(select(func.count()).select_from(Invoice))


def test_period_bounds_cover_whole_days() -> None:
    start, end = period_bounds(MAY_START, MAY_END)

    assert start == datetime(2024, 5, 1, 0, 0)
    assert end == datetime(2024, 5, 31, 23, 59, 59, 999999)


@pytest.mark.asyncio
async def test_generate_invoice_from_usage(
    db_session: AsyncSession,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    domain_item: PricebookItem,
) -> None:
    await _usage(db_session, test_organization.id, "mailbox_created", 3)
    await _usage(db_session, test_organization.id, "mailbox_created", 2, day=20)
    await _usage(db_session, test_organization.id, "domain_registered", 1)

    invoice = await InvoiceService(db_session).generate_invoice(test_organization.id, MAY_START, MAY_END)

    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.period_start == MAY_START
    assert invoice.period_end == MAY_END
    assert invoice.currency == settings.billing_currency
    lines = {item.code: item for item in invoice.items}
    assert lines["mailbox_created"].quantity == 5
    assert lines["mailbox_created"].total_cents == 1750
    assert lines["domain_registered"].total_cents == 1200
    assert all(item.period == MAY_START for item in invoice.items)
    assert invoice.total_cents == invoice.items_total == 2950


@pytest.mark.asyncio
async def test_no_usage_raises_and_persists_nothing(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    with pytest.raises(NoUsageToInvoiceError, match="No usage to invoice"):
        await InvoiceService(db_session).generate_invoice(test_organization.id, MAY_START, MAY_END)

    assert await _invoice_count(db_session) == 0


@pytest.mark.asyncio
async def test_only_unknown_codes_counts_as_no_usage(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    await _usage(db_session, test_organization.id, "sms_sent", 40)

    with pytest.raises(NoUsageToInvoiceError):
        await InvoiceService(db_session).generate_invoice(test_organization.id, MAY_START, MAY_END)


@pytest.mark.asyncio
async def test_missing_organization(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await InvoiceService(db_session).generate_invoice(uuid4(), MAY_START, MAY_END)


@pytest.mark.asyncio
async def test_duplicate_period_rejected_until_voided(
    db_session: AsyncSession,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    fake_processor,
) -> None:
    service = InvoiceService(db_session)
    await _usage(db_session, test_organization.id, "mailbox_created", 2)
    first = await service.generate_invoice(test_organization.id, MAY_START, MAY_END)

    with pytest.raises(InvalidStateError, match="already exists"):
        await service.generate_invoice(test_organization.id, MAY_START, MAY_END)

    await InvoiceLifecycleService(db_session, fake_processor).void_invoice(first.id)
    second = await service.generate_invoice(test_organization.id, MAY_START, MAY_END)

    assert second.id != first.id
    assert second.total_cents == first.total_cents


@pytest.mark.asyncio
async def test_duplicates_allowed_when_configured(
    db_session: AsyncSession,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "allow_duplicate_invoices", True)
    service = InvoiceService(db_session)
    await _usage(db_session, test_organization.id, "mailbox_created", 2)

    await service.generate_invoice(test_organization.id, MAY_START, MAY_END)
    await service.generate_invoice(test_organization.id, MAY_START, MAY_END)

    assert await _invoice_count(db_session) == 2


@pytest.mark.asyncio
async def test_invoice_lines_snapshot_applied_rule(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    rule = await PricingRuleService(db_session).create_rule(
        PricingRuleCreate(**PricingRuleFactory.create({"value": 20}))
    )
    await _usage(db_session, test_organization.id, "mailbox_created", 10)

    invoice = await InvoiceService(db_session).generate_invoice(test_organization.id, MAY_START, MAY_END)

    line = invoice.items[0]
    assert line.pricing_rule_id == rule.id
    assert line.base_unit_price_cents == 350
    assert line.discount_percent == 20
    assert line.discount_amount_cents == 70
    assert line.final_unit_price_cents == 280
    assert line.total_cents == 2800


@pytest.mark.asyncio
async def test_max_uses_rule_redeemed_once_per_limit(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    """A global limit of 1 discounts the first organization invoiced only."""
    rule = await PricingRuleService(db_session).create_rule(
        PricingRuleCreate(
            **PricingRuleFactory.create(
                {"value": 50, "conditions": [{"condition_type": "max_uses", "value": {"limit": 1}}]}
            )
        )
    )
    other = Organization(name="Second Org")
    db_session.add(other)
    await db_session.flush()
    await _usage(db_session, test_organization.id, "mailbox_created", 2)
    await _usage(db_session, other.id, "mailbox_created", 2)
    service = InvoiceService(db_session)

    first = await service.generate_invoice(test_organization.id, MAY_START, MAY_END)
    second = await service.generate_invoice(other.id, MAY_START, MAY_END)

    assert first.items[0].pricing_rule_id == rule.id
    assert first.total_cents == 350
    assert second.items[0].pricing_rule_id is None
    assert second.total_cents == 700
    assert await RuleUsageService(db_session).get_usage(rule.id) == 1


@pytest.mark.asyncio
async def test_line_repriced_when_redemption_lost(
    db_session: AsyncSession,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """If another writer takes the last slot between quoting and redeeming, the next rule applies."""
    limited = await PricingRuleService(db_session).create_rule(
        PricingRuleCreate(
            **PricingRuleFactory.create(
                {"value": 50, "priority": 10, "conditions": [{"condition_type": "max_uses", "value": {"limit": 1}}]}
            )
        )
    )
    fallback = await PricingRuleService(db_session).create_rule(
        PricingRuleCreate(**PricingRuleFactory.create({"value": 10, "priority": 1}))
    )
    await _usage(db_session, test_organization.id, "mailbox_created", 2)
    service = InvoiceService(db_session)

    async def lost_race(*args, **kwargs) -> bool:
        return False

    monkeypatch.setattr(service.rule_usage, "consume", lost_race)

    invoice = await service.generate_invoice(test_organization.id, MAY_START, MAY_END)

    assert invoice.items[0].pricing_rule_id == fallback.id
    assert invoice.items[0].final_unit_price_cents == 315
    assert limited.id != fallback.id


@pytest.mark.asyncio
async def test_invoice_detail_includes_payments_and_receipt(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem
) -> None:
    await _usage(db_session, test_organization.id, "mailbox_created", 1)
    invoice = await InvoiceService(db_session).generate_invoice(test_organization.id, MAY_START, MAY_END)
    db_session.add_all(
        [
            Payment(
                organization_id=test_organization.id,
                invoice_id=invoice.id,
                amount_cents=350,
                currency="usd",
                status=PaymentStatus.FAILED,
                failure_message="Your card was declined.",
                created_at=datetime(2024, 6, 1, 9, 0),
            ),
            Payment(
                organization_id=test_organization.id,
                invoice_id=invoice.id,
                amount_cents=350,
                currency="usd",
                status=PaymentStatus.SUCCEEDED,
                receipt_url="https://pay.stripe.test/receipts/rcpt_1",
                created_at=datetime(2024, 6, 2, 9, 0),
            ),
        ]
    )
    invoice.extra_metadata = {
        "cart_snapshot": {
            "domains": [{"domain": "acme.io", "price": 12, "mailboxes": {"provider": "google", "count": 2}}],
            "totals": {"totalGoogleMailboxes": 2, "totalMicrosoftMailboxes": 0},
        }
    }
    await db_session.flush()

    detail = await InvoiceService(db_session).get_invoice_detail(invoice.id)

    assert [p.status for p in detail.payments] == [PaymentStatus.SUCCEEDED, PaymentStatus.FAILED]
    assert detail.receipt_url == "https://pay.stripe.test/receipts/rcpt_1"
    assert [line.description for line in detail.order_line_items] == [
        "Domain: acme.io",
        "Google Workspace Mailbox (First Month) - acme.io",
    ]


@pytest.mark.asyncio
async def test_invoice_detail_missing(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await InvoiceService(db_session).get_invoice_detail(uuid4())


@pytest.mark.asyncio
async def test_list_invoices_filters_by_status(
    db_session: AsyncSession, test_organization: Organization, mailbox_item: PricebookItem, fake_processor
) -> None:
    service = InvoiceService(db_session)
    await _usage(db_session, test_organization.id, "mailbox_created", 1)
    await _usage(db_session, test_organization.id, "mailbox_created", 1, day=1)
    may = await service.generate_invoice(test_organization.id, MAY_START, MAY_END)
    await service.generate_invoice(test_organization.id, date(2024, 5, 1), date(2024, 5, 5))
    await InvoiceLifecycleService(db_session, fake_processor).void_invoice(may.id)

    drafts, total = await service.list_invoices(organization_id=test_organization.id, status=InvoiceStatus.DRAFT)
    everything, everything_total = await service.list_invoices(organization_id=test_organization.id)

    assert total == 1
    assert drafts[0].period_end == date(2024, 5, 5)
    assert everything_total == 2
