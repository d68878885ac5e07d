"""Integration tests for the Stripe webhook endpoint."""
from datetime import date, datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.models.invoice import Invoice, InvoiceStatus
from usage_billing.models.organization import Organization
from usage_billing.models.payment import Payment, PaymentStatus
from usage_billing.models.pricebook_item import PricebookItem
from usage_billing.schemas.usage import UsageEventCreate
from usage_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from usage_billing.services.invoice_service import InvoiceService
from usage_billing.services.usage_service import UsageService

from utils.fake_processor import FakePaymentProcessor

WEBHOOK_URL = "/v1/webhooks/stripe"
SIGNED = {"stripe-signature": "valid-signature"}


@pytest_asyncio.fixture
async def open_invoice(
    db_session: AsyncSession,
    test_organization: Organization,
    mailbox_item: PricebookItem,
    fake_processor: FakePaymentProcessor,
) -> Invoice:
    await UsageService(db_session).record_usage(
        test_organization.id,
        UsageEventCreate(code="mailbox_created", quantity=2, effective_at=datetime(2024, 5, 10)),
    )
    invoice = await InvoiceService(db_session).generate_invoice(test_organization.id, date(2024, 5, 1), date(2024, 5, 31))
    return await InvoiceLifecycleService(db_session, fake_processor).sync_invoice(invoice.id)


@pytest_asyncio.fixture
async def pending_payment(db_session: AsyncSession, open_invoice: Invoice) -> Payment:
    payment = Payment(
        organization_id=open_invoice.organization_id,
        invoice_id=open_invoice.id,
        amount_cents=open_invoice.total_cents,
        currency="usd",
        status=PaymentStatus.PENDING,
        stripe_payment_intent_id="pi_webhook_1",
    )
    db_session.add(payment)
    await db_session.flush()
    return payment


def _event(event_type: str, data: dict) -> dict:
    return {"id": "evt_test_1", "type": event_type, "data": {"object": data}}


@pytest.mark.asyncio
async def test_missing_signature_rejected(async_client: AsyncClient) -> None:
    response = await async_client.post(WEBHOOK_URL, content=b"{}")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_invalid_signature_rejected(async_client: AsyncClient, fake_processor: FakePaymentProcessor) -> None:
    fake_processor.webhook_event = _event("invoice.paid", {"id": "in_1"})

    response = await async_client.post(WEBHOOK_URL, content=b"{}", headers={"stripe-signature": "forged"})

    assert response.status_code == 400
    assert "verification failed" in response.json()["detail"]


@pytest.mark.asyncio
async def test_invoice_paid_event(
    async_client: AsyncClient, open_invoice: Invoice, fake_processor: FakePaymentProcessor
) -> None:
    fake_processor.webhook_event = _event("invoice.paid", {"id": open_invoice.stripe_invoice_id})

    response = await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert response.status_code == 200
    assert response.json()["status"] == "received"
    assert open_invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_invoice_voided_event_frees_period(
    async_client: AsyncClient, open_invoice: Invoice, fake_processor: FakePaymentProcessor
) -> None:
    fake_processor.webhook_event = _event("invoice.voided", {"id": open_invoice.stripe_invoice_id})

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert open_invoice.status == InvoiceStatus.VOID
    assert open_invoice.period_key is None


@pytest.mark.asyncio
async def test_payment_intent_succeeded_marks_invoice_paid(
    async_client: AsyncClient,
    open_invoice: Invoice,
    pending_payment: Payment,
    fake_processor: FakePaymentProcessor,
) -> None:
    fake_processor.webhook_event = _event(
        "payment_intent.succeeded", {"id": "pi_webhook_1", "latest_charge": "ch_webhook_1"}
    )

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert pending_payment.status == PaymentStatus.SUCCEEDED
    assert pending_payment.stripe_charge_id == "ch_webhook_1"
    assert open_invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_payment_failed_records_message(
    async_client: AsyncClient,
    open_invoice: Invoice,
    pending_payment: Payment,
    fake_processor: FakePaymentProcessor,
) -> None:
    fake_processor.webhook_event = _event(
        "payment_intent.payment_failed",
        {"id": "pi_webhook_1", "last_payment_error": {"message": "Insufficient funds"}},
    )

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert pending_payment.status == PaymentStatus.FAILED
    assert pending_payment.failure_message == "Insufficient funds"
    assert open_invoice.status == InvoiceStatus.OPEN


@pytest.mark.asyncio
async def test_charge_succeeded_stores_receipt(
    async_client: AsyncClient, pending_payment: Payment, fake_processor: FakePaymentProcessor
) -> None:
    fake_processor.webhook_event = _event(
        "charge.succeeded",
        {"id": "ch_webhook_1", "payment_intent": "pi_webhook_1", "receipt_url": "https://pay.stripe.test/r/1"},
    )

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert pending_payment.receipt_url == "https://pay.stripe.test/r/1"
    assert pending_payment.stripe_charge_id == "ch_webhook_1"


@pytest.mark.asyncio
async def test_charge_refunded(
    async_client: AsyncClient, pending_payment: Payment, fake_processor: FakePaymentProcessor
) -> None:
    pending_payment.status = PaymentStatus.SUCCEEDED
    fake_processor.webhook_event = _event("charge.refunded", {"id": "ch_webhook_1", "payment_intent": "pi_webhook_1"})

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert pending_payment.status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_late_failure_does_not_reverse_succeeded_payment(
    async_client: AsyncClient,
    open_invoice: Invoice,
    pending_payment: Payment,
    fake_processor: FakePaymentProcessor,
) -> None:
    fake_processor.webhook_event = _event("payment_intent.succeeded", {"id": "pi_webhook_1", "latest_charge": "ch_1"})
    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    fake_processor.webhook_event = _event(
        "payment_intent.payment_failed",
        {"id": "pi_webhook_1", "last_payment_error": {"message": "Insufficient funds"}},
    )
    response = await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert response.status_code == 200
    assert pending_payment.status == PaymentStatus.SUCCEEDED
    assert pending_payment.failure_message is None
    assert open_invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_refund_requires_succeeded_payment(
    async_client: AsyncClient, pending_payment: Payment, fake_processor: FakePaymentProcessor
) -> None:
    fake_processor.webhook_event = _event("charge.refunded", {"id": "ch_webhook_1", "payment_intent": "pi_webhook_1"})

    await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)

    assert pending_payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_objects_and_events_acknowledged(
    async_client: AsyncClient, fake_processor: FakePaymentProcessor
) -> None:
    for event in (
        _event("invoice.paid", {"id": "in_unknown"}),
        _event("payment_intent.succeeded", {"id": "pi_unknown"}),
        _event("customer.created", {"id": "cus_1"}),
    ):
        fake_processor.webhook_event = event
        response = await async_client.post(WEBHOOK_URL, content=b"{}", headers=SIGNED)
        assert response.status_code == 200
        assert response.json()["event_type"] == event["type"]
