"""Stripe webhook handler for invoice, payment and charge events."""
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.api.deps import get_db, get_payment_processor
from usage_billing.models.invoice import InvoiceStatus
from usage_billing.models.payment import PaymentStatus
from usage_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from usage_billing.services.payment_service import PaymentService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["webhooks"])

INVOICE_EVENT_STATUSES = {
    "invoice.paid": InvoiceStatus.PAID,
    "invoice.voided": InvoiceStatus.VOID,
    "invoice.marked_uncollectible": InvoiceStatus.UNCOLLECTIBLE,
}


@router.post("")
async def handle_stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> dict[str, Any]:
    """
    Handle incoming Stripe webhook events.

    Verifies the webhook signature, then reconciles local state:
    - invoice.paid / invoice.voided / invoice.marked_uncollectible: invoice status
    - payment_intent.succeeded / payment_intent.payment_failed: payment status
    - charge.succeeded: charge id and receipt url
    - charge.refunded: payment refunded

    Events for unknown invoices or payments are acknowledged and ignored.

    Raises:
        HTTPException: 400 if the signature is missing or invalid
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.error("stripe_webhook_missing_signature")
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    try:
        event = await processor.construct_webhook_event(body, signature)
    except ValueError as e:
        logger.error("stripe_webhook_verification_failed", error=str(e))
        raise HTTPException(status_code=400, detail=f"Webhook verification failed: {e}") from e

    event_type = event["type"]
    data = event["data"]["object"]
    logger.info("stripe_webhook_received", event_type=event_type, event_id=event.get("id"), object_id=data.get("id"))

    payments = PaymentService(db)
    if event_type in INVOICE_EVENT_STATUSES:
        await InvoiceLifecycleService(db, processor).update_status_from_processor(
            data["id"], INVOICE_EVENT_STATUSES[event_type]
        )
    elif event_type == "payment_intent.succeeded":
        await payments.update_payment_status(
            data["id"], PaymentStatus.SUCCEEDED, charge_id=data.get("latest_charge")
        )
    elif event_type == "payment_intent.payment_failed":
        error = data.get("last_payment_error") or {}
        await payments.update_payment_status(
            data["id"], PaymentStatus.FAILED, failure_message=error.get("message", "Unknown error")
        )
    elif event_type == "charge.succeeded":
        await _handle_charge_succeeded(payments, data)
    elif event_type == "charge.refunded":
        if data.get("payment_intent"):
            await payments.update_payment_status(data["payment_intent"], PaymentStatus.REFUNDED, charge_id=data["id"])
    else:
        logger.info("stripe_webhook_unhandled_event", event_type=event_type)

    return {"status": "received", "event_type": event_type}


async def _handle_charge_succeeded(payments: PaymentService, charge: dict[str, Any]) -> None:
    receipt_url = charge.get("receipt_url")
    if charge.get("payment_intent"):
        await payments.update_payment_status(
            charge["payment_intent"],
            PaymentStatus.SUCCEEDED,
            charge_id=charge["id"],
            receipt_url=receipt_url,
        )
    elif receipt_url:
        await payments.update_receipt_by_charge(charge["id"], receipt_url)
