"""Stripe payment gateway adapter."""
import asyncio
from typing import Any, Callable

import stripe
import structlog

from usage_billing.config import settings
from usage_billing.exceptions import ExternalProcessorError
from usage_billing.metrics import processor_errors_total

logger = structlog.get_logger(__name__)


def _invoice_result(invoice: Any) -> dict[str, Any]:
    status = getattr(invoice, "status", None)
    return {
        "id": invoice.id,
        "status": status,
        "paid": status == "paid",
        "amount_due": getattr(invoice, "amount_due", None),
        "amount_paid": getattr(invoice, "amount_paid", None),
        "hosted_invoice_url": getattr(invoice, "hosted_invoice_url", None),
        "payment_intent": getattr(invoice, "payment_intent", None),
        "charge": getattr(invoice, "charge", None),
    }


def _payment_method_result(payment_method: Any) -> dict[str, Any]:
    card = getattr(payment_method, "card", None)
    return {
        "id": payment_method.id,
        "type": payment_method.type,
        "customer": getattr(payment_method, "customer", None),
        "card": {
            "brand": card.brand,
            "last4": card.last4,
            "exp_month": card.exp_month,
            "exp_year": card.exp_year,
        }
        if card
        else None,
    }


class StripeAdapter:
    """
    Adapter for Stripe payment gateway integration.

    The Stripe SDK is synchronous, so each call runs in a worker thread and is
    abandoned after ``settings.stripe_timeout_seconds``. Retries are disabled;
    callers decide whether to retry.
    """

    def __init__(self):
        """Initialize Stripe adapter with API key."""
        stripe.api_key = settings.stripe_secret_key
        stripe.max_network_retries = 0
        self.timeout = settings.stripe_timeout_seconds

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            processor_errors_total.labels(operation=operation).inc()
            logger.error("stripe_timeout", operation=operation, timeout=self.timeout)
            raise ExternalProcessorError(f"Stripe {operation} timed out", operation=operation) from e
        except stripe.StripeError as e:
            processor_errors_total.labels(operation=operation).inc()
            logger.error("stripe_error", operation=operation, stripe_code=e.code, error=str(e))
            raise ExternalProcessorError(
                f"Stripe {operation} failed: {e.user_message or e}",
                operation=operation,
                stripe_code=e.code,
            ) from e

    async def create_customer(self, email: str | None, name: str, metadata: dict[str, Any] | None = None) -> str:
        """
        Create a Stripe customer.

        Returns:
            Stripe customer ID
        """
        customer = await self._call(
            "create_customer", stripe.Customer.create, email=email, name=name, metadata=metadata or {}
        )
        return customer.id

    async def customer_exists(self, customer_id: str) -> bool:
        """True if the customer is still usable (present and not deleted)."""
        try:
            customer = await self._call("retrieve_customer", stripe.Customer.retrieve, customer_id)
        except ExternalProcessorError as e:
            if e.details.get("stripe_code") == "resource_missing":
                return False
            raise
        return not getattr(customer, "deleted", False)

    async def create_invoice(
        self, customer_id: str, currency: str, metadata: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Create an empty draft invoice that is only finalized on request."""
        invoice = await self._call(
            "create_invoice",
            stripe.Invoice.create,
            customer=customer_id,
            currency=currency,
            auto_advance=False,
            metadata=metadata or {},
        )
        return _invoice_result(invoice)

    async def add_invoice_item(
        self, customer_id: str, invoice_id: str, amount_cents: int, currency: str, description: str
    ) -> str:
        """Attach a line of ``amount_cents`` to a draft invoice."""
        item = await self._call(
            "add_invoice_item",
            stripe.InvoiceItem.create,
            customer=customer_id,
            invoice=invoice_id,
            amount=amount_cents,
            currency=currency,
            description=description,
        )
        return item.id

    async def finalize_invoice(self, invoice_id: str) -> dict[str, Any]:
        """Finalize a draft invoice."""
        invoice = await self._call("finalize_invoice", stripe.Invoice.finalize_invoice, invoice_id)
        return _invoice_result(invoice)

    async def pay_invoice(self, invoice_id: str) -> dict[str, Any]:
        """
        Attempt payment of an open invoice.

        A declined card is an outcome, not an error: it is reported with
        ``paid=False`` and the decline message.
        """
        try:
            invoice = await self._call("pay_invoice", stripe.Invoice.pay, invoice_id)
        except ExternalProcessorError as e:
            if not isinstance(e.__cause__, stripe.CardError):
                raise
            return {
                "id": invoice_id,
                "status": "open",
                "paid": False,
                "payment_intent": getattr(e.__cause__, "payment_intent", None),
                "charge": None,
                "hosted_invoice_url": None,
                "error": e.__cause__.user_message,
            }
        return _invoice_result(invoice)

    async def void_invoice(self, invoice_id: str) -> dict[str, Any]:
        invoice = await self._call("void_invoice", stripe.Invoice.void_invoice, invoice_id)
        return _invoice_result(invoice)

    async def delete_invoice(self, invoice_id: str) -> None:
        """Delete a draft invoice that was never finalized."""
        await self._call("delete_invoice", stripe.Invoice.delete, invoice_id)

    async def mark_uncollectible(self, invoice_id: str) -> dict[str, Any]:
        invoice = await self._call("mark_uncollectible", stripe.Invoice.mark_uncollectible, invoice_id)
        return _invoice_result(invoice)

    async def list_payment_methods(self, customer_id: str) -> list[dict[str, Any]]:
        """Cards saved for a customer."""
        methods = await self._call("list_payment_methods", stripe.PaymentMethod.list, customer=customer_id, type="card")
        return [_payment_method_result(pm) for pm in methods.data]

    async def retrieve_payment_method(self, payment_method_id: str) -> dict[str, Any]:
        payment_method = await self._call("retrieve_payment_method", stripe.PaymentMethod.retrieve, payment_method_id)
        return _payment_method_result(payment_method)

    async def detach_payment_method(self, payment_method_id: str) -> None:
        await self._call("detach_payment_method", stripe.PaymentMethod.detach, payment_method_id)

    async def construct_webhook_event(self, payload: bytes, signature: str) -> Any:
        """
        Construct and verify webhook event.

        Raises:
            ValueError: If the payload or signature is invalid
        """
        try:
            return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
        except ValueError as e:
            raise ValueError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Invalid signature: {e}") from e
