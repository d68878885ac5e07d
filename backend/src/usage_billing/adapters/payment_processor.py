"""Interface the billing engine uses to talk to a payment processor."""
from typing import Any, Protocol


class PaymentProcessor(Protocol):
    """
    Outbound payment processor operations.

    Every call is blocking network I/O on the processor side; implementations
    bound each call with a timeout and raise ExternalProcessorError on failure.
    Results are plain dicts so services never depend on SDK object types.
    """

    async def create_customer(self, email: str | None, name: str, metadata: dict[str, Any] | None = None) -> str: ...

    async def customer_exists(self, customer_id: str) -> bool: ...

    async def create_invoice(
        self, customer_id: str, currency: str, metadata: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    async def add_invoice_item(
        self, customer_id: str, invoice_id: str, amount_cents: int, currency: str, description: str
    ) -> str: ...

    async def finalize_invoice(self, invoice_id: str) -> dict[str, Any]: ...

    async def pay_invoice(self, invoice_id: str) -> dict[str, Any]: ...

    async def void_invoice(self, invoice_id: str) -> dict[str, Any]: ...

    async def delete_invoice(self, invoice_id: str) -> None: ...

    async def mark_uncollectible(self, invoice_id: str) -> dict[str, Any]: ...

    async def list_payment_methods(self, customer_id: str) -> list[dict[str, Any]]: ...

    async def retrieve_payment_method(self, payment_method_id: str) -> dict[str, Any]: ...

    async def detach_payment_method(self, payment_method_id: str) -> None: ...

    async def construct_webhook_event(self, payload: bytes, signature: str) -> Any: ...
