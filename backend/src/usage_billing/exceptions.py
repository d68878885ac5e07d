"""Billing engine exception hierarchy.

Each error carries a machine-readable ``code`` and the HTTP status the API layer
renders it with.
"""
from typing import Any


class BillingError(Exception):
    """Base class for all billing engine errors."""

    code = "billing_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(BillingError):
    """Referenced organization, item, rule, invoice or payment does not exist."""

    code = "not_found"
    status_code = 404


class InvalidStateError(BillingError):
    """Operation is not allowed from the entity's current state."""

    code = "invalid_state_transition"
    status_code = 409


class NoUsageToInvoiceError(BillingError):
    """The requested period has no billable usage."""

    code = "no_usage_to_invoice"
    status_code = 422

    def __init__(self, message: str = "No usage to invoice", **details: Any):
        super().__init__(message, **details)


class ValidationError(BillingError):
    """Malformed pricing rule, condition or pricebook payload."""

    code = "validation_error"
    status_code = 400


class ExternalProcessorError(BillingError):
    """The payment processor rejected a call or did not answer in time."""

    code = "stripe_api_error"
    status_code = 502


class PersistenceError(BillingError):
    """The relational store failed to persist a change."""

    code = "database_error"
    status_code = 503
