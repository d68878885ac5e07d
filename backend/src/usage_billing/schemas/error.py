"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure returned by every exception handler."""

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound', 'InvalidState')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(default=None, description="Detailed error information")
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "NoUsageToInvoice",
                "message": "No usage to invoice",
                "details": [{"code": "no_usage_to_invoice", "message": "No usage to invoice"}],
                "remediation": "Record usage events for the period before generating an invoice.",
                "request_id": "req_1234567890",
                "timestamp": "2024-01-15T10:30:00Z",
            }
        }
    )


class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400, 422)
    VALIDATION_ERROR = "validation_error"
    INVALID_UUID = "invalid_uuid"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_AMOUNT = "invalid_amount"

    # Business logic errors (409, 422)
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    NO_USAGE_TO_INVOICE = "no_usage_to_invoice"

    # Not found errors (404)
    NOT_FOUND = "not_found"

    # External service errors (502, 503)
    STRIPE_API_ERROR = "stripe_api_error"
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.VALIDATION_ERROR: "Check the rule scope, value range and condition payloads.",
    ErrorCode.INVALID_STATE_TRANSITION: "Fetch the resource to check its current status before retrying.",
    ErrorCode.NO_USAGE_TO_INVOICE: "Record usage events for the period before generating an invoice.",
    ErrorCode.NOT_FOUND: "Verify the identifier is correct and the resource exists.",
    ErrorCode.STRIPE_API_ERROR: "Stripe payment processing is temporarily unavailable. Please try again later.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
