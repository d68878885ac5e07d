"""FastAPI application entry point."""
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from usage_billing.api.v1 import health, invoices, organizations, payments, pricebook, pricing_rules, usage
from usage_billing.api.webhooks import stripe as stripe_webhooks
from usage_billing.config import settings
from usage_billing.exceptions import BillingError
from usage_billing.middleware.logging import LoggingMiddleware, get_request_id, setup_logging
from usage_billing.middleware.metrics import MetricsMiddleware
from usage_billing.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    logger.info("application_shutting_down")


app = FastAPI(
    title="Usage Billing Engine",
    description="Multi-tenant usage-based billing: pricebook, pricing rules, invoicing and Stripe collection",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

app.mount("/metrics", make_asgi_app())


def _error_response(status_code: int, body: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
    """
    Render billing errors with the status and code carried by the exception.

    Client errors are logged as warnings, processor and store failures as errors.
    """
    request_id = get_request_id(request)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "billing_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        code=exc.code,
        error=exc.message,
        **{k: str(v) for k, v in exc.details.items()},
    )

    message = exc.message
    if exc.status_code >= 500 and settings.app_env == "production":
        message = "Upstream service temporarily unavailable"

    headers = {"Retry-After": "30"} if exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
    return _error_response(
        exc.status_code,
        ErrorResponse(
            error=type(exc).__name__,
            message=message,
            details=[ErrorDetail(code=exc.code, message=message)],
            remediation=REMEDIATION_HINTS.get(exc.code),
            request_id=request_id,
        ),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with detailed field-level validation errors.
    """
    request_id = get_request_id(request)

    code_mapping = {
        "uuid_parsing": ErrorCode.INVALID_UUID,
        "enum": ErrorCode.INVALID_ENUM_VALUE,
        "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        "int_parsing": ErrorCode.INVALID_AMOUNT,
    }
    details = [
        ErrorDetail(
            code=code_mapping.get(error["type"], ErrorCode.VALIDATION_ERROR),
            message=error["msg"],
            field=".".join(str(loc) for loc in error["loc"]),
            value=error.get("input"),
        )
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_count=len(details),
    )
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorResponse(
            error="ValidationError",
            message="Request validation failed",
            details=details,
            remediation="Check the API documentation for correct request format at /docs",
            request_id=request_id,
        ),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable for database connection issues.
    """
    request_id = get_request_id(request)
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorResponse(
            error="DatabaseError",
            message="A database error occurred",
            details=[ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=error_message)],
            remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
            request_id=request_id,
        ),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace and returns a safe error message to the client.
    """
    request_id = get_request_id(request)
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        exception_type=type(exc).__name__,
        stack_trace=traceback.format_exc(),
    )

    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorResponse(
            error="InternalServerError",
            message="An unexpected error occurred",
            details=[
                ErrorDetail(
                    code=ErrorCode.INTERNAL_ERROR,
                    message=str(exc) if settings.debug else "Internal server error",
                )
            ],
            remediation="Please contact support with the request ID",
            request_id=request_id,
        ),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Usage Billing Engine",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


app.include_router(health.router, tags=["Health"])
app.include_router(organizations.router, prefix="/v1")
app.include_router(pricebook.router, prefix="/v1")
app.include_router(pricing_rules.router, prefix="/v1")
app.include_router(usage.router, prefix="/v1")
app.include_router(invoices.router, prefix="/v1")
app.include_router(payments.router, prefix="/v1")
app.include_router(stripe_webhooks.router, prefix="/v1")
