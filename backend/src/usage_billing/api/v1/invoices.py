"""Invoice API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.api.deps import get_db, get_payment_processor
from usage_billing.models.invoice import InvoiceStatus
from usage_billing.schemas.invoice import (
    Invoice,
    InvoiceBatchGenerate,
    InvoiceBatchResult,
    InvoiceDetail,
    InvoiceGenerate,
    InvoiceList,
    InvoiceSync,
    InvoiceVoid,
)
from usage_billing.schemas.payment import Payment
from usage_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from usage_billing.services.invoice_service import InvoiceService
from usage_billing.workers.billing_cycle import generate_period_invoices

router = APIRouter(tags=["Invoices"])


@router.get("/invoices", response_model=InvoiceList)
async def list_invoices(
    organization_id: UUID | None = Query(default=None, description="Filter by organization ID"),
    status: InvoiceStatus | None = Query(default=None, description="Filter by status"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Items per page (max 1000)"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """
    List invoices with pagination and filtering.

    Filter invoices by:
    - **organization_id**: Organization UUID (optional)
    - **status**: Invoice status (draft, open, paid, void, uncollectible) (optional)

    Returns invoices ordered by creation date (newest first).
    """
    invoices, total = await InvoiceService(db).list_invoices(
        organization_id=organization_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return InvoiceList(items=invoices, total=total, page=page, page_size=page_size)


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(invoice_id: UUID, db: AsyncSession = Depends(get_db)) -> InvoiceDetail:
    """
    Get invoice by ID with its lines and payments.

    **Status Meanings**:
    - **draft**: Generated locally, not yet sent to Stripe
    - **open**: Synced to Stripe and awaiting payment
    - **paid**: Settled
    - **void**: Cancelled; its period can be invoiced again
    - **uncollectible**: Written off
    """
    return await InvoiceService(db).get_invoice_detail(invoice_id)


@router.post(
    "/organizations/{organization_id}/invoices",
    response_model=Invoice,
    status_code=status.HTTP_201_CREATED,
)
async def generate_invoice(
    organization_id: UUID,
    period: InvoiceGenerate,
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Generate a draft invoice from an organization's usage in a period.

    Fails with ``no_usage_to_invoice`` when the period has no billable usage and
    with ``invalid_state_transition`` when a non-void invoice already covers it.
    """
    return await InvoiceService(db).generate_invoice(organization_id, period.period_start, period.period_end)


@router.post("/invoices/generate", response_model=InvoiceBatchResult)
async def generate_invoices(
    batch: InvoiceBatchGenerate,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> InvoiceBatchResult:
    """
    Generate invoices for every active organization, or for one.

    Organizations are processed independently; failures are reported in
    ``errors`` and do not stop the run.
    """
    return await generate_period_invoices(
        batch.period_start,
        batch.period_end,
        organization_id=batch.organization_id,
        auto_sync=batch.auto_sync,
        db=db,
        processor=processor,
    )


@router.post("/invoices/{invoice_id}/sync", response_model=Invoice)
async def sync_invoice(
    invoice_id: UUID,
    sync_data: InvoiceSync | None = None,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> Invoice:
    """Push a draft invoice and its lines to Stripe. The invoice becomes open."""
    auto_finalize = sync_data.auto_finalize if sync_data else False
    return await InvoiceLifecycleService(db, processor).sync_invoice(invoice_id, auto_finalize=auto_finalize)


@router.post("/invoices/{invoice_id}/pay", response_model=Payment)
async def pay_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> Payment:
    """
    Charge an open invoice through Stripe.

    A declined card is recorded as a failed payment and returned, not raised.
    """
    return await InvoiceLifecycleService(db, processor).pay_invoice(invoice_id)


@router.post("/invoices/{invoice_id}/void", response_model=Invoice)
async def void_invoice(
    invoice_id: UUID,
    void_data: InvoiceVoid | None = None,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> Invoice:
    """
    Void a draft or open invoice.

    Paid, void and uncollectible invoices cannot be voided.
    """
    reason = void_data.reason if void_data else "requested_by_admin"
    return await InvoiceLifecycleService(db, processor).void_invoice(invoice_id, reason=reason)


@router.post("/invoices/{invoice_id}/mark-uncollectible", response_model=Invoice)
async def mark_invoice_uncollectible(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> Invoice:
    """Write off a draft or open invoice."""
    return await InvoiceLifecycleService(db, processor).mark_uncollectible(invoice_id)
