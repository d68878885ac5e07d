"""Payment and payment method API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.api.deps import get_db, get_payment_processor
from usage_billing.exceptions import NotFoundError
from usage_billing.models.payment import PaymentStatus
from usage_billing.schemas.payment import Payment, PaymentList, PaymentMethod
from usage_billing.services.payment_method_service import PaymentMethodService
from usage_billing.services.payment_service import PaymentService

router = APIRouter(tags=["Payments"])


@router.get("/payments", response_model=PaymentList)
async def list_payments(
    organization_id: UUID | None = Query(default=None, description="Filter by organization ID"),
    invoice_id: UUID | None = Query(default=None, description="Filter by invoice ID"),
    status: PaymentStatus | None = Query(default=None, description="Filter by status"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Items per page (max 1000)"),
    db: AsyncSession = Depends(get_db),
) -> PaymentList:
    """List payment attempts, newest first."""
    payments, total = await PaymentService(db).list_payments(
        organization_id=organization_id,
        invoice_id=invoice_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return PaymentList(items=payments, total=total, page=page, page_size=page_size)


@router.get("/payments/{payment_id}", response_model=Payment)
async def get_payment(payment_id: UUID, db: AsyncSession = Depends(get_db)) -> Payment:
    """Get payment by ID."""
    payment = await PaymentService(db).get_payment(payment_id)
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


@router.get("/organizations/{organization_id}/payment-methods", response_model=list[PaymentMethod])
async def list_payment_methods(
    organization_id: UUID,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> list[PaymentMethod]:
    """Cards saved on the organization's Stripe customer."""
    return await PaymentMethodService(db, processor).list_payment_methods(organization_id)


@router.delete(
    "/organizations/{organization_id}/payment-methods/{payment_method_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def detach_payment_method(
    organization_id: UUID,
    payment_method_id: str,
    db: AsyncSession = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> Response:
    """Remove a saved card. Cards of other customers are reported as not found."""
    await PaymentMethodService(db, processor).detach_payment_method(organization_id, payment_method_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
