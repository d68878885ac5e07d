"""Usage event API endpoints."""
from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.api.deps import get_db
from usage_billing.exceptions import NotFoundError, ValidationError
from usage_billing.schemas.types import naive_utc
from usage_billing.schemas.usage import UsageEvent, UsageEventCreate, UsageEventList, UsageSummary
from usage_billing.services.invoice_service import period_bounds
from usage_billing.services.usage_service import UsageService

router = APIRouter(tags=["Usage"])


@router.post(
    "/organizations/{organization_id}/usage-events",
    response_model=UsageEvent,
    status_code=status.HTTP_201_CREATED,
)
async def record_usage_event(
    organization_id: UUID,
    usage_data: UsageEventCreate,
    db: AsyncSession = Depends(get_db),
) -> UsageEvent:
    """
    Record a usage event for an organization.

    Events are append-only. ``effective_at`` decides which billing period the
    event falls into and defaults to the time of the request.
    """
    return await UsageService(db).record_usage(organization_id, usage_data)


@router.get("/usage-events", response_model=UsageEventList)
async def list_usage_events(
    organization_id: UUID | None = Query(default=None, description="Filter by organization"),
    code: str | None = Query(default=None, description="Filter by pricebook code"),
    start: datetime | None = Query(default=None, description="Events effective at or after"),
    end: datetime | None = Query(default=None, description="Events effective at or before"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Items per page (max 1000)"),
    db: AsyncSession = Depends(get_db),
) -> UsageEventList:
    """List usage events, newest first."""
    events, total = await UsageService(db).list_usage_events(
        organization_id=organization_id,
        code=code,
        start=naive_utc(start) if start else None,
        end=naive_utc(end) if end else None,
        page=page,
        page_size=page_size,
    )
    return UsageEventList(items=events, total=total, page=page, page_size=page_size)


@router.get("/usage-events/codes", response_model=list[str])
async def list_usage_codes(db: AsyncSession = Depends(get_db)) -> list[str]:
    """Distinct codes that appear in recorded usage."""
    return await UsageService(db).list_usage_codes()


@router.get("/usage-events/{event_id}", response_model=UsageEvent)
async def get_usage_event(event_id: UUID, db: AsyncSession = Depends(get_db)) -> UsageEvent:
    """Get usage event by ID."""
    event = await UsageService(db).get_usage_event(event_id)
    if not event:
        raise NotFoundError(f"Usage event {event_id} not found")
    return event


@router.get("/organizations/{organization_id}/usage-summary", response_model=UsageSummary)
async def get_usage_summary(
    organization_id: UUID,
    period_start: date | datetime = Query(..., description="Start of the period (inclusive); a date starts at midnight"),
    period_end: date | datetime = Query(..., description="End of the period (inclusive); a date covers the whole day"),
    db: AsyncSession = Depends(get_db),
) -> UsageSummary:
    """
    Priced usage of an organization over a closed period.

    Dates are expanded to whole days exactly as invoice generation does.

    Each code is priced once at its aggregated quantity with the pricing rules
    active now. Codes missing from the pricebook are left out. Nothing is billed.
    """
    start, end = (naive_utc(bound) for bound in period_bounds(period_start, period_end))
    if end < start:
        raise ValidationError("period_end must not be before period_start")
    return await UsageService(db).get_usage_summary(organization_id, start, end)
