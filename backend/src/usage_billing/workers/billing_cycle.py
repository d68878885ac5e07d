"""Billing cycle worker: invoice every active organization for a period.

Runs monthly under ARQ for the previous calendar month, and on demand through
the admin API. Each organization is committed (or rolled back) on its own so
one failure never blocks the rest of the run.

Usage:
    arq usage_billing.workers.billing_cycle.WorkerSettings
"""
from datetime import date, datetime, timedelta
from uuid import UUID

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.config import settings
from usage_billing.database import AsyncSessionLocal
from usage_billing.exceptions import BillingError, NotFoundError
from usage_billing.schemas.invoice import InvoiceBatchError, InvoiceBatchResult
from usage_billing.services.invoice_lifecycle_service import InvoiceLifecycleService
from usage_billing.services.invoice_service import InvoiceService
from usage_billing.services.organization_service import OrganizationService

logger = structlog.get_logger(__name__)


def previous_month(today: date) -> tuple[date, date]:
    """First and last day of the month before ``today``."""
    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


async def generate_period_invoices(
    period_start: date,
    period_end: date,
    organization_id: UUID | None = None,
    auto_sync: bool = False,
    db: AsyncSession | None = None,
    processor: PaymentProcessor | None = None,
) -> InvoiceBatchResult:
    """
    Generate (and optionally sync) usage invoices for a period.

    Args:
        period_start: First day billed
        period_end: Last day billed (inclusive)
        organization_id: Restrict the run to one organization
        auto_sync: Push each new invoice to the payment processor
        db: Session to use (a new one is opened when omitted)
        processor: Payment processor used when ``auto_sync`` is set

    Returns:
        Generated and synced invoice ids plus one error entry per failed organization
    """
    if db is None:
        async with AsyncSessionLocal() as session:
            return await generate_period_invoices(
                period_start, period_end, organization_id, auto_sync, db=session, processor=processor
            )

    organizations = OrganizationService(db)
    invoices = InvoiceService(db)
    lifecycle = InvoiceLifecycleService(db, processor) if auto_sync else None
    result = InvoiceBatchResult()

    if organization_id:
        if not await organizations.get_organization(organization_id):
            raise NotFoundError(f"Organization {organization_id} not found")
        organization_ids = [organization_id]
    else:
        # ids only: a rollback expires every loaded organization
        organization_ids = [org.id for org in await organizations.list_active_organizations()]

    logger.info(
        "invoice_batch_started",
        period_start=str(period_start),
        period_end=str(period_end),
        organizations=len(organization_ids),
        auto_sync=auto_sync,
    )

    for org_id in organization_ids:
        try:
            invoice = await invoices.generate_invoice(org_id, period_start, period_end)
            invoice_id = invoice.id
            await db.commit()
            result.invoice_ids.append(invoice_id)
        except BillingError as e:
            await db.rollback()
            result.errors.append(InvoiceBatchError(organization_id=org_id, code=e.code, error=e.message))
            logger.warning("invoice_batch_generation_failed", organization_id=str(org_id), error=e.message)
            continue
        except Exception as e:
            await db.rollback()
            result.errors.append(InvoiceBatchError(organization_id=org_id, code="internal_error", error=str(e)))
            logger.exception("invoice_batch_generation_error", organization_id=str(org_id))
            continue

        if lifecycle is None:
            continue

        try:
            await lifecycle.sync_invoice(invoice_id)
            await db.commit()
            result.synced_invoice_ids.append(invoice_id)
        except BillingError as e:
            await db.rollback()
            result.errors.append(InvoiceBatchError(organization_id=org_id, code=e.code, error=e.message))
            logger.warning(
                "invoice_batch_sync_failed", organization_id=str(org_id), invoice_id=str(invoice_id), error=e.message
            )
        except Exception as e:
            await db.rollback()
            result.errors.append(InvoiceBatchError(organization_id=org_id, code="internal_error", error=str(e)))
            logger.exception("invoice_batch_sync_error", organization_id=str(org_id), invoice_id=str(invoice_id))

    logger.info(
        "invoice_batch_completed",
        invoices_generated=len(result.invoice_ids),
        invoices_synced=len(result.synced_invoice_ids),
        errors=len(result.errors),
    )
    return result


async def generate_monthly_invoices(ctx: dict) -> dict:
    """
    ARQ task: invoice the previous calendar month for every active organization.

    Returns:
        Counts of generated, synced and failed organizations
    """
    period_start, period_end = previous_month(datetime.utcnow().date())
    result = await generate_period_invoices(period_start, period_end, auto_sync=ctx.get("auto_sync", True))
    return {
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "invoices_generated": len(result.invoice_ids),
        "invoices_synced": len(result.synced_invoice_ids),
        "errors": len(result.errors),
    }


class WorkerSettings:
    """
    ARQ worker settings for the billing cycle.

    Schedule:
    - Previous month's invoices: 1st of each month at 02:00 UTC
    """

    functions = [generate_monthly_invoices]
    cron_jobs = [cron(generate_monthly_invoices, day=1, hour=2, minute=0, timeout=3600)]
    redis_settings = RedisSettings.from_dsn(str(settings.arq_redis_url))
