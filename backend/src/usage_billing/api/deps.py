"""FastAPI dependencies for database sessions and the payment processor."""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.adapters.payment_processor import PaymentProcessor
from usage_billing.adapters.stripe_adapter import StripeAdapter
from usage_billing.database import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Commits when the request handler returns, rolls back if it raises.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_payment_processor() -> PaymentProcessor:
    """Payment processor used by lifecycle and payment method endpoints."""
    return StripeAdapter()
