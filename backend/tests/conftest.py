"""Pytest configuration and fixtures for async testing."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import usage_billing.models  # noqa: F401  registers every table on Base.metadata
from usage_billing.database import Base
from usage_billing.main import app
from usage_billing.models.organization import Organization
from usage_billing.models.pricebook_item import BillingStrategy, PricebookItem

from utils.factories import OrganizationFactory
from utils.fake_processor import FakePaymentProcessor

# In-memory SQLite shared by every connection of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture(scope="function")
def fake_processor() -> FakePaymentProcessor:
    """In-memory stand-in for Stripe."""
    return FakePaymentProcessor()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, fake_processor: FakePaymentProcessor
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database and processor overrides.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from usage_billing.api.deps import get_db, get_payment_processor

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_processor] = lambda: fake_processor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_organization(db_session: AsyncSession) -> Organization:
    """
    Create a test organization for integration tests.

    Returns:
        Organization: Active organization without a Stripe customer
    """
    organization = Organization(**OrganizationFactory.create({"segment": "smb"}))
    db_session.add(organization)
    await db_session.commit()
    await db_session.refresh(organization)
    return organization


@pytest_asyncio.fixture(scope="function")
async def mailbox_item(db_session: AsyncSession) -> PricebookItem:
    """
    Create the mailbox pricebook item ($3.50 per mailbox).

    Returns:
        PricebookItem: ``mailbox_created`` catalog entry
    """
    item = PricebookItem(
        code="mailbox_created",
        name="Mailbox (monthly)",
        base_unit_price_cents=350,
        billing_strategy=BillingStrategy.MONTHLY_RECURRING,
        billing_period_months=1,
        extra_metadata={},
    )
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest_asyncio.fixture(scope="function")
async def domain_item(db_session: AsyncSession) -> PricebookItem:
    """
    Create the domain registration pricebook item ($12.00 per domain).

    Returns:
        PricebookItem: ``domain_registered`` catalog entry
    """
    item = PricebookItem(
        code="domain_registered",
        name="Domain registration",
        base_unit_price_cents=1200,
        billing_strategy=BillingStrategy.ANNUAL_RECURRING,
        billing_period_months=12,
        extra_metadata={},
    )
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item
