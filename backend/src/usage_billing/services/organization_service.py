"""Organization service for the billed tenants."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.models.organization import Organization, OrganizationStatus
from usage_billing.schemas.organization import OrganizationCreate


class OrganizationService:
    """Service layer for organization operations."""

    def __init__(self, db: AsyncSession):
        """Initialize organization service with database session."""
        self.db = db

    async def create_organization(self, org_data: OrganizationCreate) -> Organization:
        organization = Organization(**org_data.model_dump())
        self.db.add(organization)
        await self.db.flush()
        await self.db.refresh(organization)
        return organization

    async def get_organization(self, organization_id: UUID) -> Organization | None:
        result = await self.db.execute(select(Organization).where(Organization.id == organization_id))
        return result.scalar_one_or_none()

    async def list_active_organizations(self) -> list[Organization]:
        """Active organizations in creation order."""
        result = await self.db.execute(
            select(Organization)
            .where(Organization.status == OrganizationStatus.ACTIVE)
            .order_by(Organization.created_at, Organization.id)
        )
        return list(result.scalars().all())
