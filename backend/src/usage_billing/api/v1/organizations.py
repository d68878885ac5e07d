"""Organization API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from usage_billing.api.deps import get_db
from usage_billing.exceptions import NotFoundError
from usage_billing.schemas.organization import Organization, OrganizationCreate
from usage_billing.services.organization_service import OrganizationService

router = APIRouter(prefix="/organizations", tags=["Organizations"])


@router.post("", response_model=Organization, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    db: AsyncSession = Depends(get_db),
) -> Organization:
    """Register a billed organization."""
    return await OrganizationService(db).create_organization(org_data)


@router.get("/{organization_id}", response_model=Organization)
async def get_organization(
    organization_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Organization:
    """Get organization by ID."""
    organization = await OrganizationService(db).get_organization(organization_id)
    if not organization:
        raise NotFoundError(f"Organization {organization_id} not found")
    return organization
