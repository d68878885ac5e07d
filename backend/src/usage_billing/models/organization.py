"""Organization model for billed tenants."""
import enum

from sqlalchemy import Column, Enum as SQLEnum, String
from sqlalchemy.orm import relationship

from usage_billing.models.base import Base


class OrganizationStatus(enum.Enum):
    """Organization status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class Organization(Base):
    """
    A billed tenant.

    Holds the external customer reference used when invoices are pushed to the
    payment processor, and the segment tag matched by org_segment conditions.
    """

    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    billing_email = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, unique=True, index=True)
    segment = Column(String(100), nullable=True, index=True)
    status = Column(SQLEnum(OrganizationStatus), nullable=False, default=OrganizationStatus.ACTIVE, index=True)

    # Relationships
    invoices = relationship("Invoice", back_populates="organization")
    usage_events = relationship("UsageEvent", back_populates="organization")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Organization(id={self.id}, name={self.name}, status={self.status.value})>"
