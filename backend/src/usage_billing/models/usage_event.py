"""Usage event model for metered billing."""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from usage_billing.models.base import Base, JSONType


class UsageEvent(Base):
    """
    Append-only record of a billable action.

    Immutable once written. ``code`` references a pricebook item; events with an
    unknown code are kept but never priced.
    """

    __tablename__ = "usage_events"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_usage_events_quantity_positive"),)

    organization_id = Column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code = Column(String(100), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    effective_at = Column(DateTime, nullable=False, index=True)
    related_ids = Column(JSONType, nullable=False, default=dict)

    # Relationships
    organization = relationship("Organization", back_populates="usage_events")

    def __repr__(self) -> str:
        """String representation."""
        return f"<UsageEvent(org={self.organization_id}, code={self.code}, quantity={self.quantity})>"
