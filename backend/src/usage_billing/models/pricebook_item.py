"""Pricebook item model: the catalog of billable codes."""
import enum

from sqlalchemy import Column, Enum as SQLEnum, Integer, String

from usage_billing.models.base import Base, JSONType


class BillingStrategy(enum.Enum):
    """How a pricebook item is charged."""

    PER_EVENT = "per_event"
    MONTHLY_RECURRING = "monthly_recurring"
    ANNUAL_RECURRING = "annual_recurring"
    ONE_TIME = "one_time"


class PricebookItem(Base):
    """
    Billable catalog entry.

    Usage events reference items by ``code``. Invoice items snapshot the price at
    generation time, so edits to ``base_unit_price_cents`` only affect future charges.
    """

    __tablename__ = "pricebook_items"

    code = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    base_unit_price_cents = Column(Integer, nullable=False)
    billing_strategy = Column(SQLEnum(BillingStrategy), nullable=False, default=BillingStrategy.PER_EVENT)
    billing_period_months = Column(Integer, nullable=True)
    extra_metadata = Column(JSONType, nullable=False, default=dict)

    def __repr__(self) -> str:
        """String representation."""
        return f"<PricebookItem(code={self.code}, base_unit_price_cents={self.base_unit_price_cents})>"
