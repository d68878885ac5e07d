"""Invoice and invoice item models."""
import enum

from sqlalchemy import Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from usage_billing.models.base import Base, JSONType


class InvoiceStatus(enum.Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    VOID = "void"
    UNCOLLECTIBLE = "uncollectible"


class Invoice(Base):
    """
    Billing invoice for an organization's usage in a period.

    Items are frozen once the invoice leaves DRAFT. ``period_key`` is set for
    non-void usage invoices so one (organization, period) pair cannot be billed twice.
    """

    __tablename__ = "invoices"

    organization_id = Column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    period_key = Column(String(120), nullable=True, unique=True)
    total_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    stripe_invoice_id = Column(String(255), nullable=True, unique=True, index=True)
    finalized_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    extra_metadata = Column(JSONType, nullable=False, default=dict)

    # Relationships
    organization = relationship("Organization", back_populates="invoices")
    items = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan", order_by="InvoiceItem.code", lazy="selectin"
    )
    payments = relationship("Payment", back_populates="invoice")

    @property
    def items_total(self) -> int:
        """Sum of line totals."""
        return sum(item.total_cents for item in self.items)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Invoice(id={self.id}, status={self.status.value}, total_cents={self.total_cents})>"


class InvoiceItem(Base):
    """
    Priced line of an invoice.

    Snapshots the base price, applied discount and the rule that produced it, so a
    line stays auditable after the pricebook or rules change.
    """

    __tablename__ = "invoice_items"

    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True)
    pricebook_item_id = Column(Uuid(as_uuid=True), ForeignKey("pricebook_items.id"), nullable=False, index=True)
    pricing_rule_id = Column(Uuid(as_uuid=True), ForeignKey("pricing_rules.id", ondelete="SET NULL"), nullable=True)
    code = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    base_unit_price_cents = Column(Integer, nullable=False)
    discount_percent = Column(Integer, nullable=True)
    discount_amount_cents = Column(Integer, nullable=True)
    final_unit_price_cents = Column(Integer, nullable=False)
    total_cents = Column(Integer, nullable=False)
    period = Column(Date, nullable=False)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        """String representation."""
        return f"<InvoiceItem(code={self.code}, quantity={self.quantity}, total_cents={self.total_cents})>"
