"""Payment model for payment transactions."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from usage_billing.models.base import Base


class PaymentStatus(enum.Enum):
    """Payment status."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class Payment(Base):
    """Payment attempt against an invoice, as reported by the payment processor."""

    __tablename__ = "payments"

    organization_id = Column(
        Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_charge_id = Column(String(255), nullable=True, index=True)
    receipt_url = Column(String(1000), nullable=True)
    failure_message = Column(String(1000), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Payment(id={self.id}, amount_cents={self.amount_cents}, status={self.status.value})>"
