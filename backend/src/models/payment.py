"""Payment and payment allocation models"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Numeric, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Money received (incoming) or paid out (outgoing).

    A payment may be split across several invoices through allocations;
    the allocated total never exceeds ``amount``.
    """
    __tablename__ = "payment"
    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payment_tenant_number"),
        CheckConstraint("type IN ('incoming', 'outgoing')", name="ck_payment_type"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    payment_number = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default="incoming")
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(Text, nullable=False, default="USD")
    payment_method = Column(Text, nullable=True)
    reference_number = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    @property
    def allocated_amount(self) -> Decimal:
        return sum((Decimal(a.amount) for a in self.allocations), Decimal("0"))

    @property
    def unallocated_amount(self) -> Decimal:
        return Decimal(self.amount) - self.allocated_amount


class PaymentAllocation(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "payment_allocation"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_allocation_amount_positive"),
    )

    payment_id = Column(Uuid, ForeignKey("payment.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(Uuid, ForeignKey("sales_invoice.id", ondelete="RESTRICT"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)

    payment = relationship("Payment", back_populates="allocations")
    invoice = relationship("SalesInvoice", back_populates="allocations")
