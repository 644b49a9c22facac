"""Sales invoice models"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from .base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin

INVOICE_STATUSES = ("draft", "issued", "partially_paid", "paid", "cancelled")


class SalesInvoice(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Customer invoice.

    Drafts are editable and carry no number. Issuing assigns the next
    ``sales_invoice`` sequence number; payments then move the status to
    ``partially_paid`` and ``paid``.
    """
    __tablename__ = "sales_invoice"
    __table_args__ = (
        # Numbers are unique per tenant; drafts have none
        Index("uq_sales_invoice_tenant_number", "tenant_id", "invoice_number", unique=True),
        Index("ix_sales_invoice_tenant_status", "tenant_id", "status"),
        CheckConstraint(
            "status IN ('draft', 'issued', 'partially_paid', 'paid', 'cancelled')",
            name="ck_sales_invoice_status",
        ),
    )

    invoice_number = Column(Text, nullable=True)
    customer_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=True)
    contact_id = Column(Uuid, ForeignKey("contact.id", ondelete="SET NULL"), nullable=True)
    issue_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    currency = Column(Text, nullable=False, default="USD")
    subtotal = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_total = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    amount_paid = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    status = Column(Text, nullable=False, default="draft")
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    issued_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "SalesInvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="SalesInvoiceItem.position",
    )
    allocations = relationship("PaymentAllocation", back_populates="invoice")

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total or 0) - Decimal(self.amount_paid or 0)


class SalesInvoiceItem(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "sales_invoice_item"

    invoice_id = Column(Uuid, ForeignKey("sales_invoice.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("product.id", ondelete="SET NULL"), nullable=True)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False, default=Decimal("1"))
    unit_price = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    line_total = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    invoice = relationship("SalesInvoice", back_populates="items")
