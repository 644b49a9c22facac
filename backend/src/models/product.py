"""Product SQLAlchemy model"""

from decimal import Decimal

from sqlalchemy import Boolean, Column, Index, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import validates

from .base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Product(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Sellable product or service.

    Each product belongs to one tenant and has a SKU unique within it.
    Invoice lines default their unit price and tax rate from the product.
    """
    __tablename__ = "product"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
        Index("ix_product_tenant_active", "tenant_id", "is_active"),
    )

    sku = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True)

    @validates('sku')
    def validate_sku(self, key, value):
        if not value or not value.strip():
            raise ValueError("SKU cannot be empty")
        return value.strip().upper()

    def to_dict(self):
        """Convert product to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit_price": str(self.unit_price),
            "tax_rate": str(self.tax_rate),
            "is_active": self.is_active,
        }
