"""Pydantic schemas for catalog domain (products)"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProductBase(BaseModel):
    """Base schema for Product"""
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    is_active: bool = True

    @field_validator('sku')
    @classmethod
    def normalize_sku(cls, v: str) -> str:
        """SKUs compare case-insensitively; store them upper-case"""
        v = v.strip()
        if not v:
            raise ValueError("SKU cannot be empty")
        return v.upper()


class ProductCreate(ProductBase):
    """Schema for creating a new Product"""
    pass


class ProductUpdate(BaseModel):
    """Schema for updating a Product"""
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None

    @field_validator('sku')
    @classmethod
    def normalize_sku(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class ProductResponse(ProductBase):
    """Schema for Product response"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    created_at: datetime
    updated_at: datetime
