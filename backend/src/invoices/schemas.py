"""Pydantic schemas for sales invoices"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InvoiceItemInput(BaseModel):
    product_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class InvoiceCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    contact_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: str = Field("USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    items: List[InvoiceItemInput] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    contact_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemInput]] = None


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: Optional[UUID]
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    line_total: Decimal
    tax_amount: Decimal


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: Optional[str]
    customer_name: str
    customer_email: Optional[str]
    contact_id: Optional[UUID]
    issue_date: Optional[date]
    due_date: Optional[date]
    currency: str
    subtotal: Decimal
    tax_total: Decimal
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    status: str
    notes: Optional[str]
    created_by: Optional[UUID]
    issued_by: Optional[UUID]
    issued_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    items: List[InvoiceItemResponse] = []
