"""Pydantic schemas for payments"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AllocationInput(BaseModel):
    invoice_id: UUID
    amount: Decimal = Field(..., gt=0)


class PaymentCreate(BaseModel):
    type: str = Field("incoming", pattern="^(incoming|outgoing)$")
    payment_date: date
    amount: Decimal = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    payment_method: Optional[str] = Field(None, max_length=50)
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    allocations: List[AllocationInput] = Field(default_factory=list)


class PaymentApply(BaseModel):
    allocations: List[AllocationInput] = Field(..., min_length=1)


class AllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    amount: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_number: str
    type: str
    payment_date: date
    amount: Decimal
    currency: str
    payment_method: Optional[str]
    reference_number: Optional[str]
    notes: Optional[str]
    allocated_amount: Decimal
    unallocated_amount: Decimal
    created_by: Optional[UUID]
    created_at: datetime
    allocations: List[AllocationResponse] = []
