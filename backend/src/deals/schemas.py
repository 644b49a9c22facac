"""Schemas for pipelines, deals and deal history"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    probability: int = Field(0, ge=0, le=100)


class StageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    position: int
    probability: int


class PipelineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    is_default: bool = False
    stages: List[StageCreate] = Field(..., min_length=1)


class PipelineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_default: Optional[bool] = None


class PipelineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    is_default: bool
    stages: List[StageResponse]
    created_at: datetime


class DealCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    pipeline_id: Optional[UUID] = None
    stage_id: Optional[UUID] = None
    lead_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    probability: Optional[int] = Field(None, ge=0, le=100)
    expected_close_date: Optional[date] = None
    assigned_to: Optional[UUID] = None


class DealUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    pipeline_id: Optional[UUID] = None
    stage_id: Optional[UUID] = None
    contact_id: Optional[UUID] = None
    probability: Optional[int] = Field(None, ge=0, le=100)
    expected_close_date: Optional[date] = None
    status: Optional[str] = Field(None, pattern="^(open|won|lost)$")
    assigned_to: Optional[UUID] = None


class DealMoveStage(BaseModel):
    stage_id: UUID


class DealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    amount: Decimal
    currency: str
    probability: int
    status: str
    pipeline_id: UUID
    stage_id: UUID
    lead_id: Optional[UUID]
    contact_id: Optional[UUID]
    expected_close_date: Optional[date]
    assigned_to: Optional[UUID]
    created_by: Optional[UUID]
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class DealHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    field: str
    old_value: Optional[str]
    new_value: Optional[str]
    changed_by: Optional[UUID]
    changed_at: datetime
