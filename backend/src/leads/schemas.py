"""Schemas for leads, lead scores, conversion and assignment rules"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from leads.assignment import OPERATORS

LEAD_STATUS_PATTERN = "^(new|contacted|qualified|unqualified|converted|lost)$"
LEAD_SOURCE_PATTERN = "^(website|referral|social_media|email_campaign|cold_call|other)$"


class LeadCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    source: Optional[str] = Field(None, pattern=LEAD_SOURCE_PATTERN)
    status: Optional[str] = Field(None, pattern="^(new|contacted|qualified|unqualified|lost)$")
    assigned_to: Optional[UUID] = None


class LeadUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    source: Optional[str] = Field(None, pattern=LEAD_SOURCE_PATTERN)
    status: Optional[str] = Field(None, pattern=LEAD_STATUS_PATTERN)
    assigned_to: Optional[UUID] = None


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: Optional[str]
    phone: Optional[str]
    source: Optional[str]
    status: str
    score: int
    score_calculated_at: Optional[datetime]
    assigned_to: Optional[UUID]
    created_by: Optional[UUID]
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class LeadScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    score: int
    breakdown: Dict[str, int]
    calculated_at: datetime


class ContactConversion(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class DealConversion(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    pipeline_id: Optional[UUID] = None
    stage_id: Optional[UUID] = None
    probability: Optional[int] = Field(None, ge=0, le=100)
    expected_close_date: Optional[date] = None
    assigned_to: Optional[UUID] = None


class LeadConvertRequest(BaseModel):
    create_contact: bool = True
    create_deal: bool = False
    contact: Optional[ContactConversion] = None
    deal: Optional[DealConversion] = None


class LeadConvertResponse(BaseModel):
    lead: LeadResponse
    contact_id: Optional[UUID] = None
    deal_id: Optional[UUID] = None
    message: str = "Lead converted successfully."


class AssignmentCondition(BaseModel):
    field: str = Field(..., pattern="^(name|email|phone|source|status|score)$")
    operator: str = "equals"
    value: Any = None

    @field_validator("operator")
    @classmethod
    def check_operator(cls, v):
        if v not in OPERATORS:
            raise ValueError(f"Unsupported operator '{v}'")
        return v


class AssignmentRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    conditions: List[AssignmentCondition] = Field(default_factory=list)
    assignment_type: str = Field("user", pattern="^(user|round_robin)$")
    assigned_user_id: Optional[UUID] = None
    priority: int = 0
    is_active: bool = True


class AssignmentRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    conditions: Optional[List[AssignmentCondition]] = None
    assignment_type: Optional[str] = Field(None, pattern="^(user|round_robin)$")
    assigned_user_id: Optional[UUID] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class AssignmentRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    conditions: List[Dict[str, Any]]
    assignment_type: str
    assigned_user_id: Optional[UUID]
    priority: int
    is_active: bool
    created_at: datetime
