"""Schemas for contacts and activities"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

ACTIVITY_TYPE_PATTERN = "^(call|meeting|task|email_sent|email_opened|email_clicked|note)$"


class ContactCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    lead_id: Optional[UUID] = None


class ContactUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: Optional[str]
    full_name: str
    email: Optional[str]
    phone: Optional[str]
    lead_id: Optional[UUID]
    created_by: Optional[UUID]
    created_at: datetime
    updated_at: datetime


class ActivityCreate(BaseModel):
    type: str = Field("task", pattern=ACTIVITY_TYPE_PATTERN)
    subject: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: str = Field("medium", pattern="^(low|medium|high)$")
    status: str = Field("pending", pattern="^(pending|completed|cancelled)$")
    related_type: Optional[str] = Field(None, pattern="^(lead|deal|contact)$")
    related_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None


class ActivityUpdate(BaseModel):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high)$")
    status: Optional[str] = Field(None, pattern="^(pending|completed|cancelled)$")
    assigned_to: Optional[UUID] = None


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    subject: str
    description: Optional[str]
    due_date: Optional[datetime]
    priority: str
    status: str
    related_type: Optional[str]
    related_id: Optional[UUID]
    assigned_to: Optional[UUID]
    created_by: Optional[UUID]
    created_at: datetime
