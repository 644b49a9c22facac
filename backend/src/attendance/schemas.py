"""Schemas for employees, attendance and sync runs"""

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmployeeCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    biotime_emp_code: Optional[str] = Field(None, max_length=50)
    hire_date: Optional[date] = None
    user_id: Optional[UUID] = None
    status: str = Field("active", pattern="^(active|inactive|terminated)$")


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    biotime_emp_code: Optional[str] = Field(None, max_length=50)
    hire_date: Optional[date] = None
    user_id: Optional[UUID] = None
    status: Optional[str] = Field(None, pattern="^(active|inactive|terminated)$")
    is_active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    full_name: str
    email: Optional[str]
    phone: Optional[str]
    biotime_emp_code: Optional[str]
    hire_date: Optional[date]
    user_id: Optional[UUID]
    status: str
    is_active: bool
    created_at: datetime


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    date: date
    check_in: Optional[datetime]
    check_out: Optional[datetime]
    status: str
    notes: Optional[str]


class AttendanceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    source: str
    external_id: str
    punch_time: datetime
    punch_type: Optional[str]
    raw: Optional[Dict[str, Any]]


class AttendanceSyncRequest(BaseModel):
    date_from: Optional[datetime] = Field(None, alias="from")
    date_to: Optional[datetime] = Field(None, alias="to")
    page_size: Optional[int] = Field(None, ge=1, le=1000)

    model_config = ConfigDict(populate_by_name=True)


class AttendanceSyncResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: UUID
    date_from: str = Field(..., alias="from")
    date_to: str = Field(..., alias="to")
    processed: int
    created: int
    skipped: int
    missing_employees: int
