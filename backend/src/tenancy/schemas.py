"""Pydantic schemas for tenant management endpoints"""

import re
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

SLUG_RE = re.compile(r"^[a-z0-9-]+$")


class TenantOwnerInput(BaseModel):
    """Tenant owner: either an existing user (user_id or email) or a new one
    (name + email + password)."""
    user_id: Optional[UUID] = None
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    password: Optional[str] = Field(None, min_length=12)


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Acme GmbH"])
    slug: Optional[str] = Field(None, min_length=2, max_length=100, description="Generated from name when omitted")
    subdomain: Optional[str] = Field(None, min_length=1, max_length=63)
    domain: Optional[str] = Field(None, min_length=3, max_length=253)
    status: Optional[str] = Field(None, pattern="^(active|suspended|inactive)$")
    settings: Dict[str, Any] = Field(default_factory=dict)
    owner: Optional[TenantOwnerInput] = None

    @field_validator("slug", "subdomain")
    @classmethod
    def validate_slug_pattern(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not SLUG_RE.match(v):
            raise ValueError("Must contain only lowercase letters, numbers, and hyphens")
        return v

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    subdomain: Optional[str] = Field(None, min_length=1, max_length=63)
    domain: Optional[str] = Field(None, min_length=3, max_length=253)
    settings: Optional[Dict[str, Any]] = Field(None, description="Deep-merged into existing settings")

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not SLUG_RE.match(v):
            raise ValueError("Must contain only lowercase letters, numbers, and hyphens")
        return v


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    subdomain: Optional[str]
    domain: Optional[str]
    status: str
    owner_user_id: Optional[UUID]
    created_at: datetime
    updated_at: datetime


class TenantDetailResponse(TenantResponse):
    settings: Dict[str, Any] = Field(default_factory=dict)
    usage_stats: Dict[str, int] = Field(default_factory=dict)


class TenantSettingUpdate(BaseModel):
    """Write one dotted settings path, e.g. {"key": "zkbiotime.last_sync_at", "value": "..."}"""
    key: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$")
    value: Any = None
