"""Schemas for website sites and pages"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

SLUG_REGEX = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class SiteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=2, max_length=100, pattern=SLUG_REGEX)
    domain: Optional[str] = Field(None, max_length=255)
    status: str = Field("draft", pattern="^(draft|published|archived)$")
    settings: Dict[str, Any] = Field(default_factory=dict)


class SiteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=2, max_length=100, pattern=SLUG_REGEX)
    domain: Optional[str] = Field(None, max_length=255)
    status: Optional[str] = Field(None, pattern="^(draft|published|archived)$")
    settings: Optional[Dict[str, Any]] = None


class SiteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    domain: Optional[str]
    status: str
    settings: Dict[str, Any]
    created_at: datetime
    updated_at: datetime


class PageCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_REGEX)
    page_type: Optional[str] = Field(None, max_length=50)
    content: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    sort_order: int = 0
    publish: bool = False


class PageUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=100, pattern=SLUG_REGEX)
    page_type: Optional[str] = Field(None, max_length=50)
    content: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    sort_order: Optional[int] = None
    publish: bool = False


class PageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    site_id: UUID
    title: str
    slug: str
    page_type: Optional[str]
    status: str
    content: Optional[Dict[str, Any]]
    published_content: Optional[Dict[str, Any]]
    meta: Optional[Dict[str, Any]]
    sort_order: int
    created_at: datetime
    updated_at: datetime


class PublicPageResponse(BaseModel):
    """What anonymous visitors see: the published snapshot only"""
    model_config = ConfigDict(from_attributes=True)

    title: str
    slug: str
    page_type: Optional[str]
    content: Optional[Dict[str, Any]] = Field(None, validation_alias="published_content")
    meta: Optional[Dict[str, Any]]
