"""Schemas for the notification inbox"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: Optional[str]
    entity_id: Optional[UUID]
    type: str
    title: str
    message: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    read_at: Optional[datetime]
    is_read: bool
    created_at: datetime


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
