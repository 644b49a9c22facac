"""Schemas for webhook subscriptions and deliveries"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, computed_field, field_validator

WEBHOOK_MODULES = ("crm", "erp", "hr")


def _normalize_event_types(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    cleaned = []
    for event_type in value:
        event_type = event_type.strip()
        if event_type != "*" and "." not in event_type:
            raise ValueError(f"Invalid event type '{event_type}'. Use '<entity>.<verb>' or '*'")
        if event_type not in cleaned:
            cleaned.append(event_type)
    return cleaned


class WebhookCreate(BaseModel):
    url: HttpUrl
    secret: Optional[str] = Field(None, min_length=8, max_length=255)
    module: str = Field(..., pattern="^(crm|erp|hr)$")
    event_types: List[str] = Field(..., min_length=1, examples=[["invoice.issued", "payment.applied"]])
    is_active: bool = True

    @field_validator("event_types")
    @classmethod
    def validate_event_types(cls, v: List[str]) -> List[str]:
        return _normalize_event_types(v)


class WebhookUpdate(BaseModel):
    url: Optional[HttpUrl] = None
    secret: Optional[str] = Field(None, min_length=8, max_length=255)
    module: Optional[str] = Field(None, pattern="^(crm|erp|hr)$")
    event_types: Optional[List[str]] = Field(None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("event_types")
    @classmethod
    def validate_event_types(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _normalize_event_types(v)


class WebhookResponse(BaseModel):
    """Webhook subscription. The secret is never returned, only whether one is set."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str
    module: str
    event_types: List[str]
    is_active: bool
    last_delivery_status: Optional[str] = None
    last_delivery_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    secret: Optional[str] = Field(None, exclude=True)

    @computed_field
    @property
    def has_secret(self) -> bool:
        return bool(self.secret)


class WebhookDeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    webhook_id: UUID
    event_type: str
    payload: Dict[str, Any]
    status: str
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int
    delivered_at: Optional[datetime] = None
    created_at: datetime
