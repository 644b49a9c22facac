"""Pydantic schemas for audit log endpoints.

Audit logs are read-only (no create/update/delete operations).
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogResponse(BaseModel):
    """Response schema for audit log entries."""
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: UUID = Field(..., description="Audit log entry unique identifier")
    tenant_id: UUID = Field(..., description="Tenant ID")
    actor_id: Optional[UUID] = Field(None, description="User who performed the action (None for anonymous)")
    action: str = Field(..., description="Event action (LOGIN_SUCCESS, created, INVOICE_ISSUED, ...)")
    model_type: Optional[str] = Field(None, description="Table of the affected record (lead, deal, ...)")
    model_id: Optional[UUID] = Field(None, description="ID of the affected record")
    model_name: Optional[str] = Field(None, description="Display name of the affected record")
    old_values: Optional[dict] = Field(None, description="Masked values before the change")
    new_values: Optional[dict] = Field(None, description="Masked values after the change")
    metadata: Optional[dict] = Field(None, validation_alias="metadata_json", description="Additional context")
    url: Optional[str] = None
    method: Optional[str] = None
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client User-Agent header")
    request_id: Optional[str] = None
    created_at: datetime = Field(..., description="Event timestamp")
