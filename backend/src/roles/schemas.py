"""Schemas for roles, permission sync and role assignment"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    module: str
    description: Optional[str] = None


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=2, max_length=60, pattern=r"^[a-z0-9_]+$")
    description: Optional[str] = Field(None, max_length=500)
    permissions: List[str] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class RolePermissionsSync(BaseModel):
    """Replace the role's permission set with ``permissions``."""
    permissions: List[str]


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    name: str
    slug: str
    description: Optional[str]
    is_system: bool
    permissions: List[str] = Field(default_factory=list, validation_alias="permission_names")
    created_at: datetime
    updated_at: datetime


class UserRoleChange(BaseModel):
    role: str = Field(..., description="Role slug")


class UserRolesResponse(BaseModel):
    user_id: UUID
    roles: List[str]
