"""Pydantic schemas for authentication endpoints"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for user login.

    Attributes:
        tenant_slug: Tenant slug; omit to log in as a platform operator
        email: User's email address
        password: User's password (plain text, will be verified against hash)
    """
    tenant_slug: Optional[str] = Field(None, min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Response schema for successful login.

    Attributes:
        access_token: JWT access token
        token_type: Token type (always "bearer")
        expires_in: Token expiry in seconds
    """
    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600


class UserResponse(BaseModel):
    """User information response (excludes password_hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: Optional[UUID]
    email: str
    name: str
    status: str
    is_super_admin: bool
    last_login_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint.

    Attributes:
        user: Current user information
        roles: Role slugs held in the user's tenant
        permissions: Effective permission names
    """
    user: UserResponse
    roles: List[str]
    permissions: List[str]
