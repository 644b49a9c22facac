"""Pydantic schemas for User management endpoints.

These schemas define the request/response contracts for user CRUD operations.
All schemas exclude password_hash for security (never return in API responses).
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Request schema for creating a new user (POST /users).

    Email must be unique per tenant. Password will be hashed before storage
    using Argon2id. ``roles`` lists role slugs of the current tenant.
    """
    email: EmailStr = Field(
        ...,
        description="User's email address (unique per tenant, case-insensitive)",
        examples=["sales@acme.io"]
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="User's display name",
        examples=["Jane Doe"]
    )
    password: str = Field(
        ...,
        min_length=12,
        description="Password (min 12 chars, must meet NIST SP 800-63B requirements)",
        examples=["MySecurePassphrase2024!"]
    )
    roles: List[str] = Field(
        default_factory=list,
        description="Role slugs to grant",
        examples=[["sales"]]
    )


class UserUpdate(BaseModel):
    """Request schema for updating an existing user (PATCH /users/{id}).

    All fields are optional. Setting ``status`` to DISABLED blocks login.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    status: Optional[str] = Field(None, pattern="^(ACTIVE|DISABLED)$")
    password: Optional[str] = Field(None, min_length=12)

    @field_validator('name', 'status')
    @classmethod
    def check_not_empty(cls, v):
        """Ensure fields are not empty strings if provided."""
        if v is not None and isinstance(v, str) and v.strip() == "":
            raise ValueError("Field cannot be empty string")
        return v


class UserResponse(BaseModel):
    """Response schema for user data.

    Returned by all user endpoints. Never includes password_hash for security.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="User's unique identifier")
    tenant_id: Optional[UUID] = Field(None, description="Tenant this user belongs to")
    email: str = Field(..., description="User's email address")
    name: str = Field(..., description="User's display name")
    status: str = Field(..., description="User status (ACTIVE|DISABLED)")
    roles: List[str] = Field(default_factory=list, validation_alias="role_slugs",
                             description="Role slugs held in the tenant")
    last_login_at: Optional[datetime] = Field(None, description="Last successful login timestamp")
    created_at: datetime = Field(..., description="User creation timestamp")
    updated_at: datetime = Field(..., description="Last modification timestamp")
