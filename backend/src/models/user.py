"""User SQLAlchemy model"""

import re

from sqlalchemy import Boolean, Column, DateTime, Text, ForeignKey, CheckConstraint, UniqueConstraint, Uuid
from sqlalchemy.orm import object_session, relationship, validates

from .base import Base, UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """User model representing authenticated users.

    Tenant users belong to exactly one tenant and get their permissions from
    the roles assigned to them inside that tenant. Platform operators
    (``is_super_admin``) have no tenant. Passwords are hashed using Argon2id.
    """
    __tablename__ = "user"

    # Overrides the mixin column: platform operators have no tenant
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=True, index=True)
    email = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="ACTIVE")
    is_super_admin = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    tenant = relationship("Tenant", back_populates="users")
    roles = relationship(
        "Role",
        secondary="user_role",
        viewonly=True,
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'DISABLED')",
            name='ck_user_status'
        ),
        UniqueConstraint('tenant_id', 'email', name='uq_user_tenant_email'),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    @property
    def role_slugs(self) -> list[str]:
        return sorted(role.slug for role in self.roles)

    def has_role(self, slug: str) -> bool:
        return any(role.slug == slug for role in self.roles)

    def has_permission(self, name: str) -> bool:
        """True when any of the user's roles grants ``name``."""
        from auth.permissions import user_has_permission

        return user_has_permission(object_session(self), self, name)

    def to_dict(self):
        """Convert user to dictionary representation (excludes password_hash)"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "email": self.email,
            "name": self.name,
            "status": self.status,
            "roles": self.role_slugs,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
