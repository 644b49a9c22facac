"""Role, Permission and their association tables"""

import re

from sqlalchemy import Boolean, Column, ForeignKey, Table, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin

PERMISSION_NAME_PATTERN = re.compile(r'^[a-z_]+\.[a-z_]+(\.[a-zA-Z_]+)?$')


role_permission = Table(
    "role_permission",
    Base.metadata,
    Column("role_id", Uuid, ForeignKey("role.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid, ForeignKey("permission.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(UUIDPrimaryKeyMixin, Base):
    """Global permission catalog entry named ``{module}.{resource}.{action}``.

    Permissions are not tenant-scoped: every tenant shares the catalog and
    grants subsets of it through its own roles.
    """
    __tablename__ = "permission"

    name = Column(Text, nullable=False, unique=True)
    module = Column(Text, nullable=False)
    description = Column(Text, nullable=True)

    @validates('name')
    def validate_name(self, key, value):
        if not PERMISSION_NAME_PATTERN.match(value):
            raise ValueError(f"Invalid permission name: {value}")
        return value


class Role(UUIDPrimaryKeyMixin, TimestampMixin, TenantScopedMixin, Base):
    """Tenant role granting a set of permissions.

    System roles are seeded for every tenant and cannot be removed.
    """
    __tablename__ = "role"

    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, nullable=False, default=False)

    permissions = relationship("Permission", secondary=role_permission, lazy="selectin")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'slug', name='uq_role_tenant_slug'),
    )

    @validates('slug')
    def validate_slug(self, key, value):
        if not re.match(r'^[a-z0-9_]+$', value):
            raise ValueError("Role slug must contain only lowercase letters, numbers, and underscores")
        return value

    @property
    def permission_names(self) -> list[str]:
        return sorted(permission.name for permission in self.permissions)


class UserRoleAssignment(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Pivot between users and roles, carrying the tenant of the grant."""
    __tablename__ = "user_role"

    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Uuid, ForeignKey("role.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
