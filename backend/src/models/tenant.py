"""Tenant model - Root entity for multi-tenant isolation"""

import copy
import re
from typing import Any

from sqlalchemy import Column, Text, Uuid, CheckConstraint
from sqlalchemy.orm import validates, relationship
from sqlalchemy.orm.attributes import flag_modified

from .base import Base, PortableJSONB, UUIDPrimaryKeyMixin, TimestampMixin

TENANT_STATUSES = ("active", "suspended", "inactive")


class Tenant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    Tenant model - Root entity for the multi-tenant system.

    Each tenant represents a distinct customer organization with isolated data.
    Every business table references tenant.id via a tenant_id foreign key.
    A tenant can be addressed by slug, subdomain or custom domain.
    """
    __tablename__ = "tenant"

    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    subdomain = Column(Text, nullable=True, unique=True)
    domain = Column(Text, nullable=True, unique=True)
    status = Column(Text, nullable=False, default="active")
    owner_user_id = Column(Uuid, nullable=True)
    settings = Column(PortableJSONB, nullable=False, default=dict)

    users = relationship("User", back_populates="tenant")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'inactive')",
            name="ck_tenant_status",
        ),
    )

    @validates('slug')
    def validate_slug(self, key, value):
        """
        Ensure slug is URL-friendly.

        Pattern: ^[a-z0-9-]+$
        Valid: acme, acme-1, test-tenant-123
        Invalid: Acme_Corp, acme corp, acme.corp

        Raises:
            ValueError: If slug doesn't match pattern or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Slug must be between 2 and 100 characters")
        return value

    @validates('name')
    def validate_name(self, key, value):
        if not value or not value.strip():
            raise ValueError("Tenant name cannot be empty")
        return value.strip()

    @validates('status')
    def validate_status(self, key, value):
        if value not in TENANT_STATUSES:
            raise ValueError(f"Invalid tenant status: {value}")
        return value

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Read a dotted settings path, e.g. ``zkbiotime.last_sync_at``."""
        node: Any = self.settings or {}
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set_setting(self, key: str, value: Any) -> None:
        """Write a dotted settings path, creating intermediate objects."""
        settings = copy.deepcopy(self.settings or {})
        node = settings
        parts = key.split(".")
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self.settings = settings
        flag_modified(self, "settings")

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "subdomain": self.subdomain,
            "domain": self.domain,
            "status": self.status,
            "owner_user_id": str(self.owner_user_id) if self.owner_user_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', status='{self.status}')>"
