"""Role management inside a tenant.

All functions expect a tenant-scoped session; role lookups therefore only
ever see the current tenant's roles.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service
from auth.permissions import (
    TENANT_PERMISSIONS,
    assign_role,
    invalidate_role_permissions,
    revoke_role,
    sync_permission_catalog,
)
from exceptions import BusinessRuleError, ConflictError, NotFoundError
from models.role import Role, UserRoleAssignment
from models.user import User

logger = logging.getLogger(__name__)


def resolve_permissions(db: Session, names: Iterable[str]) -> list:
    """Permission rows for ``names``; unknown or platform-only names are rejected.

    Raises:
        BusinessRuleError: With the offending names under ``permissions``
    """
    names = sorted(set(names))
    invalid = [name for name in names if name not in TENANT_PERMISSIONS]
    if invalid:
        raise BusinessRuleError(
            "Invalid permissions.",
            {"permissions": [f"Permission '{name}' cannot be granted." for name in invalid]},
        )
    catalog = sync_permission_catalog(db)
    return [catalog[name] for name in names]


def get_role_by_slug(db: Session, slug: str) -> Role:
    role = db.execute(select(Role).where(Role.slug == slug)).scalar_one_or_none()
    if role is None:
        raise NotFoundError(f"Role '{slug}' not found")
    return role


def create_role(db: Session, tenant_id, data: Dict[str, Any], actor: User,
                request: Optional[Request] = None) -> Role:
    if db.execute(select(Role.id).where(Role.slug == data["slug"])).first() is not None:
        raise ConflictError(f"Role '{data['slug']}' already exists")

    role = Role(
        tenant_id=tenant_id,
        name=data["name"],
        slug=data["slug"],
        description=data.get("description"),
        is_system=False,
    )
    role.permissions = resolve_permissions(db, data.get("permissions") or [])
    db.add(role)
    db.flush()

    audit_service.log(db, "created", model=role,
                      new_values={"name": role.name, "slug": role.slug, "permissions": role.permission_names},
                      user=actor, request=request)
    return role


def update_role(db: Session, role: Role, data: Dict[str, Any], actor: User,
                request: Optional[Request] = None) -> Role:
    old_values = {"name": role.name, "description": role.description}
    for key in ("name", "description"):
        if key in data:
            setattr(role, key, data[key])
    db.flush()
    audit_service.log(db, "updated", model=role, old_values=old_values,
                      new_values={"name": role.name, "description": role.description},
                      user=actor, request=request)
    return role


def delete_role(db: Session, role: Role, actor: User, request: Optional[Request] = None) -> None:
    """Delete a custom role; its holders lose the permissions immediately."""
    invalidate_role_permissions(db, role)
    assignments = db.execute(
        select(UserRoleAssignment).where(UserRoleAssignment.role_id == role.id)
    ).scalars().all()
    for assignment in assignments:
        db.delete(assignment)

    audit_service.log(db, "deleted", model=role, old_values={"name": role.name, "slug": role.slug},
                      user=actor, request=request)
    db.delete(role)
    db.flush()


def sync_role_permissions(db: Session, role: Role, names: List[str], actor: User,
                          request: Optional[Request] = None) -> Role:
    """Replace a role's permissions and drop its holders' cached sets."""
    before = role.permission_names
    role.permissions = resolve_permissions(db, names)
    db.flush()
    invalidate_role_permissions(db, role)

    audit_service.log(db, "updated", model=role, old_values={"permissions": before},
                      new_values={"permissions": role.permission_names}, user=actor, request=request)
    logger.info(f"Role {role.slug} now grants {len(role.permissions)} permissions")
    return role


def change_user_role(db: Session, user: User, role: Role, grant: bool, actor: User,
                     request: Optional[Request] = None) -> bool:
    """Grant or revoke ``role``; audited as USER_ROLE_CHANGED when something changed."""
    before = user.role_slugs
    changed = assign_role(db, user, role) if grant else revoke_role(db, user, role)
    if changed:
        audit_service.log(
            db,
            "USER_ROLE_CHANGED",
            model=user,
            old_values={"roles": before},
            new_values={"roles": user.role_slugs},
            metadata={"role": role.slug, "granted": grant},
            user=actor,
            request=request,
        )
    return changed
