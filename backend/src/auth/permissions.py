"""Permission catalog, default roles and per-user permission lookup.

Permission names follow ``{module}.{resource}.{action}``:

    core.users.viewAny    crm.leads.update    erp.invoices.issue

Every tenant gets the same catalog and grants subsets of it through its own
roles. A user's effective permission set is the union over their roles and
is cached in Redis per user; role and assignment changes must call
invalidate_user_permissions() (or invalidate_role_permissions()).
"""

import logging
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import settings
from database import SKIP_TENANT_SCOPE
from infrastructure.cache import cache_delete, cache_get_json, cache_set_json
from models.role import Permission, Role, UserRoleAssignment, role_permission
from models.tenant import Tenant
from models.user import User

logger = logging.getLogger(__name__)

STANDARD_ACTIONS = ("viewAny", "view", "create", "update", "delete", "restore")

RESOURCES = (
    "core.users",
    "core.roles",
    "core.tenants",
    "core.audit_logs",
    "crm.leads",
    "crm.contacts",
    "crm.deals",
    "crm.pipelines",
    "crm.workflows",
    "erp.products",
    "erp.invoices",
    "erp.payments",
    "erp.webhooks",
    "hr.employees",
    "hr.attendance",
    "website.sites",
    "website.pages",
)

EXTRA_PERMISSIONS = (
    "erp.invoices.issue",
    "hr.attendance.sync",
)

PLATFORM_PERMISSION = "platform.manage"

PERMISSION_CATALOG: List[str] = (
    [f"{resource}.{action}" for resource in RESOURCES for action in STANDARD_ACTIONS]
    + list(EXTRA_PERMISSIONS)
    + [PLATFORM_PERMISSION]
)

# Everything a tenant can grant; platform.manage is never part of a tenant role
TENANT_PERMISSIONS: List[str] = [p for p in PERMISSION_CATALOG if p != PLATFORM_PERMISSION]

SUPER_ADMIN_ROLE = "super_admin"


def _resource_permissions(resources: Iterable[str], actions: Iterable[str] = STANDARD_ACTIONS) -> List[str]:
    actions = list(actions)
    return [f"{resource}.{action}" for resource in resources for action in actions]


READ_ACTIONS = ("viewAny", "view")

DEFAULT_ROLES: Dict[str, Dict] = {
    SUPER_ADMIN_ROLE: {
        "name": "Super Admin",
        "description": "Full access to every module of the tenant",
        "permissions": TENANT_PERMISSIONS,
    },
    "manager": {
        "name": "Manager",
        "description": "Runs sales and operations, read access to finance and HR",
        "permissions": (
            _resource_permissions(
                ["crm.leads", "crm.contacts", "crm.deals", "crm.pipelines", "crm.workflows",
                 "website.sites", "website.pages"]
            )
            + _resource_permissions(
                ["core.users", "core.roles", "core.audit_logs", "erp.products", "erp.invoices",
                 "erp.payments", "hr.employees", "hr.attendance"],
                READ_ACTIONS,
            )
        ),
    },
    "sales": {
        "name": "Sales",
        "description": "Works leads, contacts and deals",
        "permissions": (
            _resource_permissions(["crm.leads", "crm.contacts", "crm.deals"], ("viewAny", "view", "create", "update"))
            + _resource_permissions(["crm.pipelines", "erp.products"], READ_ACTIONS)
        ),
    },
    "accountant": {
        "name": "Accountant",
        "description": "Invoices, payments and the product catalog",
        "permissions": (
            _resource_permissions(["erp.invoices", "erp.payments", "erp.products"])
            + ["erp.invoices.issue"]
            + _resource_permissions(["crm.contacts"], READ_ACTIONS)
        ),
    },
    "hr": {
        "name": "HR",
        "description": "Employees and attendance",
        "permissions": (
            _resource_permissions(["hr.employees", "hr.attendance"])
            + ["hr.attendance.sync"]
            + _resource_permissions(["core.users"], READ_ACTIONS)
        ),
    },
    "viewer": {
        "name": "Viewer",
        "description": "Read-only access",
        "permissions": _resource_permissions(
            [r for r in RESOURCES if r not in ("core.tenants", "core.audit_logs", "erp.webhooks")],
            READ_ACTIONS,
        ),
    },
}


def _cache_key(user_id: UUID) -> str:
    return f"permissions:user:{user_id}"


def sync_permission_catalog(db: Session) -> Dict[str, Permission]:
    """Ensure every catalog permission exists; return them keyed by name."""
    existing = {
        p.name: p
        for p in db.execute(select(Permission)).scalars().all()
    }
    for name in PERMISSION_CATALOG:
        if name not in existing:
            permission = Permission(name=name, module=name.split(".", 1)[0])
            db.add(permission)
            existing[name] = permission
    db.flush()
    return existing


def seed_default_roles(db: Session, tenant: Tenant) -> Dict[str, Role]:
    """Create the system roles of a tenant (idempotent).

    Returns:
        Roles keyed by slug
    """
    catalog = sync_permission_catalog(db)
    roles = {
        role.slug: role
        for role in db.execute(
            select(Role)
            .where(Role.tenant_id == tenant.id)
            .execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalars().all()
    }

    for slug, definition in DEFAULT_ROLES.items():
        if slug in roles:
            continue
        role = Role(
            tenant_id=tenant.id,
            name=definition["name"],
            slug=slug,
            description=definition["description"],
            is_system=True,
        )
        role.permissions = [catalog[name] for name in sorted(set(definition["permissions"]))]
        db.add(role)
        roles[slug] = role

    db.flush()
    return roles


def load_user_permissions(db: Session, user_id: UUID) -> Set[str]:
    """Read a user's permission names straight from the database."""
    stmt = (
        select(Permission.name)
        .join(role_permission, role_permission.c.permission_id == Permission.id)
        .join(UserRoleAssignment, UserRoleAssignment.role_id == role_permission.c.role_id)
        .where(UserRoleAssignment.user_id == user_id)
        .distinct()
        .execution_options(**{SKIP_TENANT_SCOPE: True})
    )
    return set(db.execute(stmt).scalars().all())


def get_user_permissions(db: Session, user: User) -> Set[str]:
    """Effective permission set of a user.

    Platform super admins hold the whole catalog. Tenant users get the union
    of their roles' permissions, served from Redis when available.
    """
    if user.is_super_admin:
        return set(PERMISSION_CATALOG)

    cached = cache_get_json(_cache_key(user.id))
    if cached is not None:
        return set(cached)

    permissions = load_user_permissions(db, user.id)
    cache_set_json(_cache_key(user.id), sorted(permissions), settings.PERMISSION_CACHE_TTL)
    return permissions


def user_has_permission(db: Session, user: User, permission: str) -> bool:
    return permission in get_user_permissions(db, user)


def is_platform_user(db: Session, user: Optional[User]) -> bool:
    if user is None:
        return False
    return user.is_super_admin or user_has_permission(db, user, PLATFORM_PERMISSION)


def invalidate_user_permissions(*user_ids: UUID) -> None:
    cache_delete(*(_cache_key(user_id) for user_id in user_ids))


def invalidate_role_permissions(db: Session, role: Role) -> None:
    """Drop the cached permission sets of every user holding ``role``."""
    user_ids = db.execute(
        select(UserRoleAssignment.user_id)
        .where(UserRoleAssignment.role_id == role.id)
        .execution_options(**{SKIP_TENANT_SCOPE: True})
    ).scalars().all()
    if user_ids:
        invalidate_user_permissions(*user_ids)


def assign_role(db: Session, user: User, role: Role) -> bool:
    """Grant ``role`` to ``user``. Returns False if it was already granted.

    Raises:
        ValueError: If user and role belong to different tenants
    """
    if user.tenant_id != role.tenant_id:
        raise ValueError("Role and user belong to different tenants")

    existing = db.execute(
        select(UserRoleAssignment).where(
            UserRoleAssignment.user_id == user.id,
            UserRoleAssignment.role_id == role.id,
        )
    ).scalar_one_or_none()
    if existing:
        return False

    db.add(UserRoleAssignment(tenant_id=role.tenant_id, user_id=user.id, role_id=role.id))
    db.flush()
    db.expire(user, ["roles"])
    invalidate_user_permissions(user.id)
    return True


def revoke_role(db: Session, user: User, role: Role) -> bool:
    """Remove ``role`` from ``user``. Returns False if it was not granted."""
    assignment = db.execute(
        select(UserRoleAssignment).where(
            UserRoleAssignment.user_id == user.id,
            UserRoleAssignment.role_id == role.id,
        )
    ).scalar_one_or_none()
    if not assignment:
        return False

    db.delete(assignment)
    db.flush()
    db.expire(user, ["roles"])
    invalidate_user_permissions(user.id)
    return True
