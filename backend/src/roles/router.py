"""Role and permission management endpoints.

Roles live inside the current tenant; the permission catalog is global and
seeded when a tenant is provisioned. System roles (seeded for every tenant)
can be inspected but never modified or deleted.

Users below super admin can only put permissions they hold themselves
into a role, so ``core.roles.*`` alone never widens anyone's access.
"""

from typing import Iterable, List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser
from auth.permissions import PLATFORM_PERMISSION, SUPER_ADMIN_ROLE, get_user_permissions
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from exceptions import AuthorizationError, BusinessRuleError
from models.role import Permission, Role
from models.user import User
from policies import RolePolicy, UserPolicy, authorize
from schemas.common import MessageResponse, Page
from . import service
from .schemas import (
    PermissionResponse,
    RoleCreate,
    RolePermissionsSync,
    RoleResponse,
    RoleUpdate,
    UserRoleChange,
    UserRolesResponse,
)


router = APIRouter(tags=["Roles & Permissions"])

role_policy = RolePolicy()
user_policy = UserPolicy()


def ensure_grantable(db: Session, user: User, names: Iterable[str]) -> None:
    """Raise 403 when ``user`` tries to grant permissions they do not hold.

    Tenant super admins, the tenant owner and platform operators may grant
    any tenant permission.
    """
    if role_policy.is_privileged(db, user):
        return
    missing = sorted(set(names) - get_user_permissions(db, user))
    if missing:
        raise AuthorizationError(
            "You cannot grant permissions you do not hold.",
            {"permissions": [f"Permission '{name}' is not held by you." for name in missing]},
        )


@router.get("/permissions", response_model=List[PermissionResponse])
def list_permissions(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> List[PermissionResponse]:
    """Permission catalog assignable to tenant roles."""
    authorize(db, role_policy, "view_any", current_user)
    permissions = db.execute(
        select(Permission).where(Permission.name != PLATFORM_PERMISSION).order_by(Permission.name)
    ).scalars().all()
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.get("/roles", response_model=Page[RoleResponse])
def list_roles(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
) -> Page[RoleResponse]:
    authorize(db, role_policy, "view_any", current_user)
    roles, total = pagination.apply(db, select(Role).order_by(Role.is_system.desc(), Role.name))
    return Page[RoleResponse](
        items=[RoleResponse.model_validate(r) for r in roles],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    data: RoleCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> RoleResponse:
    """Create a custom role.

    Raises:
        403: Missing ``core.roles.create`` or a permission the caller lacks
        409: Slug already used in the tenant
        422: Unknown or platform-only permission
    """
    authorize(db, role_policy, "create", current_user)
    ensure_grantable(db, current_user, data.permissions)
    role = service.create_role(db, tenant.id, data.model_dump(), current_user, request)
    db.commit()
    db.refresh(role)
    return RoleResponse.model_validate(role)


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(
    role_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> RoleResponse:
    role = get_or_404(db, Role, role_id)
    authorize(db, role_policy, "view", current_user, role)
    return RoleResponse.model_validate(role)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: UUID,
    data: RoleUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> RoleResponse:
    role = get_or_404(db, Role, role_id)
    authorize(db, role_policy, "update", current_user, role)
    service.update_role(db, role, data.model_dump(exclude_unset=True), current_user, request)
    db.commit()
    db.refresh(role)
    return RoleResponse.model_validate(role)


@router.delete("/roles/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete a custom role.

    Raises:
        403: System role, or missing ``core.roles.delete``
    """
    role = get_or_404(db, Role, role_id)
    authorize(db, role_policy, "delete", current_user, role)
    service.delete_role(db, role, current_user, request)
    db.commit()
    return MessageResponse(message="Role deleted successfully.")


@router.put("/roles/{role_id}/permissions", response_model=RoleResponse)
def sync_role_permissions(
    role_id: UUID,
    data: RolePermissionsSync,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> RoleResponse:
    """Replace the permission set of a custom role.

    Raises:
        403: System role, missing ``core.roles.update``, or a permission the caller lacks
        422: Unknown or platform-only permission
    """
    role = get_or_404(db, Role, role_id)
    authorize(db, role_policy, "sync_permissions", current_user, role)
    ensure_grantable(db, current_user, data.permissions)
    service.sync_role_permissions(db, role, data.permissions, current_user, request)
    db.commit()
    db.refresh(role)
    return RoleResponse.model_validate(role)


def _change_user_role(
    db: Session,
    request: Request,
    tenant,
    current_user: User,
    user_id: UUID,
    slug: str,
    grant: bool,
) -> UserRolesResponse:
    user = get_or_404(db, User, user_id)
    authorize(db, user_policy, "update", current_user, user)
    if user.id == current_user.id and not current_user.is_super_admin:
        raise BusinessRuleError("You cannot change your own roles.")

    role = service.get_role_by_slug(db, slug)
    if grant:
        ensure_grantable(db, current_user, role.permission_names)
    if not grant and role.slug == SUPER_ADMIN_ROLE and tenant.owner_user_id == user.id:
        raise BusinessRuleError("The tenant owner must keep the super_admin role.")

    service.change_user_role(db, user, role, grant, current_user, request)
    db.commit()
    db.refresh(user)
    return UserRolesResponse(user_id=user.id, roles=user.role_slugs)


@router.post("/users/{user_id}/roles", response_model=UserRolesResponse)
def assign_user_role(
    user_id: UUID,
    data: UserRoleChange,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserRolesResponse:
    return _change_user_role(db, request, tenant, current_user, user_id, data.role, grant=True)


@router.delete("/users/{user_id}/roles/{role_slug}", response_model=UserRolesResponse)
def revoke_user_role(
    user_id: UUID,
    role_slug: str,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserRolesResponse:
    return _change_user_role(db, request, tenant, current_user, user_id, role_slug, grant=False)
