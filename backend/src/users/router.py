"""User management endpoints.

Users are managed inside the resolved tenant. Access is decided by
UserPolicy (``core.users.*``): anyone may read and edit their own profile,
nobody may delete themselves.

Email uniqueness is enforced per tenant (UNIQUE constraint).
All mutations are written to the audit trail.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.service import audit_service
from auth.dependencies import CurrentUser
from auth.password import hash_password
from auth.password_policy import PasswordValidationError, check_password_strength
from auth.permissions import assign_role, invalidate_user_permissions
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from exceptions import BusinessRuleError, ConflictError, DomainError
from models.role import Role
from models.tenant import Tenant
from models.user import User
from policies import UserPolicy, authorize
from schemas.common import Page
from .schemas import UserCreate, UserResponse, UserUpdate


router = APIRouter(prefix="/users", tags=["User Management"])

user_policy = UserPolicy()


def _check_password(password: str, email: str, name: str, tenant: Tenant) -> None:
    try:
        check_password_strength(password, user_context=[email, name, tenant.name])
    except PasswordValidationError as e:
        raise DomainError(e.message, {"password": e.errors})


def _email_taken(db: Session, email: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(User.id).where(User.email == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return db.execute(stmt).first() is not None


def _roles_by_slug(db: Session, slugs: List[str]) -> List[Role]:
    if not slugs:
        return []
    roles = db.execute(select(Role).where(Role.slug.in_(slugs))).scalars().all()
    missing = sorted(set(slugs) - {role.slug for role in roles})
    if missing:
        raise BusinessRuleError("Unknown role.", {"roles": [f"Role '{slug}' does not exist." for slug in missing]})
    return list(roles)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
    description="Creates a new user in the current tenant. Email must be unique per tenant."
)
def create_user(
    request: Request,
    data: UserCreate,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Create a new user.

    Requirements:
    - ``core.users.create``
    - Email must be unique per tenant
    - Password must meet strength requirements (NIST SP 800-63B)
    - Audit event ``created`` logged

    Raises:
        400: Password does not meet strength requirements
        409: Email already exists in tenant
        422: Unknown role slug
    """
    authorize(db, user_policy, "create", current_user)

    _check_password(data.password, data.email, data.name, tenant)

    if _email_taken(db, data.email):
        raise ConflictError(f"User with email {data.email} already exists in tenant")

    roles = _roles_by_slug(db, data.roles)

    new_user = User(
        tenant_id=tenant.id,
        email=data.email.lower(),
        name=data.name,
        password_hash=hash_password(data.password),
        status="ACTIVE",
    )

    try:
        db.add(new_user)
        db.flush()

        for role in roles:
            assign_role(db, new_user, role)

        audit_service.log(db, "created", model=new_user, new_values=new_user.to_dict(),
                          user=current_user, request=request)
        db.commit()
        db.refresh(new_user)

    except IntegrityError:
        db.rollback()
        raise ConflictError("User creation failed due to constraint violation")

    return UserResponse.model_validate(new_user)


@router.get(
    "",
    response_model=Page[UserResponse],
    summary="List users in tenant",
)
def list_users(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(ACTIVE|DISABLED)$"),
    search: Optional[str] = Query(None, description="Match name or email"),
) -> Page[UserResponse]:
    authorize(db, user_policy, "view_any", current_user)

    stmt = select(User)
    if status_filter:
        stmt = stmt.where(User.status == status_filter)
    if search:
        term = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(term), User.email.ilike(term)))

    users, total = pagination.apply(db, stmt.order_by(User.created_at.desc()))
    return Page[UserResponse](
        items=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/{user_id}", response_model=UserResponse, summary="Get user by ID")
def get_user(
    user_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Get single user by ID.

    Raises:
        404: User not found or in a different tenant
    """
    user = get_or_404(db, User, user_id)
    authorize(db, user_policy, "view", current_user, user)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse, summary="Update user")
def update_user(
    user_id: UUID,
    request: Request,
    data: UserUpdate,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update user details.

    Users may update their own name, email and password; changing another
    user (or anyone's status) needs ``core.users.update``.

    Raises:
        400: New password too weak
        403: Not allowed
        404: User not found or in a different tenant
        409: Email already used in tenant
    """
    user = get_or_404(db, User, user_id)
    authorize(db, user_policy, "update", current_user, user)

    if data.status is not None and data.status != user.status:
        if user.id == current_user.id:
            raise BusinessRuleError("You cannot change your own status.")

    old_values = user.to_dict()
    changes = data.model_dump(exclude_unset=True)

    if "email" in changes and changes["email"] and changes["email"].lower() != user.email:
        if _email_taken(db, changes["email"], exclude_id=user.id):
            raise ConflictError(f"User with email {changes['email']} already exists in tenant")
        user.email = changes["email"]

    if changes.get("name"):
        user.name = changes["name"]

    if changes.get("status"):
        user.status = changes["status"]

    if changes.get("password"):
        _check_password(changes["password"], user.email, user.name, tenant)
        user.password_hash = hash_password(changes["password"])

    try:
        db.flush()
        audit_service.log(db, "updated", model=user, old_values=old_values, new_values=user.to_dict(),
                          user=current_user, request=request)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise ConflictError("User update failed due to constraint violation")

    if user.status == "DISABLED":
        invalidate_user_permissions(user.id)

    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=UserResponse, summary="Disable user")
def delete_user(
    user_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Disable a user. Accounts are never hard-deleted; the audit trail
    keeps referencing them.

    Raises:
        403: Not allowed, or the target is the current user
        404: User not found or in a different tenant
    """
    user = get_or_404(db, User, user_id)
    authorize(db, user_policy, "delete", current_user, user)

    if tenant.owner_user_id == user.id:
        raise BusinessRuleError("The tenant owner cannot be disabled.")

    old_status = user.status
    user.status = "DISABLED"
    db.flush()
    audit_service.log(db, "deleted", model=user, old_values={"status": old_status},
                      new_values={"status": user.status}, user=current_user, request=request)
    db.commit()
    db.refresh(user)
    invalidate_user_permissions(user.id)

    return UserResponse.model_validate(user)
