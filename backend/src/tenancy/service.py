"""Tenant lifecycle management (platform operations).

Creating a tenant provisions everything a fresh tenant needs to work: the
system roles, the default number sequences and a default sales pipeline.
All functions run on an unscoped session and pass tenant ids explicitly.
"""

import logging
import re
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from audit.service import audit_service
from auth.password import hash_password
from auth.password_policy import PasswordValidationError, check_password_strength
from auth.permissions import SUPER_ADMIN_ROLE, assign_role, seed_default_roles
from database import SKIP_TENANT_SCOPE
from exceptions import BusinessRuleError, ConflictError, NotFoundError
from models.deal import Deal, Pipeline, PipelineStage
from models.invoice import SalesInvoice
from models.lead import Lead
from models.tenant import Tenant
from models.user import User
from numbering import create_default_sequences

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE_STAGES = (
    ("New", 10),
    ("Qualified", 25),
    ("Proposal", 50),
    ("Negotiation", 75),
)


def slugify(value: str) -> str:
    """Lower-case, hyphen-separated slug (at least two characters)."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    if len(slug) < 2:
        slug = f"tenant-{slug}" if slug else "tenant"
    return slug[:90]


def unique_slug(db: Session, name: str) -> str:
    """Slug for ``name`` that no tenant uses yet: acme, acme-1, acme-2, ..."""
    base = slugify(name)
    slug = base
    counter = 1
    while db.execute(select(Tenant.id).where(Tenant.slug == slug)).first() is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with update values taking precedence.

    Nested dictionaries are merged recursively. Lists and other values are replaced.

    Example:
        base = {"a": 1, "b": {"c": 2, "d": 3}}
        update = {"b": {"c": 99}}
        deep_merge(base, update)  # {"a": 1, "b": {"c": 99, "d": 3}}
    """
    result = base.copy()

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def create_default_pipeline(db: Session, tenant_id: UUID) -> Pipeline:
    existing = db.execute(
        select(Pipeline)
        .where(Pipeline.tenant_id == tenant_id, Pipeline.is_default.is_(True))
        .execution_options(**{SKIP_TENANT_SCOPE: True})
    ).scalars().first()
    if existing:
        return existing

    pipeline = Pipeline(tenant_id=tenant_id, name="Sales Pipeline", is_default=True)
    pipeline.stages = [
        PipelineStage(tenant_id=tenant_id, name=name, position=position, probability=probability)
        for position, (name, probability) in enumerate(DEFAULT_PIPELINE_STAGES)
    ]
    db.add(pipeline)
    db.flush()
    return pipeline


def create_tenant(
    db: Session,
    name: str,
    slug: Optional[str] = None,
    subdomain: Optional[str] = None,
    domain: Optional[str] = None,
    status: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    owner: Optional[Dict[str, Any]] = None,
    actor: Optional[User] = None,
) -> Tenant:
    """Create and provision a tenant.

    Args:
        db: Unscoped database session (caller commits)
        name: Display name
        slug: Explicit slug; generated from ``name`` when omitted
        subdomain: Optional subdomain label
        domain: Optional custom domain
        status: Defaults to "active"
        settings: Initial tenant settings
        owner: Optional owner payload, passed to assign_owner()
        actor: Platform operator performing the action

    Returns:
        The new tenant

    Raises:
        ConflictError: If slug, subdomain or domain is already taken
    """
    if slug:
        if db.execute(select(Tenant.id).where(Tenant.slug == slug)).first() is not None:
            raise ConflictError(f"Tenant slug '{slug}' is already taken")
    else:
        slug = unique_slug(db, name)

    for column, value in (("subdomain", subdomain), ("domain", domain)):
        if value and db.execute(select(Tenant.id).where(getattr(Tenant, column) == value)).first() is not None:
            raise ConflictError(f"Tenant {column} '{value}' is already taken")

    tenant = Tenant(
        name=name,
        slug=slug,
        subdomain=subdomain,
        domain=domain,
        status=status or "active",
        settings=settings or {},
    )
    db.add(tenant)
    db.flush()

    seed_default_roles(db, tenant)
    create_default_sequences(db, tenant.id)
    create_default_pipeline(db, tenant.id)

    audit_service.log(db, "TENANT_CREATED", model=tenant, new_values=tenant.to_dict(), user=actor, tenant_id=tenant.id)
    logger.info(f"Tenant created: {tenant.slug}", extra={"tenant_id": str(tenant.id)})

    if owner:
        assign_owner(db, tenant, actor=actor, **owner)

    return tenant


def assign_owner(
    db: Session,
    tenant: Tenant,
    user_id: Optional[UUID] = None,
    email: Optional[str] = None,
    name: Optional[str] = None,
    password: Optional[str] = None,
    actor: Optional[User] = None,
) -> User:
    """Make a user the owner of ``tenant`` and grant them ``super_admin``.

    With ``name``, ``email`` and ``password`` a new user is created in the
    tenant. Otherwise an existing user is looked up by id or email; users
    of another tenant cannot become owner.

    Raises:
        NotFoundError: Existing user not found
        BusinessRuleError: User belongs to another tenant, or weak password
    """
    if name and email and password:
        try:
            check_password_strength(password, user_context=[email, name, tenant.name])
        except PasswordValidationError as e:
            raise BusinessRuleError(e.message, {"password": e.errors})

        if db.execute(
            select(User.id)
            .where(User.tenant_id == tenant.id, User.email == email.lower())
            .execution_options(**{SKIP_TENANT_SCOPE: True})
        ).first() is not None:
            raise ConflictError(f"User with email {email} already exists in tenant")

        user = User(
            tenant_id=tenant.id,
            email=email,
            name=name,
            password_hash=hash_password(password),
            status="ACTIVE",
        )
        db.add(user)
        db.flush()
    else:
        stmt = select(User).execution_options(**{SKIP_TENANT_SCOPE: True})
        if user_id:
            stmt = stmt.where(User.id == user_id)
        elif email:
            stmt = stmt.where(User.email == email.lower(), User.tenant_id == tenant.id)
        else:
            raise BusinessRuleError(
                "User not found. Provide name, email and password to create a new user."
            )
        user = db.execute(stmt).scalars().first()
        if user is None:
            raise NotFoundError(
                "User not found. Provide name, email and password to create a new user."
            )
        if user.tenant_id != tenant.id:
            raise BusinessRuleError("User belongs to another tenant.")

    roles = seed_default_roles(db, tenant)
    assign_role(db, user, roles[SUPER_ADMIN_ROLE])

    previous_owner = tenant.owner_user_id
    tenant.owner_user_id = user.id
    db.flush()

    audit_service.log(
        db,
        "TENANT_OWNER_ASSIGNED",
        model=tenant,
        old_values={"owner_user_id": previous_owner},
        new_values={"owner_user_id": user.id},
        user=actor,
        tenant_id=tenant.id,
    )
    return user


def update_tenant(db: Session, tenant: Tenant, data: Dict[str, Any], actor: Optional[User] = None) -> Tenant:
    """Apply a partial update; ``settings`` is deep-merged, not replaced."""
    old_values = tenant.to_dict()

    for column in ("subdomain", "domain"):
        value = data.get(column)
        if value and value != getattr(tenant, column):
            taken = db.execute(
                select(Tenant.id).where(getattr(Tenant, column) == value, Tenant.id != tenant.id)
            ).first()
            if taken is not None:
                raise ConflictError(f"Tenant {column} '{value}' is already taken")

    for key, value in data.items():
        if key == "settings":
            tenant.settings = deep_merge(tenant.settings or {}, value or {})
        else:
            setattr(tenant, key, value)
    db.flush()

    audit_service.log(db, "updated", model=tenant, old_values=old_values, new_values=tenant.to_dict(),
                      user=actor, tenant_id=tenant.id)
    return tenant


def set_tenant_status(db: Session, tenant: Tenant, status: str, actor: Optional[User] = None) -> Tenant:
    """Activate or suspend a tenant. Suspended tenants reject every request."""
    old_status = tenant.status
    tenant.status = status
    db.flush()
    audit_service.log(db, "updated", model=tenant, old_values={"status": old_status},
                      new_values={"status": status}, user=actor, tenant_id=tenant.id)
    logger.info(f"Tenant {tenant.slug} status {old_status} -> {status}")
    return tenant


def get_usage_stats(db: Session, tenant_id: UUID) -> Dict[str, int]:
    """Row counts of the tenant's main records."""

    def count(model, *criteria) -> int:
        return db.execute(
            select(func.count())
            .select_from(model)
            .where(model.tenant_id == tenant_id, *criteria)
            .execution_options(**{SKIP_TENANT_SCOPE: True})
        ).scalar_one()

    return {
        "users": count(User),
        "leads": count(Lead, Lead.deleted_at.is_(None)),
        "deals": count(Deal, Deal.deleted_at.is_(None)),
        "invoices": count(SalesInvoice),
    }
