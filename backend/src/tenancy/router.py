"""Tenant management endpoints.

/platform/tenants/* is reserved for platform operators (is_super_admin or
platform.manage). /tenant returns the caller's own resolved tenant.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from auth.dependencies import PlatformUser
from database import get_db
from dependencies import CurrentTenant, PageParams
from exceptions import NotFoundError
from models.tenant import Tenant
from schemas.common import Page
from . import service
from .schemas import (
    TenantOwnerInput,
    TenantCreate,
    TenantDetailResponse,
    TenantResponse,
    TenantSettingUpdate,
    TenantUpdate,
)


router = APIRouter(prefix="/platform/tenants", tags=["Tenants"])
current_router = APIRouter(prefix="/tenant", tags=["Tenants"])


def _get_tenant_or_404(db: Session, tenant_id: UUID) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Tenant not found")
    return tenant


def _detail(db: Session, tenant: Tenant) -> TenantDetailResponse:
    response = TenantDetailResponse.model_validate(tenant)
    response.settings = tenant.settings or {}
    response.usage_stats = service.get_usage_stats(db, tenant.id)
    return response


@router.get("", response_model=Page[TenantResponse])
def list_tenants(
    platform_user: PlatformUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|suspended|inactive)$"),
    search: Optional[str] = Query(None, description="Match name, slug or domain"),
) -> Page[TenantResponse]:
    stmt = select(Tenant)
    if status_filter:
        stmt = stmt.where(Tenant.status == status_filter)
    if search:
        term = f"%{search}%"
        stmt = stmt.where(or_(Tenant.name.ilike(term), Tenant.slug.ilike(term), Tenant.domain.ilike(term)))

    tenants, total = pagination.apply(db, stmt.order_by(Tenant.created_at.desc()))
    return Page[TenantResponse](
        items=[TenantResponse.model_validate(t) for t in tenants],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=TenantDetailResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    data: TenantCreate,
    platform_user: PlatformUser,
    db: Session = Depends(get_db),
) -> TenantDetailResponse:
    """Create a tenant with its default roles, number sequences and pipeline.

    Raises:
        409: Slug, subdomain or domain already taken
        422: Owner password too weak
    """
    tenant = service.create_tenant(
        db,
        name=data.name,
        slug=data.slug,
        subdomain=data.subdomain,
        domain=data.domain,
        status=data.status,
        settings=data.settings,
        owner=data.owner.model_dump(exclude_none=True) if data.owner else None,
        actor=platform_user,
    )
    db.commit()
    db.refresh(tenant)
    return _detail(db, tenant)


@router.get("/{tenant_id}", response_model=TenantDetailResponse)
def get_tenant(tenant_id: UUID, platform_user: PlatformUser, db: Session = Depends(get_db)) -> TenantDetailResponse:
    return _detail(db, _get_tenant_or_404(db, tenant_id))


@router.patch("/{tenant_id}", response_model=TenantDetailResponse)
def update_tenant(
    tenant_id: UUID,
    data: TenantUpdate,
    platform_user: PlatformUser,
    db: Session = Depends(get_db),
) -> TenantDetailResponse:
    tenant = _get_tenant_or_404(db, tenant_id)
    service.update_tenant(db, tenant, data.model_dump(exclude_unset=True), actor=platform_user)
    db.commit()
    db.refresh(tenant)
    return _detail(db, tenant)


@router.post("/{tenant_id}/suspend", response_model=TenantResponse)
def suspend_tenant(tenant_id: UUID, platform_user: PlatformUser, db: Session = Depends(get_db)) -> TenantResponse:
    tenant = service.set_tenant_status(db, _get_tenant_or_404(db, tenant_id), "suspended", actor=platform_user)
    db.commit()
    db.refresh(tenant)
    return TenantResponse.model_validate(tenant)


@router.post("/{tenant_id}/activate", response_model=TenantResponse)
def activate_tenant(tenant_id: UUID, platform_user: PlatformUser, db: Session = Depends(get_db)) -> TenantResponse:
    tenant = service.set_tenant_status(db, _get_tenant_or_404(db, tenant_id), "active", actor=platform_user)
    db.commit()
    db.refresh(tenant)
    return TenantResponse.model_validate(tenant)


@router.post("/{tenant_id}/owner", response_model=TenantDetailResponse)
def assign_tenant_owner(
    tenant_id: UUID,
    data: TenantOwnerInput,
    platform_user: PlatformUser,
    db: Session = Depends(get_db),
) -> TenantDetailResponse:
    tenant = _get_tenant_or_404(db, tenant_id)
    service.assign_owner(db, tenant, actor=platform_user, **data.model_dump(exclude_none=True))
    db.commit()
    db.refresh(tenant)
    return _detail(db, tenant)


@router.get("/{tenant_id}/settings", response_model=Dict[str, Any])
def get_tenant_settings(
    tenant_id: UUID,
    platform_user: PlatformUser,
    db: Session = Depends(get_db),
    key: Optional[str] = Query(None, description="Dotted path, e.g. zkbiotime.last_sync_at"),
) -> Dict[str, Any]:
    tenant = _get_tenant_or_404(db, tenant_id)
    if key:
        return {"key": key, "value": tenant.get_setting(key)}
    return tenant.settings or {}


@router.put("/{tenant_id}/settings", response_model=Dict[str, Any])
def set_tenant_setting(
    tenant_id: UUID,
    data: TenantSettingUpdate,
    platform_user: PlatformUser,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    tenant = _get_tenant_or_404(db, tenant_id)
    tenant.set_setting(data.key, data.value)
    db.commit()
    db.refresh(tenant)
    return {"key": data.key, "value": tenant.get_setting(data.key)}


@current_router.get("", response_model=TenantResponse)
def get_current_tenant_info(tenant: CurrentTenant) -> TenantResponse:
    """The tenant this request resolved to."""
    return TenantResponse.model_validate(tenant)
