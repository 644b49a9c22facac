"""Global FastAPI dependencies for tenant isolation and database access.

This module provides:
- get_current_tenant: Resolve and authorize the request's tenant, then scope
  the request's database session to it
- Pagination: page/per_page query parameters shared by list endpoints
- get_or_404: Fetch a tenant-scoped record or fail with 404

Every tenant-facing endpoint depends on get_current_tenant. Once it has run,
all ORM SELECTs issued through the request session are filtered to the
tenant (see database.apply_tenant_scope), so handlers never filter by
tenant_id themselves.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Type, TypeVar
from uuid import UUID

from fastapi import Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from auth.permissions import is_platform_user
from database import get_db, set_session_tenant
from exceptions import NotFoundError
from models.tenant import Tenant
from models.user import User
from tenancy.context import set_current_tenant_id
from tenancy.resolver import TenantResolver, check_tenant_access

ModelT = TypeVar("ModelT")


async def get_current_tenant(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Tenant:
    """Resolve the tenant for an authenticated request.

    The tenant is stored on request.state and in the tenant context variable,
    and the request's session is scoped to it.

    Raises:
        HTTPException 400: No tenant could be resolved
        HTTPException 403: Tenant inactive or not the user's tenant
        HTTPException 404: Tenant header names an unknown tenant

    Example:
        @router.get("/leads")
        def list_leads(tenant: CurrentTenant, db: Session = Depends(get_db)):
            return db.execute(select(Lead)).scalars().all()  # tenant's leads only
    """
    tenant = TenantResolver(db).resolve(request, current_user)
    tenant = check_tenant_access(tenant, current_user, platform_user=is_platform_user(db, current_user))

    set_session_tenant(db, tenant.id)
    request.state.tenant_id = tenant.id
    set_current_tenant_id(tenant.id)
    return tenant


CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]


@dataclass
class Pagination:
    page: int
    per_page: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def apply(self, db: Session, stmt) -> tuple[list, int]:
        """Run ``stmt`` for the current page.

        Returns:
            (rows, total) where total counts all rows matching ``stmt``
        """
        total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
        rows = db.execute(stmt.limit(self.per_page).offset(self.offset)).scalars().all()
        return list(rows), total


def get_pagination(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    per_page: int = Query(25, ge=1, le=100, description="Entries per page (max 100)"),
) -> Pagination:
    return Pagination(page=page, per_page=per_page)


PageParams = Annotated[Pagination, Depends(get_pagination)]


def get_or_404(db: Session, model: Type[ModelT], record_id: UUID, include_deleted: bool = False) -> ModelT:
    """Get a record by ID from the (tenant-scoped) session, or raise 404.

    Records of other tenants are invisible to a scoped session, so a foreign
    id yields the same 404 as a missing one and tenants cannot probe each
    other's ids.

    Raises:
        NotFoundError: If the record doesn't exist, belongs to another
            tenant, or is soft-deleted (unless include_deleted)
    """
    record = db.execute(select(model).where(model.id == record_id)).scalar_one_or_none()
    if record is None or (not include_deleted and getattr(record, "deleted_at", None) is not None):
        raise NotFoundError(f"{_display_name(model)} not found")
    return record


def _display_name(model: Any) -> str:
    name = model.__name__
    return "".join(" " + c.lower() if c.isupper() and i else c for i, c in enumerate(name))
