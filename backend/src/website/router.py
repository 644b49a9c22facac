"""Website site and page endpoints.

Each tenant owns at most one site. Site slugs are global because the
public endpoint addresses pages by site slug alone:

    GET /public/sites/{site_slug}/pages/{page_slug}

which serves ``published_content`` of published pages of published sites
without authentication.
"""

import copy
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import SKIP_TENANT_SCOPE, get_db
from dependencies import CurrentTenant, get_or_404
from exceptions import ConflictError, NotFoundError
from models.website import WebsitePage, WebsiteSite
from policies import PagePolicy, SitePolicy, authorize
from schemas.common import MessageResponse
from .schemas import (
    PageCreate,
    PageResponse,
    PageUpdate,
    PublicPageResponse,
    SiteCreate,
    SiteResponse,
    SiteUpdate,
)

router = APIRouter(prefix="/website", tags=["Website"])
public_router = APIRouter(prefix="/public", tags=["Public"])

site_policy = SitePolicy()
page_policy = PagePolicy()


def _ensure_globally_free(db: Session, column: str, value: Optional[str], exclude_id: Optional[UUID] = None) -> None:
    if not value:
        return
    stmt = (
        select(WebsiteSite.id)
        .where(getattr(WebsiteSite, column) == value)
        .execution_options(**{SKIP_TENANT_SCOPE: True})
    )
    if exclude_id is not None:
        stmt = stmt.where(WebsiteSite.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"Site {column} '{value}' is already taken")


def _ensure_page_slug_free(db: Session, site_id: UUID, slug: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(WebsitePage.id).where(WebsitePage.site_id == site_id, WebsitePage.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(WebsitePage.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"Page slug '{slug}' already exists on this site")


def _publish(page: WebsitePage) -> None:
    page.published_content = copy.deepcopy(page.content)
    page.status = "published"


@router.get("/sites", response_model=List[SiteResponse])
def list_sites(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    authorize(db, site_policy, "view_any", current_user)
    sites = db.execute(select(WebsiteSite).order_by(WebsiteSite.name)).scalars().all()
    return [SiteResponse.model_validate(s) for s in sites]


@router.post("/sites", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
def create_site(
    data: SiteCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> SiteResponse:
    """
    Create the tenant's site.

    Raises:
        409: Tenant already has a site, or slug/domain taken by any tenant
    """
    authorize(db, site_policy, "create", current_user)
    if db.execute(select(WebsiteSite.id)).first() is not None:
        raise ConflictError("Tenant already has a website.")
    _ensure_globally_free(db, "slug", data.slug)
    _ensure_globally_free(db, "domain", data.domain)

    site = WebsiteSite(tenant_id=tenant.id, **data.model_dump())
    db.add(site)
    db.flush()
    audit_service.log(db, "created", model=site, new_values=model_values(site), user=current_user, request=request)
    db.commit()
    db.refresh(site)
    return SiteResponse.model_validate(site)


@router.get("/sites/{site_id}", response_model=SiteResponse)
def get_site(site_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    site = get_or_404(db, WebsiteSite, site_id)
    authorize(db, site_policy, "view", current_user, site)
    return SiteResponse.model_validate(site)


@router.patch("/sites/{site_id}", response_model=SiteResponse)
def update_site(
    site_id: UUID,
    data: SiteUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> SiteResponse:
    site = get_or_404(db, WebsiteSite, site_id)
    authorize(db, site_policy, "update", current_user, site)
    changes = data.model_dump(exclude_unset=True)
    if "slug" in changes:
        _ensure_globally_free(db, "slug", changes["slug"], exclude_id=site.id)
    if "domain" in changes:
        _ensure_globally_free(db, "domain", changes["domain"], exclude_id=site.id)

    old_values = model_values(site, changes.keys())
    for field, value in changes.items():
        setattr(site, field, value)
    db.flush()
    audit_service.log(db, "updated", model=site, old_values=old_values, new_values=changes,
                      user=current_user, request=request)
    db.commit()
    db.refresh(site)
    return SiteResponse.model_validate(site)


@router.delete("/sites/{site_id}", response_model=MessageResponse)
def delete_site(
    site_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    site = get_or_404(db, WebsiteSite, site_id)
    authorize(db, site_policy, "delete", current_user, site)
    audit_service.log(db, "deleted", model=site, old_values={"name": site.name, "slug": site.slug},
                      user=current_user, request=request)
    db.delete(site)
    db.commit()
    return MessageResponse(message="Site deleted successfully.")


@router.get("/sites/{site_id}/pages", response_model=List[PageResponse])
def list_pages(site_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    site = get_or_404(db, WebsiteSite, site_id)
    authorize(db, page_policy, "view_any", current_user)
    return [PageResponse.model_validate(p) for p in site.pages]


@router.post("/sites/{site_id}/pages", response_model=PageResponse, status_code=status.HTTP_201_CREATED)
def create_page(
    site_id: UUID,
    data: PageCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PageResponse:
    """Create a page; ``publish=true`` publishes its content right away."""
    site = get_or_404(db, WebsiteSite, site_id)
    authorize(db, page_policy, "create", current_user)
    _ensure_page_slug_free(db, site.id, data.slug)

    values = data.model_dump(exclude={"publish"})
    page = WebsitePage(tenant_id=tenant.id, site_id=site.id, status="draft", **values)
    if data.publish:
        _publish(page)
    db.add(page)
    db.flush()
    audit_service.log(db, "created", model=page, new_values=model_values(page), user=current_user, request=request)
    db.commit()
    db.refresh(page)
    return PageResponse.model_validate(page)


def _get_page(db: Session, site_id: UUID, page_id: UUID) -> WebsitePage:
    page = get_or_404(db, WebsitePage, page_id)
    if page.site_id != site_id:
        raise NotFoundError("Website page not found")
    return page


@router.get("/sites/{site_id}/pages/{page_id}", response_model=PageResponse)
def get_page(
    site_id: UUID, page_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)
):
    page = _get_page(db, site_id, page_id)
    authorize(db, page_policy, "view", current_user, page)
    return PageResponse.model_validate(page)


@router.patch("/sites/{site_id}/pages/{page_id}", response_model=PageResponse)
def update_page(
    site_id: UUID,
    page_id: UUID,
    data: PageUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PageResponse:
    """Edit the draft. The public copy only changes when ``publish=true``."""
    page = _get_page(db, site_id, page_id)
    authorize(db, page_policy, "update", current_user, page)
    changes = data.model_dump(exclude_unset=True, exclude={"publish"})
    if "slug" in changes:
        _ensure_page_slug_free(db, site_id, changes["slug"], exclude_id=page.id)

    old_values = model_values(page, list(changes.keys()) + ["status"])
    for field, value in changes.items():
        setattr(page, field, value)
    if data.publish:
        _publish(page)
    db.flush()
    audit_service.log(db, "updated", model=page, old_values=old_values,
                      new_values=model_values(page, list(changes.keys()) + ["status"]),
                      user=current_user, request=request)
    db.commit()
    db.refresh(page)
    return PageResponse.model_validate(page)


@router.post("/sites/{site_id}/pages/{page_id}/unpublish", response_model=PageResponse)
def unpublish_page(
    site_id: UUID,
    page_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PageResponse:
    page = _get_page(db, site_id, page_id)
    authorize(db, page_policy, "update", current_user, page)
    page.status = "draft"
    page.published_content = None
    db.flush()
    audit_service.log(db, "updated", model=page, old_values={"status": "published"}, new_values={"status": "draft"},
                      user=current_user, request=request)
    db.commit()
    db.refresh(page)
    return PageResponse.model_validate(page)


@router.delete("/sites/{site_id}/pages/{page_id}", response_model=MessageResponse)
def delete_page(
    site_id: UUID,
    page_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    page = _get_page(db, site_id, page_id)
    authorize(db, page_policy, "delete", current_user, page)
    audit_service.log(db, "deleted", model=page, old_values={"title": page.title, "slug": page.slug},
                      user=current_user, request=request)
    db.delete(page)
    db.commit()
    return MessageResponse(message="Page deleted successfully.")


@public_router.get("/sites/{site_slug}/pages/{page_slug}", response_model=PublicPageResponse)
def get_public_page(site_slug: str, page_slug: str, db: Session = Depends(get_db)) -> PublicPageResponse:
    """Published page of a published site; 404 for anything else."""
    page = db.execute(
        select(WebsitePage)
        .join(WebsiteSite, WebsitePage.site_id == WebsiteSite.id)
        .where(
            WebsiteSite.slug == site_slug,
            WebsiteSite.status == "published",
            WebsitePage.slug == page_slug,
            WebsitePage.status == "published",
        )
        .execution_options(**{SKIP_TENANT_SCOPE: True})
    ).scalars().first()
    if page is None or page.published_content is None:
        raise NotFoundError("Page not found")
    return PublicPageResponse.model_validate(page)
