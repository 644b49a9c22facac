"""Per-request tenant resolution.

A request can address its tenant in several ways; the first one that
yields a tenant wins:

1. ``X-Tenant-ID`` header (tenant UUID)
2. ``X-Tenant-Slug`` or ``X-Tenant`` header (tenant slug)
3. Subdomain of the Host header (``acme.bizflow.app``, ``acme.localhost``),
   matched against ``tenant.subdomain`` or ``tenant.slug``
4. Custom domain (``crm.acme.com``), exact match on ``tenant.domain``
5. The authenticated user's own tenant

Explicit headers are authoritative: a header naming an unknown tenant is an
error. Host-based lookups only fall through, since not every host is a
tenant host.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from config import settings
from models.tenant import Tenant
from models.user import User

logger = logging.getLogger(__name__)

TENANT_ID_HEADER = "X-Tenant-ID"
TENANT_SLUG_HEADERS = ("X-Tenant-Slug", "X-Tenant")

TENANT_NOT_FOUND = "Tenant not found or invalid."
TENANT_INACTIVE = "Tenant is not active."
TENANT_ACCESS_DENIED = "Unauthorized access to tenant."
TENANT_REQUIRED = "Tenant context is required."


def _strip_port(host: str) -> str:
    return host.split(":", 1)[0].strip().lower()


def extract_subdomain(host: Optional[str], base_domain: Optional[str] = None) -> Optional[str]:
    """Return the tenant label of ``host``, if it has one.

    Examples:
        extract_subdomain("acme.bizflow.app")            -> "acme"
        extract_subdomain("acme.localhost:8000")         -> "acme"
        extract_subdomain("bizflow.app")                 -> None
        extract_subdomain("acme.eu.example.com", "eu.example.com") -> "acme"
    """
    if not host:
        return None
    hostname = _strip_port(host)

    if base_domain:
        base = base_domain.lower().lstrip(".")
        if hostname.endswith("." + base):
            label = hostname[: -(len(base) + 1)]
            return label.split(".")[-1] or None
        return None

    labels = hostname.split(".")
    if len(labels) == 2 and labels[1] == "localhost":
        return labels[0]
    if len(labels) >= 3:
        return labels[0]
    return None


class TenantResolver:
    """Looks up the tenant a request is addressed to."""

    def __init__(self, db: Session):
        self.db = db

    def by_id(self, value: str) -> Tenant:
        try:
            tenant_id = UUID(str(value))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TENANT_NOT_FOUND)
        tenant = self.db.get(Tenant, tenant_id)
        if not tenant:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TENANT_NOT_FOUND)
        return tenant

    def by_slug(self, slug: str) -> Tenant:
        tenant = self.db.execute(
            select(Tenant).where(Tenant.slug == slug.strip().lower())
        ).scalar_one_or_none()
        if not tenant:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TENANT_NOT_FOUND)
        return tenant

    def by_subdomain(self, label: str) -> Optional[Tenant]:
        return self.db.execute(
            select(Tenant).where(or_(Tenant.subdomain == label, Tenant.slug == label))
        ).scalars().first()

    def by_domain(self, host: str) -> Optional[Tenant]:
        return self.db.execute(
            select(Tenant).where(Tenant.domain == _strip_port(host))
        ).scalar_one_or_none()

    def resolve(self, request: Request, user: Optional[User] = None) -> Optional[Tenant]:
        """Resolve the tenant of ``request`` in priority order.

        Raises:
            HTTPException 404: If a tenant header names an unknown tenant
        """
        tenant_id = request.headers.get(TENANT_ID_HEADER)
        if tenant_id:
            return self.by_id(tenant_id)

        for header in TENANT_SLUG_HEADERS:
            slug = request.headers.get(header)
            if slug:
                return self.by_slug(slug)

        host = request.headers.get("host")
        label = extract_subdomain(host, settings.TENANT_BASE_DOMAIN)
        if label:
            tenant = self.by_subdomain(label)
            if tenant:
                return tenant

        if host:
            tenant = self.by_domain(host)
            if tenant:
                return tenant

        if user is not None and user.tenant_id is not None:
            return self.db.get(Tenant, user.tenant_id)

        return None


def check_tenant_access(tenant: Optional[Tenant], user: Optional[User], platform_user: bool = False) -> Tenant:
    """Validate that ``user`` may act inside ``tenant``.

    Raises:
        HTTPException 400: No tenant could be resolved
        HTTPException 403: Tenant inactive, or user belongs to another tenant
    """
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=TENANT_REQUIRED)

    if not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=TENANT_INACTIVE)

    if user is not None and not platform_user and user.tenant_id != tenant.id:
        logger.warning(
            "Cross-tenant access attempt",
            extra={"user_id": str(user.id), "requested_tenant_id": str(tenant.id)},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=TENANT_ACCESS_DENIED)

    return tenant
