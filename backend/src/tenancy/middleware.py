"""Middleware for tenant context in logs and metrics.

TenantContextMiddleware binds a provisional tenant id for the request from
the cheap signals available before routing: the ``X-Tenant-ID`` header or
the ``tenant_id`` claim of the bearer token. It never touches the database
and never rejects a request. The authoritative resolution (slug headers,
host, access checks) happens in dependencies.get_current_tenant, which
overwrites the value once the tenant is known.
"""

from typing import Callable, Optional
from uuid import UUID

import jwt
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from auth.jwt import decode_token
from .context import current_tenant_var
from .resolver import TENANT_ID_HEADER


def _tenant_hint(request: Request) -> Optional[UUID]:
    header = request.headers.get(TENANT_ID_HEADER)
    if header:
        try:
            return UUID(header)
        except ValueError:
            return None

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    try:
        tenant_id = decode_token(parts[1]).get("tenant_id")
        return UUID(tenant_id) if tenant_id else None
    except (jwt.InvalidTokenError, ValueError):
        # Real validation happens in get_current_user
        return None


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Attach a provisional tenant id to request.state and the log context.

    Usage:
        app.add_middleware(TenantContextMiddleware)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        tenant_id = _tenant_hint(request)
        request.state.tenant_id = tenant_id

        token = current_tenant_var.set(tenant_id)
        try:
            return await call_next(request)
        finally:
            current_tenant_var.reset(token)


def get_tenant_id_from_request(request: Request) -> Optional[UUID]:
    """Tenant id known for the request so far (None if unresolved)."""
    return getattr(request.state, "tenant_id", None)
