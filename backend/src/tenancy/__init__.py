"""Tenancy module - multi-tenant isolation and tenant management.

This module provides:
- Per-request tenant resolution (headers, host, user) and access checks
- The current-tenant context variable used by logging and services
- Tenant lifecycle management for platform operators

Row-level isolation itself lives in database.apply_tenant_scope.
"""

from .context import get_current_tenant_id, set_current_tenant_id, tenant_context
from .resolver import TenantResolver, check_tenant_access, extract_subdomain

__all__ = [
    "get_current_tenant_id",
    "set_current_tenant_id",
    "tenant_context",
    "TenantResolver",
    "check_tenant_access",
    "extract_subdomain",
]
