"""Base policy: permission + tenant-boundary checks for one resource.

Every action maps to the permission ``{module}.{resource}.{action}``. Before
the permission is consulted the record must live in the user's tenant;
tenant super admins and the tenant owner then skip the permission lookup.
Platform operators pass everything.
"""

from typing import Any, Optional

from sqlalchemy.orm import Session

from auth.permissions import SUPER_ADMIN_ROLE, is_platform_user, user_has_permission
from models.tenant import Tenant
from models.user import User


class BasePolicy:
    """Authorization rules for ``{module}.{resource}``.

    Subclasses override individual actions to add record-level rules and
    call ``self.check`` for the common part.

    Example:
        class LeadPolicy(BasePolicy):
            module = "crm"
            resource = "leads"

        LeadPolicy().update(db, user, lead)  # -> bool
    """

    module: str = ""
    resource: str = ""

    def __init__(self, module: Optional[str] = None, resource: Optional[str] = None):
        if module:
            self.module = module
        if resource:
            self.resource = resource

    def permission(self, action: str) -> str:
        return f"{self.module}.{self.resource}.{action}"

    def has_tenant_access(self, db: Session, user: User, model: Any = None) -> bool:
        """A record without a tenant is shared; otherwise tenants must match."""
        if model is None:
            return True
        tenant_id = getattr(model, "tenant_id", None)
        if tenant_id is None:
            return True
        return user.tenant_id == tenant_id or is_platform_user(db, user)

    def is_privileged(self, db: Session, user: User) -> bool:
        """Platform operator, tenant super admin or tenant owner."""
        if user.is_super_admin or user.has_role(SUPER_ADMIN_ROLE):
            return True
        if user.tenant_id is not None:
            tenant = db.get(Tenant, user.tenant_id)
            if tenant is not None and tenant.owner_user_id == user.id:
                return True
        return is_platform_user(db, user)

    def check(self, db: Session, user: User, action: str, model: Any = None) -> bool:
        if not self.has_tenant_access(db, user, model):
            return False
        if self.is_privileged(db, user):
            return True
        return user_has_permission(db, user, self.permission(action))

    def view_any(self, db: Session, user: User) -> bool:
        return self.check(db, user, "viewAny")

    def view(self, db: Session, user: User, model: Any) -> bool:
        return self.check(db, user, "view", model)

    def create(self, db: Session, user: User) -> bool:
        return self.check(db, user, "create")

    def update(self, db: Session, user: User, model: Any) -> bool:
        return self.check(db, user, "update", model)

    def delete(self, db: Session, user: User, model: Any) -> bool:
        return self.check(db, user, "delete", model)

    def restore(self, db: Session, user: User, model: Any) -> bool:
        return self.check(db, user, "restore", model)
