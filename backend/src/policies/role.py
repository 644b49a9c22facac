"""Authorization rules for tenant roles"""

from typing import Any

from sqlalchemy.orm import Session

from models.user import User
from .base import BasePolicy


class RolePolicy(BasePolicy):
    module = "core"
    resource = "roles"

    def update(self, db: Session, user: User, model: Any) -> bool:
        if getattr(model, "is_system", False):
            return False
        return super().update(db, user, model)

    def delete(self, db: Session, user: User, model: Any) -> bool:
        if getattr(model, "is_system", False):
            return False
        return super().delete(db, user, model)

    def sync_permissions(self, db: Session, user: User, model: Any) -> bool:
        """Replacing a role's permissions is an update; system roles are fixed."""
        return self.update(db, user, model)
