"""Authorization rules for tenant management (platform operators only)"""

from typing import Any

from sqlalchemy.orm import Session

from auth.permissions import is_platform_user
from models.user import User
from .base import BasePolicy


class TenantPolicy(BasePolicy):
    module = "core"
    resource = "tenants"

    def check(self, db: Session, user: User, action: str, model: Any = None) -> bool:
        return is_platform_user(db, user)
