"""Authorization rules for tenant users"""

from typing import Any

from sqlalchemy.orm import Session

from models.user import User
from .base import BasePolicy


class UserPolicy(BasePolicy):
    """Users may always see and edit their own profile, never delete themselves."""

    module = "core"
    resource = "users"

    def view(self, db: Session, user: User, model: Any) -> bool:
        if model is not None and model.id == user.id:
            return True
        return super().view(db, user, model)

    def update(self, db: Session, user: User, model: Any) -> bool:
        if model is not None and model.id == user.id:
            return True
        return super().update(db, user, model)

    def delete(self, db: Session, user: User, model: Any) -> bool:
        if model is not None and model.id == user.id:
            return False
        return super().delete(db, user, model)
