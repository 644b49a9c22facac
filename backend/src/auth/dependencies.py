"""FastAPI dependencies for authentication and authorization.

This module provides dependency injection functions for:
- Extracting and validating JWT tokens from requests
- Loading the current authenticated user
- Enforcing permission-based access control

Usage:
    @router.get("/leads")
    def list_leads(user: User = Depends(require_permission("crm.leads.viewAny"))):
        ...
"""

from typing import Annotated, Callable, Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import SKIP_TENANT_SCOPE, get_db
from models.user import User
from .jwt import decode_token
from .permissions import is_platform_user, user_has_permission


security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Extract and validate JWT token, returning the authenticated user.

    Args:
        credentials: HTTP Bearer token from request header
        db: Database session

    Returns:
        User: The authenticated user object

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or user not found
        HTTPException 403: If user status is DISABLED
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(credentials.credentials)

        user_id_str = payload.get("sub")
        if not user_id_str:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID claim",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user_id = UUID(user_id_str)

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token claims: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # The session is not tenant-scoped yet; platform users have no tenant at all
    user = db.execute(
        select(User).where(User.id == user_id).execution_options(**{SKIP_TENANT_SCOPE: True})
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


def require_permission(permission: str) -> Callable:
    """Create a dependency that requires ``permission`` on the current user.

    Tenant super admins (role ``super_admin``) and platform operators pass
    every check.

    Example:
        @router.post("/invoices/{invoice_id}/issue")
        def issue_invoice(user: User = Depends(require_permission("erp.invoices.issue"))):
            ...
    """

    def permission_dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        if current_user.is_super_admin or current_user.has_role("super_admin"):
            return current_user

        if not user_has_permission(db, current_user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This action is unauthorized.",
            )

        return current_user

    return permission_dependency


def require_platform_user(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    """Allow only platform operators (``is_super_admin`` or ``platform.manage``)."""
    if not is_platform_user(db, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action is unauthorized.",
        )
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
PlatformUser = Annotated[User, Depends(require_platform_user)]
