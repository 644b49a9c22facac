"""Authentication endpoints for BizFlow API

Provides endpoints for user login and retrieving current user information.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service
from database import SKIP_TENANT_SCOPE, get_db
from models.tenant import Tenant
from models.user import User
from .dependencies import CurrentUser
from .jwt import _get_jwt_expiry_minutes, create_access_token
from .password import verify_password
from .permissions import get_user_permissions
from .rate_limit import check_rate_limit, rate_limiter
from .schemas import LoginRequest, LoginResponse, MeResponse, UserResponse


router = APIRouter(prefix="/auth", tags=["Authentication"])

INVALID_CREDENTIALS = "Invalid email or password"


def _find_user(db: Session, tenant: Optional[Tenant], email: str) -> Optional[User]:
    stmt = select(User).where(User.email == email.lower()).execution_options(**{SKIP_TENANT_SCOPE: True})
    if tenant is None:
        stmt = stmt.where(User.tenant_id.is_(None), User.is_super_admin.is_(True))
    else:
        stmt = stmt.where(User.tenant_id == tenant.id)
    return db.execute(stmt).scalar_one_or_none()


def _login_failed(
    db: Session,
    request: Request,
    credentials: LoginRequest,
    tenant: Optional[Tenant],
    reason: str,
    user: Optional[User] = None,
    detail: str = INVALID_CREDENTIALS,
) -> HTTPException:
    if tenant is not None:
        audit_service.log(
            db,
            "LOGIN_FAILED",
            metadata={"email": credentials.email, "reason": reason},
            user=user,
            request=request,
            tenant_id=tenant.id,
        )
        db.commit()

    rate_limiter.record_failed_login(credentials.email, credentials.tenant_slug or "", request)
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    _: None = Depends(check_rate_limit)
):
    """Authenticate user and return JWT access token.

    Tenant users log in with their tenant's slug; platform operators omit
    it. The token carries the user's tenant, which later requests resolve
    against.

    Security measures:
    - Rate limiting to prevent brute force attacks (5 attempts per 15 min)
    - Account lockout after 10 failed attempts (30 min lockout)
    - Failed logins are recorded in the tenant's audit trail
    - Disabled accounts and inactive tenants are rejected
    - last_login_at is updated on successful login

    Args:
        credentials: Login credentials (tenant_slug, email, password)
        request: FastAPI request object for IP/user-agent
        db: Database session

    Returns:
        LoginResponse: JWT access token and metadata

    Raises:
        HTTPException: 401 if credentials are invalid or account is disabled
        HTTPException: 403 if the tenant is not active
        HTTPException: 429 if rate limit exceeded or account locked out
    """
    tenant = None
    if credentials.tenant_slug:
        tenant = db.execute(
            select(Tenant).where(Tenant.slug == credentials.tenant_slug)
        ).scalar_one_or_none()
        if tenant is None:
            # Generic message, no tenant enumeration
            raise _login_failed(db, request, credentials, None, "unknown_tenant")

    user = _find_user(db, tenant, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        raise _login_failed(db, request, credentials, tenant, "invalid_credentials")

    if not user.is_active:
        raise _login_failed(db, request, credentials, tenant, "account_disabled",
                            user=user, detail="Account is disabled")

    if tenant is not None and not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant is not active.")

    user.last_login_at = datetime.now(timezone.utc)
    if tenant is not None:
        audit_service.log(
            db,
            "LOGIN_SUCCESS",
            metadata={"email": credentials.email},
            user=user,
            request=request,
            tenant_id=tenant.id,
        )
    db.commit()
    db.refresh(user)

    rate_limiter.clear_failed_attempts(credentials.email, credentials.tenant_slug or "")

    access_token = create_access_token(
        user_id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
    )

    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=_get_jwt_expiry_minutes() * 60,
    )


@router.get("/me", response_model=MeResponse)
async def get_me(
    current_user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    """Current user with their roles and effective permissions."""
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        roles=current_user.role_slugs,
        permissions=sorted(get_user_permissions(db, current_user)),
    )
