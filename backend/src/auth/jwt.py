"""JWT token generation and validation

This module handles JWT access token creation and validation for authentication.

JWT Token Claims Structure:
====================================

Standard JWT Claims:
- sub (Subject): User ID as UUID string
- iat (Issued At): Unix timestamp when token was created
- exp (Expiration): Unix timestamp when token expires (iat + JWT_EXPIRY_MINUTES)

Custom Claims:
- tenant_id: Tenant UUID string, or null for platform operators
  Purpose: Default tenant for the request when no header/host selects one
- email: User's email address (lower-cased)

Roles and permissions are deliberately NOT embedded: they are looked up per
request so that revoking a role takes effect before the token expires.

Security Properties:
- Algorithm: HS256 (HMAC-SHA256 symmetric signing)
- Secret: JWT_SECRET environment variable (minimum 256 bits)
- Token tamper-proof (signature validation fails if claims modified)
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from uuid import UUID

import jwt

from config import settings


def _get_jwt_secret() -> str:
    """Get JWT_SECRET from environment.

    Returns:
        str: The JWT_SECRET value

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = os.getenv('JWT_SECRET') or settings.JWT_SECRET
    if not secret:
        raise ValueError("JWT_SECRET environment variable is not set")
    return secret


def _get_jwt_expiry_minutes() -> int:
    """Get JWT_EXPIRY_MINUTES from environment (default: settings value)."""
    expiry = os.getenv('JWT_EXPIRY_MINUTES')
    if expiry is None:
        return settings.JWT_EXPIRY_MINUTES
    try:
        return int(expiry)
    except ValueError:
        return settings.JWT_EXPIRY_MINUTES


def create_access_token(
    user_id: UUID,
    tenant_id: Optional[UUID],
    email: str
) -> str:
    """Create a JWT access token for an authenticated user.

    Args:
        user_id: User's UUID
        tenant_id: Tenant UUID (None for platform operators)
        email: User's email address

    Returns:
        str: Signed JWT token

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = _get_jwt_secret()
    now = datetime.now(timezone.utc)
    expiration = now + timedelta(minutes=_get_jwt_expiry_minutes())

    payload = {
        'sub': str(user_id),
        'tenant_id': str(tenant_id) if tenant_id else None,
        'email': email,
        'iat': int(now.timestamp()),
        'exp': int(expiration.timestamp()),
    }

    return jwt.encode(payload, secret, algorithm='HS256')


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded token payload with claims

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
        ValueError: If JWT_SECRET is not set
    """
    secret = _get_jwt_secret()
    try:
        return jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise jwt.ExpiredSignatureError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")
