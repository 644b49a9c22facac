"""Password policy enforcement for BizFlow.

Follows NIST SP 800-63B: a length floor, a deny-list of common passwords
and obviously weak patterns, and no mandatory composition rules. Passwords
may not contain the user's email, name or tenant name.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, Field

MIN_PASSWORD_LENGTH = 12
MAX_PASSWORD_LENGTH = 128

COMMON_PASSWORDS = {
    "password", "123456", "12345678", "qwerty", "abc123", "monkey", "1234567",
    "letmein", "trustno1", "dragon", "baseball", "iloveyou", "master", "sunshine",
    "passw0rd", "shadow", "123123", "654321", "superman", "qazwsx", "football",
    "password1", "password123", "welcome", "welcome1", "admin", "admin123",
    "changeme", "qwertyuiop", "1234567890", "p@ssw0rd", "password!",
    "passwordpassword", "welcomewelcome", "administrator",
    "bizflow", "bizflow123", "crm123", "erp123",
}

WEAK_PATTERNS = [
    r"^(.)\1+$",  # aaaaaaaaaaaa
    r"^(012|123|234|345|456|567|678|789|890)+$",
    r"^(abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz)+$",
    r"^(qwerty|asdf|zxcv|wasd)+",
]


class PasswordValidationError(Exception):
    """Exception raised when password doesn't meet policy."""

    def __init__(self, message: str, errors: List[str]):
        self.message = message
        self.errors = errors
        super().__init__(message)


class PasswordPolicy(BaseModel):
    """Password policy configuration."""

    min_length: int = Field(default=MIN_PASSWORD_LENGTH, ge=8, le=128)
    max_length: int = Field(default=MAX_PASSWORD_LENGTH, ge=16, le=256)
    check_common_passwords: bool = Field(default=True)
    check_weak_patterns: bool = Field(default=True)


DEFAULT_POLICY = PasswordPolicy()


def validate_password(
    password: str,
    policy: Optional[PasswordPolicy] = None,
    user_context: Optional[List[Optional[str]]] = None
) -> List[str]:
    """Validate password against policy.

    Args:
        password: Password to validate
        policy: Password policy to use (defaults to DEFAULT_POLICY)
        user_context: Strings the password must not contain (email, name, tenant name)

    Returns:
        List of validation errors (empty if valid)
    """
    policy = policy or DEFAULT_POLICY
    errors = []
    password_lower = password.lower()

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")

    if len(password) > policy.max_length:
        errors.append(f"Password must be at most {policy.max_length} characters long")

    if policy.check_common_passwords:
        normalized = (
            password_lower.replace("0", "o").replace("1", "i")
            .replace("@", "a").replace("$", "s").replace("3", "e")
        )
        if password_lower in COMMON_PASSWORDS or normalized in COMMON_PASSWORDS:
            errors.append("This password is too common. Please choose a more unique password")

    if policy.check_weak_patterns:
        if any(re.match(pattern, password_lower) for pattern in WEAK_PATTERNS):
            errors.append("Password contains a weak pattern (repeated or sequential characters)")

    for context in user_context or []:
        if context and len(context) >= 3:
            context_lower = context.lower()
            # Email local part alone is enough to leak identity
            candidates = {context_lower, context_lower.split("@")[0]}
            if any(len(c) >= 3 and c in password_lower for c in candidates):
                errors.append("Password cannot contain your name, email, or tenant name")
                break

    return errors


def check_password_strength(
    password: str,
    user_context: Optional[List[Optional[str]]] = None
) -> None:
    """Check password strength and raise exception if weak.

    Raises:
        PasswordValidationError: If password doesn't meet policy
    """
    errors = validate_password(password, user_context=user_context)
    if errors:
        raise PasswordValidationError(
            "Password does not meet security requirements",
            errors
        )
