"""Masking of sensitive values before they reach logs or the audit trail.

A key is sensitive when its lower-cased name contains one of the
registered fragments (so ``user_password`` and ``X-Api-Key`` both match).
Masked strings keep their first two and last two characters.
"""

from typing import Any, Iterable, Optional

DEFAULT_SENSITIVE_FIELDS = (
    "password",
    "password_confirmation",
    "token",
    "api_key",
    "secret",
    "access_token",
    "refresh_token",
    "credit_card",
    "card_number",
    "cvv",
    "ssn",
    "social_security_number",
    "bank_account",
    "routing_number",
    "private_key",
    "authorization",
    "pepper",
)


def mask_value(value: Any) -> str:
    """Mask a single value.

    Examples:
        >>> mask_value("")
        '***'
        >>> mask_value("abcd")
        '****'
        >>> mask_value("s3cr3t-value")
        's3********ue'
    """
    if not value or value == "0":
        return "***"

    text = str(value)
    length = len(text)
    if length <= 4:
        return "****"

    return text[:2] + "*" * (length - 4) + text[-2:]


class LogMaskingService:
    """Recursive masker for dict payloads."""

    def __init__(self, sensitive_fields: Optional[Iterable[str]] = None):
        self.sensitive_fields = list(sensitive_fields or DEFAULT_SENSITIVE_FIELDS)

    def is_sensitive_field(self, field: str) -> bool:
        field_lower = str(field).lower()
        return any(fragment in field_lower for fragment in self.sensitive_fields)

    def add_sensitive_field(self, field: str) -> None:
        if field not in self.sensitive_fields:
            self.sensitive_fields.append(field)

    def mask(self, data: Any) -> Any:
        """Return a masked copy of ``data``; the input is never mutated."""
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                if self.is_sensitive_field(key):
                    masked[key] = mask_value(value)
                else:
                    masked[key] = self.mask(value)
            return masked

        if isinstance(data, (list, tuple)):
            return [self.mask(item) for item in data]

        return data


_default_masker = LogMaskingService()


def mask_sensitive(data: Any) -> Any:
    return _default_masker.mask(data)
