"""Domain exceptions and the JSON error envelope shared by every API error.

Services raise DomainError subclasses instead of HTTPException so they can
run from routers, Celery tasks and console commands alike. main.py turns
them (and FastAPI's own errors) into:

    {"success": false, "message": ..., "error_code": ..., "errors": ..., "request_id": ...}
"""

from typing import Any, Dict, List, Optional

from fastapi import status

STATUS_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "VALIDATION_ERROR",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
    status.HTTP_500_INTERNAL_SERVER_ERROR: "SERVER_ERROR",
}


def error_code_for_status(status_code: int) -> str:
    if status_code in STATUS_ERROR_CODES:
        return STATUS_ERROR_CODES[status_code]
    return "SERVER_ERROR" if status_code >= 500 else "BAD_REQUEST"


def error_body(
    message: str,
    error_code: str,
    errors: Optional[Any] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error_code": error_code,
    }
    if errors:
        body["errors"] = errors
    if request_id:
        body["request_id"] = request_id
    return body


def group_validation_errors(raw_errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path, dropping the ``body`` prefix.

    Example:
        [{"loc": ("body", "items", 0, "quantity"), "msg": "..."}]
        -> {"items.0.quantity": ["..."]}
    """
    grouped: Dict[str, List[str]] = {}
    for error in raw_errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        field = ".".join(loc) or "__root__"
        grouped.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return grouped


class DomainError(Exception):
    """Business rule violation raised by a service."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"

    def __init__(self, message: str, errors: Optional[Any] = None):
        self.message = message
        self.errors = errors
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class BusinessRuleError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "VALIDATION_ERROR"


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"

    def __init__(self, message: str = "This action is unauthorized.", errors: Optional[Any] = None):
        super().__init__(message, errors)
