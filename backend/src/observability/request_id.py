"""Request ID propagation for log and audit correlation.

The id lives in a context variable so it follows the request through
sync and async code alike; audit entries copy it into ``request_id``.
"""

import uuid
from contextvars import ContextVar, Token
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Return the current request id, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


def current_request_id() -> Optional[str]:
    """Return the current request id, or None outside a request."""
    return request_id_var.get()


def set_request_id(request_id: str) -> Token:
    """Bind a request id to the current context.

    Args:
        request_id: Request ID to set

    Returns:
        Token: Pass to reset_request_id() to restore the previous value
    """
    return request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    request_id_var.reset(token)
