"""Observability module for BizFlow.

Provides structured logging, request correlation, log masking, metrics and
health checks.
"""

from .logging_config import configure_logging, get_logger
from .masking import LogMaskingService, mask_value, mask_sensitive
from .request_id import request_id_var, get_request_id, set_request_id, generate_request_id
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Masking
    "LogMaskingService",
    "mask_value",
    "mask_sensitive",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "RequestIDMiddleware",
]
