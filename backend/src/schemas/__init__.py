"""Pydantic schemas shared across BizFlow API modules"""

from .common import Page, MessageResponse

__all__ = [
    "Page",
    "MessageResponse",
]
