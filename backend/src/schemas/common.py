"""Response envelopes shared by list and action endpoints"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a list endpoint.

    Example:
        {"items": [...], "total": 42, "page": 1, "per_page": 25}
    """
    items: List[T] = Field(..., description="Entries on this page")
    total: int = Field(..., description="Total number of entries matching filters")
    page: int = Field(..., description="Current page number")
    per_page: int = Field(..., description="Entries per page")


class MessageResponse(BaseModel):
    success: bool = True
    message: str
