"""Catalog domain module for products"""

from .router import router
from .schemas import ProductCreate, ProductResponse, ProductUpdate

__all__ = [
    "router",
    "ProductCreate",
    "ProductUpdate",
    "ProductResponse",
]
