"""Product catalog API endpoints"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from exceptions import BusinessRuleError, ConflictError
from models.invoice import SalesInvoiceItem
from models.product import Product
from policies import ProductPolicy, authorize
from schemas.common import MessageResponse, Page
from .schemas import ProductCreate, ProductResponse, ProductUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])

product_policy = ProductPolicy()


def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(Product.id).where(Product.sku == sku)
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"Product with SKU '{sku}' already exists")


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ProductResponse:
    """
    Create a new product.

    Raises:
        409: Product with same SKU already exists in the tenant
    """
    authorize(db, product_policy, "create", current_user)
    _ensure_sku_free(db, product_data.sku)

    product = Product(tenant_id=tenant.id, **product_data.model_dump())
    db.add(product)
    db.flush()
    audit_service.log(db, "created", model=product, new_values=product.to_dict(),
                      user=current_user, request=request)
    db.commit()
    db.refresh(product)

    logger.info(f"Product created: {product.sku}", extra={"product_id": str(product.id)})
    return ProductResponse.model_validate(product)


@router.get("", response_model=Page[ProductResponse])
def list_products(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None, description="Search term for SKU, name, or description"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
) -> Page[ProductResponse]:
    """List products with search and pagination."""
    authorize(db, product_policy, "view_any", current_user)
    query = select(Product)
    if is_active is not None:
        query = query.where(Product.is_active == is_active)
    if search:
        search_term = f"%{search}%"
        query = query.where(
            or_(
                Product.sku.ilike(search_term),
                Product.name.ilike(search_term),
                Product.description.ilike(search_term),
            )
        )

    products, total = pagination.apply(db, query.order_by(Product.sku))
    return Page[ProductResponse](
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    product = get_or_404(db, Product, product_id)
    authorize(db, product_policy, "view", current_user, product)
    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: UUID,
    product_data: ProductUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> ProductResponse:
    """
    Update a product.

    Raises:
        404: Product not found
        409: New SKU already used by another product
    """
    product = get_or_404(db, Product, product_id)
    authorize(db, product_policy, "update", current_user, product)

    changes = product_data.model_dump(exclude_unset=True)
    if changes.get("sku") and changes["sku"] != product.sku:
        _ensure_sku_free(db, changes["sku"], exclude_id=product.id)

    old_values = model_values(product, changes.keys())
    for field, value in changes.items():
        setattr(product, field, value)
    db.flush()
    audit_service.log(db, "updated", model=product, old_values=old_values, new_values=changes,
                      user=current_user, request=request)
    db.commit()
    db.refresh(product)
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", response_model=MessageResponse)
def delete_product(
    product_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete a product that no invoice line references; otherwise deactivate it instead."""
    product = get_or_404(db, Product, product_id)
    authorize(db, product_policy, "delete", current_user, product)

    in_use = db.execute(select(SalesInvoiceItem.id).where(SalesInvoiceItem.product_id == product.id)).first()
    if in_use is not None:
        raise BusinessRuleError("Product is used on invoices; deactivate it instead.")

    audit_service.log(db, "deleted", model=product, old_values=product.to_dict(),
                      user=current_user, request=request)
    db.delete(product)
    db.commit()
    return MessageResponse(message="Product deleted successfully.")
