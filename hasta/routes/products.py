import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hasta.database import get_db
from hasta.models import Product
from hasta.schemas import ProductCreate, ProductUpdate
from hasta.security import require_admin
from hasta.services.catalog import get_product, serialize_product
from hasta.store import commit

router = APIRouter(prefix="/products", tags=["products"])

logger = logging.getLogger(__name__)


# =====================================================
# PUBLIC: LIST / DETAIL
# =====================================================

@router.get("")
def list_products(
    db: Session = Depends(get_db),
    category: Optional[str] = None,
    material: Optional[str] = None,
    in_stock: Optional[bool] = None,
    page: int = 1,
    per_page: int = 20,
):
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)

    query = db.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if material:
        query = query.filter(Product.material == material)
    if in_stock is not None:
        query = query.filter(Product.in_stock.is_(in_stock))

    products = (
        query.order_by(Product.created_at.desc(), Product.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return [serialize_product(p) for p in products]


@router.get("/{product_id}")
def get_product_detail(product_id: str, db: Session = Depends(get_db)):
    return serialize_product(get_product(db, product_id))


# =====================================================
# ADMIN: CREATE / UPDATE / DELETE
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    product = Product(**data)
    db.add(product)
    commit(db, "product.create", name=payload.name)
    db.refresh(product)

    logger.info("Product created | product_id=%s | variants=%s", product.id, len(data["variants"]))
    return serialize_product(product)


@router.patch("/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = get_product(db, product_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(product, field, value)

    commit(db, "product.update", product_id=product_id)
    db.refresh(product)
    return serialize_product(product)


@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str, db: Session = Depends(get_db)):
    """Cart lines that still point here are skipped on read."""
    product = get_product(db, product_id)
    db.delete(product)
    commit(db, "product.delete", product_id=product_id)

    logger.info("Product deleted | product_id=%s", product_id)
    return {"message": "Product deleted", "product_id": product_id}
