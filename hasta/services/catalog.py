from typing import List, Optional

from sqlalchemy.orm import Session

from hasta.errors import NotFound
from hasta.models import Product


def variant_sizes(product: Product) -> List[str]:
    return [v.get("size") for v in (product.variants or [])]


def price_of(product: Product, size: Optional[str] = None) -> float:
    """
    Unit price for a purchase of `product` in `size`.

    Variant products resolve the matching size, falling back to the first
    variant when no size is given or none matches. Flat products return
    base_mrp. Never raises: 0 means "price unknown", not "free".
    """
    variants = product.variants or []
    if variants:
        for variant in variants:
            if variant.get("size") == size:
                return float(variant.get("price") or 0)
        return float(variants[0].get("price") or 0)
    return float(product.base_mrp or 0)


def display_price(product: Product) -> float:
    """Lowest price a shopper can pay, for listing cards."""
    prices = [float(v.get("price") or 0) for v in (product.variants or []) if v.get("price")]
    if prices:
        return min(prices)
    return float(product.base_mrp or 0)


def get_product(db: Session, product_id: str) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")
    return product


def serialize_product(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "category": p.category,
        "material": p.material,
        "images": p.images or [],
        "in_stock": p.in_stock,
        "base_mrp": p.base_mrp,
        "gst": p.gst,
        "variants": p.variants or [],
        "display_price": display_price(p),
        "created_at": p.created_at,
        "updated_at": p.updated_at,
    }
