"""
Cart engine.

Each user owns a set of cart lines keyed by (product_id, selected_size).
The key is unique per user by convention: every insert goes through
add_or_increment, which looks for an existing line first. Line mutations
are independent writes, so concurrent edits of one line are last-write-wins.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from hasta.errors import InputRejected, NotFound, PreconditionFailed
from hasta.models import CartLine, Product
from hasta.services.catalog import get_product, price_of, variant_sizes
from hasta.store import commit

logger = logging.getLogger(__name__)


# =====================================================
# HELPERS
# =====================================================

def find_line(db: Session, user_id: str, product_id: str, selected_size: Optional[str]) -> Optional[CartLine]:
    query = db.query(CartLine).filter(
        CartLine.user_id == user_id,
        CartLine.product_id == product_id,
    )
    if selected_size is None:
        query = query.filter(CartLine.selected_size.is_(None))
    else:
        query = query.filter(CartLine.selected_size == selected_size)
    return query.first()


def _get_line(db: Session, user_id: str, line_id: str) -> CartLine:
    line = (
        db.query(CartLine)
        .filter(CartLine.id == line_id, CartLine.user_id == user_id)
        .first()
    )
    if not line:
        raise NotFound("Cart item not found")
    return line


def resolve_size(product: Product, selected_size: Optional[str]) -> Optional[str]:
    """Validate the requested size against the product's variants."""
    sizes = variant_sizes(product)
    if not sizes:
        # Flat-priced products have no size dimension
        return None
    if not selected_size:
        raise InputRejected("Please select a size")
    if selected_size not in sizes:
        raise InputRejected(f"Size '{selected_size}' is not available for {product.name}")
    return selected_size


# =====================================================
# MUTATIONS
# =====================================================

def set_quantity(db: Session, user_id: str, line_id: str, quantity: int) -> Optional[CartLine]:
    """
    The single mutation primitive behind every quantity control.
    quantity <= 0 deletes the line and returns None.
    """
    line = _get_line(db, user_id, line_id)

    if quantity <= 0:
        db.delete(line)
        commit(db, "cart.remove_line", user_id=user_id, line_id=line_id)
        logger.info("Cart line removed | user_id=%s | line_id=%s", user_id, line_id)
        return None

    line.quantity = quantity
    commit(db, "cart.set_quantity", user_id=user_id, line_id=line_id)
    db.refresh(line)
    return line


def add_or_increment(db: Session, user_id: str, product_id: str, selected_size: Optional[str] = None) -> CartLine:
    product = get_product(db, product_id)

    if not product.in_stock:
        raise PreconditionFailed(f"{product.name} is out of stock")

    size = resolve_size(product, selected_size)

    existing = find_line(db, user_id, product.id, size)
    if existing:
        return set_quantity(db, user_id, existing.id, existing.quantity + 1)

    line = CartLine(
        user_id=user_id,
        product_id=product.id,
        selected_size=size,
        quantity=1,
    )
    db.add(line)
    commit(db, "cart.add_line", user_id=user_id, product_id=product.id)
    db.refresh(line)

    logger.info(
        "Cart line added | user_id=%s | product_id=%s | size=%s",
        user_id,
        product.id,
        size,
    )
    return line


def update_line_size(db: Session, user_id: str, line_id: str, selected_size: str) -> CartLine:
    """
    Move a line to another size. If a line for the target size already
    exists the two are combined so the (product, size) key stays unique.
    """
    line = _get_line(db, user_id, line_id)
    product = get_product(db, line.product_id)
    size = resolve_size(product, selected_size)

    if size == line.selected_size:
        return line

    target = find_line(db, user_id, line.product_id, size)
    if target:
        target.quantity += line.quantity
        db.delete(line)
        commit(db, "cart.combine_lines", user_id=user_id, line_id=line_id)
        db.refresh(target)
        return target

    line.selected_size = size
    commit(db, "cart.update_size", user_id=user_id, line_id=line_id)
    db.refresh(line)
    return line


def clear_cart(db: Session, user_id: str) -> int:
    removed = db.query(CartLine).filter(CartLine.user_id == user_id).delete(synchronize_session=False)
    commit(db, "cart.clear", user_id=user_id)
    return removed


# =====================================================
# READS
# =====================================================

def load_cart_items(db: Session, user_id: str) -> list:
    """
    Cart lines joined with their products as (line, product) pairs.
    Lines whose product no longer resolves are left out.
    """
    lines = (
        db.query(CartLine)
        .filter(CartLine.user_id == user_id)
        .order_by(CartLine.created_at, CartLine.id)
        .all()
    )
    if not lines:
        return []

    product_ids = {line.product_id for line in lines}
    products = {
        p.id: p
        for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    return [(line, products[line.product_id]) for line in lines if line.product_id in products]


def view_cart(db: Session, user_id: str) -> dict:
    items = []
    subtotal = 0.0

    for line, product in load_cart_items(db, user_id):
        unit_price = price_of(product, line.selected_size)
        line_total = round(unit_price * line.quantity, 2)
        subtotal += line_total
        items.append({
            "id": line.id,
            "product_id": product.id,
            "name": product.name,
            "image": (product.images or [None])[0],
            "selected_size": line.selected_size,
            "sizes": variant_sizes(product),
            "quantity": line.quantity,
            "price": unit_price,
            "price_known": unit_price > 0,
            "subtotal": line_total,
            "in_stock": product.in_stock,
        })

    return {
        "items": items,
        "total_items": sum(i["quantity"] for i in items),
        "subtotal": round(subtotal, 2),
    }
