from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hasta.database import get_db
from hasta.models import User
from hasta.schemas import AddToCartPayload, UpdateQuantityPayload, UpdateSizePayload
from hasta.security import get_current_user
from hasta.services import cart as cart_service

# Anonymous sessions own carts too
router = APIRouter(prefix="/cart", tags=["cart"])


# =====================================================
# USER: GET CART
# =====================================================

@router.get("")
def get_cart(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return cart_service.view_cart(db, user.id)


# =====================================================
# USER: ADD ITEM
# =====================================================

@router.post("/items", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: AddToCartPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = cart_service.add_or_increment(db, user.id, payload.product_id, payload.selected_size)
    return {
        "message": "Added to cart",
        "item_id": line.id,
        "quantity": line.quantity,
        "selected_size": line.selected_size,
    }


# =====================================================
# USER: UPDATE QUANTITY (0 REMOVES)
# =====================================================

@router.patch("/items/{item_id}")
def update_cart_item(
    item_id: str,
    payload: UpdateQuantityPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = cart_service.set_quantity(db, user.id, item_id, payload.quantity)
    if line is None:
        return {"message": "Item removed from cart", "item_id": item_id}
    return {"message": "Cart updated", "item_id": line.id, "quantity": line.quantity}


@router.patch("/items/{item_id}/size")
def update_cart_item_size(
    item_id: str,
    payload: UpdateSizePayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = cart_service.update_line_size(db, user.id, item_id, payload.selected_size)
    return {
        "message": "Size updated",
        "item_id": line.id,
        "quantity": line.quantity,
        "selected_size": line.selected_size,
    }


# =====================================================
# USER: REMOVE / CLEAR
# =====================================================

@router.delete("/items/{item_id}")
def remove_from_cart(
    item_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cart_service.set_quantity(db, user.id, item_id, 0)
    return {"message": "Item removed from cart", "item_id": item_id}


@router.delete("")
def clear_cart(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    removed = cart_service.clear_cart(db, user.id)
    return {"message": "Cart cleared", "removed": removed}
