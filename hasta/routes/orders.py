from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from hasta.config import Settings
from hasta.context import AppContext, get_context, get_settings
from hasta.database import get_db
from hasta.errors import InputRejected
from hasta.models import Order, OrderStatus, User
from hasta.schemas import CheckoutPayload
from hasta.security import require_account
from hasta.services import checkout
from hasta.services.addresses import get_address
from hasta.services.cart import load_cart_items
from hasta.services.orders import allowed_targets, can_approve_payment, get_order
from hasta.services.returns import can_request_return, return_deadline

router = APIRouter(prefix="/orders", tags=["orders"])


# =====================================================
# SERIALIZERS
# =====================================================

def serialize_order_summary(o: Order) -> dict:
    return {
        "id": str(o.id),
        "order_date": o.order_date,
        "total_amount": o.total_amount,
        "status": o.status.value,
        "return_status": o.return_status.value,
        "payment_method": o.payment_method.value,
        "item_count": sum(i.quantity for i in o.items),
        "customer_name": (o.shipping_details or {}).get("name"),
        "delivery_date": o.delivery_date,
    }


def serialize_order_detail(o: Order, settings: Settings, include_admin_fields: bool = False) -> dict:
    data = {
        **serialize_order_summary(o),
        "subtotal": o.subtotal,
        "shipping_fee": o.shipping_fee,
        "gst_amount": o.gst_amount,
        "cgst_amount": o.cgst_amount,
        "sgst_amount": o.sgst_amount,
        "igst_amount": o.igst_amount,
        "shipping_details": o.shipping_details,
        "payment_details": o.payment_details,
        "return_eligible": can_request_return(o, window_days=settings.return_window_days),
        "return_deadline": return_deadline(o.delivery_date, settings.return_window_days),
        "items": [
            {
                "id": str(i.id),
                "product_id": i.product_id,
                "product_name": i.product_name,
                "product_image": i.product_image,
                "size": i.size,
                "quantity": i.quantity,
                "price": i.price,
                "subtotal": i.subtotal,
            }
            for i in o.items
        ],
        "updated_at": o.updated_at,
    }
    if include_admin_fields:
        data["user_id"] = str(o.user_id)
        data["allowed_targets"] = sorted(s.value for s in allowed_targets(o.status))
        data["can_approve_payment"] = can_approve_payment(o)
    return data


def parse_status_filter(value: Optional[str]) -> Optional[OrderStatus]:
    if not value:
        return None
    try:
        return OrderStatus(value)
    except ValueError:
        raise InputRejected(f"Invalid status: '{value}'")


# =====================================================
# USER: CHECKOUT
# =====================================================

@router.get("/quote")
def checkout_quote(
    address_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    settings: Settings = Depends(get_settings),
):
    state = get_address(db, user.id, address_id).state if address_id else None
    q = checkout.quote(load_cart_items(db, user.id), state, settings)
    return asdict(q)


@router.post("/checkout", status_code=status.HTTP_201_CREATED)
def place_order(
    payload: CheckoutPayload,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    ctx: AppContext = Depends(get_context),
):
    order = checkout.place_order(
        db,
        user,
        address_id=payload.address_id,
        utr=payload.utr,
        payment_percentage=payload.payment_percentage,
        settings=ctx.settings,
        transaction_id=payload.transaction_id,
    )

    if ctx.notifier is not None:
        ctx.notifier.order_placed(order)

    return serialize_order_detail(order, ctx.settings)


# =====================================================
# USER: MY ORDERS (paginated)
# =====================================================

@router.get("/my")
def my_orders(
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    query = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.user_id == user.id)
    )
    wanted = parse_status_filter(status_filter)
    if wanted is not None:
        query = query.filter(Order.status == wanted)

    total = query.count()
    orders = (
        query.order_by(Order.order_date.desc(), Order.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "results": [serialize_order_summary(o) for o in orders],
    }


# =====================================================
# USER: ORDER DETAIL
# =====================================================

# Static paths above must stay registered before /{order_id}

@router.get("/{order_id}")
def get_my_order_detail(
    order_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_account),
    settings: Settings = Depends(get_settings),
):
    return serialize_order_detail(get_order(db, order_id, user_id=user.id), settings)
