import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from hasta.config import Settings
from hasta.context import get_settings
from hasta.database import get_db
from hasta.models import Order, User
from hasta.routes.orders import parse_status_filter, serialize_order_detail, serialize_order_summary
from hasta.schemas import DeliveryDatePayload, OrderStatusPayload
from hasta.security import require_admin
from hasta.services import orders as order_service

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])

logger = logging.getLogger(__name__)


# =====================================================
# ADMIN: LIST ALL ORDERS (paginated + filterable)
# =====================================================

@router.get("")
def admin_orders(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    query = db.query(Order).options(selectinload(Order.items))

    wanted = parse_status_filter(status_filter)
    if wanted is not None:
        query = query.filter(Order.status == wanted)

    if search:
        term = search.strip()
        # Customer name lives inside the shipping snapshot, so match it in Python
        name_matches = [
            order_id
            for order_id, details in db.query(Order.id, Order.shipping_details).all()
            if term.lower() in str((details or {}).get("name") or "").lower()
        ]
        query = query.filter(or_(Order.id.like(f"{term}%"), Order.id.in_(name_matches)))

    total = query.count()
    orders = (
        query.order_by(Order.order_date.desc(), Order.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    stats = db.query(Order.status, func.count(Order.id)).group_by(Order.status).all()

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "stats": {s.value: c for s, c in stats},
        "results": [
            {**serialize_order_summary(o), "user_id": str(o.user_id)}
            for o in orders
        ],
    }


@router.get("/{order_id}")
def admin_get_order_detail(
    order_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    order = order_service.get_order(db, order_id)
    return serialize_order_detail(order, settings, include_admin_fields=True)


# =====================================================
# ADMIN: PAYMENT APPROVAL / STATUS
# =====================================================

@router.post("/{order_id}/approve-payment")
def approve_payment(
    order_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_service.approve_payment(db, order_id)
    logger.info("Payment approved by admin | order_id=%s | admin_id=%s", order_id, admin.id)
    return {"message": "Payment approved", "order_id": order_id, "status": order.status.value}


@router.post("/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: OrderStatusPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_service.mark_status(db, order_id, payload.status)
    return {
        "message": "Order status updated",
        "order_id": order_id,
        "status": order.status.value,
        "delivery_date": order.delivery_date,
    }


@router.patch("/{order_id}/delivery-date")
def update_delivery_date(
    order_id: str,
    payload: DeliveryDatePayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = order_service.set_delivery_date(db, order_id, payload.delivery_date)
    return {"message": "Delivery date updated", "order_id": order_id, "delivery_date": order.delivery_date}
