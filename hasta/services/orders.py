"""
Order state machine.

    pending-payment-approval --approve--> pending
    pending  --> shipped | delivered | cancelled
    shipped  --> delivered | cancelled
    pending-payment-approval --> cancelled
    delivered, cancelled: terminal

Every transition is one field update on the order row, committed on its
own. Reaching `delivered` stamps delivery_date in the same write, since
the return window is measured from it.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session, selectinload

from hasta.errors import InputRejected, NotFound, PreconditionFailed
from hasta.models import Order, OrderStatus
from hasta.store import commit

logger = logging.getLogger(__name__)


ADMIN_TARGETS = frozenset({OrderStatus.shipped, OrderStatus.delivered, OrderStatus.cancelled})

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.pending_payment_approval: frozenset({OrderStatus.pending, OrderStatus.cancelled}),
    OrderStatus.pending: frozenset({OrderStatus.shipped, OrderStatus.delivered, OrderStatus.cancelled}),
    OrderStatus.shipped: frozenset({OrderStatus.delivered, OrderStatus.cancelled}),
    OrderStatus.delivered: frozenset(),
    OrderStatus.cancelled: frozenset(),
}


def allowed_targets(status: OrderStatus) -> FrozenSet[OrderStatus]:
    """Statuses an admin may pick from the "Mark as" menu."""
    return TRANSITIONS[status] & ADMIN_TARGETS


def can_approve_payment(order: Order) -> bool:
    return order.status == OrderStatus.pending_payment_approval


def get_order(db: Session, order_id: str, user_id: Optional[str] = None) -> Order:
    query = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
    )
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    order = query.first()
    if not order:
        raise NotFound("Order not found")
    return order


# =====================================================
# TRANSITIONS
# =====================================================

def approve_payment(db: Session, order_id: str) -> Order:
    order = get_order(db, order_id)

    if not can_approve_payment(order):
        raise PreconditionFailed(
            f"Cannot approve payment for an order in status '{order.status.value}'. "
            "Only orders awaiting payment approval can be approved."
        )

    order.status = OrderStatus.pending
    commit(db, "order.approve_payment", order_id=order_id)
    db.refresh(order)

    logger.info("Payment approved | order_id=%s", order_id)
    return order


def mark_status(db: Session, order_id: str, target: OrderStatus, now: Optional[datetime] = None) -> Order:
    target = OrderStatus(target)
    if target not in ADMIN_TARGETS:
        raise InputRejected(
            f"Invalid target status. Valid values: {sorted(s.value for s in ADMIN_TARGETS)}"
        )

    order = get_order(db, order_id)

    if order.status == target:
        raise PreconditionFailed(f"Order is already '{target.value}'")

    if target not in TRANSITIONS[order.status]:
        raise PreconditionFailed(
            f"Cannot move an order from '{order.status.value}' to '{target.value}'"
        )

    previous = order.status
    order.status = target
    if target == OrderStatus.delivered and order.delivery_date is None:
        order.delivery_date = now or datetime.now(timezone.utc)

    commit(db, "order.mark_status", order_id=order_id, status=target.value)
    db.refresh(order)

    logger.info(
        "Order status updated | order_id=%s | from=%s | to=%s",
        order_id,
        previous.value,
        target.value,
    )
    return order


def set_delivery_date(db: Session, order_id: str, delivery_date: datetime) -> Order:
    order = get_order(db, order_id)

    if order.status != OrderStatus.delivered:
        raise PreconditionFailed("Delivery date can only be set on delivered orders")

    if delivery_date.tzinfo is None:
        delivery_date = delivery_date.replace(tzinfo=timezone.utc)

    order.delivery_date = delivery_date
    commit(db, "order.set_delivery_date", order_id=order_id)
    db.refresh(order)
    return order
