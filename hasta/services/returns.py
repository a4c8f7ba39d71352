"""
Return / refund workflow.

    pending-review --> approved --> refunded
    pending-review --> rejected

Each request status change is mirrored into Order.return_status in the
same commit so order listings and the returns desk never disagree.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hasta.errors import InputRejected, NotFound, PreconditionFailed
from hasta.models import (
    Order,
    OrderReturnStatus,
    OrderStatus,
    ReturnReason,
    ReturnRequest,
    ReturnStatus,
)
from hasta.services.orders import get_order

logger = logging.getLogger(__name__)

RETURN_WINDOW_DAYS = 3

REVIEW_TRANSITIONS: Dict[ReturnStatus, FrozenSet[ReturnStatus]] = {
    ReturnStatus.pending_review: frozenset({ReturnStatus.approved, ReturnStatus.rejected}),
    ReturnStatus.approved: frozenset({ReturnStatus.refunded}),
    ReturnStatus.rejected: frozenset(),
    ReturnStatus.refunded: frozenset(),
}


# =====================================================
# ELIGIBILITY
# =====================================================

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def return_deadline(delivery_date: Optional[datetime], window_days: int = RETURN_WINDOW_DAYS) -> Optional[datetime]:
    if delivery_date is None:
        return None
    return _as_utc(delivery_date) + timedelta(days=window_days)


def is_return_eligible(
    delivery_date: Optional[datetime],
    now: Optional[datetime] = None,
    window_days: int = RETURN_WINDOW_DAYS,
) -> bool:
    """now < delivery_date + window. No delivery date means not eligible."""
    deadline = return_deadline(delivery_date, window_days)
    if deadline is None:
        return False
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now < deadline


def can_request_return(order: Order, now: Optional[datetime] = None, window_days: int = RETURN_WINDOW_DAYS) -> bool:
    return (
        order.status == OrderStatus.delivered
        and order.return_status in (None, OrderReturnStatus.none)
        and is_return_eligible(order.delivery_date, now, window_days)
    )


# =====================================================
# CREATION (CUSTOMER)
# =====================================================

def _match_order_item(order: Order, requested: dict):
    order_item_id = requested.get("order_item_id")
    if order_item_id:
        for item in order.items:
            if item.id == order_item_id:
                return item
        raise InputRejected(f"Item {order_item_id} is not part of this order")

    product_id = requested.get("product_id")
    lines = [item for item in order.items if item.product_id == product_id]
    if not lines:
        raise InputRejected(f"Product {product_id} is not part of this order")

    size = requested.get("size")
    if size is not None:
        lines = [item for item in lines if item.size == size]
        if not lines:
            raise InputRejected(f"Size {size} of product {product_id} is not part of this order")
    if len(lines) > 1:
        raise InputRejected(f"Please choose which size of {lines[0].product_name} to return")
    return lines[0]


def _select_items(order: Order, items: List[dict]) -> List[dict]:
    """One entry per OrderItem; a line picked twice is kept once."""
    if not items:
        raise InputRejected("Please select at least one item to return")

    selected = []
    seen = set()
    for requested in items:
        order_item = _match_order_item(order, requested)
        if order_item.id in seen:
            continue
        seen.add(order_item.id)

        quantity = requested.get("quantity")
        if quantity is None:
            quantity = order_item.quantity
        if quantity < 1 or quantity > order_item.quantity:
            raise InputRejected(
                f"Return quantity for {order_item.product_name} must be between 1 and {order_item.quantity}"
            )
        selected.append({
            "order_item_id": order_item.id,
            "product_id": order_item.product_id,
            "product_name": order_item.product_name,
            "size": order_item.size,
            "quantity": quantity,
            "price": order_item.price,
        })
    return selected


def _check_image_urls(urls: List[str]) -> List[str]:
    cleaned = [u.strip() for u in urls or [] if u and u.strip()]
    for url in cleaned:
        if not url.startswith(("http://", "https://")):
            raise InputRejected(f"Invalid image URL: {url}")
    return cleaned


def create_return_request(
    db: Session,
    user_id: str,
    order_id: str,
    items: List[dict],
    reason: Optional[str],
    comments: str = "",
    damage_images: Optional[List[str]] = None,
    now: Optional[datetime] = None,
    window_days: int = RETURN_WINDOW_DAYS,
) -> ReturnRequest:
    order = get_order(db, order_id, user_id=user_id)

    # State checks come first: nothing is written unless all of them hold
    if order.status != OrderStatus.delivered:
        raise PreconditionFailed("Only delivered orders can be returned")
    if order.return_status not in (None, OrderReturnStatus.none):
        raise PreconditionFailed("A return has already been requested for this order")
    if not is_return_eligible(order.delivery_date, now, window_days):
        raise PreconditionFailed("The return window for this order has closed")

    selected = _select_items(order, items)

    if not reason:
        raise InputRejected("Please select a reason for the return")
    try:
        reason_code = ReturnReason(reason)
    except ValueError:
        raise InputRejected(f"Invalid return reason: '{reason}'")

    images = _check_image_urls(damage_images or [])

    request = ReturnRequest(
        order_id=order.id,
        user_id=user_id,
        reason=reason_code,
        status=ReturnStatus.pending_review,
        items=selected,
        customer_comments=comments,
        damage_images=images,
    )

    try:
        db.add(request)
        order.return_status = OrderReturnStatus.requested
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Return request failed | order_id=%s | user_id=%s", order_id, user_id)
        raise

    db.refresh(request)
    logger.info(
        "Return requested | return_id=%s | order_id=%s | items=%s",
        request.id,
        order_id,
        len(selected),
    )
    return request


# =====================================================
# REVIEW (ADMIN)
# =====================================================

def get_return_request(db: Session, request_id: str) -> ReturnRequest:
    request = db.query(ReturnRequest).filter(ReturnRequest.id == request_id).first()
    if not request:
        raise NotFound("Return request not found")
    return request


def review_return(db: Session, request_id: str, target: ReturnStatus) -> ReturnRequest:
    target = ReturnStatus(target)
    request = get_return_request(db, request_id)

    if target not in REVIEW_TRANSITIONS[request.status]:
        raise PreconditionFailed(
            f"Cannot move a return from '{request.status.value}' to '{target.value}'"
        )

    order = db.query(Order).filter(Order.id == request.order_id).first()
    if not order:
        raise NotFound("Order for this return request no longer exists")

    previous = request.status
    try:
        request.status = target
        order.return_status = OrderReturnStatus(target.value)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Return review failed | return_id=%s | target=%s", request_id, target.value)
        raise

    db.refresh(request)
    logger.info(
        "Return reviewed | return_id=%s | order_id=%s | from=%s | to=%s",
        request_id,
        request.order_id,
        previous.value,
        target.value,
    )
    return request
