"""
Checkout: turn the shopper's cart into an Order with immutable item
snapshots. Later catalog edits never reach an order once it exists.
"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hasta.config import Settings
from hasta.errors import InputRejected, PreconditionFailed
from hasta.models import (
    CartLine,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    User,
)
from hasta.services.addresses import get_address
from hasta.services.cart import load_cart_items
from hasta.services.catalog import price_of

logger = logging.getLogger(__name__)


@dataclass
class Quote:
    subtotal: float
    shipping_fee: float
    total_amount: float
    gst_amount: float
    cgst_amount: float
    sgst_amount: float
    igst_amount: float
    payment_options: List[float]


def quote(items: List[Tuple[CartLine, Product]], state: Optional[str], settings: Settings) -> Quote:
    """
    Prices are GST-inclusive: each line's tax is carved out of its total
    at the product's own rate. Home-state deliveries split GST into
    CGST + SGST, all others pay IGST.
    """
    subtotal = 0.0
    gst = 0.0
    for line, product in items:
        line_total = price_of(product, line.selected_size) * line.quantity
        subtotal += line_total
        rate = (product.gst or settings.default_gst_percent) / 100
        gst += line_total - (line_total / (1 + rate))

    shipping = settings.shipping_fee if 0 < subtotal < settings.free_shipping_threshold else 0.0
    total = subtotal + shipping

    if state and state.strip().lower() == settings.home_state:
        cgst, sgst, igst = gst / 2, gst / 2, 0.0
    else:
        cgst, sgst, igst = 0.0, 0.0, gst

    options = [1.0]
    if total > settings.advance_payment_threshold:
        options.append(0.5)

    return Quote(
        subtotal=round(subtotal, 2),
        shipping_fee=round(shipping, 2),
        total_amount=round(total, 2),
        gst_amount=round(gst, 2),
        cgst_amount=round(cgst, 2),
        sgst_amount=round(sgst, 2),
        igst_amount=round(igst, 2),
        payment_options=options,
    )


def place_order(
    db: Session,
    user: User,
    address_id: str,
    utr: str,
    payment_percentage: float,
    settings: Settings,
    transaction_id: Optional[str] = None,
) -> Order:
    """
    Creates the Order, its OrderItems, and empties the cart in one commit.
    Partial (advance) payments wait for an admin to approve them; full
    payments go straight to pending fulfilment.
    """
    if user.is_anonymous:
        raise PreconditionFailed("Sign in to place an order")

    items = load_cart_items(db, user.id)
    if not items:
        raise PreconditionFailed("Your cart is empty")

    address = get_address(db, user.id, address_id)

    if not utr or not utr.strip():
        raise InputRejected("Please enter the UTR number from your UPI app")

    for line, product in items:
        if not product.in_stock:
            raise PreconditionFailed(f"{product.name} is out of stock")
        if price_of(product, line.selected_size) <= 0:
            raise PreconditionFailed(f"{product.name} has no price yet")

    q = quote(items, address.state, settings)
    if payment_percentage not in q.payment_options:
        raise InputRejected("Selected payment option is not available for this order")

    partial = payment_percentage < 1
    advance = round(q.total_amount * payment_percentage, 2)

    order = Order(
        user_id=user.id,
        subtotal=q.subtotal,
        shipping_fee=q.shipping_fee,
        gst_amount=q.gst_amount,
        cgst_amount=q.cgst_amount,
        sgst_amount=q.sgst_amount,
        igst_amount=q.igst_amount,
        total_amount=q.total_amount,
        status=OrderStatus.pending_payment_approval if partial else OrderStatus.pending,
        shipping_details={
            "name": address.name,
            "address": address.address,
            "city": address.city,
            "state": address.state,
            "pincode": address.pincode,
            "phone": address.phone,
            "email": user.email,
        },
        payment_method=PaymentMethod.upi_partial if partial else PaymentMethod.upi_full,
        payment_details={
            "advance_amount": advance,
            "remaining_amount": round(q.total_amount - advance, 2),
            "utr": utr.strip(),
            "payment_percentage": payment_percentage,
            "transaction_id": transaction_id or f"PHU{int(time.time() * 1000)}",
        },
    )

    try:
        db.add(order)
        db.flush()

        for line, product in items:
            db.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_name=product.name,
                product_image=(product.images or [None])[0],
                size=line.selected_size,
                quantity=line.quantity,
                price=price_of(product, line.selected_size),
            ))
            db.delete(line)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Order placement failed | user_id=%s", user.id)
        raise

    db.refresh(order)
    logger.info(
        "Order placed | order_id=%s | user_id=%s | total=%s | status=%s",
        order.id,
        user.id,
        order.total_amount,
        order.status.value,
    )
    return order
