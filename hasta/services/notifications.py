"""
Customer and store emails driven by order activity.

Status-driven mails come from a store subscription on Order, so every
path that approves or cancels an order notifies without knowing about
email. Checkout, return submission and B2B requests call in directly.
Every send is queued on the non-blocking writer.
"""
import logging
from concurrent.futures import Future
from typing import Optional

from hasta.config import Settings
from hasta.models import Order, OrderRequest, OrderStatus, ReturnRequest
from hasta.nonblocking import NonBlockingWriter
from hasta.store import Change, DocumentStore
from hasta.utils.email import send_email

logger = logging.getLogger(__name__)


def _short(order_id: str) -> str:
    return str(order_id)[:8].upper()


class OrderNotifier:
    def __init__(self, store: DocumentStore, writer: NonBlockingWriter, settings: Settings, mailer=send_email):
        self._writer = writer
        self._settings = settings
        self._mailer = mailer
        self._subscription = store.subscribe(
            Order,
            self._on_order_change,
            where=lambda data: data.get("status") in (OrderStatus.pending, OrderStatus.cancelled),
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # ---------- plumbing ----------

    def _send(self, to_email: Optional[str], subject: str, html: str, text: str) -> Optional[Future]:
        if not to_email:
            logger.info("Notification skipped, no recipient | subject=%s", subject)
            return None
        return self._writer.submit(
            self._mailer,
            self._settings,
            to_email,
            subject,
            html,
            text,
            description=f"email '{subject}' to {to_email}",
        )

    def _order_link(self, order_id: str) -> str:
        return f"{self._settings.frontend_url}/orders/{order_id}"

    # ---------- subscription ----------

    def _on_order_change(self, change: Change) -> None:
        if change.kind != "modified" or "status" not in change.changed_fields:
            return

        details = change.data.get("shipping_details") or {}
        status = change.data.get("status")
        ref = _short(change.doc_id)

        if status == OrderStatus.pending:
            self.order_confirmed(change.doc_id, details.get("email"), details.get("name"))
        elif status == OrderStatus.cancelled:
            self._send(
                details.get("email"),
                f"Order #{ref} cancelled",
                f"<p>Hello {details.get('name') or ''},</p>"
                f"<p>Your order <b>#{ref}</b> has been cancelled. "
                f"If you have already paid, the amount will be refunded to your UPI account.</p>",
                f"Your order #{ref} has been cancelled.",
            )

    # ---------- direct calls ----------

    def order_confirmed(self, order_id: str, email: Optional[str], name: Optional[str] = None) -> Optional[Future]:
        ref = _short(order_id)
        link = self._order_link(order_id)
        return self._send(
            email,
            f"Order #{ref} confirmed",
            f"<p>Hello {name or ''},</p>"
            f"<p>Your payment has been verified and order <b>#{ref}</b> is confirmed.</p>"
            f'<p><a href="{link}">Track your order</a></p>',
            f"Your order #{ref} is confirmed. Track it at {link}",
        )

    def order_placed(self, order: Order) -> None:
        details = order.shipping_details or {}
        ref = _short(order.id)
        link = self._order_link(order.id)

        self._send(
            details.get("email"),
            f"Order #{ref} received",
            f"<p>Hello {details.get('name') or ''},</p>"
            f"<p>Thank you for shopping with {self._settings.email_from_name}. "
            f"We have received order <b>#{ref}</b> for Rs. {order.total_amount:.2f}.</p>"
            f'<p><a href="{link}">View order</a></p>',
            f"We have received your order #{ref} for Rs. {order.total_amount:.2f}.",
        )

        if order.status == OrderStatus.pending_payment_approval:
            utr = (order.payment_details or {}).get("utr")
            self._send(
                self._settings.store_admin_email,
                f"Payment approval needed for #{ref}",
                f"<p>Order <b>#{ref}</b> was paid in part (UTR {utr}). Verify and approve it.</p>",
                f"Order #{ref} awaits payment approval. UTR {utr}",
            )

    def return_requested(self, request: ReturnRequest, order: Order) -> None:
        details = order.shipping_details or {}
        ref = _short(order.id)

        self._send(
            details.get("email"),
            f"Return request for order #{ref}",
            f"<p>We have received your return request for order <b>#{ref}</b>. "
            f"Our team will review it shortly.</p>",
            f"We have received your return request for order #{ref}.",
        )
        self._send(
            self._settings.store_admin_email,
            f"New return request for #{ref}",
            f"<p>Reason: {request.reason.value}</p><p>{request.customer_comments or ''}</p>",
            f"New return request for #{ref}. Reason: {request.reason.value}",
        )

    def b2b_request_received(self, request: OrderRequest) -> None:
        customer = request.customer_details or {}
        self._send(
            self._settings.store_admin_email,
            f"New {request.order_type.value} request from {customer.get('name')}",
            f"<p>{customer.get('name')} ({customer.get('mobile')}) requested "
            f"{len(request.materials or [])} item(s) by {request.requirement_date}.</p>",
            f"New {request.order_type.value} request from {customer.get('name')}",
        )
