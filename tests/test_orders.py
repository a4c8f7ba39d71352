from datetime import datetime, timedelta, timezone

import pytest

from hasta.errors import InputRejected, PreconditionFailed
from hasta.models import Order, OrderStatus
from hasta.services import orders as order_service
from hasta.services.notifications import OrderNotifier


def _place(client, product_id, address_id, payment_percentage=1):
    client.post("/api/cart/items", json={"product_id": product_id})
    res = client.post(
        "/api/orders/checkout",
        json={"address_id": address_id, "utr": "UTR998877", "payment_percentage": payment_percentage},
    )
    assert res.status_code == 201, res.text
    return res.json()["id"]


@pytest.fixture
def pending_order(user_client, products, address_id):
    return _place(user_client, products["flat"], address_id)


@pytest.fixture
def awaiting_approval(user_client, products, address_id):
    return _place(user_client, products["premium"], address_id, payment_percentage=0.5)


def _status(db, order_id):
    db.expire_all()
    return db.get(Order, order_id).status


# =====================================================
# PAYMENT APPROVAL
# =====================================================

def test_approve_payment_moves_to_pending(admin_client, awaiting_approval, db):
    res = admin_client.post(f"/api/admin/orders/{awaiting_approval}/approve-payment")
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "pending"
    assert _status(db, awaiting_approval) == OrderStatus.pending


def test_approve_payment_refused_when_not_awaiting(admin_client, pending_order, db):
    detail = admin_client.get(f"/api/admin/orders/{pending_order}").json()
    assert detail["can_approve_payment"] is False

    res = admin_client.post(f"/api/admin/orders/{pending_order}/approve-payment")
    assert res.status_code == 409
    assert _status(db, pending_order) == OrderStatus.pending


def test_customer_cannot_approve(user_client, awaiting_approval):
    res = user_client.post(f"/api/admin/orders/{awaiting_approval}/approve-payment")
    assert res.status_code == 403


# =====================================================
# STATUS TRANSITIONS
# =====================================================

def test_allowed_targets():
    assert order_service.allowed_targets(OrderStatus.pending) == {
        OrderStatus.shipped,
        OrderStatus.delivered,
        OrderStatus.cancelled,
    }
    assert order_service.allowed_targets(OrderStatus.pending_payment_approval) == {OrderStatus.cancelled}
    assert order_service.allowed_targets(OrderStatus.delivered) == frozenset()


def test_ship_then_deliver_stamps_delivery_date(db, pending_order):
    now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    order_service.mark_status(db, pending_order, OrderStatus.shipped)
    order = order_service.mark_status(db, pending_order, OrderStatus.delivered, now=now)

    assert order.status == OrderStatus.delivered
    assert order.delivery_date.replace(tzinfo=timezone.utc) == now


def test_same_state_and_terminal_moves_refused(db, pending_order):
    order_service.mark_status(db, pending_order, OrderStatus.cancelled)

    with pytest.raises(PreconditionFailed):
        order_service.mark_status(db, pending_order, OrderStatus.cancelled)
    with pytest.raises(PreconditionFailed):
        order_service.mark_status(db, pending_order, OrderStatus.shipped)
    assert _status(db, pending_order) == OrderStatus.cancelled


def test_unpaid_order_cannot_ship(db, awaiting_approval):
    with pytest.raises(PreconditionFailed):
        order_service.mark_status(db, awaiting_approval, OrderStatus.shipped)
    assert _status(db, awaiting_approval) == OrderStatus.pending_payment_approval


def test_pending_is_not_an_admin_target(db, pending_order):
    with pytest.raises(InputRejected):
        order_service.mark_status(db, pending_order, OrderStatus.pending)


def test_status_endpoint(admin_client, pending_order):
    res = admin_client.post(f"/api/admin/orders/{pending_order}/status", json={"status": "delivered"})
    assert res.status_code == 200, res.text
    assert res.json()["delivery_date"] is not None

    res = admin_client.post(f"/api/admin/orders/{pending_order}/status", json={"status": "shipped"})
    assert res.status_code == 409

    res = admin_client.post(f"/api/admin/orders/{pending_order}/status", json={"status": "lost"})
    assert res.status_code == 422


def test_delivery_date_only_on_delivered_orders(admin_client, pending_order):
    when = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    url = f"/api/admin/orders/{pending_order}/delivery-date"

    assert admin_client.patch(url, json={"delivery_date": when}).status_code == 409

    admin_client.post(f"/api/admin/orders/{pending_order}/status", json={"status": "delivered"})
    assert admin_client.patch(url, json={"delivery_date": when}).status_code == 200


# =====================================================
# ADMIN LISTING
# =====================================================

def test_admin_list_filters_searches_and_counts(admin_client, pending_order, awaiting_approval):
    res = admin_client.get("/api/admin/orders")
    body = res.json()
    assert body["total"] == 2
    assert body["stats"] == {"pending": 1, "pending-payment-approval": 1}

    res = admin_client.get("/api/admin/orders", params={"status": "pending-payment-approval"})
    assert [o["id"] for o in res.json()["results"]] == [awaiting_approval]

    res = admin_client.get("/api/admin/orders", params={"search": "anjali"})
    assert res.json()["total"] == 2

    res = admin_client.get("/api/admin/orders", params={"search": pending_order[:8]})
    assert [o["id"] for o in res.json()["results"]] == [pending_order]


# =====================================================
# NOTIFICATIONS
# =====================================================

def test_status_changes_notify_customer(ctx, db, awaiting_approval, pending_order):
    sent = []
    notifier = OrderNotifier(
        ctx.store,
        ctx.writer,
        ctx.settings,
        mailer=lambda settings, to, subject, html, text: sent.append((to, subject)),
    )
    try:
        order_service.approve_payment(db, awaiting_approval)
        order_service.mark_status(db, pending_order, OrderStatus.shipped)
        order_service.mark_status(db, pending_order, OrderStatus.cancelled)
        assert ctx.writer.flush(timeout=5)
    finally:
        notifier.close()

    subjects = sorted(subject.split(" ", 2)[2] for _, subject in sent)
    assert subjects == ["cancelled", "confirmed"]
    assert {to for to, _ in sent} == {"shopper@hasta.test"}
