from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from hasta.errors import InputRejected, NotFound, PreconditionFailed
from hasta.models import Order, OrderReturnStatus, OrderStatus, ReturnRequest, ReturnStatus
from hasta.services import orders as order_service
from hasta.services.returns import create_return_request, is_return_eligible, review_return


# =====================================================
# ELIGIBILITY WINDOW
# =====================================================

def test_eligibility_boundary():
    now = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)

    assert is_return_eligible(now - timedelta(days=3, seconds=1), now=now) is False
    assert is_return_eligible(now - timedelta(days=3), now=now) is False
    assert is_return_eligible(now - timedelta(days=2), now=now) is True
    assert is_return_eligible(None, now=now) is False


def test_naive_dates_are_utc():
    now = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)
    assert is_return_eligible(datetime(2026, 5, 9, 12, 0), now=now) is True


# =====================================================
# FIXTURES
# =====================================================

@pytest.fixture
def delivered_order(user_client, products, address_id, db):
    user_client.post("/api/cart/items", json={"product_id": products["flat"]})
    user_client.post("/api/cart/items", json={"product_id": products["flat"]})
    res = user_client.post("/api/orders/checkout", json={"address_id": address_id, "utr": "UTR1"})
    order_id = res.json()["id"]
    order_service.mark_status(db, order_id, OrderStatus.delivered)
    return db.get(Order, order_id)


@pytest.fixture
def flat_id(products):
    return products["flat"]


def _submit(db, order, items, reason="damaged-item", **kwargs):
    return create_return_request(db, order.user_id, order.id, items, reason, **kwargs)


# =====================================================
# CREATE
# =====================================================

def test_request_marks_order(db, delivered_order, flat_id):
    request = _submit(db, delivered_order, [{"product_id": flat_id, "quantity": 1}], comments="cracked rim")

    db.expire_all()
    assert request.status == ReturnStatus.pending_review
    assert request.items[0]["quantity"] == 1
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.requested


def test_only_one_return_per_order(db, delivered_order, flat_id):
    _submit(db, delivered_order, [{"product_id": flat_id}])
    with pytest.raises(PreconditionFailed):
        _submit(db, delivered_order, [{"product_id": flat_id}])


def test_outside_window_rejected(db, delivered_order, flat_id):
    later = datetime.now(timezone.utc) + timedelta(days=4)
    with pytest.raises(PreconditionFailed):
        _submit(db, delivered_order, [{"product_id": flat_id}], now=later)
    assert db.query(ReturnRequest).count() == 0


def test_undelivered_order_rejected(db, user_client, products, address_id):
    user_client.post("/api/cart/items", json={"product_id": products["flat"]})
    order_id = user_client.post("/api/orders/checkout", json={"address_id": address_id, "utr": "UTR2"}).json()["id"]
    order = db.get(Order, order_id)

    with pytest.raises(PreconditionFailed):
        _submit(db, order, [{"product_id": products["flat"]}])


@pytest.mark.parametrize(
    "items, reason",
    [
        ([], "damaged-item"),
        ([{"product_id": "not-in-order"}], "damaged-item"),
        (None, None),
        (None, "changed-my-mind"),
    ],
)
def test_input_validation(db, delivered_order, flat_id, items, reason):
    items = items if items is not None else [{"product_id": flat_id}]
    with pytest.raises(InputRejected):
        _submit(db, delivered_order, items, reason=reason)
    db.expire_all()
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.none


def test_quantity_above_ordered_rejected(db, delivered_order, flat_id):
    with pytest.raises(InputRejected):
        _submit(db, delivered_order, [{"product_id": flat_id, "quantity": 3}])


def test_damage_images_must_be_urls(db, delivered_order, flat_id):
    with pytest.raises(InputRejected):
        _submit(db, delivered_order, [{"product_id": flat_id}], damage_images=["file:///tmp/a.png"])


def test_someone_elses_order(db, delivered_order, flat_id):
    with pytest.raises(NotFound):
        create_return_request(db, "another-user", delivered_order.id, [{"product_id": flat_id}], "other")


# =====================================================
# MULTI-SIZE ORDERS
# =====================================================

@pytest.fixture
def two_size_order(user_client, products, address_id, db):
    sized = products["sized"]
    user_client.post("/api/cart/items", json={"product_id": sized, "selected_size": "S"})
    for _ in range(3):
        user_client.post("/api/cart/items", json={"product_id": sized, "selected_size": "M"})
    res = user_client.post("/api/orders/checkout", json={"address_id": address_id, "utr": "UTR3"})
    order_id = res.json()["id"]
    order_service.mark_status(db, order_id, OrderStatus.delivered)
    return db.get(Order, order_id)


def test_return_second_size_of_same_product(db, two_size_order, products):
    request = _submit(db, two_size_order, [{"product_id": products["sized"], "size": "M", "quantity": 3}])

    [item] = request.items
    assert item["size"] == "M"
    assert item["quantity"] == 3
    assert item["price"] == 120


def test_return_by_order_item_id(db, two_size_order):
    small = next(i for i in two_size_order.items if i.size == "S")
    request = _submit(db, two_size_order, [{"order_item_id": small.id}])

    assert request.items == [{
        "order_item_id": small.id,
        "product_id": small.product_id,
        "product_name": small.product_name,
        "size": "S",
        "quantity": 1,
        "price": 100,
    }]


def test_both_sizes_in_one_request(db, two_size_order, products):
    sized = products["sized"]
    request = _submit(db, two_size_order, [
        {"product_id": sized, "size": "S"},
        {"product_id": sized, "size": "M", "quantity": 2},
        {"product_id": sized, "size": "M", "quantity": 1},
    ])

    assert sorted((i["size"], i["quantity"]) for i in request.items) == [("M", 2), ("S", 1)]


@pytest.mark.parametrize(
    "item",
    [
        {"size": None},
        {"size": "XL"},
        {"size": "M", "quantity": 0},
        {"size": "S", "quantity": 2},
    ],
)
def test_multi_size_selection_rejected(db, two_size_order, products, item):
    with pytest.raises(InputRejected):
        _submit(db, two_size_order, [{"product_id": products["sized"], **item}])
    assert db.query(ReturnRequest).count() == 0


def test_api_accepts_size(user_client, two_size_order, products):
    res = user_client.post(
        "/api/returns",
        json={
            "order_id": two_size_order.id,
            "items": [{"product_id": products["sized"], "size": "M", "quantity": 3}],
            "reason": "damaged-item",
        },
    )
    assert res.status_code == 201, res.text
    assert res.json()["items"][0]["size"] == "M"


# =====================================================
# REVIEW
# =====================================================

def test_approve_mirrors_into_order(db, delivered_order, flat_id):
    request = _submit(db, delivered_order, [{"product_id": flat_id}])

    review_return(db, request.id, ReturnStatus.approved)

    db.expire_all()
    assert db.get(ReturnRequest, request.id).status == ReturnStatus.approved
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.approved

    review_return(db, request.id, ReturnStatus.refunded)
    db.expire_all()
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.refunded


def test_review_mirror_is_one_commit(ctx, db, delivered_order, flat_id):
    request = _submit(db, delivered_order, [{"product_id": flat_id}])
    seen = []
    sub = ctx.store.subscribe(ReturnRequest, lambda change: seen.append(
        ctx.store.get(Order, change.data["order_id"]).return_status
    ))
    try:
        review_return(db, request.id, ReturnStatus.approved)
    finally:
        sub.unsubscribe()

    assert seen == [OrderReturnStatus.approved]


def test_review_transitions(db, delivered_order, flat_id):
    request = _submit(db, delivered_order, [{"product_id": flat_id}])

    with pytest.raises(PreconditionFailed):
        review_return(db, request.id, ReturnStatus.refunded)

    review_return(db, request.id, ReturnStatus.rejected)
    with pytest.raises(PreconditionFailed):
        review_return(db, request.id, ReturnStatus.approved)

    db.expire_all()
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.rejected


# =====================================================
# COMMIT FAILURES
# =====================================================

def _failing_commit():
    raise SQLAlchemyError("disk full")


def test_failed_request_leaves_order_untouched(db, delivered_order, flat_id, monkeypatch):
    monkeypatch.setattr(db, "commit", _failing_commit)
    with pytest.raises(SQLAlchemyError):
        _submit(db, delivered_order, [{"product_id": flat_id}])
    monkeypatch.undo()

    db.expire_all()
    assert db.query(ReturnRequest).count() == 0
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.none


def test_failed_review_keeps_request_and_order_in_step(db, delivered_order, flat_id, monkeypatch):
    request = _submit(db, delivered_order, [{"product_id": flat_id}])

    monkeypatch.setattr(db, "commit", _failing_commit)
    with pytest.raises(SQLAlchemyError):
        review_return(db, request.id, ReturnStatus.approved)
    monkeypatch.undo()

    db.expire_all()
    assert db.get(ReturnRequest, request.id).status == ReturnStatus.pending_review
    assert db.get(Order, delivered_order.id).return_status == OrderReturnStatus.requested


# =====================================================
# API
# =====================================================

def test_return_api_flow(user_client, admin_client, delivered_order, flat_id):
    detail = user_client.get(f"/api/orders/{delivered_order.id}").json()
    assert detail["return_eligible"] is True
    assert detail["return_deadline"] is not None

    res = user_client.post(
        "/api/returns",
        json={
            "order_id": delivered_order.id,
            "items": [{"product_id": flat_id, "quantity": 2}],
            "reason": "wrong-item",
            "damage_images": ["https://img.test/proof.jpg"],
        },
    )
    assert res.status_code == 201, res.text
    return_id = res.json()["id"]

    assert user_client.get(f"/api/orders/{delivered_order.id}").json()["return_eligible"] is False
    assert [r["id"] for r in user_client.get("/api/returns/my").json()] == [return_id]

    pending = admin_client.get("/api/admin/returns", params={"status": "pending-review"}).json()
    assert [r["id"] for r in pending] == [return_id]

    res = admin_client.post(f"/api/admin/returns/{return_id}/status", json={"status": "approved"})
    assert res.status_code == 200
    assert res.json()["status"] == "approved"
    assert user_client.get(f"/api/orders/{delivered_order.id}").json()["return_status"] == "approved"


def test_return_api_rejects_missing_reason(user_client, delivered_order, flat_id):
    res = user_client.post(
        "/api/returns",
        json={"order_id": delivered_order.id, "items": [{"product_id": flat_id}]},
    )
    assert res.status_code == 400
