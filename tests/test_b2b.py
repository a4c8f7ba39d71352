import pytest

from hasta.errors import PreconditionFailed
from hasta.models import OrderRequest, RequestStatus
from hasta.services.requests import decide_request, set_admin_note

REQUEST = {
    "order_type": "bulk",
    "materials": [
        {
            "material_id": "bamboo-01",
            "material_name": "Bamboo",
            "quantity": 200,
            "product_name": "Fruit basket",
            "budget_per_piece": 150,
            "reference_images": ["https://img.test/basket.jpg"],
        }
    ],
    "requirement_date": "2026-12-01",
    "customer_details": {
        "name": "Brahmaputra Crafts",
        "mobile": "9876501234",
        "email": "",
        "gst_number": "18ABCDE1234F1Z5",
    },
}


@pytest.fixture
def request_id(user_client):
    res = user_client.post("/api/b2b/requests", json=REQUEST)
    assert res.status_code == 201, res.text
    return res.json()["id"]


def test_submit_and_list_own(user_client, request_id):
    mine = user_client.get("/api/b2b/requests/my").json()
    assert [r["id"] for r in mine] == [request_id]
    assert mine[0]["status"] == "pending"
    assert mine[0]["customer_details"]["email"] is None
    assert mine[0]["materials"][0]["reference_images"] == ["https://img.test/basket.jpg"]


@pytest.mark.parametrize(
    "patch",
    [
        {"order_type": "wholesale"},
        {"materials": []},
        {"customer_details": {"name": "X", "mobile": "123"}},
    ],
)
def test_submit_validation(user_client, patch):
    res = user_client.post("/api/b2b/requests", json={**REQUEST, **patch})
    assert res.status_code == 422


def test_anonymous_cannot_submit(anon_client):
    assert anon_client.post("/api/b2b/requests", json=REQUEST).status_code == 401


def test_decision_only_from_pending(admin_client, request_id):
    res = admin_client.post(f"/api/admin/requests/{request_id}/status", json={"status": "approved"})
    assert res.status_code == 200
    assert res.json()["status"] == "approved"

    res = admin_client.post(f"/api/admin/requests/{request_id}/status", json={"status": "rejected"})
    assert res.status_code == 409

    listed = admin_client.get("/api/admin/requests", params={"status": "approved"}).json()
    assert [r["id"] for r in listed] == [request_id]


def test_decide_request_service(db, request_id):
    with pytest.raises(PreconditionFailed):
        decide_request(db, request_id, RequestStatus.pending)
    assert decide_request(db, request_id, RequestStatus.rejected).status == RequestStatus.rejected


def test_note_is_written_in_background(admin_client, ctx, db, request_id):
    res = admin_client.patch(f"/api/admin/requests/{request_id}/note", json={"admin_note": "Call back Monday"})
    assert res.status_code == 202

    assert ctx.writer.flush(timeout=5)
    db.expire_all()
    assert db.get(OrderRequest, request_id).admin_note == "Call back Monday"


def test_note_can_change_after_decision(db, request_id):
    decide_request(db, request_id, RequestStatus.approved)
    assert set_admin_note(db, request_id, "Quoted Rs 140/pc").admin_note == "Quoted Rs 140/pc"
