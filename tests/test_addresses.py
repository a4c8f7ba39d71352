ADDRESS = {
    "name": "Anjali Das",
    "address": "12 Zoo Road",
    "city": "Guwahati",
    "state": "Assam",
    "pincode": "781005",
    "phone": "9876543210",
}


def _add(client, **overrides):
    res = client.post("/api/users/me/addresses", json={**ADDRESS, **overrides})
    assert res.status_code == 201, res.text
    return res.json()


def _defaults(client):
    return [a["id"] for a in client.get("/api/users/me/addresses").json() if a["is_default"]]


def test_first_address_becomes_default(user_client):
    first = _add(user_client)
    second = _add(user_client, city="Jorhat")

    assert first["is_default"] is True
    assert second["is_default"] is False
    assert _defaults(user_client) == [first["id"]]


def test_set_default_leaves_exactly_one(user_client):
    ids = [_add(user_client, name=f"Home {i}")["id"] for i in range(4)]

    res = user_client.post(f"/api/users/me/addresses/{ids[2]}/set-default")
    assert res.status_code == 200
    assert _defaults(user_client) == [ids[2]]


def test_creating_default_address_clears_previous(user_client):
    first = _add(user_client)
    second = _add(user_client, is_default=True, address_type="Work")

    assert second["address_type"] == "Work"
    assert _defaults(user_client) == [second["id"]]
    assert first["id"] != second["id"]


def test_update_with_default_flag(user_client):
    _add(user_client)
    other = _add(user_client, city="Tezpur")

    res = user_client.patch(f"/api/users/me/addresses/{other['id']}", json={"is_default": True})
    assert res.status_code == 200
    assert _defaults(user_client) == [other["id"]]


def test_deleting_default_promotes_another(user_client):
    first = _add(user_client)
    second = _add(user_client, city="Silchar")

    assert user_client.delete(f"/api/users/me/addresses/{first['id']}").status_code == 200
    assert _defaults(user_client) == [second["id"]]


def test_validation(user_client):
    res = user_client.post("/api/users/me/addresses", json={**ADDRESS, "pincode": "78100"})
    assert res.status_code == 422
    res = user_client.post("/api/users/me/addresses", json={**ADDRESS, "phone": "12345"})
    assert res.status_code == 422
    res = user_client.patch("/api/users/me/addresses/whatever", json={})
    assert res.status_code == 400


def test_addresses_are_private(user_client, make_client, signup):
    mine = _add(user_client)

    other = make_client()
    signup(other, "neighbour@hasta.test")
    assert other.get("/api/users/me/addresses").json() == []
    assert other.post(f"/api/users/me/addresses/{mine['id']}/set-default").status_code == 404
