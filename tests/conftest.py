import email_validator
import pytest
from fastapi.testclient import TestClient

from hasta.config import Settings
from hasta.main import create_app
from hasta.models import Product

# Allow the special-use ".test" domain used by the fixture addresses
email_validator.TEST_ENVIRONMENT = True

ADMIN_EMAIL = "admin@hasta.test"
ADMIN_PASSWORD = "admin-pass-123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'hasta.db'}",
        secret_key="test-secret-key",
        cookie_secure=False,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        store_admin_email="store@hasta.test",
        writer_workers=2,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # Entering the client runs startup: tables, admin bootstrap, notifier
    with TestClient(app) as c:
        yield c


@pytest.fixture
def ctx(app, client):
    return app.state.context


@pytest.fixture
def db(ctx):
    session = ctx.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_client(app, client):
    """Extra browsers sharing the already started app."""
    def _make():
        return TestClient(app)
    return _make


# =====================================================
# CATALOG
# =====================================================

@pytest.fixture
def products(db):
    flat = Product(name="Bamboo Basket", category="bamboo", material="bamboo", base_mrp=80, images=["https://img.test/basket.jpg"])
    sized = Product(
        name="Muga Silk Stole",
        category="textile",
        material="silk",
        variants=[{"size": "S", "price": 100}, {"size": "M", "price": 120}],
    )
    sold_out = Product(name="Brass Xorai", category="metal", material="brass", base_mrp=900, in_stock=False)
    unpriced = Product(name="Cane Stool", category="cane", material="cane")
    premium = Product(name="Handloom Mekhela", category="textile", material="silk", base_mrp=45000, gst=12)
    db.add_all([flat, sized, sold_out, unpriced, premium])
    db.commit()
    return {
        "flat": flat.id,
        "sized": sized.id,
        "sold_out": sold_out.id,
        "unpriced": unpriced.id,
        "premium": premium.id,
    }


# =====================================================
# IDENTITIES
# =====================================================

def _register(client, email, password="secret-123", full_name="Test Shopper"):
    res = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "full_name": full_name},
    )
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def signup():
    return _register


@pytest.fixture
def anon_client(make_client):
    c = make_client()
    res = c.post("/api/auth/session")
    assert res.status_code == 200, res.text
    assert res.json()["is_anonymous"] is True
    return c


@pytest.fixture
def user_client(make_client):
    c = make_client()
    _register(c, "shopper@hasta.test")
    return c


@pytest.fixture
def admin_client(make_client):
    c = make_client()
    res = c.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200, res.text
    return c


ADDRESS = {
    "name": "Anjali Das",
    "address": "12 Zoo Road",
    "city": "Guwahati",
    "state": "Assam",
    "pincode": "781005",
    "phone": "9876543210",
}


@pytest.fixture
def address_id(user_client):
    res = user_client.post("/api/users/me/addresses", json=ADDRESS)
    assert res.status_code == 201, res.text
    return res.json()["id"]
