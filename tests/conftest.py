import mongomock
import pytest
from fastapi.testclient import TestClient

from swiftsale import auth, db, inventory


@pytest.fixture
def mongo():
    client = mongomock.MongoClient()
    db.set_client(client)
    db.ensure_indexes()
    yield client
    db.set_client(None)


@pytest.fixture
def shop_id(mongo):
    return auth.signup("owner@example.com", "secret123", "secret123")["shop_id"]


@pytest.fixture
def other_shop_id(mongo):
    return auth.signup("rival@example.com", "secret123", "secret123")["shop_id"]


@pytest.fixture
def stocked(shop_id):
    inventory.add_stock_item(
        shop_id,
        {"sku": "TEA-1", "name": "Green Tea", "category": "Drinks", "cost_price": 60, "sale_price": 100, "reorder_level": 2},
        10,
    )
    inventory.add_stock_item(
        shop_id,
        {"sku": "MUG-1", "name": "Mug", "category": "Kitchen", "cost_price": 30, "sale_price": 50, "reorder_level": 5},
        3,
    )
    return shop_id


@pytest.fixture
def client(mongo):
    from swiftsale.api import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    client.post(
        "/auth/signup",
        json={"email": "api@example.com", "password": "secret123", "confirm_password": "secret123"},
    )
    res = client.post("/auth/login", json={"email": "api@example.com", "password": "secret123"})
    return {"X-Auth-Token": res.json()["token"]}
