import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import database
from config import settings
from main import app

ADMIN = {"X-Admin-Key": "test-secret"}

CUSTOMER = {
    "name": "Asha Kulkarni",
    "email": "asha@fiftyfive.in",
    "phone": "9876543210",
    "address": "12 MG Road, Pune",
    "pincode": "411001",
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


@pytest.fixture(autouse=True)
def db(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_SECRET", "test-secret")
    mock_db = AsyncMongoMockClient()["fifty_five_test"]
    database.use_database(mock_db)
    yield mock_db
    database.use_database(None)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_product(client):
    def _make(**overrides):
        data = {
            "name": "Utility Cargo Pants",
            "category": "Cargos",
            "description": "Six-pocket twill cargos",
            "price": 1500.0,
            "images": ["/images/cargo.jpg"],
            "sizes": ["S", "M", "L"],
        }
        data.update(overrides)
        res = client.post("/api/admin/products", json=data, headers=ADMIN)
        assert res.status_code == 200, res.text
        return res.json()
    return _make


@pytest.fixture
def make_coupon(client):
    def _make(**overrides):
        data = {
            "code": "STREET10",
            "type": "percentage",
            "value": 10,
            "max_usages": 5,
            "expiry_date": "2099-12-31T00:00:00Z",
        }
        data.update(overrides)
        res = client.post("/api/admin/coupons", json=data, headers=ADMIN)
        assert res.status_code == 201, res.text
        return res.json()
    return _make
