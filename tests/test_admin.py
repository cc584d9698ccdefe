from admin import rows_to_settings, settings_to_rows
from conftest import ADMIN, CUSTOMER
from schemas import AdminSettings


def test_login(client):
    assert client.post("/api/admin/login", json={"secret": "test-secret"}).json() == {"ok": True}
    res = client.post("/api/admin/login", json={"secret": "guess"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid secret password"


def test_settings_rows_use_string_values():
    rows = {r["key"]: r["value"] for r in settings_to_rows(AdminSettings(maintenance_mode=True))}
    assert rows["maintenance_mode"] == "true"
    assert rows["allow_guest_checkout"] == "true"
    assert rows["order_notification_delay"] == "5"


def test_rows_to_settings_parses_and_falls_back():
    values = rows_to_settings([
        {"key": "low_stock_alerts", "value": "false"},
        {"key": "order_notification_delay", "value": "abc"},
        {"key": "site_name", "value": "55 STUDIO"},
        {"key": "payment_qr_image", "value": "data:image/png;base64,AAA"},
    ])
    assert values.low_stock_alerts is False
    assert values.order_notification_delay == 5
    assert values.site_name == "55 STUDIO"
    assert values.maintenance_mode is False


def test_settings_defaults_and_update(client):
    res = client.get("/api/admin/settings", headers=ADMIN)
    assert res.json() == AdminSettings().model_dump()

    updated = dict(res.json(), site_name="FIFTY-FIVE STORE", maintenance_mode=True, order_notification_delay=15)
    assert client.put("/api/admin/settings", json=updated, headers=ADMIN).status_code == 200

    body = client.get("/api/admin/settings", headers=ADMIN).json()
    assert body["site_name"] == "FIFTY-FIVE STORE"
    assert body["maintenance_mode"] is True
    assert body["order_notification_delay"] == 15


def test_settings_require_admin(client):
    assert client.get("/api/admin/settings").status_code == 401
    assert client.put("/api/admin/settings", json={}).status_code == 401


def test_payment_qr(client):
    assert client.get("/api/settings/payment-qr").json() == {"image": None}
    res = client.put("/api/admin/settings/payment-qr", json={"image": "https://cdn.55.in/qr.png"}, headers=ADMIN)
    assert res.status_code == 200
    assert client.get("/api/settings/payment-qr").json() == {"image": "https://cdn.55.in/qr.png"}
    assert client.put("/api/admin/settings/payment-qr", json={"image": "x"}).status_code == 401


def test_stats(client, make_product):
    cargo = make_product(price=1000.0)
    tee = make_product(name="Boxy Tee", category="T-Shirts", price=500.0)
    for product, qty in ((cargo, 2), (tee, 1)):
        client.post("/api/orders", json={
            "items": [{"product_id": product["id"], "size": "M", "quantity": qty}],
            "customer_info": CUSTOMER,
            "payment_proof": "proof.png",
        })

    stats = client.get("/api/admin/stats", headers=ADMIN).json()
    assert stats["total_revenue"] == 2500.0
    assert stats["order_count"] == 2
    assert stats["product_count"] == 2
    assert stats["average_order_value"] == 1250.0
    assert stats["orders_by_status"]["Processing"] == 2
    assert stats["orders_by_status"]["Delivered"] == 0
    assert stats["revenue_by_category"] == {"Cargos": 2000.0, "T-Shirts": 500.0}


def test_stats_empty_store(client):
    stats = client.get("/api/admin/stats", headers=ADMIN).json()
    assert stats["order_count"] == 0
    assert stats["average_order_value"] == 0.0


# Catalog management

def test_product_crud(client, make_product):
    product = make_product()
    assert product["id"]
    assert product["sizes"] == ["S", "M", "L"]

    res = client.patch(f"/api/admin/products/{product['id']}", json={"price": 1799.0}, headers=ADMIN)
    assert res.json()["price"] == 1799.0
    assert res.json()["name"] == "Utility Cargo Pants"
    assert client.get(f"/api/products/{product['id']}").json()["price"] == 1799.0

    assert client.delete(f"/api/admin/products/{product['id']}", headers=ADMIN).json() == {"deleted": True}
    assert client.get(f"/api/products/{product['id']}").status_code == 404
    assert client.delete(f"/api/admin/products/{product['id']}", headers=ADMIN).status_code == 404


def test_product_validation(client):
    bad = {"name": "Hoodie", "category": "Hoodies", "price": 999.0}
    assert client.post("/api/admin/products", json=bad, headers=ADMIN).status_code == 422
    bad = {"name": "Tee", "category": "T-Shirts", "price": -1}
    assert client.post("/api/admin/products", json=bad, headers=ADMIN).status_code == 422


def test_product_update_needs_fields(client, make_product):
    product = make_product()
    res = client.patch(f"/api/admin/products/{product['id']}", json={}, headers=ADMIN)
    assert res.status_code == 400
    assert client.patch("/api/admin/products/" + "0" * 24, json={"price": 1}, headers=ADMIN).status_code == 404


def test_product_writes_require_admin(client):
    body = {"name": "Tee", "category": "T-Shirts", "price": 499.0}
    assert client.post("/api/admin/products", json=body).status_code == 401


def test_list_products_filters(client, make_product):
    make_product(name="Utility Cargo", category="Cargos", price=1899.0)
    make_product(name="Varsity Bomber", category="Jackets", price=3499.0, description="Wool blend")
    make_product(name="Boxy Tee", category="T-Shirts", price=749.0)

    names = lambda res: [p["name"] for p in res.json()]

    assert names(client.get("/api/products", params={"category": "jackets"})) == ["Varsity Bomber"]
    assert len(client.get("/api/products", params={"category": "All"}).json()) == 3
    assert names(client.get("/api/products", params={"q": "wool"})) == ["Varsity Bomber"]
    assert names(client.get("/api/products", params={"q": "TEE"})) == ["Boxy Tee"]
    assert names(client.get("/api/products", params={"price_range": "under-1000"})) == ["Boxy Tee"]
    assert names(client.get("/api/products", params={"price_range": "1000-2000"})) == ["Utility Cargo"]
    assert names(client.get("/api/products", params={"price_range": "over-2000"})) == ["Varsity Bomber"]


def test_list_products_sorts(client, make_product):
    make_product(name="B Cargo", price=1500.0)
    make_product(name="A Cargo", price=2500.0)
    make_product(name="C Cargo", price=500.0)

    names = lambda sort: [p["name"] for p in client.get("/api/products", params={"sort": sort}).json()]

    assert names("name") == ["A Cargo", "B Cargo", "C Cargo"]
    assert names("price-low") == ["C Cargo", "B Cargo", "A Cargo"]
    assert names("price-high") == ["A Cargo", "B Cargo", "C Cargo"]


def test_list_products_rejects_unknown_options(client):
    assert client.get("/api/products", params={"sort": "random"}).status_code == 400
    assert client.get("/api/products", params={"price_range": "cheap"}).status_code == 400


def test_categories(client):
    assert client.get("/api/categories").json() == ["Cargos", "Jackets", "T-Shirts"]


def test_seed_runs_once(client):
    first = client.post("/seed").json()
    assert first == {"seeded": True, "count": 6}
    assert client.post("/seed").json()["seeded"] is False
    assert len(client.get("/api/products").json()) == 6


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/").json() == {"message": "FIFTY-FIVE Backend Running"}
