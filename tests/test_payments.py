import hashlib
import hmac

import pytest
import requests

import payments
from config import settings
from conftest import ADMIN, CUSTOMER, FakeResponse
from payments import PaymentError

SECRET = "rzp_secret"


@pytest.fixture
def gateway(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", SECRET)
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        body = kwargs["json"]
        return FakeResponse(payload={"id": "order_ABC", "amount": body["amount"], "currency": body["currency"]})

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


def sign(order_id, payment_id, secret=SECRET):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def test_verify_signature():
    assert payments.verify_signature("order_1", "pay_1", sign("order_1", "pay_1"), SECRET)


def test_verify_signature_rejects_tampering():
    good = sign("order_1", "pay_1")
    assert not payments.verify_signature("order_1", "pay_2", good, SECRET)
    assert not payments.verify_signature("order_1", "pay_1", good, "other")
    assert not payments.verify_signature("order_1", "pay_1", "", SECRET)


def test_to_paise_rounds():
    assert payments.to_paise(1299.99) == 129999
    assert payments.to_paise(0.1 + 0.2) == 30


def test_create_payment_order(gateway):
    result = payments.create_payment_order(1500.5, receipt="rcpt_1")
    url, kwargs = gateway[0]
    assert url == "https://api.razorpay.com/v1/orders"
    assert kwargs["auth"] == ("rzp_test_key", SECRET)
    assert kwargs["json"]["amount"] == 150050
    assert kwargs["json"]["currency"] == "INR"
    assert result == {"order_id": "order_ABC", "amount": 150050, "currency": "INR", "key_id": "rzp_test_key"}


def test_create_payment_order_gateway_failure(monkeypatch, gateway):
    monkeypatch.setattr(requests, "post", lambda url, **kw: FakeResponse(400, text="bad request"))
    with pytest.raises(PaymentError) as exc:
        payments.create_payment_order(100)
    assert exc.value.message == "Failed to create payment order"


def test_create_payment_order_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", None)
    with pytest.raises(PaymentError) as exc:
        payments.create_payment_order(100)
    assert exc.value.message == "Payment gateway not configured"


def test_payment_order_endpoint_prices_server_side(client, gateway, make_product, make_coupon):
    product = make_product(price=1000.0)
    make_coupon(code="SAVE10", value=10)
    res = client.post(
        "/api/payments/razorpay/order",
        json={"items": [{"product_id": product["id"], "size": "S", "quantity": 3}], "coupon_code": "SAVE10"},
    )
    assert res.status_code == 200, res.text
    assert res.json()["amount"] == 270000
    assert res.json()["key_id"] == "rzp_test_key"


def test_payment_order_endpoint_not_configured(client, monkeypatch, make_product):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", None)
    product = make_product()
    res = client.post(
        "/api/payments/razorpay/order",
        json={"items": [{"product_id": product["id"], "size": "S", "quantity": 1}]},
    )
    assert res.status_code == 500
    assert res.json() == {"error": "Payment gateway not configured"}


def open_payment(client, product_id, quantity=1, coupon_code=None):
    res = client.post(
        "/api/payments/razorpay/order",
        json={"items": [{"product_id": product_id, "size": "M", "quantity": quantity}], "coupon_code": coupon_code},
    )
    assert res.status_code == 200, res.text
    return res.json()


def verification(product_id, signature, quantity=1, coupon_code=None, order_id="order_ABC"):
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": "pay_XYZ",
        "razorpay_signature": signature,
        "order_data": {
            "items": [{"product_id": product_id, "size": "M", "quantity": quantity}],
            "customer_info": CUSTOMER,
            "coupon_code": coupon_code,
        },
    }


def test_verify_endpoint_creates_order(client, gateway, make_product, make_coupon):
    product = make_product(price=2000.0)
    make_coupon(code="FLAT100", type="flat", value=100, max_usages=3)
    assert open_payment(client, product["id"], coupon_code="FLAT100")["amount"] == 190000

    res = client.post(
        "/api/payments/razorpay/verify",
        json=verification(product["id"], sign("order_ABC", "pay_XYZ"), coupon_code="FLAT100"),
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["payment_id"] == "pay_XYZ"

    order = client.get(f"/api/orders/{body['order_id']}").json()
    assert order["payment_proof"] == "Razorpay: pay_XYZ"
    assert order["total"] == 1900.0
    assert order["status"] == "Processing"

    coupon = client.get("/api/admin/coupons", headers=ADMIN).json()[0]
    assert coupon["current_usages"] == 1
    assert coupon["active"] is True


def test_verify_endpoint_bad_signature(client, gateway, make_product):
    product = make_product()
    open_payment(client, product["id"])
    res = client.post("/api/payments/razorpay/verify", json=verification(product["id"], "deadbeef"))
    assert res.status_code == 400
    assert res.json() == {"error": "Payment verification failed"}
    assert client.get("/api/admin/orders", headers=ADMIN).json() == []


def test_verify_rejects_items_other_than_the_charged_cart(client, gateway, make_product):
    tee = make_product(name="Boxy Tee", category="T-Shirts", price=749.0)
    jacket = make_product(name="Varsity Bomber", category="Jackets", price=3499.0)
    assert open_payment(client, tee["id"])["amount"] == 74900

    res = client.post(
        "/api/payments/razorpay/verify",
        json=verification(jacket["id"], sign("order_ABC", "pay_XYZ"), quantity=10),
    )
    assert res.status_code == 400
    assert res.json() == {"error": "Order does not match the payment"}
    assert client.get("/api/admin/orders", headers=ADMIN).json() == []


def test_verify_uses_price_charged_not_current_price(client, gateway, make_product):
    product = make_product(price=1000.0)
    open_payment(client, product["id"], quantity=2)
    client.patch(f"/api/admin/products/{product['id']}", json={"price": 5000.0}, headers=ADMIN)

    res = client.post("/api/payments/razorpay/verify", json=verification(product["id"], sign("order_ABC", "pay_XYZ"), quantity=2))
    order = client.get(f"/api/orders/{res.json()['order_id']}").json()
    assert order["total"] == 2000.0


def test_verify_keeps_order_when_coupon_ran_out_during_payment(client, gateway, make_product, make_coupon):
    product = make_product(price=1000.0)
    make_coupon(code="LAST1", type="flat", value=200, max_usages=1)
    assert open_payment(client, product["id"], coupon_code="LAST1")["amount"] == 80000

    other = client.post("/api/orders", json={
        "items": [{"product_id": product["id"], "size": "M", "quantity": 1}],
        "customer_info": CUSTOMER,
        "payment_proof": "upi.png",
        "coupon_code": "LAST1",
    })
    assert other.status_code == 200

    res = client.post(
        "/api/payments/razorpay/verify",
        json=verification(product["id"], sign("order_ABC", "pay_XYZ"), coupon_code="LAST1"),
    )
    assert res.status_code == 200, res.text
    order = client.get(f"/api/orders/{res.json()['order_id']}").json()
    assert order["total"] == 800.0
    assert order["coupon_code"] == "LAST1"

    coupon = client.get("/api/admin/coupons", headers=ADMIN).json()[0]
    assert coupon["current_usages"] == 1


def test_verify_twice_stores_one_order(client, gateway, make_product):
    product = make_product()
    open_payment(client, product["id"])
    body = verification(product["id"], sign("order_ABC", "pay_XYZ"))

    first = client.post("/api/payments/razorpay/verify", json=body).json()
    second = client.post("/api/payments/razorpay/verify", json=body).json()
    assert first["order_id"] == second["order_id"]
    assert len(client.get("/api/admin/orders", headers=ADMIN).json()) == 1


def test_verify_unknown_payment_order(client, gateway, make_product):
    product = make_product()
    res = client.post(
        "/api/payments/razorpay/verify",
        json=verification(product["id"], sign("order_NEW", "pay_XYZ"), order_id="order_NEW"),
    )
    assert res.status_code == 400
    assert res.json() == {"error": "Unknown payment order"}
