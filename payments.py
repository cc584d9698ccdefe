"""
Razorpay checkout.

Orders are created through the gateway's REST API with HTTP Basic auth; the
checkout widget then returns ``order_id``, ``payment_id`` and ``signature``,
where the signature is hex(HMAC-SHA256(key_secret, "<order_id>|<payment_id>")).
"""
from __future__ import annotations
import hashlib
import hmac
import logging
from typing import Any, Optional

import requests

from config import settings

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    payload = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    return hmac.compare_digest(expected_signature(order_id, payment_id, secret), signature or "")


def create_payment_order(
    amount: float,
    currency: Optional[str] = None,
    receipt: Optional[str] = None,
    notes: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    key_id, key_secret = settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET
    if not key_id or not key_secret:
        logger.error("Razorpay credentials not configured")
        raise PaymentError("Payment gateway not configured")

    logger.info("Creating Razorpay order for amount: %s", amount)
    try:
        resp = requests.post(
            f"{settings.RAZORPAY_API_URL}/orders",
            auth=(key_id, key_secret),
            json={
                "amount": to_paise(amount),
                "currency": currency or settings.CURRENCY,
                "receipt": receipt,
                "notes": notes or {},
            },
            timeout=settings.HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.error("Razorpay unreachable: %s", e)
        raise PaymentError("Failed to create payment order", 502) from e

    if not resp.ok:
        logger.error("Razorpay order creation failed: %s", resp.text)
        raise PaymentError("Failed to create payment order")

    order = resp.json()
    logger.info("Razorpay order created: %s", order.get("id"))
    return {
        "order_id": order["id"],
        "amount": order["amount"],
        "currency": order["currency"],
        "key_id": key_id,
    }


def check_payment(order_id: str, payment_id: str, signature: str) -> None:
    secret = settings.RAZORPAY_KEY_SECRET
    if not secret:
        logger.error("Razorpay secret not configured")
        raise PaymentError("Payment gateway not configured")

    logger.info("Verifying Razorpay payment: %s", payment_id)
    if not verify_signature(order_id, payment_id, signature, secret):
        logger.error("Payment signature verification failed")
        raise PaymentError("Payment verification failed", 400)
    logger.info("Payment verified successfully")
