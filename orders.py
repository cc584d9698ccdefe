from __future__ import annotations
import logging
from typing import Any, Iterable, Optional

from cart import load_cart, save_cart, snapshot
from coupons import CouponError, calculate_discount, find_valid_coupon, normalize_code, record_usage
from database import create_document, get_db, get_document, update_document, utcnow
from payments import PaymentError
from schemas import Checkout, CheckoutItem, CustomerInfo, Order, OrderStatus

logger = logging.getLogger(__name__)

PAYMENT_ORDERS = "payment_order"

STATUS_FLOW = [
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


class OrderError(ValueError):
    status_code = 400


class OrderStatusError(OrderError):
    status_code = 409


def next_statuses(current: str) -> list[str]:
    idx = STATUS_FLOW.index(OrderStatus(current))
    return [s.value for s in STATUS_FLOW[idx + 1:]]


def check_transition(current: str, new: str) -> bool:
    """True when the order has to be written; False for a no-op."""
    if current == new:
        return False
    if new not in next_statuses(current):
        raise OrderStatusError(f"Cannot move order from {current} to {new}")
    return True


async def price_items(items: Iterable[CheckoutItem], coupon_code: Optional[str] = None) -> dict[str, Any]:
    """Price checkout lines from stored products and apply the coupon, if any."""
    items = list(items)
    if not items:
        raise OrderError("Cart is empty")

    lines = []
    for item in items:
        product = await get_document("product", item.product_id)
        if not product:
            raise OrderError(f"Invalid product {item.product_id}")
        sizes = product.get("sizes") or []
        if sizes and item.size not in sizes:
            raise OrderError(f"Size {item.size} is not available for {product['name']}")
        lines.append({
            "product_id": product["id"],
            "product": snapshot(product),
            "size": item.size,
            "quantity": item.quantity,
        })
    subtotal = round(sum(l["product"]["price"] * l["quantity"] for l in lines), 2)

    coupon = None
    code = normalize_code(coupon_code)
    if code:
        coupon = await find_valid_coupon(code)
        if coupon is None:
            raise CouponError("Invalid or expired coupon code")
    discount = calculate_discount(subtotal, coupon)

    return {
        "items": lines,
        "subtotal": subtotal,
        "discount": discount,
        "total": round(subtotal - discount, 2),
        "coupon_code": coupon["code"] if coupon else None,
    }


async def store_order(
    priced: dict[str, Any],
    customer_info: CustomerInfo,
    payment_proof: str,
    cart_id: Optional[str] = None,
    paid: bool = False,
) -> dict[str, Any]:
    """Store an already priced order and claim its coupon use.

    An unpaid checkout whose coupon ran out in the meantime is refused. A paid
    one keeps the price the customer was charged.
    """
    code = priced.get("coupon_code")
    if code and await record_usage(code) is None:
        if not paid:
            raise CouponError("Invalid or expired coupon code")
        logger.warning("Coupon %s ran out before the payment was verified; keeping the charged price", code)

    order = Order(**priced, customer_info=customer_info, payment_proof=payment_proof)
    saved = await create_document("order", order.model_dump())
    logger.info("Order created: %s (total %.2f)", saved.get("id"), saved["total"])

    if cart_id:
        cart = await load_cart(cart_id)
        cart.clear()
        await save_cart(cart)
    return saved


async def place_order(
    items: Iterable[CheckoutItem],
    customer_info: CustomerInfo,
    payment_proof: str,
    coupon_code: Optional[str] = None,
    cart_id: Optional[str] = None,
) -> dict[str, Any]:
    priced = await price_items(items, coupon_code)
    return await store_order(priced, customer_info, payment_proof, cart_id)


# Gateway checkout: the priced cart is frozen when the payment order is
# opened, and the stored order is built from that snapshot once paid.

def _line_keys(lines: Iterable[Any]) -> list[tuple[str, str, int]]:
    keys = []
    for line in lines:
        if isinstance(line, dict):
            keys.append((line["product_id"], line["size"], line["quantity"]))
        else:
            keys.append((line.product_id, line.size, line.quantity))
    return sorted(keys)


async def open_payment_order(priced: dict[str, Any], gateway_order: dict[str, Any]) -> None:
    db = await get_db()
    await db[PAYMENT_ORDERS].insert_one({
        **priced,
        "razorpay_order_id": gateway_order["order_id"],
        "amount": gateway_order["amount"],
        "currency": gateway_order["currency"],
        "status": "created",
        "created_at": utcnow(),
    })


async def settle_payment(razorpay_order_id: str, payment_id: str, checkout: Checkout) -> dict[str, Any]:
    """Turn a verified payment into an order, at most once per payment order."""
    db = await get_db()
    pending = await db[PAYMENT_ORDERS].find_one({"razorpay_order_id": razorpay_order_id})
    if pending is None:
        raise PaymentError("Unknown payment order", 400)
    if _line_keys(checkout.items) != _line_keys(pending["items"]):
        logger.error("Order data for %s does not match the charged cart", razorpay_order_id)
        raise PaymentError("Order does not match the payment", 400)

    claimed = await db[PAYMENT_ORDERS].find_one_and_update(
        {"_id": pending["_id"], "status": "created"},
        {"$set": {"status": "paid", "payment_id": payment_id, "updated_at": utcnow()}},
    )
    if claimed is None:
        if pending.get("order_id"):
            return await get_document("order", pending["order_id"])
        raise PaymentError("Payment is already being processed", 409)

    priced = {k: pending[k] for k in ("items", "subtotal", "discount", "total", "coupon_code")}
    saved = await store_order(
        priced,
        checkout.customer_info,
        payment_proof=f"Razorpay: {payment_id}",
        cart_id=checkout.cart_id,
        paid=True,
    )
    await db[PAYMENT_ORDERS].update_one({"_id": pending["_id"]}, {"$set": {"order_id": saved["id"]}})
    return saved


async def set_status(order_id: str, status: str) -> Optional[dict[str, Any]]:
    order = await get_document("order", order_id)
    if not order:
        return None
    if not check_transition(order["status"], status):
        return order
    logger.info("Order %s: %s -> %s", order_id, order["status"], status)
    return await update_document("order", order_id, {"status": status})
