from __future__ import annotations
from typing import Any, Optional

from database import get_db, utcnow
from coupons import calculate_discount, find_valid_coupon, normalize_code


class CartError(ValueError):
    status_code = 400


def snapshot(product: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": product["id"],
        "name": product["name"],
        "category": product["category"],
        "price": float(product["price"]),
        "images": list(product.get("images") or []),
    }


class Cart:
    """Cart lines keyed by (product_id, size) plus an optional applied coupon."""

    def __init__(self, cart_id: str, items: Optional[list[dict]] = None, coupon_code: Optional[str] = None):
        self.cart_id = cart_id
        self.items: list[dict] = items or []
        self.coupon_code = coupon_code

    @classmethod
    def from_document(cls, cart_id: str, doc: Optional[dict]) -> "Cart":
        if not doc:
            return cls(cart_id)
        return cls(cart_id, list(doc.get("items") or []), doc.get("coupon_code"))

    def to_document(self) -> dict[str, Any]:
        return {"cart_id": self.cart_id, "items": self.items, "coupon_code": self.coupon_code}

    def _find(self, product_id: str, size: str) -> Optional[dict]:
        for item in self.items:
            if item["product_id"] == product_id and item["size"] == size:
                return item
        return None

    def add_item(self, product: dict[str, Any], size: str, quantity: int = 1) -> None:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        sizes = product.get("sizes") or []
        if sizes and size not in sizes:
            raise CartError(f"Size {size} is not available for {product['name']}")
        existing = self._find(product["id"], size)
        if existing:
            existing["quantity"] += quantity
        else:
            self.items.append({
                "product_id": product["id"],
                "product": snapshot(product),
                "size": size,
                "quantity": quantity,
            })

    def remove_item(self, product_id: str, size: str) -> None:
        self.items = [i for i in self.items if not (i["product_id"] == product_id and i["size"] == size)]

    def update_quantity(self, product_id: str, size: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id, size)
            return
        item = self._find(product_id, size)
        if item is None:
            raise CartError("Item not in cart")
        item["quantity"] = quantity

    def clear(self) -> None:
        self.items = []
        self.coupon_code = None

    @property
    def item_count(self) -> int:
        return sum(i["quantity"] for i in self.items)

    @property
    def subtotal(self) -> float:
        return round(sum(i["product"]["price"] * i["quantity"] for i in self.items), 2)

    def summary(self, coupon: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        subtotal = self.subtotal
        discount = calculate_discount(subtotal, coupon)
        return {
            **self.to_document(),
            "coupon_code": coupon["code"] if coupon else None,
            "item_count": self.item_count,
            "subtotal": subtotal,
            "discount": discount,
            "total": round(subtotal - discount, 2),
        }


async def load_cart(cart_id: str) -> Cart:
    db = await get_db()
    doc = await db["cart"].find_one({"cart_id": cart_id})
    return Cart.from_document(cart_id, doc)


async def save_cart(cart: Cart) -> None:
    db = await get_db()
    await db["cart"].update_one(
        {"cart_id": cart.cart_id},
        {"$set": {**cart.to_document(), "updated_at": utcnow()}},
        upsert=True,
    )


async def cart_summary(cart: Cart) -> dict[str, Any]:
    # A coupon that expired or ran out since it was applied stops counting
    coupon = await find_valid_coupon(cart.coupon_code) if cart.coupon_code else None
    return cart.summary(coupon)


async def apply_coupon(cart: Cart, code: str) -> dict[str, Any]:
    coupon = await find_valid_coupon(code)
    if coupon is None:
        raise CartError("Invalid or expired coupon code")
    cart.coupon_code = normalize_code(code)
    return coupon
