from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pymongo import ReturnDocument

from database import get_db, serialize, utcnow
from realtime import broadcaster
from schemas import CouponType

logger = logging.getLogger(__name__)

USAGE_CLAIM_ATTEMPTS = 5


class CouponError(ValueError):
    status_code = 400


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _aware(dt: Any) -> datetime:
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        # Mongo hands datetimes back naive, in UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt


def is_usable(coupon: dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return (
        bool(coupon.get("active"))
        and coupon.get("current_usages", 0) < coupon.get("max_usages", 0)
        and _aware(coupon["expiry_date"]) > now
    )


def validate_coupon(coupons: Iterable[dict[str, Any]], code: str, now: Optional[datetime] = None) -> Optional[dict[str, Any]]:
    code = normalize_code(code)
    if not code:
        return None
    for coupon in coupons:
        if coupon.get("code") == code and is_usable(coupon, now):
            return coupon
    return None


def calculate_discount(subtotal: float, coupon: Optional[dict[str, Any]]) -> float:
    if not coupon:
        return 0.0
    if coupon["type"] == CouponType.PERCENTAGE.value:
        discount = subtotal * float(coupon["value"]) / 100
    else:
        discount = float(coupon["value"])
    return round(min(max(discount, 0.0), subtotal), 2)


async def find_valid_coupon(code: str) -> Optional[dict[str, Any]]:
    code = normalize_code(code)
    if not code:
        return None
    db = await get_db()
    doc = serialize(await db["coupon"].find_one({"code": code}))
    return validate_coupon([doc] if doc else [], code)


async def record_usage(code: str) -> Optional[dict[str, Any]]:
    """Claim one redemption; the coupon is switched off once it hits its limit.

    The increment only lands on the usage count that was read, so concurrent
    checkouts can never push ``current_usages`` past ``max_usages``. Returns
    None when the coupon is missing or has no uses left.
    """
    code = normalize_code(code)
    db = await get_db()
    for _ in range(USAGE_CLAIM_ATTEMPTS):
        doc = await db["coupon"].find_one({"code": code})
        if doc is None:
            logger.warning("Coupon %s not found while recording usage", code)
            return None
        used, limit = doc.get("current_usages", 0), doc["max_usages"]
        if used >= limit:
            logger.warning("Coupon %s has no uses left (%d/%d)", code, used, limit)
            return None

        disabled = used + 1 >= limit
        updated = await db["coupon"].find_one_and_update(
            {"_id": doc["_id"], "current_usages": used},
            {
                "$inc": {"current_usages": 1},
                "$set": {"active": bool(doc.get("active")) and not disabled, "updated_at": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            # another checkout claimed it first
            continue
        broadcaster.publish("coupon", "UPDATE")
        logger.info(
            "Coupon %s usage updated: %d/%d%s",
            code, updated["current_usages"], limit, " - DISABLED" if disabled else "",
        )
        return serialize(updated)

    logger.warning("Coupon %s usage not recorded: too much contention", code)
    return None


async def code_taken(code: str, exclude_id: Optional[str] = None) -> bool:
    db = await get_db()
    doc = await db["coupon"].find_one({"code": normalize_code(code)})
    if doc is None:
        return False
    return str(doc["_id"]) != exclude_id


def _amount_text(value: float) -> str:
    return f"{float(value):.2f}".rstrip("0").rstrip(".")


def promo_label(coupon: dict[str, Any]) -> str:
    """Banner text such as 10% OFF or ₹200 OFF."""
    if coupon["type"] == CouponType.PERCENTAGE.value:
        return f"{_amount_text(coupon['value'])}% OFF"
    return f"₹{_amount_text(coupon['value'])} OFF"


async def promo_coupons(now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Usable coupons, newest first, in the shape the storefront banner shows."""
    db = await get_db()
    offers = []
    async for doc in db["coupon"].find({"active": True}).sort([("created_at", -1)]):
        if is_usable(doc, now):
            offers.append({
                "code": doc["code"],
                "type": doc["type"],
                "value": doc["value"],
                "label": promo_label(doc),
                "expiry_date": doc["expiry_date"],
            })
    return offers
