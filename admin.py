from __future__ import annotations
import hmac
from collections import Counter, defaultdict
from typing import Any, Optional

from fastapi import Header, HTTPException

from config import settings
from database import get_db, utcnow
from realtime import broadcaster
from schemas import AdminSettings, OrderStatus

PAYMENT_QR_KEY = "payment_qr_image"


def check_secret(candidate: Optional[str]) -> bool:
    return hmac.compare_digest((candidate or "").encode(), settings.ADMIN_SECRET.encode())


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    if not check_secret(x_admin_key):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid admin key")


# Key/value settings rows

def settings_to_rows(values: AdminSettings) -> list[dict[str, str]]:
    rows = []
    for key, value in values.model_dump().items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        rows.append({"key": key, "value": str(value)})
    return rows


def rows_to_settings(rows: list[dict[str, Any]]) -> AdminSettings:
    defaults = AdminSettings()
    values = defaults.model_dump()
    for row in rows:
        key, raw = row.get("key"), row.get("value")
        if key not in values:
            continue
        default = values[key]
        if isinstance(default, bool):
            values[key] = raw == "true"
        elif isinstance(default, int):
            try:
                values[key] = int(raw)
            except (TypeError, ValueError):
                values[key] = getattr(defaults, key)
        else:
            values[key] = raw or default
    return AdminSettings(**values)


async def get_setting(key: str) -> Optional[str]:
    db = await get_db()
    row = await db["app_settings"].find_one({"key": key})
    return row.get("value") if row else None


async def _upsert_setting(key: str, value: str) -> None:
    db = await get_db()
    await db["app_settings"].update_one(
        {"key": key},
        {"$set": {"key": key, "value": value, "updated_at": utcnow()}},
        upsert=True,
    )


async def put_setting(key: str, value: str) -> None:
    await _upsert_setting(key, value)
    broadcaster.publish("app_settings", "UPDATE")


async def load_admin_settings() -> AdminSettings:
    db = await get_db()
    keys = list(AdminSettings.model_fields)
    rows = [row async for row in db["app_settings"].find({"key": {"$in": keys}})]
    return rows_to_settings(rows)


async def save_admin_settings(values: AdminSettings) -> AdminSettings:
    for row in settings_to_rows(values):
        await _upsert_setting(row["key"], row["value"])
    broadcaster.publish("app_settings", "UPDATE")
    return values


async def dashboard_stats() -> dict[str, Any]:
    db = await get_db()
    product_count = await db["product"].count_documents({})

    revenue = 0.0
    order_count = 0
    by_status: Counter = Counter({s.value: 0 for s in OrderStatus})
    by_category: defaultdict = defaultdict(float)
    async for order in db["order"].find({}):
        order_count += 1
        revenue += float(order.get("total", 0))
        by_status[order.get("status", OrderStatus.PROCESSING.value)] += 1
        for item in order.get("items", []):
            product = item.get("product", {})
            by_category[product.get("category", "Other")] += float(product.get("price", 0)) * item.get("quantity", 0)

    return {
        "total_revenue": round(revenue, 2),
        "order_count": order_count,
        "product_count": product_count,
        "average_order_value": round(revenue / order_count, 2) if order_count else 0.0,
        "orders_by_status": dict(by_status),
        "revenue_by_category": {k: round(v, 2) for k, v in by_category.items()},
    }
