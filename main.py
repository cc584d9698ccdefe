import asyncio
import os
import re
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.status import WS_1013_TRY_AGAIN_LATER
from pydantic import BaseModel, Field

import admin
import cart as carts
import coupons
import orders
import payments
import stylist
from admin import require_admin
from cart import CartError
from config import settings
from coupons import CouponError
from database import (
    create_document, delete_document, get_db, get_document, get_documents, update_document,
)
from invoices import invoice_filename, render_invoice
from orders import OrderError
from payments import PaymentError
from realtime import CLOSED, broadcaster
from schemas import (
    AdminSettings, Category, Checkout, CheckoutItem, Coupon as CouponSchema, CouponUpdate,
    OrderStatus, Product as ProductSchema, ProductUpdate, StyleProfile,
)
from stylist import StylistError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("fiftyfive")

app = FastAPI(title="FIFTY-FIVE Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CartError)
@app.exception_handler(CouponError)
@app.exception_handler(OrderError)
async def domain_error_handler(request, exc):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(PaymentError)
@app.exception_handler(StylistError)
async def gateway_error_handler(request, exc):
    logger.error("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


SORTS = {
    "name": [("name", 1)],
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "newest": [("created_at", -1)],
}

PRICE_RANGES = {
    "all": None,
    "under-1000": {"$lt": 1000},
    "1000-2000": {"$gte": 1000, "$lte": 2000},
    "over-2000": {"$gt": 2000},
}

SEED_PRODUCTS: List[dict] = [
    {
        "name": "Utility Cargo Pants",
        "category": "Cargos",
        "description": "Relaxed-fit cotton twill cargos with six pockets and adjustable cuffs.",
        "price": 1899.0,
        "images": ["/images/products/utility-cargo.jpg"],
        "sizes": ["S", "M", "L", "XL"],
    },
    {
        "name": "Parachute Cargo",
        "category": "Cargos",
        "description": "Lightweight nylon parachute pants with toggle hems.",
        "price": 2199.0,
        "images": ["/images/products/parachute-cargo.jpg"],
        "sizes": ["M", "L", "XL", "XXL"],
    },
    {
        "name": "Varsity Bomber Jacket",
        "category": "Jackets",
        "description": "Wool-blend bomber with ribbed collar and chenille 55 patch.",
        "price": 3499.0,
        "images": ["/images/products/varsity-bomber.jpg"],
        "sizes": ["S", "M", "L", "XL", "XXL"],
    },
    {
        "name": "Washed Denim Jacket",
        "category": "Jackets",
        "description": "Acid-washed trucker jacket with boxy fit.",
        "price": 2799.0,
        "images": ["/images/products/denim-jacket.jpg"],
        "sizes": ["M", "L", "XL"],
    },
    {
        "name": "Oversized Graphic Tee",
        "category": "T-Shirts",
        "description": "240 GSM heavyweight tee with back print.",
        "price": 899.0,
        "images": ["/images/products/graphic-tee.jpg"],
        "sizes": ["S", "M", "L", "XL", "XXL"],
    },
    {
        "name": "Essential Boxy Tee",
        "category": "T-Shirts",
        "description": "Garment-dyed boxy tee in off-white.",
        "price": 749.0,
        "images": ["/images/products/boxy-tee.jpg"],
        "sizes": ["S", "M", "L", "XL"],
    },
]


# --------- Service ---------

@app.get("/")
async def root():
    return {"message": "FIFTY-FIVE Backend Running"}


@app.get("/test")
async def test():
    try:
        db = await get_db()
        collections = await db.list_collection_names()
        return {
            "backend": "✅ Running",
            "database": "✅ Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": db.name,
            "connection_status": "Connected",
            "collections": collections,
        }
    except Exception as e:
        return {"backend": "✅ Running", "database": f"❌ Error: {str(e)[:80]}", "connection_status": "Not Connected"}


@app.get("/health")
async def health():
    return {"ok": True}


@app.post("/seed")
async def seed():
    db = await get_db()
    if await db["product"].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}
    for p in SEED_PRODUCTS:
        await create_document("product", ProductSchema(**p).model_dump())
    return {"seeded": True, "count": len(SEED_PRODUCTS)}


# --------- Catalog ---------

@app.get("/api/products")
async def list_products(
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="search name and description"),
    price_range: str = Query("all"),
    sort: str = Query("name"),
):
    if price_range not in PRICE_RANGES:
        raise HTTPException(status_code=400, detail=f"Unknown price range {price_range}")
    if sort not in SORTS:
        raise HTTPException(status_code=400, detail=f"Unknown sort {sort}")

    filt: Dict[str, Any] = {}
    if category and category.lower() != "all":
        filt["category"] = {"$regex": f"^{re.escape(category)}$", "$options": "i"}
    if q:
        pattern = re.escape(q.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if PRICE_RANGES[price_range]:
        filt["price"] = PRICE_RANGES[price_range]
    return await get_documents("product", filt, limit=500, sort=SORTS[sort])


@app.get("/api/products/{product_id}")
async def get_product(product_id: str):
    product = await get_document("product", product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/api/categories")
async def list_categories():
    return [c.value for c in Category]


# --------- Cart ---------

class CartAdd(BaseModel):
    product_id: str
    size: str
    quantity: int = Field(1, ge=1)


class CartQuantity(BaseModel):
    product_id: str
    size: str
    quantity: int


class CouponIn(BaseModel):
    code: str


@app.get("/api/cart/{cart_id}")
async def get_cart(cart_id: str):
    return await carts.cart_summary(await carts.load_cart(cart_id))


@app.post("/api/cart/{cart_id}/items")
async def add_to_cart(cart_id: str, payload: CartAdd):
    product = await get_document("product", payload.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    cart = await carts.load_cart(cart_id)
    cart.add_item(product, payload.size, payload.quantity)
    await carts.save_cart(cart)
    return await carts.cart_summary(cart)


@app.patch("/api/cart/{cart_id}/items")
async def update_cart_item(cart_id: str, payload: CartQuantity):
    cart = await carts.load_cart(cart_id)
    cart.update_quantity(payload.product_id, payload.size, payload.quantity)
    await carts.save_cart(cart)
    return await carts.cart_summary(cart)


@app.delete("/api/cart/{cart_id}/items")
async def remove_cart_item(cart_id: str, product_id: str = Query(...), size: str = Query(...)):
    cart = await carts.load_cart(cart_id)
    cart.remove_item(product_id, size)
    await carts.save_cart(cart)
    return await carts.cart_summary(cart)


@app.delete("/api/cart/{cart_id}")
async def clear_cart(cart_id: str):
    cart = await carts.load_cart(cart_id)
    cart.clear()
    await carts.save_cart(cart)
    return await carts.cart_summary(cart)


@app.post("/api/cart/{cart_id}/coupon")
async def apply_cart_coupon(cart_id: str, payload: CouponIn):
    cart = await carts.load_cart(cart_id)
    coupon = await carts.apply_coupon(cart, payload.code)
    await carts.save_cart(cart)
    return cart.summary(coupon)


@app.delete("/api/cart/{cart_id}/coupon")
async def remove_cart_coupon(cart_id: str):
    cart = await carts.load_cart(cart_id)
    cart.coupon_code = None
    await carts.save_cart(cart)
    return cart.summary()


# --------- Coupons ---------

class CouponCheck(BaseModel):
    code: str
    subtotal: Optional[float] = Field(None, ge=0)


@app.post("/api/coupons/validate")
async def validate_coupon(payload: CouponCheck):
    coupon = await coupons.find_valid_coupon(payload.code)
    discount = coupons.calculate_discount(payload.subtotal, coupon) if payload.subtotal is not None else 0.0
    return {"valid": coupon is not None, "coupon": coupon, "discount": discount}


@app.get("/api/coupons/available")
async def coupons_available():
    db = await get_db()
    return {"available": await db["coupon"].count_documents({}) > 0}


@app.get("/api/coupons/promo")
async def coupon_promo():
    offers = await coupons.promo_coupons()
    return {"featured": offers[0] if offers else None, "offers": offers}


# --------- Orders ---------

class ManualCheckout(Checkout):
    payment_proof: str = Field(..., min_length=1, description="Reference to the uploaded payment screenshot")


class StatusUpdate(BaseModel):
    status: OrderStatus


@app.post("/api/orders")
async def create_order(payload: ManualCheckout):
    return await orders.place_order(
        payload.items,
        payload.customer_info,
        payment_proof=payload.payment_proof,
        coupon_code=payload.coupon_code,
        cart_id=payload.cart_id,
    )


@app.get("/api/orders")
async def customer_orders(email: str = Query(..., min_length=3)):
    filt = {"customer_info.email": {"$regex": f"^{re.escape(email.strip())}$", "$options": "i"}}
    return await get_documents("order", filt, limit=200, sort=[("created_at", -1)])


@app.get("/api/orders/{order_id}")
async def get_order(order_id: str):
    order = await get_document("order", order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.get("/api/orders/{order_id}/invoice", response_class=HTMLResponse)
async def get_invoice(order_id: str):
    order = await get_document("order", order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    site = await admin.load_admin_settings()
    html = render_invoice(order, {"name": site.site_name, "email": site.admin_email})
    return HTMLResponse(
        html,
        headers={"Content-Disposition": f'attachment; filename="{invoice_filename(order)}"'},
    )


# --------- Payments ---------

class PaymentOrderIn(BaseModel):
    items: List[CheckoutItem]
    coupon_code: Optional[str] = None
    currency: Optional[str] = None
    receipt: Optional[str] = None
    notes: Optional[Dict[str, Any]] = None


class PaymentVerifyIn(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    order_data: Checkout


@app.post("/api/payments/razorpay/order")
async def create_payment_order(payload: PaymentOrderIn):
    priced = await orders.price_items(payload.items, payload.coupon_code)
    gateway_order = await run_in_threadpool(
        payments.create_payment_order,
        priced["total"],
        payload.currency,
        payload.receipt,
        payload.notes,
    )
    await orders.open_payment_order(priced, gateway_order)
    return gateway_order


@app.post("/api/payments/razorpay/verify")
async def verify_payment(payload: PaymentVerifyIn):
    payments.check_payment(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature)
    order = await orders.settle_payment(
        payload.razorpay_order_id, payload.razorpay_payment_id, payload.order_data,
    )
    return {"success": True, "order_id": order["id"], "payment_id": payload.razorpay_payment_id}


# --------- Stylist ---------

class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class StyleChatIn(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    profile: Optional[StyleProfile] = None


class TryOnIn(BaseModel):
    product_ids: List[str] = Field(default_factory=list)
    profile: StyleProfile
    gender: str = "person"


@app.post("/api/stylist/chat")
async def style_chat(payload: StyleChatIn):
    products = await get_documents("product", {}, limit=200, sort=SORTS["name"])
    reply = await run_in_threadpool(
        stylist.style_chat,
        [m.model_dump() for m in payload.messages],
        products,
        payload.profile,
    )
    return {"response": reply}


@app.post("/api/stylist/try-on")
async def virtual_try_on(payload: TryOnIn):
    if not payload.profile.has_features:
        raise HTTPException(status_code=400, detail="Please set up your style profile first")
    products = []
    for product_id in payload.product_ids:
        product = await get_document("product", product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
        products.append(product)
    return await run_in_threadpool(stylist.virtual_try_on, payload.profile, products, payload.gender)


# --------- Settings ---------

class PaymentQRIn(BaseModel):
    image: str = Field(..., min_length=1, description="Image URL or data URI")


@app.get("/api/settings/payment-qr")
async def get_payment_qr():
    return {"image": await admin.get_setting(admin.PAYMENT_QR_KEY)}


# --------- Admin ---------

class AdminLogin(BaseModel):
    secret: str


@app.post("/api/admin/login")
async def admin_login(payload: AdminLogin):
    if not admin.check_secret(payload.secret):
        raise HTTPException(status_code=401, detail="Invalid secret password")
    return {"ok": True}


@app.get("/api/admin/stats", dependencies=[Depends(require_admin)])
async def admin_stats():
    return await admin.dashboard_stats()


@app.get("/api/admin/settings", dependencies=[Depends(require_admin)])
async def get_admin_settings():
    return await admin.load_admin_settings()


@app.put("/api/admin/settings", dependencies=[Depends(require_admin)])
async def update_admin_settings(payload: AdminSettings):
    return await admin.save_admin_settings(payload)


@app.put("/api/admin/settings/payment-qr", dependencies=[Depends(require_admin)])
async def update_payment_qr(payload: PaymentQRIn):
    await admin.put_setting(admin.PAYMENT_QR_KEY, payload.image)
    return {"image": payload.image}


@app.post("/api/admin/products", dependencies=[Depends(require_admin)])
async def create_product(payload: ProductSchema):
    return await create_document("product", payload.model_dump())


@app.patch("/api/admin/products/{product_id}", dependencies=[Depends(require_admin)])
async def update_product(product_id: str, payload: ProductUpdate):
    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")
    product = await update_document("product", product_id, updates)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.delete("/api/admin/products/{product_id}", dependencies=[Depends(require_admin)])
async def delete_product(product_id: str):
    if not await delete_document("product", product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": True}


@app.get("/api/admin/orders", dependencies=[Depends(require_admin)])
async def admin_orders(status: Optional[OrderStatus] = None):
    filt = {"status": status.value} if status else {}
    return await get_documents("order", filt, limit=500, sort=[("created_at", -1)])


@app.patch("/api/admin/orders/{order_id}/status", dependencies=[Depends(require_admin)])
async def update_order_status(order_id: str, payload: StatusUpdate):
    order = await orders.set_status(order_id, payload.status.value)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.get("/api/admin/coupons", dependencies=[Depends(require_admin)])
async def admin_coupons():
    return await get_documents("coupon", {}, limit=500, sort=[("created_at", -1)])


@app.post("/api/admin/coupons", status_code=201, dependencies=[Depends(require_admin)])
async def create_coupon(payload: CouponSchema):
    if await coupons.code_taken(payload.code):
        raise HTTPException(status_code=409, detail="Coupon code already exists")
    data = payload.model_dump()
    data["current_usages"] = 0
    return await create_document("coupon", data)


@app.patch("/api/admin/coupons/{coupon_id}", dependencies=[Depends(require_admin)])
async def update_coupon(coupon_id: str, payload: CouponUpdate):
    existing = await get_document("coupon", coupon_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Coupon not found")
    updates = payload.model_dump(exclude_none=True)
    if "code" in updates and await coupons.code_taken(updates["code"], exclude_id=coupon_id):
        raise HTTPException(status_code=409, detail="Coupon code already exists")
    fields = set(CouponSchema.model_fields)
    try:
        CouponSchema(**{k: v for k, v in {**existing, **updates}.items() if k in fields})
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return await update_document("coupon", coupon_id, updates)


@app.delete("/api/admin/coupons/{coupon_id}", dependencies=[Depends(require_admin)])
async def delete_coupon(coupon_id: str):
    if not await delete_document("coupon", coupon_id):
        raise HTTPException(status_code=404, detail="Coupon not found")
    return {"deleted": True}


# --------- Realtime ---------

@app.websocket("/ws/changes")
async def changes(websocket: WebSocket):
    queue = broadcaster.subscribe()
    await websocket.accept()

    async def forward():
        while True:
            change = await broadcaster.next_change(queue)
            if change is CLOSED:
                # dropped for falling behind; the client reconnects and refetches
                await websocket.close(code=WS_1013_TRY_AGAIN_LATER)
                return
            await websocket.send_json(change)

    async def drain():
        # inbound frames are ignored; this only waits for the client to leave
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass

    tasks = {asyncio.create_task(forward()), asyncio.create_task(drain())}
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        broadcaster.unsubscribe(queue)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
