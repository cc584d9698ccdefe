"""
Database Schemas

Each Pydantic model below maps to a MongoDB collection, named after the class
in lowercase:
- Product -> "product"
- Order -> "order"
- Coupon -> "coupon"

Carts are stored in "cart" and key/value settings in "app_settings".
"""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Category(str, Enum):
    CARGOS = "Cargos"
    JACKETS = "Jackets"
    T_SHIRTS = "T-Shirts"


class Size(str, Enum):
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"
    XXL = "XXL"


class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    PACKED = "Packed"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


# Catalog

class Product(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1)
    category: Category
    description: str = ""
    price: float = Field(..., ge=0, description="Price in rupees")
    images: List[str] = Field(default_factory=list, description="Image URLs or data URIs")
    sizes: List[Size] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = None
    sizes: Optional[List[Size]] = None


class ProductSnapshot(BaseModel):
    id: str
    name: str
    category: str
    price: float
    images: List[str] = Field(default_factory=list)


# Cart & orders

class CartItem(BaseModel):
    product_id: str
    product: ProductSnapshot
    size: str
    quantity: int = Field(ge=1)


class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    items: List[CartItem]
    subtotal: float = Field(ge=0)
    discount: float = Field(ge=0, default=0)
    total: float = Field(ge=0)
    coupon_code: Optional[str] = None
    customer_info: CustomerInfo
    payment_proof: Optional[str] = None
    status: OrderStatus = OrderStatus.PROCESSING


# Coupons

class Coupon(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    code: str = Field(..., min_length=1)
    type: CouponType
    value: float = Field(..., gt=0)
    max_usages: int = Field(..., ge=1)
    current_usages: int = Field(0, ge=0)
    expiry_date: datetime
    active: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_percentage(self):
        if self.type == CouponType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage coupons cannot exceed 100")
        return self


class CouponUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    code: Optional[str] = None
    type: Optional[CouponType] = None
    value: Optional[float] = Field(None, gt=0)
    max_usages: Optional[int] = Field(None, ge=1)
    current_usages: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[datetime] = None
    active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v


# Admin settings

class AdminSettings(BaseModel):
    site_name: str = "FIFTY-FIVE"
    admin_email: str = "fiftyfivestreetwear@gmail.com"
    auto_order_confirmation: bool = True
    low_stock_alerts: bool = True
    email_notifications: bool = True
    maintenance_mode: bool = False
    allow_guest_checkout: bool = True
    order_notification_delay: int = Field(5, ge=0)


# Stylist

class StyleProfile(BaseModel):
    hair_length: str = ""
    hair_color: str = ""
    skin_tone: str = ""
    body_type: str = ""
    height: Optional[int] = Field(None, gt=0, description="Height in cm")

    @property
    def has_features(self) -> bool:
        return bool(self.hair_length or self.hair_color or self.skin_tone)


# Checkout requests

class CheckoutItem(BaseModel):
    product_id: str
    size: str
    quantity: int = Field(ge=1)


class Checkout(BaseModel):
    items: List[CheckoutItem]
    customer_info: CustomerInfo
    coupon_code: Optional[str] = None
    cart_id: Optional[str] = None
