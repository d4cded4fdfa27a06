"""
Database Schemas for the storefront (MongoDB via the Database service in database.py)

Each Pydantic model describes one collection; the collection name is the
lowercased class name with underscores:
- Product -> "product"
- Order -> "order"
- OrderItem -> "order_item"
- PaymentIntent -> "payment_intent"
- StoreSettings -> "store_settings"
"""

import json
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, field_validator

OrderStatus = Literal["pending", "completed", "cancelled"]
PaymentMethod = Literal["cod", "online"]
PaymentStatus = Literal["pending", "paid", "failed"]

DEFAULT_TIMEZONE = "Asia/Kolkata"


def _to_float(value) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class Product(BaseModel):
    """Product belonging to a tenant"""
    id: str
    owner_id: str = Field(..., description="Tenant (store owner) id")
    name: str = ""
    price: float = Field(0.0, ge=0)
    quantity: int = Field(0, ge=0)
    unit: str = ""
    category: str = "Uncategorized"
    description: str = ""
    image: str = ""
    created_at: Optional[datetime] = None

    # Stored values may be text (imports, older rows); read them as numbers
    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        return max(_to_float(v), 0.0)

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v):
        return max(_to_int(v), 0)

    @field_validator("name", "unit", "description", "image", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return v or "Uncategorized"


class CustomerInfo(BaseModel):
    """Contact snapshot captured when the order is placed"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class OrderItem(BaseModel):
    """Line item with the product name and price frozen at purchase time"""
    product_id: str
    quantity: int = Field(..., ge=1)
    product_name: str
    product_price: float = Field(..., ge=0)

    @field_validator("product_price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        return _to_float(v)


class Order(BaseModel):
    """Order placed by a customer for a tenant"""
    id: str
    owner_id: str
    customer_id: Optional[str] = None
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    items: List[OrderItem] = Field(default_factory=list)
    status: OrderStatus = "pending"
    payment_method: PaymentMethod = "cod"
    payment_status: PaymentStatus = "pending"
    total: float = Field(..., ge=0)
    total_minor: Optional[int] = Field(None, ge=0, description="Exact total in minor currency units")
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payment_signature: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("total", mode="before")
    @classmethod
    def coerce_total(cls, v):
        return _to_float(v)


class PaymentIntent(BaseModel):
    """Remote gateway order created before the customer pays"""
    id: str = Field(..., description="Gateway order reference")
    owner_id: Optional[str] = None
    amount: int = Field(..., ge=0, description="Minor currency units")
    currency: str = "INR"
    receipt: Optional[str] = None
    created_at: Optional[datetime] = None


class OperatingSchedule(BaseModel):
    enabled: bool = False
    days: Optional[List[int]] = Field(None, description="0=Sunday .. 6=Saturday")
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    timezone: str = DEFAULT_TIMEZONE

    @field_validator("days", mode="before")
    @classmethod
    def parse_days(cls, v):
        # Older documents stored the list as a JSON string
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                return None
        if not isinstance(v, (list, tuple)):
            return None
        try:
            days = [int(d) for d in v]
        except (TypeError, ValueError):
            return None
        return [d for d in days if 0 <= d <= 6]

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def trim_seconds(cls, v):
        if not v:
            return None
        return str(v)[:5]

    @field_validator("timezone", mode="before")
    @classmethod
    def default_timezone(cls, v):
        return v or DEFAULT_TIMEZONE


class StoreSettings(BaseModel):
    """Per-tenant store configuration, one document per owner"""
    owner_id: str
    store_name: str = ""
    slug: Optional[str] = None
    contact_number_1: str = ""
    contact_number_2: str = ""
    email: str = ""
    address: str = ""
    instructions: str = ""
    is_live: bool = False
    minimum_order_value: Optional[float] = Field(None, ge=0)
    online_payment_enabled: bool = False
    gateway_key_id: Optional[str] = None
    gateway_key_secret: Optional[str] = Field(None, description="Ciphertext, never returned to clients")
    schedule: OperatingSchedule = Field(default_factory=OperatingSchedule)
    updated_at: Optional[datetime] = None

    @field_validator("minimum_order_value", mode="before")
    @classmethod
    def coerce_minimum(cls, v):
        if v is None or v == "":
            return None
        return _to_float(v)

    def public_view(self) -> dict:
        data = self.model_dump(mode="json", exclude={"gateway_key_secret", "owner_id"})
        data["has_gateway_secret"] = bool(self.gateway_key_secret)
        return data
