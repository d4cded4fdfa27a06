import os
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional, Dict, Any, Literal

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from auth import optional_customer, require_customer, require_owner
from availability import is_store_operating_now
from catalog import ProductPatch
from config import Settings, setup_logging
from errors import NotFound, StoreClosed, StorefrontError, ValidationError
from ledger import OrderStatusPatch
from orders import CartLine
from schemas import CustomerInfo, OrderStatus
from services import Services
from store_settings import SettingsPatch

logger = logging.getLogger(__name__)


# Pydantic models for requests
class ProductIn(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    unit: str = ""
    category: str = "Uncategorized"
    description: str = ""
    image: str = ""


class ProductImportRow(BaseModel):
    id: Optional[str] = None
    name: str
    price: Any = 0
    quantity: Any = 0
    unit: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None


class BulkProductsIn(BaseModel):
    products: List[ProductImportRow]


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int


class OrderIn(BaseModel):
    items: List[OrderItemIn] = Field(default_factory=list)
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    store_slug: Optional[str] = None
    payment_method: Literal["cod", "online"] = "cod"
    gateway_order_id: Optional[str] = None


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None


class StoreSettingsIn(BaseModel):
    store_name: Optional[str] = None
    contact_number_1: Optional[str] = None
    contact_number_2: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    instructions: Optional[str] = None
    is_live: Optional[bool] = None
    minimum_order_value: Optional[float] = Field(None, ge=0)
    clear_minimum_order_value: bool = False
    schedule_enabled: Optional[bool] = None
    schedule_days: Optional[List[int]] = None
    schedule_start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}")
    schedule_end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}")
    schedule_timezone: Optional[str] = None


class LiveStatusIn(BaseModel):
    is_live: bool


class OnlinePaymentStatusIn(BaseModel):
    online_payment_enabled: bool


class GatewayKeysIn(BaseModel):
    key_id: str
    key_secret: Optional[str] = None
    online_payment_enabled: bool = True
    keep_existing_secret: bool = False


class PaymentIntentIn(BaseModel):
    store_slug: str
    items: List[OrderItemIn] = Field(default_factory=list)
    currency: Optional[str] = None
    receipt: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)


class VerifyPaymentIn(BaseModel):
    store_slug: str
    gateway_order_id: str
    payment_id: str
    signature: str
    order_id: Optional[str] = None


class PaymentFailedIn(BaseModel):
    store_slug: str
    gateway_order_id: str
    reason: Optional[str] = None


def cart_lines(items: List[OrderItemIn]) -> List[CartLine]:
    return [CartLine(product_id=i.product_id, quantity=i.quantity) for i in items]


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            settings = Settings.from_env()
            setup_logging(settings.log_level)
            app.state.services = Services.from_settings(settings)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    @app.get("/")
    def read_root():
        return {"message": "Storefront Backend Running"}

    @app.get("/test")
    def test_database(svc: Services = Depends(get_services)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            if svc.database.ping():
                response["database"] = "✅ Connected & Working"
                response["database_name"] = svc.database.name
                response["connection_status"] = "Connected"
                response["collections"] = svc.database.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"❌ Error: {str(e)[:50]}"
        response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
        return response

    # Public store
    @app.get("/api/store/{store_slug}/details")
    def store_details(store_slug: str, svc: Services = Depends(get_services)):
        store = svc.settings_store.get_by_slug(store_slug)
        if not store:
            raise NotFound("Store not found")
        data = store.public_view()
        data["is_open"] = is_store_operating_now(
            store, fallback_offset=timedelta(minutes=svc.settings.store_utc_offset_minutes)
        )
        return data

    @app.get("/api/store/{store_slug}/products")
    def store_products(store_slug: str, svc: Services = Depends(get_services)):
        store = svc.settings_store.get_by_slug(store_slug)
        if not store:
            raise NotFound("Store not found")
        return [p.model_dump(mode="json") for p in svc.catalog.list_products(store.owner_id)]

    @app.get("/api/store/{store_slug}/payment-key")
    def store_payment_key(store_slug: str, svc: Services = Depends(get_services)):
        return {"key": svc.payments.public_key(store_slug)}

    # Orders
    @app.post("/api/orders")
    def create_order(order: OrderIn, customer_id: Optional[str] = Depends(optional_customer),
                     svc: Services = Depends(get_services)):
        if not order.items:
            raise ValidationError("Invalid order items")
        owner_id = None
        if order.store_slug:
            store = svc.settings_store.get_by_slug(order.store_slug)
            if not store:
                raise NotFound("Store not found")
            offset = timedelta(minutes=svc.settings.store_utc_offset_minutes)
            if not is_store_operating_now(store, fallback_offset=offset):
                raise StoreClosed()
            owner_id = store.owner_id
        created = svc.orders.place_order(
            cart_lines(order.items),
            customer_info=order.customer_info,
            owner_id=owner_id,
            customer_id=customer_id,
            payment_method=order.payment_method,
            gateway_order_id=order.gateway_order_id,
        )
        return {"success": True, "order": created.model_dump(mode="json")}

    @app.get("/api/orders")
    def list_orders(owner_id: str = Depends(require_owner), svc: Services = Depends(get_services)):
        return [o.model_dump(mode="json") for o in svc.ledger.list_orders(owner_id)]

    @app.put("/api/orders/{order_id}")
    def update_order(order_id: str, payload: OrderUpdate, owner_id: str = Depends(require_owner),
                     svc: Services = Depends(get_services)):
        updated = svc.ledger.update_status(order_id, owner_id, OrderStatusPatch(status=payload.status))
        if not updated:
            raise NotFound("Order not found")
        return updated.model_dump(mode="json")

    @app.get("/api/customer/orders")
    def customer_orders(customer_id: str = Depends(require_customer), svc: Services = Depends(get_services)):
        return [o.model_dump(mode="json") for o in svc.ledger.list_customer_orders(customer_id)]

    @app.get("/api/customer/orders/{order_id}")
    def customer_order(order_id: str, customer_id: str = Depends(require_customer),
                       svc: Services = Depends(get_services)):
        order = svc.ledger.get_order(order_id)
        if not order or order.customer_id != customer_id:
            raise NotFound("Order not found")
        return order.model_dump(mode="json")

    @app.get("/api/admin/customers/{customer_id}/orders")
    def admin_customer_orders(customer_id: str, owner_id: str = Depends(require_owner),
                              svc: Services = Depends(get_services)):
        return [o.model_dump(mode="json") for o in svc.ledger.list_customer_orders(customer_id, owner_id)]

    # Inventory (owner)
    @app.get("/api/inventory")
    def list_inventory(owner_id: str = Depends(require_owner), svc: Services = Depends(get_services)):
        return [p.model_dump(mode="json") for p in svc.catalog.list_products(owner_id)]

    @app.post("/api/inventory")
    def create_product(product: ProductIn, owner_id: str = Depends(require_owner),
                       svc: Services = Depends(get_services)):
        created = svc.catalog.create_product(owner_id, **product.model_dump())
        return {"success": True, "product": created.model_dump(mode="json")}

    @app.post("/api/inventory/bulk")
    def import_products(payload: BulkProductsIn, owner_id: str = Depends(require_owner),
                        svc: Services = Depends(get_services)):
        if not payload.products:
            raise ValidationError("No products to import")
        saved = svc.catalog.bulk_upsert(owner_id, [p.model_dump() for p in payload.products])
        return {"success": True, "count": len(saved), "products": [p.model_dump(mode="json") for p in saved]}

    @app.get("/api/inventory/{product_id}")
    def get_product(product_id: str, owner_id: str = Depends(require_owner), svc: Services = Depends(get_services)):
        product = svc.catalog.get_product(product_id, owner_id)
        if not product:
            raise NotFound("Product not found")
        return product.model_dump(mode="json")

    @app.put("/api/inventory/{product_id}")
    def update_product(product_id: str, patch: ProductPatch, owner_id: str = Depends(require_owner),
                       svc: Services = Depends(get_services)):
        updated = svc.catalog.update_product(product_id, owner_id, patch)
        if not updated:
            raise NotFound("Product not found")
        return updated.model_dump(mode="json")

    @app.delete("/api/inventory/{product_id}")
    def delete_product(product_id: str, owner_id: str = Depends(require_owner),
                       svc: Services = Depends(get_services)):
        if not svc.catalog.delete_product(product_id, owner_id):
            raise NotFound("Product not found")
        return {"success": True, "message": "Product deleted"}

    # Store settings (owner)
    @app.get("/api/store/settings")
    def get_store_settings(owner_id: str = Depends(require_owner), svc: Services = Depends(get_services)):
        return svc.settings_store.get_or_default(owner_id).public_view()

    @app.put("/api/store/settings")
    def update_store_settings(payload: StoreSettingsIn, owner_id: str = Depends(require_owner),
                              svc: Services = Depends(get_services)):
        current = svc.settings_store.get_or_default(owner_id)
        # Required details only matter when the caller is editing them
        if payload.store_name is not None or payload.contact_number_1 is not None or payload.address is not None:
            required = {
                "Store Name": payload.store_name if payload.store_name is not None else current.store_name,
                "Contact Number 1": payload.contact_number_1 if payload.contact_number_1 is not None else current.contact_number_1,
                "Address": payload.address if payload.address is not None else current.address,
            }
            for label, value in required.items():
                if not (value or "").strip():
                    raise ValidationError(f"{label} is required")
        updated = svc.settings_store.upsert(owner_id, SettingsPatch(**payload.model_dump()))
        return {"success": True, "settings": updated.public_view()}

    def _require_configured(svc: Services, owner_id: str):
        current = svc.settings_store.get(owner_id)
        if not current or not current.store_name:
            raise ValidationError("Store details must be configured first. Please set up your store details.")
        return current

    @app.put("/api/store/live-status")
    def update_live_status(payload: LiveStatusIn, owner_id: str = Depends(require_owner),
                           svc: Services = Depends(get_services)):
        _require_configured(svc, owner_id)
        updated = svc.settings_store.upsert(owner_id, SettingsPatch(is_live=payload.is_live))
        return {"success": True, "is_live": updated.is_live}

    @app.put("/api/payment/online-payment-status")
    def update_online_payment_status(payload: OnlinePaymentStatusIn, owner_id: str = Depends(require_owner),
                                     svc: Services = Depends(get_services)):
        _require_configured(svc, owner_id)
        updated = svc.settings_store.upsert(
            owner_id, SettingsPatch(online_payment_enabled=payload.online_payment_enabled)
        )
        return {"success": True, "online_payment_enabled": updated.online_payment_enabled}

    @app.put("/api/payment/gateway-keys")
    def save_gateway_keys(payload: GatewayKeysIn, owner_id: str = Depends(require_owner),
                          svc: Services = Depends(get_services)):
        if not payload.key_id.strip():
            raise ValidationError("Gateway Key ID is required")
        current = _require_configured(svc, owner_id)
        patch = SettingsPatch(gateway_key_id=payload.key_id, online_payment_enabled=payload.online_payment_enabled)
        if not payload.keep_existing_secret:
            if not payload.key_secret:
                raise ValidationError("Gateway Key Secret is required")
            patch.gateway_key_secret = svc.secret_box.encrypt(payload.key_secret)
        elif not current.gateway_key_secret:
            raise ValidationError("No stored Gateway Key Secret to keep")
        updated = svc.settings_store.upsert(owner_id, patch)
        return {
            "success": True,
            "gateway_key_id": updated.gateway_key_id,
            "online_payment_enabled": updated.online_payment_enabled,
        }

    # Payments (public)
    @app.post("/api/payments/intents")
    def create_payment_intent(payload: PaymentIntentIn, svc: Services = Depends(get_services)):
        result = svc.payments.create_intent(
            payload.store_slug, cart_lines(payload.items),
            currency=payload.currency, receipt=payload.receipt, notes=payload.notes,
        )
        intent = result.intent
        return {
            "success": True,
            "key": result.key_id,
            "order": {"id": intent.id, "amount": intent.amount, "currency": intent.currency, "receipt": intent.receipt},
        }

    @app.post("/api/payments/verify")
    def verify_payment(payload: VerifyPaymentIn, svc: Services = Depends(get_services)):
        order = svc.payments.verify_payment(
            payload.store_slug, payload.gateway_order_id, payload.payment_id, payload.signature,
            order_id=payload.order_id,
        )
        return {"success": True, "message": "Payment verified and order updated successfully",
                "order": order.model_dump(mode="json")}

    @app.post("/api/payments/failed")
    def payment_failed(payload: PaymentFailedIn, svc: Services = Depends(get_services)):
        order = svc.payments.mark_payment_failed(payload.store_slug, payload.gateway_order_id, payload.reason)
        return {"success": True, "order": order.model_dump(mode="json")}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
