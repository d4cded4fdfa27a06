"""
Order placement: stock validation, reservation and order persistence as one
all-or-nothing unit.

Stock is protected twice. A per-item pre-check gives the customer a precise
error; the decrement itself only matches rows that still hold enough stock,
so a pre-check that went stale under a concurrent checkout aborts the whole
transaction instead of overselling.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from pymongo.errors import PyMongoError

from availability import DEFAULT_OFFSET, resolve_timezone
from catalog import CatalogStore
from errors import InsufficientStock, NotFound, PersistenceError, StorefrontError, ValidationError
from ledger import OrderLedger
from order_ids import generate_order_id
from schemas import CustomerInfo, Order, OrderItem, PaymentMethod, Product
from store_settings import StoreSettingsStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class CartLine:
    product_id: str
    quantity: int


@dataclass
class CartQuote:
    owner_id: str
    lines: List[OrderItem]
    total: Decimal


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_cart(items: List[CartLine]) -> None:
    if not items:
        raise ValidationError("Invalid order items")
    for line in items:
        if not line.product_id:
            raise ValidationError("Every order item needs a product id")
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            raise ValidationError(f"Invalid quantity for product {line.product_id}")


class OrderService:
    def __init__(self, database, catalog: CatalogStore, ledger: OrderLedger, settings_store: StoreSettingsStore,
                 store_timezone: str = "Asia/Kolkata", fallback_offset: timedelta = DEFAULT_OFFSET,
                 clock: Optional[Callable[[], datetime]] = None):
        self.database = database
        self.catalog = catalog
        self.ledger = ledger
        self.settings_store = settings_store
        self.tzinfo = resolve_timezone(store_timezone, fallback_offset)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _resolve_owner(self, items: List[CartLine], owner_id: Optional[str], session=None) -> str:
        if owner_id:
            return owner_id
        owner_id = self.catalog.get_owner_id(items[0].product_id, session=session)
        if not owner_id:
            raise NotFound(f"Product {items[0].product_id} not found")
        return owner_id

    def _check_stock(self, items: List[CartLine], owner_id: str, session=None) -> CartQuote:
        lines = []
        total = Decimal("0")
        for line in items:
            product: Optional[Product] = self.catalog.get_product(line.product_id, owner_id, session=session)
            if product is None:
                raise NotFound(f"Product {line.product_id} not found for this store")
            if product.quantity < line.quantity:
                raise InsufficientStock(product.name, product.quantity, line.quantity)
            price = Decimal(str(product.price))
            total += price * line.quantity
            lines.append(OrderItem(
                product_id=product.id,
                quantity=line.quantity,
                product_name=product.name,
                product_price=float(price),
            ))
        return CartQuote(owner_id=owner_id, lines=lines, total=total.quantize(CENTS, rounding=ROUND_HALF_UP))

    def _check_minimum(self, quote: CartQuote, session=None) -> None:
        settings = self.settings_store.get(quote.owner_id, session=session)
        if settings is None or not settings.minimum_order_value:
            return
        minimum = Decimal(str(settings.minimum_order_value)).quantize(CENTS)
        if quote.total < minimum:
            raise ValidationError(
                f"Minimum order value is {minimum}. Your cart total is {quote.total}. "
                f"Please add items worth {minimum - quote.total} more to proceed."
            )

    def _check_online_payment(self, quote: CartQuote, gateway_order_id: Optional[str], session=None) -> None:
        if not gateway_order_id:
            raise ValidationError("Online payment orders need a gateway order reference")
        settings = self.settings_store.get(quote.owner_id, session=session)
        if settings is None or not settings.online_payment_enabled:
            raise ValidationError("Online payment is not enabled for this store")
        intent = self.ledger.get_intent(gateway_order_id, quote.owner_id, session=session)
        if intent is None:
            raise ValidationError("Unknown payment order for this store")
        if intent.amount != to_minor_units(quote.total):
            raise ValidationError("Payment amount does not match the order total")
        if self.ledger.find_by_gateway_order(quote.owner_id, gateway_order_id, session=session) is not None:
            raise ValidationError("Payment order already used")

    def quote_cart(self, items: List[CartLine], owner_id: Optional[str] = None) -> CartQuote:
        """Price a cart from live catalog data without reserving anything."""
        validate_cart(items)
        owner_id = self._resolve_owner(items, owner_id)
        quote = self._check_stock(items, owner_id)
        self._check_minimum(quote)
        return quote

    def place_order(self, items: List[CartLine], customer_info: Optional[CustomerInfo] = None,
                    owner_id: Optional[str] = None, customer_id: Optional[str] = None,
                    payment_method: PaymentMethod = "cod", gateway_order_id: Optional[str] = None) -> Order:
        """Validate stock, reserve it and persist the order in one transaction.

        Raises ValidationError, NotFound or InsufficientStock without writing
        anything; database failures roll back and raise PersistenceError.
        """
        validate_cart(items)
        if payment_method not in ("cod", "online"):
            raise ValidationError("Payment method must be cod or online")

        now = self.clock()
        order_id = generate_order_id(self.ledger, now.astimezone(self.tzinfo))

        try:
            with self.database.transaction() as session:
                owner_id = self._resolve_owner(items, owner_id, session=session)
                quote = self._check_stock(items, owner_id, session=session)
                self._check_minimum(quote, session=session)
                if payment_method == "online":
                    self._check_online_payment(quote, gateway_order_id, session=session)

                # Always decrement in product_id order
                for line in sorted(quote.lines, key=lambda l: l.product_id):
                    if not self.catalog.decrement_stock(line.product_id, owner_id, line.quantity, session=session):
                        raise InsufficientStock(line.product_name, requested=line.quantity)

                header = {
                    "id": order_id,
                    "owner_id": owner_id,
                    "customer_id": customer_id,
                    "customer_info": (customer_info or CustomerInfo()).model_dump(),
                    "status": "pending",
                    "payment_method": payment_method,
                    "payment_status": "paid" if payment_method == "cod" else "pending",
                    "total": float(quote.total),
                    "total_minor": to_minor_units(quote.total),
                    "gateway_order_id": gateway_order_id if payment_method == "online" else None,
                    "payment_id": None,
                    "payment_signature": None,
                    "created_at": now,
                    "updated_at": now,
                }
                self.ledger.insert_order(header, session=session)
                self.ledger.insert_line_items(order_id, quote.lines, session=session)
        except StorefrontError:
            raise
        except PyMongoError as exc:
            logger.exception("Error creating order %s", order_id)
            raise PersistenceError("Error creating order") from exc

        logger.info("Order %s placed for owner %s (%s, total %s)", order_id, owner_id, payment_method, quote.total)
        order = self.ledger.get_order(order_id)
        if order is None:
            raise PersistenceError(f"Order {order_id} was not found after commit")
        return order
