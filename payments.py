"""
Online payments against a Razorpay-compatible gateway.

Flow: the storefront asks for an intent (a remote gateway order) for the
server-priced cart, places the order as ``pending`` with that reference, and
after the customer pays reports the gateway's payment id and signature. The
signature is an HMAC-SHA256 of ``<gateway order id>|<payment id>`` keyed with
the tenant's secret; only a matching signature marks the order paid.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from encryption import SecretBox
from errors import (
    InvalidSignature,
    MissingCredentials,
    NotFound,
    PaymentGatewayError,
    ValidationError,
)
from ledger import OrderLedger, PaymentPatch
from orders import CartLine, OrderService, to_minor_units
from schemas import Order, PaymentIntent, StoreSettings
from store_settings import StoreSettingsStore

logger = logging.getLogger(__name__)


def compute_signature(key_secret: str, gateway_order_id: str, payment_id: str) -> str:
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signature_matches(key_secret: str, gateway_order_id: str, payment_id: str, signature: str) -> bool:
    expected = compute_signature(key_secret, gateway_order_id, payment_id)
    return hmac.compare_digest(expected, signature or "")


class RazorpayGateway:
    """Minimal client for the gateway's Orders API."""

    def __init__(self, base_url: str = "https://api.razorpay.com", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def create_order(self, key_id: str, key_secret: str, amount: int, currency: str,
                     receipt: str, notes: Optional[dict] = None) -> PaymentIntent:
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            response = self.client.post("/v1/orders", json=payload, auth=(key_id, key_secret))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Gateway rejected order creation: %s %s", exc.response.status_code, exc.response.text[:200])
            raise PaymentGatewayError(f"Error creating payment order: gateway returned {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Gateway request failed: %s", exc)
            raise PaymentGatewayError("Error creating payment order: gateway unavailable") from exc
        return PaymentIntent(
            id=data["id"],
            amount=data.get("amount", amount),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    def close(self) -> None:
        self.client.close()


@dataclass
class IntentResult:
    intent: PaymentIntent
    key_id: str


class PaymentService:
    def __init__(self, settings_store: StoreSettingsStore, ledger: OrderLedger, orders: OrderService,
                 secret_box: SecretBox, gateway: RazorpayGateway, default_currency: str = "INR"):
        self.settings_store = settings_store
        self.ledger = ledger
        self.orders = orders
        self.secret_box = secret_box
        self.gateway = gateway
        self.default_currency = default_currency

    def _store(self, slug: str) -> StoreSettings:
        if not slug:
            raise ValidationError("Store slug is required")
        store = self.settings_store.get_by_slug(slug)
        if store is None:
            raise NotFound("Store not found")
        return store

    def _credentials(self, store: StoreSettings) -> Tuple[str, str]:
        if not store.online_payment_enabled or not store.gateway_key_id:
            raise ValidationError("Online payment is not properly configured for this store")
        if not store.gateway_key_secret:
            raise MissingCredentials(
                "Payment configuration error: gateway secret key is missing. "
                "Please re-enter your keys in store settings."
            )
        # SecretDecryptionError propagates as its own configuration error
        return store.gateway_key_id, self.secret_box.decrypt(store.gateway_key_secret)

    def public_key(self, slug: str) -> str:
        store = self._store(slug)
        if not store.online_payment_enabled or not store.gateway_key_id:
            raise ValidationError("Online payment is not enabled for this store")
        return store.gateway_key_id

    def create_intent(self, slug: str, items: List[CartLine], currency: Optional[str] = None,
                      receipt: Optional[str] = None, notes: Optional[dict] = None) -> IntentResult:
        store = self._store(slug)
        key_id, key_secret = self._credentials(store)
        quote = self.orders.quote_cart(items, owner_id=store.owner_id)
        amount = to_minor_units(quote.total)
        if amount <= 0:
            raise ValidationError("Invalid amount")
        currency = currency or self.default_currency
        receipt = receipt or f"receipt_{int(time.time() * 1000)}"

        intent = self.gateway.create_order(key_id, key_secret, amount, currency, receipt, notes)
        intent.owner_id = store.owner_id
        self.ledger.record_intent(intent)
        logger.info("Payment intent %s created for owner %s (%d %s)", intent.id, store.owner_id, amount, currency)
        return IntentResult(intent=intent, key_id=key_id)

    def verify_payment(self, slug: str, gateway_order_id: str, payment_id: str, signature: str,
                       order_id: Optional[str] = None) -> Order:
        """Mark the order behind ``gateway_order_id`` paid if the signature holds.

        The order is looked up from the gateway reference stored when it was
        placed; a client supplied ``order_id`` must agree with it.
        """
        if not gateway_order_id or not payment_id or not signature:
            raise ValidationError("Missing required payment verification fields")
        store = self._store(slug)
        _, key_secret = self._credentials(store)

        if not signature_matches(key_secret, gateway_order_id, payment_id, signature):
            logger.warning("Invalid payment signature for gateway order %s", gateway_order_id)
            raise InvalidSignature()

        order = self.ledger.find_by_gateway_order(store.owner_id, gateway_order_id)
        if order is None:
            raise NotFound("Order not found for this payment")
        if order_id is not None and order_id != order.id:
            raise ValidationError("Order does not match this payment")

        updated = self.ledger.update_payment_status(order.id, PaymentPatch(
            payment_status="paid",
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            payment_signature=signature,
        ))
        if updated is None:
            raise NotFound("Order not found")
        logger.info("Payment %s verified for order %s", payment_id, updated.id)
        return updated

    def mark_payment_failed(self, slug: str, gateway_order_id: str, reason: Optional[str] = None) -> Order:
        """Record a failed payment. Paid orders are left alone."""
        if not gateway_order_id:
            raise ValidationError("Gateway order reference is required")
        store = self._store(slug)
        order = self.ledger.find_by_gateway_order(store.owner_id, gateway_order_id)
        if order is None:
            raise NotFound("Order not found for this payment")
        if order.payment_status != "pending":
            return order
        updated = self.ledger.update_payment_status(
            order.id, PaymentPatch(payment_status="failed"), only_if_status="pending"
        )
        logger.info("Payment failed for order %s: %s", order.id, reason or "no reason given")
        return updated or self.ledger.get_order(order.id)
