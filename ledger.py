"""
Order ledger: order headers, their line items and recorded payment intents.

Headers live in ``order`` (keyed by the human readable order id), line items
in ``order_item``. Line items are written once; headers only change through
the typed patches below.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument

from database import Database, to_str_id
from errors import ValidationError
from schemas import Order, OrderItem, OrderStatus, PaymentIntent, PaymentStatus

logger = logging.getLogger(__name__)

ORDERS = "order"
ORDER_ITEMS = "order_item"
INTENTS = "payment_intent"


class PaymentPatch(BaseModel):
    payment_status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    payment_signature: Optional[str] = None

    def to_update(self) -> dict:
        fields = {}
        if self.payment_status is not None:
            fields["payment_status"] = self.payment_status
        if self.payment_id is not None:
            fields["payment_id"] = self.payment_id
        if self.gateway_order_id is not None:
            fields["gateway_order_id"] = self.gateway_order_id
        if self.payment_signature is not None:
            fields["payment_signature"] = self.payment_signature
        return fields


class OrderStatusPatch(BaseModel):
    status: Optional[OrderStatus] = None

    def to_update(self) -> dict:
        fields = {}
        if self.status is not None:
            fields["status"] = self.status
        return fields


class OrderLedger:
    def __init__(self, database: Database):
        self.database = database
        self.orders = database[ORDERS]
        self.items = database[ORDER_ITEMS]
        self.intents = database[INTENTS]

    # Writes (called inside the placement transaction)

    def insert_order(self, header: dict, session=None) -> None:
        self.database.create_document(ORDERS, header, session=session)

    def insert_line_items(self, order_id: str, items: List[OrderItem], session=None) -> None:
        docs = [
            {"order_id": order_id, "position": pos, **item.model_dump()}
            for pos, item in enumerate(items)
        ]
        if docs:
            self.items.insert_many(docs, session=session)

    def record_intent(self, intent: PaymentIntent) -> None:
        doc = intent.model_dump(exclude={"id"})
        doc["created_at"] = doc.get("created_at") or datetime.now(timezone.utc)
        self.intents.update_one({"_id": intent.id}, {"$set": doc}, upsert=True)

    def get_intent(self, intent_id: str, owner_id: str, session=None) -> Optional[PaymentIntent]:
        doc = self.intents.find_one({"_id": intent_id, "owner_id": owner_id}, session=session)
        return PaymentIntent(**to_str_id(doc)) if doc else None

    # Reads

    def _items_by_order(self, order_ids: List[str]) -> Dict[str, List[OrderItem]]:
        grouped: Dict[str, List[OrderItem]] = {oid: [] for oid in order_ids}
        if not order_ids:
            return grouped
        for doc in self.items.find({"order_id": {"$in": order_ids}}).sort([("order_id", 1), ("position", 1)]):
            grouped.setdefault(doc["order_id"], []).append(OrderItem(**doc))
        return grouped

    def _hydrate(self, docs: List[dict]) -> List[Order]:
        docs = [to_str_id(d) for d in docs]
        items = self._items_by_order([d["id"] for d in docs])
        return [Order(**d, items=items.get(d["id"], [])) for d in docs]

    def get_order(self, order_id: str, owner_id: Optional[str] = None) -> Optional[Order]:
        filt = {"_id": order_id}
        if owner_id is not None:
            filt["owner_id"] = owner_id
        doc = self.orders.find_one(filt)
        return self._hydrate([doc])[0] if doc else None

    def find_by_gateway_order(self, owner_id: str, gateway_order_id: str, session=None) -> Optional[Order]:
        doc = self.orders.find_one({"owner_id": owner_id, "gateway_order_id": gateway_order_id}, session=session)
        return self._hydrate([doc])[0] if doc else None

    def list_orders(self, owner_id: str) -> List[Order]:
        docs = self.orders.find({"owner_id": owner_id}).sort("created_at", DESCENDING)
        return self._hydrate(list(docs))

    def list_customer_orders(self, customer_id: str, owner_id: Optional[str] = None) -> List[Order]:
        filt = {"customer_id": customer_id}
        if owner_id is not None:
            filt["owner_id"] = owner_id
        docs = self.orders.find(filt).sort("created_at", DESCENDING)
        return self._hydrate(list(docs))

    def find_ids_with_prefix(self, prefix: str, limit: int = 100) -> List[str]:
        """Most recently created order ids starting with ``prefix``."""
        cursor = self.orders.find({"_id": {"$regex": "^" + re.escape(prefix)}})
        cursor = cursor.sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        return [d["_id"] for d in cursor]

    # Header mutations

    def _apply(self, order_id: str, fields: dict, extra_filter: Optional[dict] = None) -> Optional[Order]:
        fields["updated_at"] = datetime.now(timezone.utc)
        filt = {"_id": order_id, **(extra_filter or {})}
        doc = self.orders.find_one_and_update(filt, {"$set": fields}, return_document=ReturnDocument.AFTER)
        return self._hydrate([doc])[0] if doc else None

    def update_payment_status(self, order_id: str, patch: PaymentPatch,
                              only_if_status: Optional[str] = None) -> Optional[Order]:
        fields = patch.to_update()
        if not fields:
            raise ValidationError("No payment data provided to update")
        extra = {"payment_status": only_if_status} if only_if_status else None
        return self._apply(order_id, fields, extra)

    def update_status(self, order_id: str, owner_id: str, patch: OrderStatusPatch) -> Optional[Order]:
        fields = patch.to_update()
        if not fields:
            return self.get_order(order_id, owner_id)
        return self._apply(order_id, fields, {"owner_id": owner_id})
