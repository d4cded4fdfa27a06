"""
Catalog store: tenant-scoped product records.

Every read and write is filtered by ``owner_id`` so a product belonging to a
different tenant behaves exactly like a missing one.
"""

import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from database import Database, to_str_id
from errors import PersistenceError, ValidationError
from schemas import Product

logger = logging.getLogger(__name__)

COLLECTION = "product"


def new_product_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"prod_{int(time.time() * 1000)}_{suffix}"


class ProductPatch(BaseModel):
    """Fields an owner may change on a product. ``None`` leaves a field as is."""
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

    def to_update(self) -> dict:
        fields = {}
        if self.name is not None:
            fields["name"] = self.name.strip()
        if self.price is not None:
            fields["price"] = self.price
        if self.quantity is not None:
            fields["quantity"] = self.quantity
        if self.unit is not None:
            fields["unit"] = self.unit.strip()
        if self.category is not None:
            fields["category"] = self.category.strip() or "Uncategorized"
        if self.description is not None:
            fields["description"] = self.description.strip()
        if self.image is not None:
            fields["image"] = self.image.strip()
        return fields


class CatalogStore:
    def __init__(self, database: Database):
        self.database = database
        self.collection = database[COLLECTION]

    def get_product(self, product_id: str, owner_id: str, session=None) -> Optional[Product]:
        doc = self.collection.find_one({"_id": product_id, "owner_id": owner_id}, session=session)
        return Product(**to_str_id(doc)) if doc else None

    def get_owner_id(self, product_id: str, session=None) -> Optional[str]:
        """Owner of a product regardless of tenant, used to route guest carts."""
        doc = self.collection.find_one({"_id": product_id}, {"owner_id": 1}, session=session)
        return doc.get("owner_id") if doc else None

    def list_products(self, owner_id: str) -> List[Product]:
        docs = self.collection.find({"owner_id": owner_id}).sort("created_at", DESCENDING)
        return [Product(**to_str_id(d)) for d in docs]

    def decrement_stock(self, product_id: str, owner_id: str, amount: int, session=None) -> bool:
        """Atomically take ``amount`` units out of stock.

        The filter only matches while enough stock remains, so the update can
        never drive quantity below zero. Returns False when nothing matched.
        """
        result = self.collection.update_one(
            {"_id": product_id, "owner_id": owner_id, "quantity": {"$gte": amount}},
            {"$inc": {"quantity": -amount}},
            session=session,
        )
        return result.modified_count == 1

    def create_product(self, owner_id: str, name: str, price: float, quantity: int, unit: str = "",
                       category: str = "Uncategorized", description: str = "", image: str = "",
                       product_id: Optional[str] = None) -> Product:
        if not name or not name.strip():
            raise ValidationError("Name, price, and quantity are required")
        product = Product(
            id=product_id or new_product_id(),
            owner_id=owner_id,
            name=name.strip(),
            price=price,
            quantity=quantity,
            unit=(unit or "").strip(),
            category=(category or "Uncategorized").strip(),
            description=(description or "").strip(),
            image=(image or "").strip(),
            created_at=datetime.now(timezone.utc),
        )
        self.database.create_document(COLLECTION, product)
        logger.info("Created product %s for owner %s", product.id, owner_id)
        return product

    def update_product(self, product_id: str, owner_id: str, patch: ProductPatch) -> Optional[Product]:
        fields = patch.to_update()
        if not fields:
            return self.get_product(product_id, owner_id)
        fields["updated_at"] = datetime.now(timezone.utc)
        doc = self.collection.find_one_and_update(
            {"_id": product_id, "owner_id": owner_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return Product(**to_str_id(doc)) if doc else None

    def delete_product(self, product_id: str, owner_id: str) -> bool:
        result = self.collection.delete_one({"_id": product_id, "owner_id": owner_id})
        return result.deleted_count == 1

    def bulk_upsert(self, owner_id: str, products: List[dict]) -> List[Product]:
        """Insert or replace a batch of products in one transaction.

        Either every row lands or none does.
        """
        now = datetime.now(timezone.utc)
        saved = []
        try:
            with self.database.transaction() as session:
                for row in products:
                    product = Product(
                        id=row.get("id") or new_product_id(),
                        owner_id=owner_id,
                        name=(row.get("name") or "").strip(),
                        price=row.get("price"),
                        quantity=row.get("quantity"),
                        unit=row.get("unit"),
                        category=row.get("category"),
                        description=row.get("description"),
                        image=row.get("image"),
                        created_at=row.get("created_at") or now,
                    )
                    if not product.name:
                        raise ValidationError("Every product needs a name")
                    doc = product.model_dump(exclude={"id"})
                    # An id owned by another tenant fails the upsert with a duplicate key
                    self.collection.update_one(
                        {"_id": product.id, "owner_id": owner_id}, {"$set": doc}, upsert=True, session=session
                    )
                    saved.append(product)
        except PyMongoError as exc:
            logger.exception("Bulk product import failed for owner %s", owner_id)
            raise PersistenceError("Error importing products") from exc
        logger.info("Imported %d products for owner %s", len(saved), owner_id)
        return saved
