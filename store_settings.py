"""
Store settings: one document per tenant, keyed by owner id.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from database import Database
from errors import PersistenceError
from schemas import StoreSettings

logger = logging.getLogger(__name__)

COLLECTION = "store_settings"


def create_slug(text: Optional[str]) -> str:
    """URL-friendly slug of a store name; ``guest`` when there is no name."""
    if not text:
        return "guest"
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    slug = slug.strip("-")
    return slug or "guest"


class SettingsPatch(BaseModel):
    """Settings fields to change. ``None`` keeps the stored value.

    ``clear_minimum_order_value`` removes the minimum order check, since
    ``None`` on ``minimum_order_value`` means "unchanged".
    """
    store_name: Optional[str] = None
    contact_number_1: Optional[str] = None
    contact_number_2: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    instructions: Optional[str] = None
    is_live: Optional[bool] = None
    minimum_order_value: Optional[float] = Field(None, ge=0)
    clear_minimum_order_value: bool = False
    online_payment_enabled: Optional[bool] = None
    gateway_key_id: Optional[str] = None
    gateway_key_secret: Optional[str] = Field(None, description="Already encrypted")
    schedule_enabled: Optional[bool] = None
    schedule_days: Optional[List[int]] = None
    schedule_start_time: Optional[str] = None
    schedule_end_time: Optional[str] = None
    schedule_timezone: Optional[str] = None

    def to_update(self) -> dict:
        fields = {}
        if self.store_name is not None:
            fields["store_name"] = self.store_name.strip()
            fields["slug"] = create_slug(self.store_name)
        if self.contact_number_1 is not None:
            fields["contact_number_1"] = self.contact_number_1.strip()
        if self.contact_number_2 is not None:
            fields["contact_number_2"] = self.contact_number_2.strip()
        if self.email is not None:
            fields["email"] = self.email.strip()
        if self.address is not None:
            fields["address"] = self.address.strip()
        if self.instructions is not None:
            fields["instructions"] = self.instructions.strip()
        if self.is_live is not None:
            fields["is_live"] = self.is_live
        if self.clear_minimum_order_value:
            fields["minimum_order_value"] = None
        elif self.minimum_order_value is not None:
            fields["minimum_order_value"] = self.minimum_order_value
        if self.online_payment_enabled is not None:
            fields["online_payment_enabled"] = self.online_payment_enabled
        if self.gateway_key_id is not None:
            fields["gateway_key_id"] = self.gateway_key_id.strip()
        if self.gateway_key_secret is not None:
            fields["gateway_key_secret"] = self.gateway_key_secret
        if self.schedule_enabled is not None:
            fields["schedule.enabled"] = self.schedule_enabled
        if self.schedule_days is not None:
            fields["schedule.days"] = sorted({int(d) for d in self.schedule_days if 0 <= int(d) <= 6})
        if self.schedule_start_time is not None:
            fields["schedule.start_time"] = self.schedule_start_time[:5]
        if self.schedule_end_time is not None:
            fields["schedule.end_time"] = self.schedule_end_time[:5]
        if self.schedule_timezone is not None:
            fields["schedule.timezone"] = self.schedule_timezone
        return fields


class StoreSettingsStore:
    def __init__(self, database: Database):
        self.database = database
        self.collection = database[COLLECTION]

    def _from_doc(self, doc: dict) -> StoreSettings:
        doc = {k: v for k, v in doc.items() if k != "_id"}
        return StoreSettings(**doc)

    def get(self, owner_id: str, session=None) -> Optional[StoreSettings]:
        doc = self.collection.find_one({"owner_id": owner_id}, session=session)
        return self._from_doc(doc) if doc else None

    def get_or_default(self, owner_id: str) -> StoreSettings:
        return self.get(owner_id) or StoreSettings(owner_id=owner_id)

    def get_by_slug(self, slug: str) -> Optional[StoreSettings]:
        """Resolve a public store slug: exact slug first, then name substring."""
        slug = (slug or "").lower()
        if not slug:
            return None
        doc = self.collection.find_one({"slug": slug})
        if not doc:
            docs = self.collection.find({"store_name": {"$regex": re.escape(slug), "$options": "i"}}).sort("_id", 1).limit(1)
            doc = next(iter(docs), None)
        return self._from_doc(doc) if doc else None

    def upsert(self, owner_id: str, patch: SettingsPatch) -> StoreSettings:
        """Create the tenant's settings on first write, otherwise apply ``patch``."""
        fields = patch.to_update()
        fields["updated_at"] = datetime.now(timezone.utc)
        try:
            with self.database.transaction() as session:
                existing = self.collection.find_one({"owner_id": owner_id}, {"_id": 1}, session=session)
                if existing is None:
                    doc = StoreSettings(owner_id=owner_id).model_dump()
                    doc["slug"] = create_slug(None)
                    self.collection.insert_one(doc, session=session)
                self.collection.update_one({"owner_id": owner_id}, {"$set": fields}, session=session)
                doc = self.collection.find_one({"owner_id": owner_id}, session=session)
        except PyMongoError as exc:
            logger.exception("Error updating store settings for owner %s", owner_id)
            raise PersistenceError("Error saving store details") from exc
        return self._from_doc(doc)
