"""
MongoDB access for the storefront.

``Database`` owns the client and its connection pool. It is built once by the
service container, handed to the stores, and closed on shutdown.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.client_session import ClientSession
from pymongo.errors import CollectionInvalid, PyMongoError

from errors import ConfigurationError

logger = logging.getLogger(__name__)

PRODUCT_VALIDATOR = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["owner_id", "quantity"],
        "properties": {
            "quantity": {"bsonType": ["int", "long"], "minimum": 0},
        },
    }
}


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


class Database:
    def __init__(self, client: MongoClient, name: str):
        self.client = client
        self.name = name
        self.db = client[name]

    @classmethod
    def connect(cls, url: Optional[str], name: Optional[str], max_pool_size: int = 20,
                connect_timeout_ms: int = 2000, idle_timeout_ms: int = 30000) -> "Database":
        if not url or not name:
            raise ConfigurationError("DATABASE_URL and DATABASE_NAME must be set")
        client = MongoClient(
            url,
            maxPoolSize=max_pool_size,
            connectTimeoutMS=connect_timeout_ms,
            serverSelectionTimeoutMS=connect_timeout_ms,
            maxIdleTimeMS=idle_timeout_ms,
            tz_aware=True,
        )
        logger.info("Connected to MongoDB database %s", name)
        return cls(client, name)

    def __getitem__(self, collection_name: str):
        return self.db[collection_name]

    @contextmanager
    def transaction(self) -> Iterator[Optional[ClientSession]]:
        """All-or-nothing unit of work.

        Commits when the block exits normally, aborts on any exception, and
        always ends the session.
        """
        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def create_document(self, collection_name: str, data: Union[BaseModel, dict],
                        session: Optional[ClientSession] = None) -> str:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_none=False)
        doc = dict(data)
        if "id" in doc:
            doc["_id"] = doc.pop("id")
        now = datetime.now(timezone.utc)
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        result = self.db[collection_name].insert_one(doc, session=session)
        return str(result.inserted_id)

    def get_documents(self, collection_name: str, filter_dict: Optional[dict] = None,
                      limit: Optional[int] = None, sort: Optional[list] = None,
                      session: Optional[ClientSession] = None) -> List[dict]:
        cursor = self.db[collection_name].find(filter_dict or {}, session=session)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def ensure_schema(self) -> None:
        """Create indexes and the product quantity validator.

        The validator rejects any product write that leaves quantity below zero.
        """
        try:
            self.db.create_collection("product", validator=PRODUCT_VALIDATOR)
        except CollectionInvalid:
            self.db.command("collMod", "product", validator=PRODUCT_VALIDATOR)
        self.db["product"].create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])
        self.db["order"].create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])
        self.db["order"].create_index([("customer_id", ASCENDING), ("created_at", DESCENDING)])
        # One order per gateway payment order
        self.db["order"].create_index(
            [("owner_id", ASCENDING), ("gateway_order_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"gateway_order_id": {"$type": "string"}},
        )
        self.db["order_item"].create_index([("order_id", ASCENDING), ("position", ASCENDING)])
        self.db["store_settings"].create_index("owner_id", unique=True)
        self.db["store_settings"].create_index("slug")
        logger.info("Database indexes and validators ensured")

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError:
            return False

    def list_collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection pool closed")
