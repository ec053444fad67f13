"""
Order persistence

MongoDB-backed order repository. One document per order in the "order"
collection; `_id` is the order id and line items are embedded.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
from errors import ConcurrencyConflict, ConflictError, DuplicateOrderIdError, NotFoundError, PersistenceError
from notifications import ChangeFeed
from schemas import LineItem, Order
from status import derive_aggregate_status

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def _ensure_db():
    if db is None:
        raise PersistenceError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


class OrderRepository(ABC):
    """Storage interface the order service is written against."""

    @abstractmethod
    def insert(self, order: Order) -> None: ...

    @abstractmethod
    def update_items(self, order_id: str, items: List[LineItem], expected_version: int) -> int:
        """Replace the item list if the stored version still equals `expected_version`.

        Returns the new version.
        """

    @abstractmethod
    def update_rating(self, order_id: str, rating: int) -> int:
        """Set the rating unless one is already stored. Returns the new version."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]: ...

    @abstractmethod
    def list_all(self) -> List[Order]: ...

    @abstractmethod
    def on_change(self, table: str, callback: Callable[[Dict[str, Any]], None]) -> Callable[[], None]: ...


class MongoOrderRepository(OrderRepository):
    def __init__(self, collection, feed: Optional[ChangeFeed] = None):
        self.collection = collection
        self.feed = feed or ChangeFeed()

    # Mapping

    @staticmethod
    def to_document(order: Order) -> dict:
        # aggregate status is derived on read, never stored
        payload = order.model_dump(mode="json", exclude={"id", "status", "created_at"})
        payload["_id"] = order.id
        payload["created_at"] = order.created_at
        payload["updated_at"] = order.created_at
        return payload

    @staticmethod
    def from_document(doc: dict) -> Order:
        d = serialize_doc(doc)
        d["id"] = d.pop("_id")
        d.pop("status", None)
        d.pop("updated_at", None)
        created_at = d.get("created_at")
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            d["created_at"] = created_at.replace(tzinfo=timezone.utc)
        order = Order(**d)
        order.status = derive_aggregate_status(order.items)
        return order

    # Writes

    def insert(self, order: Order) -> None:
        try:
            self.collection.insert_one(self.to_document(order))
        except DuplicateKeyError as e:
            raise DuplicateOrderIdError(order.id) from e
        except PyMongoError as e:
            logger.error("Failed to insert order %s: %s", order.id, e)
            raise PersistenceError(f"Could not save order {order.id}") from e
        self.feed.publish(ORDERS_TABLE, {"operation": "insert", "order_id": order.id})

    def update_items(self, order_id: str, items: List[LineItem], expected_version: int) -> int:
        update = {
            "$set": {
                "items": [item.model_dump(mode="json") for item in items],
                "updated_at": datetime.now(timezone.utc),
            },
            "$inc": {"version": 1},
        }
        try:
            result = self.collection.update_one({"_id": order_id, "version": expected_version}, update)
            if result.matched_count == 0:
                if self.collection.count_documents({"_id": order_id}, limit=1) == 0:
                    raise NotFoundError("Order", order_id)
                logger.warning("Version conflict on order %s (expected %s)", order_id, expected_version)
                raise ConcurrencyConflict(order_id, expected_version)
        except PyMongoError as e:
            logger.error("Failed to update items of order %s: %s", order_id, e)
            raise PersistenceError(f"Could not update order {order_id}") from e
        self.feed.publish(ORDERS_TABLE, {"operation": "update", "order_id": order_id})
        return expected_version + 1

    def update_rating(self, order_id: str, rating: int) -> int:
        update = {
            "$set": {"rating": rating, "updated_at": datetime.now(timezone.utc)},
            "$inc": {"version": 1},
        }
        try:
            doc = self.collection.find_one_and_update(
                {"_id": order_id, "rating": None},
                update,
                projection={"version": True},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                if self.collection.count_documents({"_id": order_id}, limit=1) == 0:
                    raise NotFoundError("Order", order_id)
                raise ConflictError(f"Order {order_id} has already been rated")
        except PyMongoError as e:
            logger.error("Failed to rate order %s: %s", order_id, e)
            raise PersistenceError(f"Could not rate order {order_id}") from e
        self.feed.publish(ORDERS_TABLE, {"operation": "update", "order_id": order_id})
        return doc["version"]

    # Reads

    def get(self, order_id: str) -> Optional[Order]:
        try:
            doc = self.collection.find_one({"_id": order_id})
        except PyMongoError as e:
            raise PersistenceError(f"Could not load order {order_id}") from e
        return self.from_document(doc) if doc else None

    def list_all(self) -> List[Order]:
        try:
            cursor = self.collection.find({}).sort("created_at", DESCENDING)
            return [self.from_document(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to list orders: %s", e)
            raise PersistenceError("Could not load orders") from e

    def on_change(self, table: str, callback: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        return self.feed.subscribe(table, callback)


def get_order_repository(feed: Optional[ChangeFeed] = None) -> MongoOrderRepository:
    _ensure_db()
    return MongoOrderRepository(db[config.ORDERS_COLLECTION], feed=feed)


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # ObjectId ids from older records
    return d
