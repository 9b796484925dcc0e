import logging
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection

from swiftsale import config

logger = logging.getLogger(__name__)

_CLIENT: Optional[MongoClient] = None


def set_client(client: Optional[MongoClient]) -> None:
    """Swap the shared client (tests inject an in-memory one)."""
    global _CLIENT
    _CLIENT = client


def mongo_client() -> MongoClient:
    global _CLIENT
    if _CLIENT is None:
        uri = config.mongodb_uri()
        if not uri:
            raise RuntimeError("MONGODB_URI is not configured.")
        _CLIENT = MongoClient(uri)
        logger.info("Connected MongoDB client for database %s", config.db_name())
    return _CLIENT


def collection(name: str) -> Collection:
    return mongo_client()[config.db_name()][name]


def next_series(shop_id: str, prefix: str, name: str) -> str:
    counters = collection("counters")
    row = counters.find_one_and_update(
        {"_id": f"{shop_id}:{name}"},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    number = int((row or {}).get("value", 1))
    return f"{prefix}{number:04d}"


def reset_series(shop_id: str, name: str, value: int) -> None:
    collection("counters").update_one(
        {"_id": f"{shop_id}:{name}"},
        {"$set": {"value": int(value)}},
        upsert=True,
    )


def ensure_indexes() -> None:
    collection("users").create_index([("email", ASCENDING)], unique=True)
    collection("sessions").create_index([("token", ASCENDING)], unique=True)
    collection("stock").create_index([("shop_id", ASCENDING), ("sku", ASCENDING)], unique=True)
    collection("customers").create_index([("shop_id", ASCENDING), ("customer_id", ASCENDING)], unique=True)
    collection("sales").create_index([("shop_id", ASCENDING), ("sale_id", ASCENDING)], unique=True)
    collection("sales").create_index([("shop_id", ASCENDING), ("date", DESCENDING)])
    collection("expenses").create_index([("shop_id", ASCENDING), ("date", DESCENDING)])
    collection("audit_log").create_index([("shop_id", ASCENDING), ("timestamp", DESCENDING)])
