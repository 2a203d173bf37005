"""
MongoDB access: one pooled client per process plus short-lived dedicated
connections for the fallback path.

Routes receive the ``Mongo`` instance through ``get_mongo`` instead of a
module-level handle, which lets tests inject a mongomock client.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError

import config
from errors import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CATEGORIES = "categories"
CONTACTS = "contacts"
ORDERS = "orders"
PAYMENT_REQUESTS = "paymentrequests"
PAYMENT_SETTINGS = "paymentsettings"
SHIPPING_ADDRESSES = "shippingaddresses"
USERS = "users"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Mongo:
    """Connection manager around a single pooled ``MongoClient``."""

    def __init__(
        self,
        url: str,
        name: str,
        timeout_ms: int = 30000,
        pool_size: int = 10,
        client_factory: Callable[..., Any] = MongoClient,
    ):
        self.url = url
        self.name = name
        self.timeout_ms = timeout_ms
        self.pool_size = pool_size
        self.client_factory = client_factory
        self.client = None

    @classmethod
    def from_config(cls) -> "Mongo":
        return cls(
            config.DATABASE_URL,
            config.DATABASE_NAME,
            timeout_ms=config.MONGO_TIMEOUT_MS,
            pool_size=config.MONGO_POOL_SIZE,
        )

    def _options(self, pool_size: int) -> dict:
        return {
            "serverSelectionTimeoutMS": self.timeout_ms,
            "connectTimeoutMS": self.timeout_ms,
            "socketTimeoutMS": self.timeout_ms,
            "maxPoolSize": pool_size,
        }

    def connect(self) -> None:
        if self.client is not None:
            return
        self.client = self.client_factory(self.url, **self._options(self.pool_size))
        logger.info("MongoDB pool ready for database %s", self.name)

    def close(self) -> None:
        if self.client is None:
            return
        self.client.close()
        self.client = None
        logger.info("MongoDB pool closed")

    @contextmanager
    def acquire(self) -> Iterator[Database]:
        """Pooled database handle; driver connection errors surface as ``StoreUnavailable``."""
        if self.client is None:
            raise StoreUnavailable("Database is not connected")
        try:
            yield self.client[self.name]
        except ConnectionFailure as exc:
            raise StoreUnavailable(f"Database connection failed: {exc}") from exc

    @contextmanager
    def fresh(self) -> Iterator[Database]:
        """Dedicated client for a single operation, closed on every exit path."""
        client = None
        try:
            client = self.client_factory(self.url, **self._options(1))
            yield client[self.name]
        except ConnectionFailure as exc:
            raise StoreUnavailable(f"Direct connection failed: {exc}") from exc
        finally:
            if client is not None:
                client.close()
                logger.debug("Direct MongoDB connection closed")

    def ping(self) -> List[str]:
        with self.acquire() as db:
            return db.list_collection_names()


def get_mongo(request: Request) -> Mongo:
    return request.app.state.mongo


def collection(db: Database, name: str, verify: bool = False) -> Collection:
    if verify and name not in db.list_collection_names():
        raise NotFound(f"Collection {name} does not exist")
    return db[name]


def _as_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_none=True)
    return dict(data)


def insert_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    doc = _as_dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[list] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(db: Database) -> None:
    try:
        db[PRODUCTS].create_index([("slug", ASCENDING)], unique=True)
        db[CATEGORIES].create_index([("slug", ASCENDING)], unique=True)
        db[USERS].create_index([("email", ASCENDING)], unique=True)
        db[PRODUCTS].create_index([("category", ASCENDING)])
    except PyMongoError as exc:
        logger.warning("Could not ensure indexes: %s", exc)
