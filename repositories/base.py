import logging
import re
from typing import Callable, List, Optional

from bson.objectid import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import Mongo, collection, insert_document
from errors import NotFound
from fallback import Outcome, Strategy, run_chain, soft_empty
from helpers import is_object_id, timestamped_slug, to_object_id

logger = logging.getLogger(__name__)

DbCall = Callable[[Database], object]


def duplicate_field(exc: DuplicateKeyError) -> Optional[str]:
    key_value = (exc.details or {}).get("keyValue") or {}
    if key_value:
        return next(iter(key_value))
    match = re.search(r"index: (\w+?)_\d", str(exc))
    return match.group(1) if match else None


def name_pattern(name: str) -> dict:
    return {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}


def id_or_slug(value: str) -> dict:
    if is_object_id(value):
        return {"_id": to_object_id(value)}
    return {"slug": value}


def id_matches(value) -> List[object]:
    """Stored references may hold the id as a string or an ObjectId."""
    values = [str(value)]
    if is_object_id(value):
        values.append(ObjectId(str(value)))
    return values


class Repository:
    collection_name = ""
    label = "Resource"

    def __init__(self, mongo: Mongo):
        self.mongo = mongo

    @staticmethod
    def _call(scope, fn: DbCall):
        with scope() as db:
            return fn(db)

    def _strategies(self, fn: DbCall, scan: Optional[DbCall] = None) -> List[Strategy]:
        strategies = [
            Strategy("pooled", lambda: self._call(self.mongo.acquire, fn)),
            Strategy("direct", lambda: self._call(self.mongo.fresh, fn)),
        ]
        if scan is not None:
            strategies.append(Strategy("scan", lambda: self._call(self.mongo.fresh, scan)))
        return strategies

    def read_many(self, operation: str, fn: DbCall, scan: Optional[DbCall] = None) -> Outcome:
        return run_chain(operation, *self._strategies(fn, scan), on_exhausted=soft_empty())

    def read_one(self, operation: str, fn: DbCall) -> Outcome:
        return run_chain(operation, *self._strategies(fn))

    def write(self, operation: str, fn: DbCall, on_exhausted=None) -> Outcome:
        return run_chain(operation, *self._strategies(fn), on_exhausted=on_exhausted)

    def find_existing(self, db: Database, doc_id) -> dict:
        doc = collection(db, self.collection_name).find_one({"_id": to_object_id(doc_id, self.label)})
        if not doc:
            raise NotFound(f"{self.label} not found with id of {doc_id}")
        return doc

    def insert_with_slug(self, db: Database, doc: dict) -> dict:
        """Insert ``doc``; on a duplicate slug retry once with a timestamp suffix."""
        try:
            return insert_document(db, self.collection_name, doc)
        except DuplicateKeyError as exc:
            field = duplicate_field(exc)
            if field not in (None, "slug"):
                raise
            retry = dict(doc, slug=timestamped_slug(doc["slug"]))
            logger.warning("Duplicate slug %s in %s, retrying as %s", doc["slug"], self.collection_name, retry["slug"])
            return insert_document(db, self.collection_name, retry)
