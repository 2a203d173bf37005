import json
import re
import time
import unicodedata
from datetime import datetime
from typing import Any, Iterable, List, Optional

from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo.collection import Collection

from errors import NotFound, ValidationFailed


def serialize_doc(doc):
    if doc is None:
        return doc
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
            continue
        out[k] = serialize_doc(v)
    return out


def envelope(data=None, **extra) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def to_object_id(value, label: str = "Resource") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFound(f"{label} not found with id of {value}")


def is_object_id(value) -> bool:
    return isinstance(value, ObjectId) or ObjectId.is_valid(str(value))


# ----------------------- Slugs -----------------------
def slugify(text: Optional[str], prefix: str = "item") -> str:
    ascii_text = (
        unicodedata.normalize("NFKD", (text or "").strip().lower())
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")
    if not slug:
        slug = f"{prefix}-{int(time.time() * 1000)}"
    return slug


def unique_slug(coll: Collection, base: str, exclude_id: Optional[ObjectId] = None) -> str:
    """First free slug among ``base``, ``base-1``, ``base-2``..."""
    slug = base
    counter = 1
    while True:
        query = {"slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if coll.find_one(query, {"_id": 1}) is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def timestamped_slug(slug: str) -> str:
    return f"{slug}-{int(time.time() * 1000)}"


# ----------------------- Input coercion -----------------------
def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if is_blank(payload.get(f))]
    if missing:
        raise ValidationFailed(f"Please provide {', '.join(missing)}", data={"missing": missing})


def parse_json_field(value: Any, depth: int = 3) -> Any:
    """Decode JSON strings, repeatedly, to undo double encoding from form posts."""
    for _ in range(depth):
        if not isinstance(value, str):
            break
        stripped = value.strip()
        if not stripped:
            return None
        try:
            value = json.loads(stripped)
        except ValueError:
            break
    return value


def parse_number(value: Any, field: str) -> Optional[float]:
    value = parse_json_field(value)
    if is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationFailed(f"{field} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a number")


def parse_int(value: Any, field: str) -> Optional[int]:
    number = parse_number(value, field)
    if number is None:
        return None
    if number != int(number):
        raise ValidationFailed(f"{field} must be a whole number")
    return int(number)


def parse_bool(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_list(value: Any) -> List[str]:
    value = parse_json_field(value)
    if is_blank(value):
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if not is_blank(v)]
    return [str(value)]
