from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import get_current_user, require_admin
from database import Mongo, get_mongo
from errors import ValidationFailed
from helpers import (
    envelope,
    is_blank,
    parse_bool,
    parse_int,
    parse_json_field,
    parse_list,
    parse_number,
    require_fields,
    serialize_doc,
)
from repositories import ProductRepository
from schemas import Product, ProductUpdate, category_ref
from uploads import FormPayload, ImageUploader, get_uploader, read_payload

router = APIRouter(prefix="/api/products", tags=["products"])

REQUIRED_FIELDS = ("name", "description", "price", "category", "stock")
TEXT_FIELDS = ("name", "description", "material", "color")


def get_repo(mongo: Mongo = Depends(get_mongo)) -> ProductRepository:
    return ProductRepository(mongo)


def parse_dimensions(value) -> Optional[dict]:
    value = parse_json_field(value)
    if is_blank(value):
        return None
    if not isinstance(value, dict):
        raise ValidationFailed("dimensions must be an object with length, width and height")
    dims = {}
    for key in ("length", "width", "height"):
        number = parse_number(value.get(key), f"dimensions.{key}")
        if number is not None:
            dims[key] = number
    return dims or None


def coerce_product(data: dict) -> dict:
    """Normalize form or JSON input: strings to numbers, JSON strings to objects."""
    out = {}
    for key in TEXT_FIELDS:
        if not is_blank(data.get(key)):
            out[key] = str(data[key]).strip()
    if not is_blank(data.get("category")):
        raw = data["category"]
        if isinstance(raw, str) and raw.strip().startswith("{"):
            raw = parse_json_field(raw)
        out["category"] = category_ref(raw).id
    for key, parser in (("price", parse_number), ("discountPrice", parse_number), ("stock", parse_int)):
        value = parser(data.get(key), key)
        if value is not None:
            out[key] = value
    if "dimensions" in data:
        dims = parse_dimensions(data["dimensions"])
        if dims is not None:
            out["dimensions"] = dims
    if "images" in data:
        out["images"] = parse_list(data["images"])
    if not is_blank(data.get("featured")):
        out["featured"] = parse_bool(data["featured"])
    return out


@router.get("")
def list_products(
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    q: Optional[str] = None,
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    sort: str = "newest",
    limit: int = Query(100, ge=1, le=500),
    repo: ProductRepository = Depends(get_repo),
):
    outcome = repo.list(category, featured, q, minPrice, maxPrice, sort, limit)
    return outcome.envelope(count=len(outcome.value))


@router.get("/{product_id}")
def get_product(product_id: str, repo: ProductRepository = Depends(get_repo)):
    return envelope(serialize_doc(repo.get(product_id)))


@router.post("", status_code=201)
def create_product(
    user: dict = Depends(require_admin),
    payload: FormPayload = Depends(read_payload),
    repo: ProductRepository = Depends(get_repo),
    uploader: ImageUploader = Depends(get_uploader),
):
    require_fields(payload.data, REQUIRED_FIELDS)
    files = payload.take_files("images")
    product = Product(**coerce_product(payload.data))
    stored = uploader.store_all(files) if files else []
    product.images.extend(img.url for img in stored)
    with uploader.discard_on_error(stored):
        outcome = repo.create(product)
    return outcome.envelope(message="Product created successfully")


@router.put("/{product_id}")
def update_product(
    product_id: str,
    user: dict = Depends(require_admin),
    payload: FormPayload = Depends(read_payload),
    repo: ProductRepository = Depends(get_repo),
    uploader: ImageUploader = Depends(get_uploader),
):
    files = payload.take_files("images")
    changes = ProductUpdate(**coerce_product(payload.data))
    stored = uploader.store_all(files) if files else []
    with uploader.discard_on_error(stored):
        product = repo.update(product_id, changes, [img.url for img in stored])
    return envelope(serialize_doc(product), message="Product updated successfully")


@router.delete("/{product_id}")
def delete_product(product_id: str, user: dict = Depends(require_admin), repo: ProductRepository = Depends(get_repo)):
    repo.delete(product_id)
    return envelope({}, message="Product deleted successfully")


@router.get("/{product_id}/reviews")
def list_reviews(product_id: str, repo: ProductRepository = Depends(get_repo)):
    reviews = repo.reviews(product_id)
    return envelope(serialize_doc(reviews), count=len(reviews))


@router.post("/{product_id}/reviews", status_code=201)
def add_review(
    product_id: str,
    user: dict = Depends(get_current_user),
    payload: FormPayload = Depends(read_payload),
    repo: ProductRepository = Depends(get_repo),
):
    require_fields(payload.data, ("rating", "comment"))
    rating = parse_int(payload.data["rating"], "rating")
    result = repo.add_review(product_id, user["id"], user.get("name"), rating, str(payload.data["comment"]))
    return envelope(
        serialize_doc(result["review"]),
        numReviews=result["numReviews"],
        ratings=result["ratings"],
        message="Review added successfully",
    )
