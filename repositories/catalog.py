"""
Products, categories and embedded product reviews.
"""
import logging
import re
from typing import Dict, List, Optional

from bson.objectid import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from database import CATEGORIES, PRODUCTS, utcnow
from errors import Conflict, NotFound, ValidationFailed
from fallback import Outcome
from helpers import is_object_id, slugify, unique_slug
from repositories.base import Repository, id_matches, id_or_slug, name_pattern
from schemas import Category, CategoryId, CategoryUpdate, Product, ProductUpdate, ResolvedCategory, Review, category_ref

logger = logging.getLogger(__name__)

SORTS = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
    "rating": [("ratings", DESCENDING)],
    "name": [("name", ASCENDING)],
}

REVIEW_ATTEMPTS = 5


class CategoryRepository(Repository):
    collection_name = CATEGORIES
    label = "Category"

    def list(self) -> Outcome:
        def query(db: Database):
            categories = list(db[CATEGORIES].find({}).sort([("name", ASCENDING)]))
            for category in categories:
                category["productCount"] = db[PRODUCTS].count_documents(
                    {"category": {"$in": id_matches(category["_id"])}}
                )
            return categories

        return self.read_many("list categories", query)

    def get(self, id_or_slug_value: str) -> dict:
        def query(db: Database):
            category = db[CATEGORIES].find_one(id_or_slug(id_or_slug_value))
            if not category:
                raise NotFound(f"Category not found with id of {id_or_slug_value}")
            category["productCount"] = db[PRODUCTS].count_documents(
                {"category": {"$in": id_matches(category["_id"])}}
            )
            return category

        return self.read_one("get category", query).value

    def create(self, category: Category) -> Outcome:
        def insert(db: Database):
            name = category.name.strip()
            existing = db[CATEGORIES].find_one({"name": name_pattern(name)})
            if existing:
                raise Conflict("Category with this name already exists", "DUPLICATE_NAME")
            doc = category.model_dump(exclude_none=True)
            doc["name"] = name
            doc["slug"] = unique_slug(db[CATEGORIES], slugify(name, "category"))
            return self.insert_with_slug(db, doc)

        return self.write("create category", insert)

    def update(self, category_id: str, changes: CategoryUpdate) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, category_id)
            update_doc = changes.model_dump(exclude_none=True)
            if "name" in update_doc:
                name = update_doc["name"].strip()
                clash = db[CATEGORIES].find_one({"name": name_pattern(name), "_id": {"$ne": existing["_id"]}})
                if clash:
                    raise Conflict("Category with this name already exists", "DUPLICATE_NAME")
                update_doc["name"] = name
                if name != existing.get("name"):
                    update_doc["slug"] = unique_slug(db[CATEGORIES], slugify(name, "category"), existing["_id"])
            update_doc["updatedAt"] = utcnow()
            return db[CATEGORIES].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": update_doc}, return_document=ReturnDocument.AFTER
            )

        return self.write("update category", update).value

    def delete(self, category_id: str) -> dict:
        def delete(db: Database):
            existing = self.find_existing(db, category_id)
            in_use = db[PRODUCTS].count_documents({"category": {"$in": id_matches(existing["_id"])}})
            if in_use:
                raise Conflict(
                    "Cannot delete category that has products. Please remove or reassign the products first.",
                    "CATEGORY_IN_USE",
                    data={"productCount": in_use},
                )
            db[CATEGORIES].delete_one({"_id": existing["_id"]})
            return existing

        return self.write("delete category", delete).value


def _category_map(db: Database) -> Dict[str, dict]:
    return {str(c["_id"]): c for c in db[CATEGORIES].find({})}


def attach_category(product: dict, categories: Dict[str, dict]) -> dict:
    ref = category_ref(product.get("category"))
    if isinstance(ref, ResolvedCategory):
        product["category"] = ref.id
        product["categoryInfo"] = ref.category
    elif isinstance(ref, CategoryId) and ref.id in categories:
        product["categoryInfo"] = categories[ref.id]
    return product


def _text_match(text: str, product: dict) -> bool:
    needle = text.lower()
    return needle in (product.get("name") or "").lower() or needle in (product.get("description") or "").lower()


class ProductRepository(Repository):
    collection_name = PRODUCTS
    label = "Product"

    def _category_ids(self, db: Database, category: str) -> List[object]:
        if is_object_id(category):
            return id_matches(category)
        found = db[CATEGORIES].find_one({"slug": category})
        return id_matches(found["_id"]) if found else [category]

    def list(
        self,
        category: Optional[str] = None,
        featured: Optional[bool] = None,
        q: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort: str = "newest",
        limit: int = 100,
    ) -> Outcome:
        sort_spec = SORTS.get(sort, SORTS["newest"])

        def build_filter(db: Database) -> dict:
            filt: dict = {}
            if category:
                filt["category"] = {"$in": self._category_ids(db, category)}
            if featured is not None:
                filt["featured"] = featured
            if q:
                filt["$or"] = [
                    {"name": {"$regex": re.escape(q), "$options": "i"}},
                    {"description": {"$regex": re.escape(q), "$options": "i"}},
                ]
            price: dict = {}
            if min_price is not None:
                price["$gte"] = min_price
            if max_price is not None:
                price["$lte"] = max_price
            if price:
                filt["price"] = price
            return filt

        def query(db: Database):
            products = list(db[PRODUCTS].find(build_filter(db)).sort(sort_spec).limit(limit))
            categories = _category_map(db)
            return [attach_category(p, categories) for p in products]

        def scan(db: Database):
            allowed = self._category_ids(db, category) if category else None

            def keep(p: dict) -> bool:
                ref = category_ref(p.get("category"))
                if allowed is not None and (ref is None or ref.id not in [str(a) for a in allowed]):
                    return False
                if featured is not None and bool(p.get("featured")) != featured:
                    return False
                if q and not _text_match(q, p):
                    return False
                price = p.get("price") or 0
                if min_price is not None and price < min_price:
                    return False
                if max_price is not None and price > max_price:
                    return False
                return True

            key, direction = sort_spec[0]
            products = [p for p in db[PRODUCTS].find({}) if keep(p)]
            products.sort(key=lambda p: (p.get(key) is None, p.get(key) or 0), reverse=direction == DESCENDING)
            categories = _category_map(db)
            return [attach_category(p, categories) for p in products[:limit]]

        return self.read_many("list products", query, scan)

    def get(self, id_or_slug_value: str) -> dict:
        def query(db: Database):
            product = db[PRODUCTS].find_one(id_or_slug(id_or_slug_value))
            if not product:
                raise NotFound(f"Product not found with id of {id_or_slug_value}")
            return attach_category(product, _category_map(db))

        return self.read_one("get product", query).value

    def _check_category(self, db: Database, category_id: str) -> None:
        if not is_object_id(category_id) or db[CATEGORIES].find_one({"_id": ObjectId(str(category_id))}) is None:
            raise ValidationFailed(f"Category not found with id of {category_id}")

    def create(self, product: Product) -> Outcome:
        def insert(db: Database):
            self._check_category(db, product.category)
            doc = product.model_dump(exclude_none=True)
            doc["name"] = product.name.strip()
            doc["slug"] = unique_slug(db[PRODUCTS], slugify(doc["name"], "product"))
            return self.insert_with_slug(db, doc)

        return self.write("create product", insert)

    def update(self, product_id: str, changes: ProductUpdate, extra_images: Optional[List[str]] = None) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, product_id)
            update_doc = changes.model_dump(exclude_none=True)
            if "category" in update_doc:
                self._check_category(db, update_doc["category"])
            if "name" in update_doc:
                update_doc["name"] = update_doc["name"].strip()
                if update_doc["name"] != existing.get("name"):
                    update_doc["slug"] = unique_slug(
                        db[PRODUCTS], slugify(update_doc["name"], "product"), existing["_id"]
                    )
            if extra_images:
                base = update_doc.get("images", existing.get("images") or [])
                update_doc["images"] = list(base) + list(extra_images)
            update_doc["updatedAt"] = utcnow()
            return db[PRODUCTS].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": update_doc}, return_document=ReturnDocument.AFTER
            )

        return self.write("update product", update).value

    def delete(self, product_id: str) -> dict:
        def delete(db: Database):
            existing = self.find_existing(db, product_id)
            db[PRODUCTS].delete_one({"_id": existing["_id"]})
            return existing

        return self.write("delete product", delete).value

    # ----------------------- Reviews -----------------------
    def reviews(self, product_id: str) -> List[dict]:
        def query(db: Database):
            return self.find_existing(db, product_id).get("reviews") or []

        return self.read_one("list reviews", query).value

    def add_review(self, product_id: str, user_id: str, user_name: str, rating: int, comment: str) -> dict:
        """
        Append a review and refresh ``numReviews``/``ratings`` in one write.

        The update only applies while the stored review list still has the
        length it had when the stats were computed and holds nothing from this
        user, so stats always describe exactly the stored reviews. The entry id
        is fixed before the first attempt: a strategy that re-runs after a
        dropped connection recognizes its own earlier write.
        """
        review = Review(user=user_id, name=user_name or "Anonymous User", rating=rating, comment=comment.strip())
        entry = review.model_dump()
        entry["_id"] = ObjectId()
        entry["createdAt"] = utcnow()

        def push(db: Database):
            for _ in range(REVIEW_ATTEMPTS):
                product = self.find_existing(db, product_id)
                reviews = product.get("reviews") or []
                mine = next((r for r in reviews if r.get("user") == user_id), None)
                if mine is not None:
                    if mine.get("_id") != entry["_id"]:
                        raise Conflict("You have already reviewed this product", "DUPLICATE_REVIEW")
                    return {
                        "review": mine,
                        "numReviews": product.get("numReviews", len(reviews)),
                        "ratings": product.get("ratings", 0),
                    }

                ratings = [r["rating"] for r in reviews] + [entry["rating"]]
                stats = {"numReviews": len(ratings), "ratings": sum(ratings) / len(ratings)}
                unchanged = {"$size": len(reviews)} if "reviews" in product else {"$exists": False}
                result = db[PRODUCTS].update_one(
                    {"_id": product["_id"], "reviews": unchanged},
                    {"$push": {"reviews": entry}, "$set": {**stats, "updatedAt": utcnow()}},
                )
                if result.modified_count:
                    return {"review": entry, **stats}
                logger.info("Reviews of product %s changed while adding one, retrying", product_id)
            raise Conflict("Too many reviews arriving at once, please try again", "REVIEW_CONTENTION")

        return self.write("add review", push).value
