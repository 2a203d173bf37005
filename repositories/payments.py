"""
Orders, manual payment requests and the bank details customers pay into.
"""
import logging
from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import ORDERS, PAYMENT_REQUESTS, PAYMENT_SETTINGS, get_documents, insert_document, utcnow
from errors import Conflict, NotFound, ValidationFailed
from fallback import Outcome
from helpers import to_object_id
from repositories.base import Repository, id_matches
from schemas import ORDER_STATUSES, PAYMENT_STATUSES, Order, PaymentRequest, PaymentSettings, PaymentSettingsUpdate

logger = logging.getLogger(__name__)

NEWEST = [("createdAt", DESCENDING)]


class OrderRepository(Repository):
    collection_name = ORDERS
    label = "Order"

    def create(self, order: Order) -> dict:
        return self.write("create order", lambda db: insert_document(db, ORDERS, order)).value

    def list(self, user_id: Optional[str] = None) -> Outcome:
        filt = {"user": user_id} if user_id else {}
        return self.read_many("list orders", lambda db: get_documents(db, ORDERS, filt, sort=NEWEST))

    def get(self, order_id: str) -> dict:
        return self.read_one("get order", lambda db: self.find_existing(db, order_id)).value

    def update_status(self, order_id: str, status: str) -> dict:
        if status not in ORDER_STATUSES:
            raise ValidationFailed(f"status must be one of {', '.join(ORDER_STATUSES)}")

        def update(db: Database):
            existing = self.find_existing(db, order_id)
            now = utcnow()
            changes = {"status": status, "updatedAt": now}
            if status == "delivered":
                changes["deliveredAt"] = now
            return db[ORDERS].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
            )

        return self.write("update order status", update).value

    def mark_paid(self, order_id: str, payment_result: dict) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, order_id)
            return mark_order_paid(db, existing["_id"], payment_result)

        return self.write("mark order paid", update).value


def mark_order_paid(db: Database, order_id, payment_result: dict) -> Optional[dict]:
    now = utcnow()
    result = {"status": "completed", "update_time": now.isoformat()}
    result.update({k: v for k, v in payment_result.items() if v is not None})
    order = db[ORDERS].find_one_and_update(
        {"_id": to_object_id(order_id, "Order")},
        {"$set": {"isPaid": True, "paidAt": now, "paymentResult": result, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if order is None:
        logger.warning("Payment %s recorded but order %s is missing", result.get("id"), order_id)
    else:
        logger.info("Order %s marked as paid", order_id)
    return order


class PaymentRequestRepository(Repository):
    collection_name = PAYMENT_REQUESTS
    label = "Payment request"

    def _with_orders(self, db: Database, requests: List[dict]) -> List[dict]:
        for req in requests:
            order = db[ORDERS].find_one({"_id": {"$in": id_matches(req.get("order"))}})
            if order is not None:
                req["orderDetails"] = order
        return requests

    def create(self, request: PaymentRequest) -> dict:
        def insert(db: Database):
            active = db[PAYMENT_REQUESTS].find_one(
                {"order": request.order, "status": {"$in": ["pending", "completed"]}}
            )
            if active:
                raise Conflict("A payment request already exists for this order", "DUPLICATE_PAYMENT_REQUEST")
            return insert_document(db, PAYMENT_REQUESTS, request)

        return self.write("create payment request", insert).value

    def list(self, user_id: Optional[str] = None, status: Optional[str] = None) -> Outcome:
        filt = {}
        if user_id:
            filt["user"] = user_id
        if status:
            filt["status"] = status

        def query(db: Database):
            return self._with_orders(db, get_documents(db, PAYMENT_REQUESTS, filt, sort=NEWEST))

        return self.read_many("list payment requests", query)

    def get(self, request_id: str) -> dict:
        def query(db: Database):
            return self._with_orders(db, [self.find_existing(db, request_id)])[0]

        return self.read_one("get payment request", query).value

    def update_status(self, request_id: str, status: str, notes: Optional[str] = None) -> dict:
        if status not in PAYMENT_STATUSES:
            raise ValidationFailed(f"status must be one of {', '.join(PAYMENT_STATUSES)}")

        def update(db: Database):
            existing = self.find_existing(db, request_id)
            changes = {"status": status, "updatedAt": utcnow()}
            if notes is not None:
                changes["notes"] = notes
            updated = db[PAYMENT_REQUESTS].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
            )
            if status == "completed":
                mark_order_paid(db, updated["order"], {"id": str(updated["_id"])})
            return updated

        return self.write("update payment request", update).value


class PaymentSettingsRepository(Repository):
    collection_name = PAYMENT_SETTINGS
    label = "Payment settings"

    def active(self) -> dict:
        def query(db: Database):
            settings = db[PAYMENT_SETTINGS].find_one({"isActive": True}, sort=NEWEST)
            if not settings:
                raise NotFound("No payment settings found")
            return settings

        return self.read_one("get payment settings", query).value

    def list(self) -> Outcome:
        return self.read_many("list payment settings", lambda db: get_documents(db, PAYMENT_SETTINGS, sort=NEWEST))

    def create(self, settings: PaymentSettings) -> dict:
        def insert(db: Database):
            if settings.isActive:
                db[PAYMENT_SETTINGS].update_many({}, {"$set": {"isActive": False}})
            return insert_document(db, PAYMENT_SETTINGS, settings)

        return self.write("create payment settings", insert).value

    def update(self, settings_id: str, changes: PaymentSettingsUpdate) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, settings_id)
            update_doc = changes.model_dump(exclude_none=True)
            if update_doc.get("isActive"):
                db[PAYMENT_SETTINGS].update_many({"_id": {"$ne": existing["_id"]}}, {"$set": {"isActive": False}})
            update_doc["updatedAt"] = utcnow()
            return db[PAYMENT_SETTINGS].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": update_doc}, return_document=ReturnDocument.AFTER
            )

        return self.write("update payment settings", update).value

    def delete(self, settings_id: str) -> dict:
        def delete(db: Database):
            existing = self.find_existing(db, settings_id)
            db[PAYMENT_SETTINGS].delete_one({"_id": existing["_id"]})
            return existing

        return self.write("delete payment settings", delete).value
