"""
Shipping addresses the store keeps on file; at most one is the default.
"""
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import SHIPPING_ADDRESSES, get_documents, insert_document, utcnow
from errors import NotFound
from fallback import Outcome
from repositories.base import Repository
from schemas import SavedAddress, SavedAddressUpdate

DEFAULT_FIRST = [("isDefault", DESCENDING), ("createdAt", DESCENDING)]


class AddressRepository(Repository):
    collection_name = SHIPPING_ADDRESSES
    label = "Shipping address"

    def _clear_default(self, db: Database, keep=None) -> None:
        filt = {"isDefault": True}
        if keep is not None:
            filt["_id"] = {"$ne": keep}
        db[SHIPPING_ADDRESSES].update_many(filt, {"$set": {"isDefault": False, "updatedAt": utcnow()}})

    def list(self) -> Outcome:
        return self.read_many(
            "list shipping addresses", lambda db: get_documents(db, SHIPPING_ADDRESSES, sort=DEFAULT_FIRST)
        )

    def default(self) -> dict:
        def query(db: Database):
            address = db[SHIPPING_ADDRESSES].find_one({"isDefault": True})
            if not address:
                raise NotFound("No default shipping address found")
            return address

        return self.read_one("get default shipping address", query).value

    def get(self, address_id: str) -> dict:
        return self.read_one("get shipping address", lambda db: self.find_existing(db, address_id)).value

    def create(self, address: SavedAddress) -> dict:
        def insert(db: Database):
            if address.isDefault:
                self._clear_default(db)
            return insert_document(db, SHIPPING_ADDRESSES, address)

        return self.write("create shipping address", insert).value

    def update(self, address_id: str, changes: SavedAddressUpdate) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, address_id)
            update_doc = changes.model_dump(exclude_none=True)
            if update_doc.get("isDefault"):
                self._clear_default(db, keep=existing["_id"])
            update_doc["updatedAt"] = utcnow()
            return db[SHIPPING_ADDRESSES].find_one_and_update(
                {"_id": existing["_id"]}, {"$set": update_doc}, return_document=ReturnDocument.AFTER
            )

        return self.write("update shipping address", update).value

    def delete(self, address_id: str) -> dict:
        def delete(db: Database):
            existing = self.find_existing(db, address_id)
            db[SHIPPING_ADDRESSES].delete_one({"_id": existing["_id"]})
            return existing

        return self.write("delete shipping address", delete).value
