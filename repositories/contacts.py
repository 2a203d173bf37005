import json
import logging
import os
import uuid
from datetime import datetime

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import CONTACTS, collection, get_documents, insert_document, utcnow
from errors import NotFound, StoreUnavailable
from fallback import Outcome
from repositories.base import Repository
from schemas import Contact

logger = logging.getLogger(__name__)


class ContactRepository(Repository):
    collection_name = CONTACTS
    label = "Contact message"

    def __init__(self, mongo, backup_dir: str):
        super().__init__(mongo)
        self.backup_dir = backup_dir

    def list(self, status: str = None) -> Outcome:
        filt = {"status": status} if status else {}

        def query(db: Database):
            try:
                collection(db, CONTACTS, verify=True)
            except NotFound:
                logger.info("No contact messages received yet")
                return []
            return get_documents(db, CONTACTS, filt, sort=[("createdAt", DESCENDING)])

        return self.read_many("list contacts", query)

    def get(self, contact_id: str) -> dict:
        return self.read_one("get contact", lambda db: self.find_existing(db, contact_id)).value

    def create(self, contact: Contact) -> Outcome:
        doc = contact.model_dump(exclude_none=True)
        doc["status"] = "unread"

        def backup(failures):
            return Outcome(
                value=self.save_backup(doc),
                source="file-backup",
                warning="Message saved locally and will be added to the inbox once the database is reachable",
            )

        return self.write("create contact", lambda db: insert_document(db, CONTACTS, doc), on_exhausted=backup)

    def save_backup(self, doc: dict) -> dict:
        created = utcnow()
        stamp = created.strftime("%Y-%m-%dT%H-%M-%S")
        filename = f"contact_{stamp}_{uuid.uuid4().hex[:12]}.json"
        record = dict(doc, createdAt=created.isoformat())
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            path = os.path.join(self.backup_dir, filename)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(record, fh, indent=2)
        except OSError as exc:
            logger.error("Contact backup failed: %s", exc)
            raise StoreUnavailable("Could not save your message, please try again later") from exc
        logger.warning("Contact message written to backup file %s", path)
        return dict(record, _id=f"file_{stamp}", backupFile=filename)

    def _insert_backup(self, db: Database, filename: str, doc: dict) -> bool:
        if db[CONTACTS].find_one({"backupFile": filename}) is not None:
            return False
        insert_document(db, CONTACTS, dict(doc, backupFile=filename))
        return True

    def sync_backups(self) -> int:
        """Move messages saved in the backup directory into the inbox; returns how many were added."""
        try:
            names = sorted(n for n in os.listdir(self.backup_dir) if n.startswith("contact_") and n.endswith(".json"))
        except FileNotFoundError:
            return 0
        synced = 0
        for filename in names:
            path = os.path.join(self.backup_dir, filename)
            try:
                with open(path, encoding="utf-8") as fh:
                    doc = json.load(fh)
                doc["createdAt"] = datetime.fromisoformat(doc["createdAt"])
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.error("Skipping unreadable contact backup %s: %s", filename, exc)
                continue
            try:
                added = self.write("sync contact backup", lambda db: self._insert_backup(db, filename, doc)).value
            except StoreUnavailable as exc:
                logger.warning("Contact backups left on disk until the database is reachable: %s", exc)
                break
            try:
                os.remove(path)
            except OSError as exc:
                logger.error("Synced contact backup %s could not be removed: %s", filename, exc)
            synced += added
        if synced:
            logger.info("Moved %d contact message(s) from backup files into the inbox", synced)
        return synced

    def set_status(self, contact_id: str, status: str) -> dict:
        def update(db: Database):
            existing = self.find_existing(db, contact_id)
            return db[CONTACTS].find_one_and_update(
                {"_id": existing["_id"]},
                {"$set": {"status": status, "updatedAt": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )

        return self.write("update contact", update).value

    def delete(self, contact_id: str) -> dict:
        def delete(db: Database):
            existing = self.find_existing(db, contact_id)
            db[CONTACTS].delete_one({"_id": existing["_id"]})
            return existing

        return self.write("delete contact", delete).value
