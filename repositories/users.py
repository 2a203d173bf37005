from typing import Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, insert_document
from errors import Conflict
from repositories.base import Repository
from schemas import User


class UserRepository(Repository):
    collection_name = USERS
    label = "User"

    def create(self, user: User) -> dict:
        def insert(db: Database):
            if db[USERS].find_one({"email": user.email.lower()}):
                raise Conflict("Email already registered", "DUPLICATE_EMAIL")
            doc = user.model_dump()
            doc["email"] = user.email.lower()
            try:
                return insert_document(db, USERS, doc)
            except DuplicateKeyError:
                raise Conflict("Email already registered", "DUPLICATE_EMAIL")

        return self.write("create user", insert).value

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.read_one("find user", lambda db: db[USERS].find_one({"email": email.lower()})).value

    def get(self, user_id: str) -> dict:
        return self.read_one("get user", lambda db: self.find_existing(db, user_id)).value
