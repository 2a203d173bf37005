import mongomock
import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import config
from auth import create_token
from database import USERS, Mongo
from main import create_app
from uploads import ImageUploader

DB_NAME = "furniture_test"


class SharedClient:
    """A handle onto one mongomock store; tracks its own ``close()`` calls."""

    def __init__(self, factory, options):
        self.factory = factory
        self.options = options
        self.closed = False

    def __getitem__(self, name):
        if self.factory.down:
            raise ServerSelectionTimeoutError("No servers found yet")
        return self.factory.store[name]

    def close(self):
        self.closed = True


class ClientFactory:
    """Stands in for ``MongoClient``: every client it builds sees the same data."""

    def __init__(self):
        self.store = mongomock.MongoClient()
        self.clients = []
        self.down = False

    def __call__(self, url, **options):
        if self.down:
            raise ServerSelectionTimeoutError("No servers found yet")
        client = SharedClient(self, options)
        self.clients.append(client)
        return client


@pytest.fixture
def factory():
    return ClientFactory()


@pytest.fixture
def mongo(factory):
    return Mongo("mongodb://test", DB_NAME, timeout_ms=500, client_factory=factory)


@pytest.fixture
def db(factory):
    return factory.store[DB_NAME]


@pytest.fixture
def uploader(tmp_path):
    return ImageUploader(str(tmp_path / "uploads"), "http://testserver", max_files=3, max_bytes=1024)


@pytest.fixture
def client(mongo, uploader, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "BYPASS_AUTH", False)
    monkeypatch.setattr(config, "CONTACT_BACKUP_DIR", str(tmp_path / "contact_backup"))
    app = create_app(mongo=mongo, uploader=uploader)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(name="Shopper", role="customer", email=None):
        user_id = ObjectId()
        email = email or f"{user_id}@example.com"
        db[USERS].insert_one({"_id": user_id, "name": name, "email": email, "password_hash": "x", "role": role})
        token = create_token({"id": str(user_id), "email": email, "role": role})
        return {"id": str(user_id), "headers": {"Authorization": f"Bearer {token}"}}

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("Store Admin", role="admin")


@pytest.fixture
def customer(make_user):
    return make_user("Jane Shopper")


@pytest.fixture
def category(client, admin):
    res = client.post("/api/categories", json={"name": "Sofas", "description": "Soft seating"}, headers=admin["headers"])
    assert res.status_code == 201
    return res.json()["data"]
