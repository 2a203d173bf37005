from fastapi.testclient import TestClient

from database import USERS
from main import create_app


def test_root(client):
    assert client.get("/").json() == {"success": True, "message": "Furniture Store API running"}


def test_health_reports_collections(client, make_user):
    make_user()

    body = client.get("/test").json()

    assert body["backend"] == "running"
    assert body["database"] == "connected"
    assert USERS in body["collections"]


def test_health_reports_outage(client, factory):
    factory.down = True

    body = client.get("/test").json()

    assert body["database"].startswith("error")


def test_unknown_route_uses_envelope(client):
    res = client.get("/api/nothing-here")

    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Not Found"}


def test_invalid_json_body(client):
    res = client.post("/api/contact", content=b"{not json", headers={"Content-Type": "application/json"})

    assert res.status_code == 400
    assert res.json()["message"] == "Request body must be valid JSON"


def test_lifespan_releases_pool(mongo, uploader, factory):
    with TestClient(create_app(mongo=mongo, uploader=uploader)):
        assert mongo.client is not None

    assert mongo.client is None
    assert factory.clients[0].closed
