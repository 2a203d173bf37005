import json
import os

import pytest

from repositories import ContactRepository

MESSAGE = {
    "name": "Ann Buyer",
    "email": "ann@example.com",
    "phone": "555-0100",
    "subject": "Delivery",
    "message": "Do you deliver on weekends?",
}


@pytest.mark.parametrize("path", ["/api/contact", "/direct-contact", "/api/api/contact"])
def test_submit_contact_message(client, path):
    res = client.post(path, json=MESSAGE)

    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["source"] == "pooled"
    assert body["data"]["status"] == "unread"
    assert body["data"]["email"] == "ann@example.com"


def test_missing_email_is_reported(client):
    res = client.post("/api/contact", json=dict(MESSAGE, email=""))

    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert "email" in body["message"]


def test_malformed_email_is_a_validation_error(client):
    res = client.post("/api/contact", json=dict(MESSAGE, email="not-an-email"))

    assert res.status_code == 400
    assert "email" in res.json()["errors"]


def test_form_encoded_submission(client):
    res = client.post("/api/contact", data=MESSAGE)

    assert res.status_code == 201
    assert res.json()["data"]["subject"] == "Delivery"


def test_message_is_backed_up_to_file_when_database_is_down(client, factory, tmp_path):
    factory.down = True

    res = client.post("/api/contact", json=MESSAGE)

    assert res.status_code == 201
    body = res.json()
    assert body["source"] == "file-backup"
    assert body["warning"]
    assert body["data"]["id"].startswith("file_")

    backup_dir = tmp_path / "contact_backup"
    files = os.listdir(backup_dir)
    assert files == [body["data"]["backupFile"]]
    with open(backup_dir / files[0], encoding="utf-8") as fh:
        saved = json.load(fh)
    assert saved["message"] == MESSAGE["message"]
    assert saved["status"] == "unread"


def test_admin_inbox(client, admin):
    client.post("/api/contact", json=MESSAGE)
    client.post("/api/contact", json=dict(MESSAGE, subject="Returns"))

    inbox = client.get("/api/contact", headers=admin["headers"]).json()
    assert inbox["count"] == 2

    message_id = inbox["data"][0]["id"]
    marked = client.put(f"/api/contact/{message_id}", json={"status": "read"}, headers=admin["headers"])
    assert marked.json()["data"]["status"] == "read"

    unread = client.get("/api/contact", params={"status": "unread"}, headers=admin["headers"]).json()
    assert unread["count"] == 1

    assert client.delete(f"/api/contact/{message_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/contact/{message_id}", headers=admin["headers"]).status_code == 404


def test_inbox_is_admin_only(client, customer):
    assert client.get("/api/contact", headers=customer["headers"]).status_code == 403


def test_empty_inbox_before_any_message(client, admin):
    inbox = client.get("/api/contact", headers=admin["headers"])

    assert inbox.status_code == 200
    assert inbox.json()["count"] == 0


def test_backed_up_message_reaches_inbox_once_database_returns(client, factory, admin, db, tmp_path):
    factory.down = True
    saved = client.post("/api/contact", json=MESSAGE).json()
    assert saved["source"] == "file-backup"
    assert "inbox" in saved["warning"]
    factory.down = False

    inbox = client.get("/api/contact", headers=admin["headers"]).json()

    assert inbox["count"] == 1
    assert inbox["data"][0]["subject"] == "Delivery"
    assert inbox["data"][0]["backupFile"] == saved["data"]["backupFile"]
    assert os.listdir(tmp_path / "contact_backup") == []

    again = client.get("/api/contact", headers=admin["headers"]).json()
    assert again["count"] == 1


def test_sync_skips_messages_already_in_inbox(client, mongo, factory, db, tmp_path):
    factory.down = True
    saved = client.post("/api/contact", json=MESSAGE).json()["data"]
    factory.down = False
    db.contacts.insert_one(dict(MESSAGE, status="unread", backupFile=saved["backupFile"]))

    added = ContactRepository(mongo, str(tmp_path / "contact_backup")).sync_backups()

    assert added == 0
    assert db.contacts.count_documents({}) == 1
    assert os.listdir(tmp_path / "contact_backup") == []
