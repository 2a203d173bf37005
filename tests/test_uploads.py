import io
import os

import pytest
from cloudinary.exceptions import Error as CloudinaryError

from uploads import ImageUploader

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_upload_stores_locally_without_cloudinary(client, admin, uploader):
    res = client.post(
        "/api/uploads",
        files=[("images", ("front.png", PNG, "image/png")), ("images", ("side.webp", PNG, "image/webp"))],
        headers=admin["headers"],
    )

    assert res.status_code == 201
    body = res.json()
    assert body["count"] == 2
    first = body["data"][0]
    assert first["remote"] is False
    assert first["url"] == f"http://testserver/uploads/{first['filename']}"
    assert os.path.exists(os.path.join(uploader.upload_dir, first["filename"]))
    assert os.listdir(uploader.staging_dir) == []

    served = client.get(f"/uploads/{first['filename']}")
    assert served.status_code == 200
    assert served.content == PNG


def test_wrong_file_type_is_rejected(client, admin):
    res = client.post("/api/uploads", files={"images": ("notes.txt", b"hello", "text/plain")}, headers=admin["headers"])

    assert res.status_code == 400
    assert res.json()["code"] == "WRONG_TYPE"


def test_oversized_file_is_rejected(client, admin):
    res = client.post(
        "/api/uploads", files={"images": ("huge.jpg", b"\xff" * 4096, "image/jpeg")}, headers=admin["headers"]
    )

    assert res.status_code == 400
    assert res.json()["code"] == "FILE_TOO_LARGE"


def test_too_many_files(client, admin):
    files = [("images", (f"p{i}.png", PNG, "image/png")) for i in range(4)]

    res = client.post("/api/uploads", files=files, headers=admin["headers"])

    assert res.status_code == 400
    assert res.json()["code"] == "TOO_MANY_FILES"


def test_unexpected_file_field(client, admin):
    res = client.post("/api/uploads", files={"photo": ("a.png", PNG, "image/png")}, headers=admin["headers"])

    assert res.status_code == 400
    assert res.json()["code"] == "UNEXPECTED_FIELD"


def test_uploads_need_admin(client, customer):
    res = client.post("/api/uploads", files={"images": ("a.png", PNG, "image/png")}, headers=customer["headers"])

    assert res.status_code == 403


@pytest.fixture
def remote_uploader(tmp_path):
    return ImageUploader(str(tmp_path / "media"), "http://shop.test", remote_enabled=True)


class FakeUpload:
    def __init__(self, filename, content_type, data):
        self.filename = filename
        self.content_type = content_type
        self.file = io.BytesIO(data)
        self.size = len(data)


def test_remote_upload_removes_staged_copy(remote_uploader, monkeypatch):
    def upload(path):
        assert os.path.exists(path)
        return {"secure_url": "https://res.cloudinary.com/demo/image/upload/x.png", "public_id": "furniture/x"}

    monkeypatch.setattr(remote_uploader, "upload_remote", upload)

    stored = remote_uploader.store(FakeUpload("x.png", "image/png", PNG))

    assert stored.remote is True
    assert stored.url.startswith("https://res.cloudinary.com/")
    assert stored.public_id == "furniture/x"
    assert os.listdir(remote_uploader.staging_dir) == []


def test_remote_failure_falls_back_to_local_file(remote_uploader, monkeypatch):
    def upload(path):
        raise CloudinaryError("Invalid API key")

    monkeypatch.setattr(remote_uploader, "upload_remote", upload)

    stored = remote_uploader.store(FakeUpload("x.png", "image/png", PNG))

    assert stored.remote is False
    assert stored.url == f"http://shop.test/uploads/{stored.filename}"
    assert os.path.exists(os.path.join(remote_uploader.upload_dir, stored.filename))


def stored_files(uploader):
    return [name for name in os.listdir(uploader.upload_dir) if name != "tmp"]


def test_product_with_unknown_category_leaves_no_image(client, admin, uploader):
    form = {"name": "Stray Chair", "description": "No home", "price": "90", "stock": "1"}
    form["category"] = "64b7f0c2a1b2c3d4e5f60718"

    res = client.post(
        "/api/products", data=form, files={"images": ("stray.png", PNG, "image/png")}, headers=admin["headers"]
    )

    assert res.status_code == 400
    assert "Category not found" in res.json()["message"]
    assert stored_files(uploader) == []
    assert os.listdir(uploader.staging_dir) == []


def test_duplicate_category_leaves_no_image(client, admin, category, uploader):
    res = client.post(
        "/api/categories",
        data={"name": "sofas"},
        files={"image": ("sofas.png", PNG, "image/png")},
        headers=admin["headers"],
    )

    assert res.status_code == 409
    assert stored_files(uploader) == []


def test_invalid_product_fields_store_nothing(client, admin, category, uploader):
    form = {"name": "Cheap Chair", "description": "Too cheap", "price": "-1", "stock": "1", "category": category["id"]}

    res = client.post(
        "/api/products", data=form, files={"images": ("cheap.png", PNG, "image/png")}, headers=admin["headers"]
    )

    assert res.status_code == 400
    assert stored_files(uploader) == []


def test_discard_removes_remote_copy(remote_uploader, monkeypatch):
    destroyed = []
    uploaded = {"secure_url": "https://cdn.test/y.png", "public_id": "furniture/y"}
    monkeypatch.setattr(remote_uploader, "upload_remote", lambda path: uploaded)
    monkeypatch.setattr("cloudinary.uploader.destroy", lambda public_id, **kwargs: destroyed.append(public_id))

    with pytest.raises(RuntimeError):
        with remote_uploader.discard_on_error([remote_uploader.store(FakeUpload("y.png", "image/png", PNG))]):
            raise RuntimeError("write failed")

    assert destroyed == ["furniture/y"]
