"""
Image uploads: validation, Cloudinary upload and local disk fallback.

Files are staged on disk first. A successful remote upload deletes the staged
copy; otherwise the staged file is moved into the upload directory and served
from ``/uploads``.
"""
import logging
import os
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi import Request
from starlette.datastructures import UploadFile
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from werkzeug.utils import secure_filename

import config
from errors import UploadRejected, ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass
class StoredImage:
    url: str
    filename: str
    public_id: Optional[str] = None
    remote: bool = False


@dataclass
class FormPayload:
    data: dict = field(default_factory=dict)
    files: Dict[str, List[UploadFile]] = field(default_factory=dict)

    def take_files(self, allowed: str) -> List[UploadFile]:
        unexpected = [name for name in self.files if name != allowed]
        if unexpected:
            raise UploadRejected(
                f"Unexpected file upload in field '{unexpected[0]}'. Please check your form fields.",
                "UNEXPECTED_FIELD",
            )
        return [f for f in self.files.get(allowed, []) if f.filename]


async def read_payload(request: Request) -> FormPayload:
    """Request body as a plain dict, from JSON or from a multipart/urlencoded form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        payload = FormPayload()
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                payload.files.setdefault(key, []).append(value)
            elif key in payload.data:
                current = payload.data[key]
                payload.data[key] = (current if isinstance(current, list) else [current]) + [value]
            else:
                payload.data[key] = value
        return payload
    body = await request.body()
    if not body.strip():
        return FormPayload()
    try:
        data = await request.json()
    except ValueError:
        raise ValidationFailed("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return FormPayload(data=data)


class ImageUploader:
    def __init__(
        self,
        upload_dir: str,
        base_url: str,
        max_files: int = 5,
        max_bytes: int = 5 * 1024 * 1024,
        remote_enabled: bool = False,
        folder: str = "furniture_products",
    ):
        self.upload_dir = upload_dir
        self.base_url = base_url.rstrip("/")
        self.max_files = max_files
        self.max_bytes = max_bytes
        self.remote_enabled = remote_enabled
        self.folder = folder

    @classmethod
    def from_config(cls) -> "ImageUploader":
        remote = config.cloudinary_configured()
        if remote:
            cloudinary.config(
                cloud_name=config.CLOUDINARY_CLOUD_NAME,
                api_key=config.CLOUDINARY_API_KEY,
                api_secret=config.CLOUDINARY_API_SECRET,
                secure=True,
            )
        else:
            logger.info("Cloudinary credentials missing, images will be stored locally")
        return cls(
            config.UPLOAD_DIR,
            config.BASE_URL,
            max_files=config.MAX_UPLOAD_FILES,
            max_bytes=config.MAX_UPLOAD_BYTES,
            remote_enabled=remote,
            folder=config.CLOUDINARY_FOLDER,
        )

    @property
    def staging_dir(self) -> str:
        return os.path.join(self.upload_dir, "tmp")

    def ensure_dirs(self) -> None:
        os.makedirs(self.staging_dir, exist_ok=True)

    def validate(self, files: List[UploadFile], max_files: Optional[int] = None) -> None:
        limit = max_files or self.max_files
        if len(files) > limit:
            raise UploadRejected(f"Too many files. Maximum is {limit}.", "TOO_MANY_FILES")
        for f in files:
            if (f.content_type or "").lower() not in ALLOWED_TYPES:
                raise UploadRejected(
                    "Only image files (jpeg, jpg, png, webp) are allowed", "WRONG_TYPE"
                )
            if self._size(f) > self.max_bytes:
                raise UploadRejected(
                    f"File is too large. Maximum size is {self.max_bytes // (1024 * 1024)}MB.",
                    "FILE_TOO_LARGE",
                )

    @staticmethod
    def _size(f: UploadFile) -> int:
        if f.size is not None:
            return f.size
        f.file.seek(0, os.SEEK_END)
        size = f.file.tell()
        f.file.seek(0)
        return size

    def _stage(self, f: UploadFile) -> str:
        self.ensure_dirs()
        ext = ALLOWED_TYPES[(f.content_type or "").lower()]
        base = secure_filename(os.path.splitext(f.filename or "")[0]) or "image"
        filename = f"{uuid.uuid4().hex}-{base}{ext}"
        path = os.path.join(self.staging_dir, filename)
        f.file.seek(0)
        with open(path, "wb") as out:
            while True:
                chunk = f.file.read(1024 * 1024)
                if not chunk:
                    break
                out.write(chunk)
        return path

    def upload_remote(self, path: str) -> dict:
        public_id = os.path.splitext(os.path.basename(path))[0]
        return cloudinary.uploader.upload(path, folder=self.folder, public_id=public_id, resource_type="image")

    def store(self, f: UploadFile) -> StoredImage:
        staged = self._stage(f)
        filename = os.path.basename(staged)
        if self.remote_enabled:
            try:
                result = self.upload_remote(staged)
            except (CloudinaryError, Urllib3HTTPError, OSError) as exc:
                logger.warning("Cloudinary upload failed for %s, keeping local copy: %s", f.filename, exc)
            else:
                os.remove(staged)
                logger.info("Uploaded %s to Cloudinary", result.get("public_id"))
                return StoredImage(
                    url=result["secure_url"], filename=filename, public_id=result.get("public_id"), remote=True
                )
        target = os.path.join(self.upload_dir, filename)
        os.replace(staged, target)
        return StoredImage(url=f"{self.base_url}/uploads/{filename}", filename=filename)

    def store_all(self, files: List[UploadFile], max_files: Optional[int] = None) -> List[StoredImage]:
        self.validate(files, max_files)
        stored: List[StoredImage] = []
        with self.discard_on_error(stored):
            for f in files:
                stored.append(self.store(f))
        return stored

    def discard(self, images: List[StoredImage]) -> None:
        """Remove images that were stored for a write that did not happen."""
        for image in images:
            if image.remote:
                try:
                    cloudinary.uploader.destroy(image.public_id, resource_type="image")
                except (CloudinaryError, Urllib3HTTPError) as exc:
                    logger.error("Could not remove Cloudinary image %s: %s", image.public_id, exc)
                    continue
            else:
                try:
                    os.remove(os.path.join(self.upload_dir, image.filename))
                except FileNotFoundError:
                    continue
            logger.info("Removed unused upload %s", image.public_id or image.filename)

    @contextmanager
    def discard_on_error(self, images: List[StoredImage]) -> Iterator[List[StoredImage]]:
        try:
            yield images
        except Exception:
            self.discard(images)
            raise


def get_uploader(request: Request) -> ImageUploader:
    return request.app.state.uploader
