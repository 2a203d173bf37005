import os
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes", "on")


def _default_db_name(url: str) -> str:
    path = urlparse(url).path.strip("/")
    return path or "furniture"


DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGO_URI") or "mongodb://localhost:27017"
DATABASE_NAME = os.getenv("DATABASE_NAME") or _default_db_name(DATABASE_URL)
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "30000"))
MONGO_POOL_SIZE = int(os.getenv("MONGO_POOL_SIZE", "10"))

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "furniture_products")

BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
CONTACT_BACKUP_DIR = os.getenv("CONTACT_BACKUP_DIR", "contact_backup")
MAX_UPLOAD_FILES = int(os.getenv("MAX_UPLOAD_FILES", "5"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

ENVIRONMENT = os.getenv("ENVIRONMENT", "production").strip().lower()
DEBUG = ENVIRONMENT == "development"
BYPASS_AUTH = DEBUG and _flag("BYPASS_AUTH")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


def cloudinary_configured() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)
