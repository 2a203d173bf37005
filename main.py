import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import config
from database import Mongo, ensure_indexes
from errors import StoreUnavailable, register_error_handlers
from repositories import ContactRepository
from routers import accounts, addresses, categories, contacts, media, orders, payments, products
from uploads import ImageUploader

logger = logging.getLogger("furniture")


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mongo: Mongo = app.state.mongo
    mongo.connect()
    try:
        with mongo.acquire() as db:
            ensure_indexes(db)
    except StoreUnavailable as exc:
        logger.warning("Starting without database indexes: %s", exc)
    ContactRepository(mongo, config.CONTACT_BACKUP_DIR).sync_backups()
    app.state.uploader.ensure_dirs()
    yield
    mongo.close()


def create_app(mongo: Optional[Mongo] = None, uploader: Optional[ImageUploader] = None) -> FastAPI:
    app = FastAPI(title="Furniture Store API", lifespan=lifespan)
    app.state.mongo = mongo or Mongo.from_config()
    app.state.uploader = uploader or ImageUploader.from_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, elapsed)
        return response

    register_error_handlers(app)

    app.include_router(accounts.router)
    app.include_router(products.router)
    app.include_router(categories.router)
    app.include_router(contacts.router, prefix="/api/contact")
    app.include_router(contacts.router, prefix="/direct-contact", include_in_schema=False)
    app.include_router(contacts.router, prefix="/api/api/contact", include_in_schema=False)
    app.include_router(orders.router)
    app.include_router(payments.requests_router)
    app.include_router(payments.settings_router)
    app.include_router(addresses.router)
    app.include_router(media.router)

    app.mount(
        "/uploads",
        StaticFiles(directory=app.state.uploader.upload_dir, check_dir=False),
        name="uploads",
    )

    @app.get("/")
    def root():
        return {"success": True, "message": "Furniture Store API running"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "running",
            "database": "not-connected",
            "database_url": "set" if os.getenv("DATABASE_URL") or os.getenv("MONGO_URI") else "not-set",
            "collections": [],
        }
        try:
            response["collections"] = request.app.state.mongo.ping()[:10]
            response["database"] = "connected"
        except StoreUnavailable as exc:
            response["database"] = f"error: {str(exc.detail)[:80]}"
        return response

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
