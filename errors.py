"""
Error taxonomy and the last-resort exception handlers.

Every error leaves the API as the JSON envelope ``{"success": false, ...}``
with a standard HTTP status, so clients can check either.
"""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from pymongo.errors import AutoReconnect, DuplicateKeyError, NetworkTimeout, ServerSelectionTimeoutError

import config

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    status = 400
    default_code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None, data=None):
        super().__init__(status_code=self.status, detail=message)
        self.code = code or self.default_code
        self.data = data

    @property
    def message(self) -> str:
        return self.detail


class ValidationFailed(APIError):
    status = 400
    default_code = "VALIDATION_ERROR"


class NotFound(APIError):
    status = 404
    default_code = "NOT_FOUND"


class Conflict(APIError):
    status = 409
    default_code = "CONFLICT"


class UploadRejected(APIError):
    status = 400
    default_code = "UPLOAD_ERROR"


class StoreUnavailable(APIError):
    status = 503
    default_code = "DB_UNAVAILABLE"


def _body(message: str, **extra) -> dict:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def _field_errors(errors) -> dict:
    out = {}
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    return out


async def api_error_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc, APIError):
        body = _body(exc.message, code=exc.code, data=exc.data)
    else:
        body = _body(str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc):
    return JSONResponse(
        status_code=400,
        content=_body("Validation error", errors=_field_errors(exc.errors())),
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    key_value = (exc.details or {}).get("keyValue") or {}
    field = next(iter(key_value), "unknown")
    return JSONResponse(
        status_code=400,
        content=_body("Duplicate data error", duplicateField=field, error=str(exc) if config.DEBUG else None),
    )


async def timeout_handler(request: Request, exc):
    logger.error("Database timeout on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content=_body("Database connection timed out", suggestion="Please try again later"),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_body("Internal server error", error=str(exc) if config.DEBUG else None),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    for exc_type in (ServerSelectionTimeoutError, NetworkTimeout, AutoReconnect):
        app.add_exception_handler(exc_type, timeout_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
