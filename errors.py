"""
Application errors and the HTTP error handlers that render them.

Driver and validation errors pass through unchanged until they reach the
handlers registered by `register_error_handlers`, which map them onto the
JSON error bodies the API returns.
"""
import logging
import traceback
from datetime import datetime, timezone

from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    status_code = 404
    error = "Not Found"


class ConflictError(AppError):
    status_code = 409
    error = "Conflict"


class DomainValidationError(AppError):
    status_code = 400
    error = "Validation Error"


class DatabaseNotConfigured(AppError):
    status_code = 500
    error = "Database not configured"

    def __init__(self, message: str = "Database not configured"):
        super().__init__(message)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _format_validation_errors(errors) -> list:
    messages = []
    for err in errors:
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return messages


def _duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
    if key_pattern:
        return next(iter(key_pattern))
    return "value"


async def validation_error_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation Error",
            "messages": _format_validation_errors(exc.errors()),
            "timestamp": _timestamp(),
        },
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    field = _duplicate_field(exc)
    return JSONResponse(
        status_code=400,
        content={
            "error": "Duplicate Entry",
            "message": f"{field} already exists",
            "timestamp": _timestamp(),
        },
    )


async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid ID",
            "message": "Invalid ID format",
            "timestamp": _timestamp(),
        },
    )


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "message": exc.message,
            "timestamp": _timestamp(),
        },
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        # Unmatched route
        return JSONResponse(
            status_code=404,
            content={
                "error": "Route not found",
                "message": f"Cannot {request.method} {request.url.path}",
                "timestamp": _timestamp(),
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "timestamp": _timestamp()},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {
        "error": str(exc) or "Internal Server Error",
        "timestamp": _timestamp(),
    }
    if settings.is_development:
        body["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(InvalidId, invalid_id_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
