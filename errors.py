"""
Error kinds raised by the service and the handlers that turn them into
the ``{success: false, message, errors?}`` response envelope.
"""
import logging
import traceback
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout
from starlette.exceptions import HTTPException as StarletteHTTPException

import config

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation Error"


class InvalidCategory(ValidationError):
    default_message = "Category not found"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class InvalidToken(Unauthorized):
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    default_message = "Token expired"


class Forbidden(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


class StorageUnavailable(AppError):
    status_code = 503
    default_message = "Database connection error"


def error_body(message: str, errors: Optional[List[str]] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or details.get("keyPattern")
    if key_value:
        return next(iter(key_value))
    return "Value"


def _format_validation_errors(exc: RequestValidationError) -> List[str]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        out.append(f"{field}: {err.get('msg', 'invalid value')}")
    return out


# -------------------------------------------------------------------
# Handlers
# -------------------------------------------------------------------
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, StorageUnavailable):
        logger.error("Storage unavailable on %s %s: %s", request.method, request.url.path, exc.__cause__ or exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body("Validation Error", _format_validation_errors(exc)))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=getattr(exc, "headers", None))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content=error_body(f"{duplicate_field(exc)} already exists"))


async def storage_error_handler(request: Request, exc: Exception):
    error = StorageUnavailable()
    error.__cause__ = exc
    return await app_error_handler(request, error)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = error_body("Internal Server Error")
    if not config.is_production():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(ConnectionFailure, storage_error_handler)
    app.add_exception_handler(ExecutionTimeout, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
