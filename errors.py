"""
API Errors

Exceptions raised by handlers and services, and the FastAPI exception
handlers that render them as {"success": false, "message", "errors"?}.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Validation failed"


class ProductInactive(ApiError):
    status_code = 400
    default_message = "Product is not available"


class InsufficientStock(ApiError):
    status_code = 400
    default_message = "Insufficient stock"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Not authorized"


class InvalidCredentials(Unauthorized):
    default_message = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Not authorized as admin"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"


def error_body(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> dict:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return out


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body("Validation failed", _field_errors(exc)))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Not found - {request.url.path}"
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Server error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
