"""
CrudKit — Error Translator
============================

What:  Maps failures raised by generated handlers to HTTP status codes and
       the uniform `{error, message, details?}` body.
How:   `classify_error()` checks, in order, first match wins:

           1. Validation failure   → 400 ValidationError (+ details per field)
           2. Identifier cast      → 400 InvalidId
           3. Unique violation     → 409 DuplicateError
           4. Anything else        → 500 InternalError (exception text never sent)

       `register_error_handlers()` wires one translating handler into the
       app for all of these types, plus handlers for NotFound (raised by
       id-based routes) and framework HTTP errors (unknown path, verb not
       registered). Registration is idempotent per app.
When:  Once per application, by the plugin entry.

Every error is logged before it is classified: WARNING for client errors,
ERROR with traceback for 500s.

The catch-all `Exception` handler runs in Starlette's outermost error
middleware. Apps built by `create_app()` translate those errors earlier, in
RequestLoggingMiddleware, so a 500 keeps its `X-Request-ID`; apps that only
call `register_crud_api()` answer them without the header.
"""

import logging
from typing import Any, Dict, List, Tuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from crudkit.exceptions import CastError, ResourceNotFoundError
from crudkit.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Leading `loc` entries FastAPI adds to request validation errors
_LOCATION_PREFIXES = ("body", "query", "path")

# SQLSTATE for unique_violation (PostgreSQL / asyncpg / psycopg)
_UNIQUE_VIOLATION = "23505"

_HANDLED_TYPES = (RequestValidationError, ValidationError, CastError, IntegrityError, Exception)


def _validation_details(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    details = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        details.append({
            "field": ".".join(str(part) for part in loc),
            "message": err.get("msg", ""),
        })
    return details


def is_duplicate_key_error(exc: BaseException) -> bool:
    """True when `exc` is an IntegrityError caused by a unique index."""
    if not isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        if getattr(orig, attr, None) == _UNIQUE_VIOLATION:
            return True
    text = str(orig)
    return "UNIQUE constraint failed" in text or "duplicate key" in text.lower()


def classify_error(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Translate an exception into (status_code, body).

    >>> classify_error(RuntimeError("secret"))
    (500, {'error': 'InternalError', 'message': 'An internal server error occurred'})
    """
    if isinstance(exc, (ValidationError, RequestValidationError)):
        return 400, {
            "error": "ValidationError",
            "message": "Invalid data provided",
            "details": _validation_details(exc.errors()),
        }

    if isinstance(exc, CastError):
        return 400, {
            "error": "InvalidId",
            "message": "Invalid ID format provided",
        }

    if is_duplicate_key_error(exc):
        return 409, {
            "error": "DuplicateError",
            "message": "A record with this value already exists",
        }

    return 500, {
        "error": "InternalError",
        "message": "An internal server error occurred",
    }


def _log_error(exc: BaseException, status_code: int) -> None:
    rid = request_id_var.get("")
    if status_code >= 500:
        logger.error("[%s] Unhandled error: %s", rid, exc, exc_info=exc)
    else:
        logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc)


async def translate_error(request: Request, exc: Exception) -> JSONResponse:
    """Single translating handler shared by every registered exception type."""
    status_code, body = classify_error(exc)
    _log_error(exc, status_code)
    return JSONResponse(status_code=status_code, content=body)


async def handle_not_found(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    """Id-based lookup found nothing."""
    logger.info("[%s] %s", request_id_var.get(""), exc.message)
    return JSONResponse(
        status_code=404,
        content={"error": "NotFound", "message": "Resource not found"},
    )


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (no route, verb not registered) in the uniform shape."""
    if exc.status_code == 404:
        body = {"error": "NotFound", "message": "Resource not found"}
    elif exc.status_code == 405:
        body = {"error": "MethodNotAllowed", "message": "Method not allowed for this resource"}
    else:
        body = {"error": "HTTPError", "message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        headers=getattr(exc, "headers", None),
    )


def register_error_handlers(app: FastAPI) -> bool:
    """
    Register the translator on `app`.

    Returns:
        False when the handlers were already registered on this app.
    """
    if getattr(app.state, "crudkit_error_handlers", False):
        return False

    for exc_type in _HANDLED_TYPES:
        app.add_exception_handler(exc_type, translate_error)
    app.add_exception_handler(ResourceNotFoundError, handle_not_found)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)

    app.state.crudkit_error_handlers = True
    logger.debug("Error handlers registered")
    return True
