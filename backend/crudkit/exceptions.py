"""
CrudKit — Custom Exception Hierarchy
======================================

What:  Application-specific exceptions raised while serving generated routes.
How:   Each exception carries a message and an optional context dict.
       The error translator (middleware/error_handler.py) turns them into
       the uniform `{error, message, details?}` response body.
Who:   Raised by the query layer, the route registrars and the plugin entry.

Exception Hierarchy:
    CrudKitError (base)
    ├── CastError              → 400 InvalidId (string could not become an identifier)
    ├── ResourceNotFoundError  → 404 NotFound  (id lookup found nothing)
    └── ConfigurationError     → raised at startup, never reaches a client

Errors raised by collaborators are NOT wrapped:
    pydantic.ValidationError        → 400 ValidationError
    sqlalchemy.exc.IntegrityError   → 409 DuplicateError (unique violation) / 500
    anything else                   → 500 InternalError
"""

from typing import Any, Dict, Optional


class CrudKitError(Exception):
    """
    Base exception for all CrudKit errors.

    Attributes:
        message:  Description safe to log; client-facing text is fixed by the translator
        context:  Additional debug info (logged, never returned to the client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class CastError(CrudKitError, ValueError):
    """
    Raised when an external string cannot be converted to a field's stored type.

    When:  Malformed id in a path parameter, or a query-string filter value
           that does not parse as the field's type (UUID, integer, boolean).
    HTTP:  400 Bad Request, `{error: "InvalidId"}`
    """

    def __init__(
        self,
        field: str,
        value: Any,
        target: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"field": field, "value": value, "target": target})
        super().__init__(
            message=f"Cast to {target} failed for value {value!r} at field '{field}'",
            context=ctx,
        )
        self.field = field
        self.value = value
        self.target = target


class ResourceNotFoundError(CrudKitError):
    """
    Raised when an id-based lookup (GET/PUT/DELETE by id) finds no record.

    HTTP:  404 Not Found, `{error: "NotFound", message: "Resource not found"}`
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ConfigurationError(CrudKitError):
    """Raised at registration time for models that cannot be exposed (e.g. composite primary keys)."""
