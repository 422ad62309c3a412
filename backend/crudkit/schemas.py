"""
CrudKit — Pydantic Schemas
============================

What:  Request validation models generated per resource, and the
       response models documenting the uniform API contract.
How:   `build_create_schema()` / `build_update_schema()` derive pydantic
       models from a ResourceDefinition's field descriptors:
         create → non-nullable fields without a default are required
         update → every field optional; only keys the client sent are applied
       Unknown body keys are ignored. The primary key and revision marker
       are not fields, so clients can never write them.
"""

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, create_model

from crudkit.resources import FieldDescriptor, ResourceDefinition


# ══════════════════════════════════════════════════════════════════════════
# Request Models — generated per resource
# ══════════════════════════════════════════════════════════════════════════

_BODY_CONFIG = ConfigDict(extra="ignore")


def _annotation(descriptor: FieldDescriptor) -> Any:
    annotation = descriptor.python_type or Any
    if descriptor.nullable:
        annotation = Optional[annotation]
    return annotation


def _field_spec(descriptor: FieldDescriptor, required: bool):
    constraints: Dict[str, Any] = {}
    if descriptor.max_length:
        constraints["max_length"] = descriptor.max_length
    default = ... if required else None
    return (_annotation(descriptor), Field(default, **constraints))


def build_create_schema(resource: ResourceDefinition) -> Type[BaseModel]:
    """Model validating POST bodies for `resource`."""
    fields = {f.name: _field_spec(f, required=f.required) for f in resource.fields}
    return create_model(f"{resource.name}Create", __config__=_BODY_CONFIG, **fields)


def build_update_schema(resource: ResourceDefinition) -> Type[BaseModel]:
    """Model validating PUT bodies for `resource` (partial update)."""
    fields = {f.name: _field_spec(f, required=False) for f in resource.fields}
    return create_model(f"{resource.name}Update", __config__=_BODY_CONFIG, **fields)


# ══════════════════════════════════════════════════════════════════════════
# Response Models — documentation of the wire contract
# ══════════════════════════════════════════════════════════════════════════


class ErrorDetail(BaseModel):
    """One rejected field of a validation failure."""

    field: str = Field(description="Dotted path of the rejected field")
    message: str = Field(description="Why the value was rejected")


class ErrorResponse(BaseModel):
    """
    Body of every non-2xx response.

    Example:
        {
            "error": "ValidationError",
            "message": "Invalid data provided",
            "details": [{"field": "email", "message": "Field required"}]
        }
    """

    error: str = Field(description="Error kind: ValidationError, InvalidId, DuplicateError, NotFound, InternalError")
    message: str = Field(description="Human-readable error description")
    details: Optional[List[ErrorDetail]] = Field(default=None, description="Per-field validation errors")


class PaginationMeta(BaseModel):
    total: int = Field(description="Records matching the filters (search not applied)")
    page: int = Field(description="1-based page number")
    limit: int = Field(description="Page size")
    pages: int = Field(description="ceil(total / limit)")


class ListResponse(BaseModel):
    data: List[Dict[str, Any]]
    pagination: PaginationMeta


class DeleteResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="connected or disconnected")


ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"description": "Invalid data or identifier", "model": ErrorResponse},
    409: {"description": "Duplicate value", "model": ErrorResponse},
    500: {"description": "Server error", "model": ErrorResponse},
}

NOT_FOUND_RESPONSE: Dict[int, Dict[str, Any]] = {
    404: {"description": "Resource not found", "model": ErrorResponse},
}
