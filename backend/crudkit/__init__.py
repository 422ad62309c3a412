"""
CrudKit — Convention-Driven REST Routes for SQLAlchemy Models
===============================================================

What:  Generates list/get/create/update/delete endpoints, nested
       "children of a parent" endpoints, pagination, search, filtering,
       population of references and a uniform error body for a set of
       SQLAlchemy models mounted on a FastAPI app.

Layers:
    ┌─────────────────────────────────────┐
    │   plugin.py / main.py  (entry)      │  ← wires everything once
    ├─────────────────────────────────────┤
    │   routes/  (CRUD + nested)          │  ← generated handlers
    ├─────────────────────────────────────┤
    │   utils/  (query, document)         │  ← query building, serialization
    ├─────────────────────────────────────┤
    │   resources.py / validators/        │  ← model introspection, method gate
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

from crudkit.database import Base  # noqa: E402
from crudkit.plugin import register_crud_api  # noqa: E402
from crudkit.resources import FieldDescriptor, FieldKind, ResourceDefinition  # noqa: E402

__all__ = [
    "__version__",
    "Base",
    "register_crud_api",
    "FieldDescriptor",
    "FieldKind",
    "ResourceDefinition",
]
