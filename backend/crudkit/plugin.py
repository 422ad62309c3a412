"""
CrudKit — Plugin Entry
========================

What:  Exposes a list of models as REST resources on a FastAPI app.
How:   1. Register the error translator (once per app)
       2. For each model: resolve its ResourceDefinition, register the CRUD
          routes under `{prefix}/{collection}`, then the nested routes for
          the reference fields the CRUD registrar reported
       3. Mount one APIRouter per resource

Usage:
    app = FastAPI()
    register_crud_api(
        app,
        [User, Post],
        session_factory=create_session_factory(engine),
        prefix="/api",
        methods={"users": ["GET", "POST"], "posts": None},
    )
"""

import logging
from typing import Any, Iterable, List, Optional, Type, Union

from fastapi import APIRouter, FastAPI

from crudkit.config import Settings, settings as default_settings
from crudkit.database import create_session_factory, get_engine
from crudkit.middleware.error_handler import register_error_handlers
from crudkit.resources import ResourceDefinition, resolve_resource
from crudkit.routes.crud import SessionFactory, setup_crud_routes
from crudkit.routes.nested import setup_nested_routes
from crudkit.validators.method import MethodAllowList

logger = logging.getLogger(__name__)


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip().rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix


def register_crud_api(
    app: FastAPI,
    models: Iterable[Union[Type[Any], ResourceDefinition]],
    *,
    session_factory: Optional[SessionFactory] = None,
    prefix: Optional[str] = None,
    methods: Optional[MethodAllowList] = None,
    settings: Optional[Settings] = None,
) -> List[ResourceDefinition]:
    """
    Generate and mount routes for every model.

    Args:
        app:              FastAPI application
        models:           Mapped model classes and/or ResourceDefinitions
        session_factory:  Defaults to a factory over the Settings engine
        prefix:           Path prefix (default: settings.api_prefix, "/api")
        methods:          Allow-list keyed by collection name, matched case-insensitively
        settings:         Overrides the module-level Settings

    Returns:
        The resolved resource definitions, in registration order.
    """
    settings = settings or default_settings
    prefix = _normalize_prefix(settings.api_prefix if prefix is None else prefix)
    if session_factory is None:
        session_factory = create_session_factory(get_engine())

    register_error_handlers(app)

    resources = []
    for model in models:
        resource = resolve_resource(model)
        router = APIRouter(tags=[resource.collection])
        base_route = f"{prefix}/{resource.collection}"

        reference_fields = setup_crud_routes(
            router, resource, base_route, session_factory,
            methods=methods, settings=settings,
        )
        setup_nested_routes(
            router, resource, prefix, reference_fields, session_factory,
            methods=methods, settings=settings,
        )

        app.include_router(router)
        resources.append(resource)

    logger.info(
        "CrudKit mounted %d resources under %s: %s",
        len(resources),
        prefix or "/",
        ", ".join(r.collection for r in resources),
    )
    return resources
