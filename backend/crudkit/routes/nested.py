"""
CrudKit — Nested Route Registrar
==================================

What:  For each reference field of a resource, registers a scoped list
       endpoint listing the children of one parent record:

           GET {prefix}/{referenced resource, lowercased}/{ref_id}/{collection}
           e.g. Post.author_id → User:  GET /api/user/{ref_id}/posts

How:   Same behavior as the resource's list endpoint, except the reference
       field is forced to the cast of `ref_id`. A query-string value for that
       same field is dropped before casting, so the path always wins.
When:  Only when GET is allowed for the resource.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request

from crudkit.config import Settings, settings as default_settings
from crudkit.exceptions import ConfigurationError
from crudkit.resources import FieldDescriptor, ResourceDefinition
from crudkit.routes.crud import SessionFactory, fetch_page
from crudkit.schemas import ERROR_RESPONSES, ListResponse
from crudkit.utils.query import parse_list_params
from crudkit.validators.method import MethodAllowList, is_method_allowed

logger = logging.getLogger(__name__)


def nested_route_path(prefix: str, field: FieldDescriptor, resource: ResourceDefinition) -> str:
    return f"{prefix}/{field.ref.lower()}/{{ref_id}}/{resource.collection}"


def setup_nested_routes(
    router: APIRouter,
    resource: ResourceDefinition,
    prefix: str,
    reference_fields: List[FieldDescriptor],
    session_factory: SessionFactory,
    *,
    methods: Optional[MethodAllowList] = None,
    settings: Optional[Settings] = None,
) -> List[str]:
    """
    Register one GET route per reference field.

    Returns:
        The registered paths (empty when GET is not allowed).

    Raises:
        ConfigurationError: two reference fields target the same resource
            and would share one path
    """
    settings = settings or default_settings

    if not is_method_allowed(resource.collection, "GET", methods):
        logger.debug("%s: GET not allowed, skipping nested routes", resource.name)
        return []

    def make_handler(field: FieldDescriptor):
        async def list_children(ref_id: str, request: Request) -> Dict[str, Any]:
            filters, options = parse_list_params(
                request.query_params,
                resource,
                default_limit=settings.default_page_size,
                max_limit=settings.max_page_size,
                exclude=(field.name,),
            )
            filters[field.name] = field.cast(ref_id)
            return await fetch_page(
                session_factory, resource, filters, options, settings.query_timeout
            )

        return list_children

    paths: List[str] = []
    owners: Dict[str, FieldDescriptor] = {}
    for field in reference_fields:
        path = nested_route_path(prefix, field, resource)
        if path in owners:
            raise ConfigurationError(
                f"{resource.name}.{owners[path].name} and {resource.name}.{field.name} "
                f"both reference {field.ref}; they would share the route {path}",
                context={"path": path, "fields": [owners[path].name, field.name]},
            )
        owners[path] = field
        router.add_api_route(
            path,
            make_handler(field),
            methods=["GET"],
            name=f"list_{resource.collection}_by_{field.name}",
            summary=f"List {resource.collection} of one {field.ref}",
            response_model=ListResponse,
            responses=ERROR_RESPONSES,
        )
        logger.debug("Registered GET %s", path)
        paths.append(path)
    return paths
