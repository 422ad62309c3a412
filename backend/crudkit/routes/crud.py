"""
CrudKit — CRUD Route Registrar
================================

What:  Registers list/get/create/update/delete handlers for one resource.
How:   Each verb is registered only if the method gate allows it:

           GET    {base}          list with pagination, search, filters, populate
           GET    {base}/{id}     one record, optional populate
           POST   {base}          create from JSON body
           PUT    {base}/{id}     partial update from JSON body
           DELETE {base}/{id}     delete

       Handlers do not catch store errors; everything except "no record with
       this id" propagates to the error translator.
Returns:
       The resource's reference fields, consumed by the nested registrar.

Sessions:
    Handlers open sessions from the injected `async_sessionmaker`. The list
    handler runs the page query and the count query concurrently, each on
    its own session. Writes use one session inside a transaction that
    rolls back on any error.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from fastapi import APIRouter, Body, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crudkit.config import Settings, settings as default_settings
from crudkit.exceptions import ResourceNotFoundError
from crudkit.resources import FieldDescriptor, ResourceDefinition
from crudkit.schemas import (
    ERROR_RESPONSES,
    NOT_FOUND_RESPONSE,
    DeleteResponse,
    ListResponse,
    build_create_schema,
    build_update_schema,
)
from crudkit.utils.document import transform_document
from crudkit.utils.query import (
    QueryOptions,
    build_count_query,
    build_query,
    parse_list_params,
    populate_options,
    split_list_param,
)
from crudkit.validators.method import MethodAllowList, is_method_allowed

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


async def fetch_page(
    session_factory: SessionFactory,
    resource: ResourceDefinition,
    filters: Mapping[str, Any],
    options: QueryOptions,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run the page query and the total count concurrently; build the list body.

    Returns:
        {"data": [...], "pagination": {"total", "page", "limit", "pages"}}
    """

    async def load_data() -> List[Dict[str, Any]]:
        async with session_factory() as session:
            result = await session.execute(build_query(resource, filters, options))
            return [transform_document(record) for record in result.scalars().all()]

    async def count_total() -> int:
        async with session_factory() as session:
            result = await session.execute(build_count_query(resource, filters))
            return result.scalar_one()

    gathered = asyncio.gather(load_data(), count_total())
    if timeout:
        data, total = await asyncio.wait_for(gathered, timeout)
    else:
        data, total = await gathered

    return {
        "data": data,
        "pagination": {
            "total": total,
            "page": options.page,
            "limit": options.limit,
            "pages": math.ceil(total / options.limit),
        },
    }


def setup_crud_routes(
    router: APIRouter,
    resource: ResourceDefinition,
    base_route: str,
    session_factory: SessionFactory,
    *,
    methods: Optional[MethodAllowList] = None,
    settings: Optional[Settings] = None,
) -> List[FieldDescriptor]:
    """
    Register the CRUD routes for `resource` on `router`.

    Args:
        router:           Router the routes are added to
        resource:         Resolved resource definition
        base_route:       e.g. "/api/posts"
        session_factory:  Source of AsyncSessions
        methods:          Allow-list keyed by collection name (case-insensitive)
        settings:         Pagination defaults and query timeout

    Returns:
        Reference fields of the resource.
    """
    settings = settings or default_settings
    model = resource.model
    name = resource.collection
    create_schema = build_create_schema(resource)
    update_schema = build_update_schema(resource)
    registered: List[str] = []

    def allowed(verb: str) -> bool:
        return is_method_allowed(name, verb, methods)

    # ── GET {base} and GET {base}/{id} ────────────────────────────────────
    if allowed("GET"):

        async def list_records(request: Request) -> Dict[str, Any]:
            filters, options = parse_list_params(
                request.query_params,
                resource,
                default_limit=settings.default_page_size,
                max_limit=settings.max_page_size,
            )
            return await fetch_page(
                session_factory, resource, filters, options, settings.query_timeout
            )

        async def get_record(id: str, request: Request) -> Dict[str, Any]:
            identifier = resource.id_cast(id)
            populate = split_list_param(request.query_params.getlist("populate"))
            query = select(model).where(resource.id_column == identifier)
            loaders = populate_options(resource, populate)
            if loaders:
                query = query.options(*loaders)

            async with session_factory() as session:
                record = (await session.execute(query)).scalar_one_or_none()
                if record is None:
                    raise ResourceNotFoundError(resource.name, id)
                return transform_document(record)

        router.add_api_route(
            base_route,
            list_records,
            methods=["GET"],
            name=f"list_{name}",
            summary=f"List {name}",
            response_model=ListResponse,
            responses=ERROR_RESPONSES,
        )
        router.add_api_route(
            f"{base_route}/{{id}}",
            get_record,
            methods=["GET"],
            name=f"get_{name}",
            summary=f"Get one of {name} by id",
            responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
        )
        registered += [f"GET {base_route}", f"GET {base_route}/{{id}}"]

    # ── POST {base} ───────────────────────────────────────────────────────
    if allowed("POST"):

        async def create_record(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
            values = create_schema.model_validate(body).model_dump(exclude_unset=True)
            async with session_factory() as session:
                async with session.begin():
                    record = model(**values)
                    session.add(record)
                    await session.flush()
                    await session.refresh(record)
                logger.info("Created %s %s", resource.name, getattr(record, resource.id_field))
                return transform_document(record)

        router.add_api_route(
            base_route,
            create_record,
            methods=["POST"],
            name=f"create_{name}",
            summary=f"Create one of {name}",
            responses=ERROR_RESPONSES,
        )
        registered.append(f"POST {base_route}")

    # ── PUT {base}/{id} ───────────────────────────────────────────────────
    if allowed("PUT"):

        async def update_record(id: str, body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
            identifier = resource.id_cast(id)
            changes = update_schema.model_validate(body).model_dump(exclude_unset=True)
            async with session_factory() as session:
                async with session.begin():
                    record = await session.get(model, identifier)
                    if record is None:
                        raise ResourceNotFoundError(resource.name, id)
                    for key, value in changes.items():
                        setattr(record, key, value)
                    await session.flush()
                    await session.refresh(record)
                return transform_document(record)

        router.add_api_route(
            f"{base_route}/{{id}}",
            update_record,
            methods=["PUT"],
            name=f"update_{name}",
            summary=f"Update one of {name}",
            responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
        )
        registered.append(f"PUT {base_route}/{{id}}")

    # ── DELETE {base}/{id} ────────────────────────────────────────────────
    if allowed("DELETE"):

        async def delete_record(id: str) -> Dict[str, bool]:
            identifier = resource.id_cast(id)
            async with session_factory() as session:
                async with session.begin():
                    record = await session.get(model, identifier)
                    if record is None:
                        raise ResourceNotFoundError(resource.name, id)
                    await session.delete(record)
            logger.info("Deleted %s %s", resource.name, id)
            return {"success": True}

        router.add_api_route(
            f"{base_route}/{{id}}",
            delete_record,
            methods=["DELETE"],
            name=f"delete_{name}",
            summary=f"Delete one of {name}",
            response_model=DeleteResponse,
            responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
        )
        registered.append(f"DELETE {base_route}/{{id}}")

    for route in registered:
        logger.debug("Registered %s", route)
    logger.info("%s: %d CRUD routes registered", resource.name, len(registered))
    return resource.reference_fields
