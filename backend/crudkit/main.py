"""
CrudKit — FastAPI Application Factory
=======================================

What:  Builds a ready-to-serve FastAPI app exposing the given models.
How:   create_app() wires, in order:
         1. Lifespan: logging setup on startup, engine disposal on shutdown
         2. Middleware: CORS, access logging, request IDs
         3. GET /health
         4. The CRUD plugin (error translator + generated routes)

Example (serve with `uvicorn myservice:app`):
    from crudkit.main import create_app
    from myservice.models import User, Post

    app = create_app([User, Post], methods={"users": ["GET"]})

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                    FastAPI App                        │
    │  Middleware:   Request ID → Logging → CORS            │
    │  Routes:       /health, {prefix}/{collection}[/{id}], │
    │                {prefix}/{ref}/{ref_id}/{collection}   │
    │  Errors:       ValidationError/InvalidId → 400        │
    │                NotFound → 404, DuplicateError → 409   │
    │                anything else → 500                    │
    └──────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Iterable, Optional, Type, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from crudkit import __version__
from crudkit.config import Settings, settings as default_settings
from crudkit.database import create_engine_from_settings, create_session_factory, dispose_engine
from crudkit.middleware.logging import RequestLoggingMiddleware
from crudkit.middleware.request_id import RequestIDMiddleware
from crudkit.plugin import register_crud_api
from crudkit.resources import ResourceDefinition
from crudkit.routes import health
from crudkit.validators.method import MethodAllowList

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """
    Configure process-wide logging.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Third-party loggers that log every operation are raised to WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def create_app(
    models: Iterable[Union[Type[Any], ResourceDefinition]] = (),
    *,
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    prefix: Optional[str] = None,
    methods: Optional[MethodAllowList] = None,
) -> FastAPI:
    """
    Create and configure the application.

    Args:
        models:    Models (or ResourceDefinitions) to expose
        settings:  Defaults to the module-level Settings
        engine:    Defaults to an engine built from settings.database_url
        prefix:    Route prefix override
        methods:   Per-resource verb allow-list
    """
    settings = settings or default_settings
    engine = engine or create_engine_from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(settings.log_level)
        logger.info("CrudKit %s starting: %d routes", __version__, len(app.routes))
        yield
        await dispose_engine(engine)
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="CrudKit API",
        description="REST endpoints generated from SQLAlchemy models.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Last added runs first: RequestID → Logging → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    register_crud_api(
        app,
        models,
        session_factory=create_session_factory(engine),
        prefix=prefix,
        methods=methods,
        settings=settings,
    )
    return app
