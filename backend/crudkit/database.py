"""
CrudKit — Database Engine & Session Management
================================================

What:  Async SQLAlchemy engine construction, session factory and declarative base.
How:   `create_engine_from_settings()` builds a pooled async engine;
       `create_session_factory()` wraps it in an `async_sessionmaker`.
       The generated route handlers receive the session factory and open
       their own sessions (the list handler needs two concurrently).
Who:   Used by the app factory (main.py), the plugin entry and the health route.
When:  The default engine is created lazily on first use, then reused.

Connection Pooling:
    pool_size / max_overflow / pre_ping come from Settings and are applied
    to server databases only. SQLite (aiosqlite) manages its own pool and
    rejects these arguments.
"""

import logging
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from crudkit.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Declarative base for models exposed through CrudKit.

    Models may also come from any other `DeclarativeBase`; the route
    registrars only rely on the mapper, never on this class.
    """
    pass


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Build an async engine for `settings.database_url`.

    Returns:
        AsyncEngine with pool configuration applied for non-SQLite backends.
    """
    settings = settings or default_settings
    url = make_url(settings.database_url)

    kwargs = {"echo": settings.log_level == "DEBUG"}
    if not url.get_backend_name().startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )

    logger.info("Creating database engine for %s", url.render_as_string(hide_password=True))
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory used by every generated handler.

    expire_on_commit=False keeps loaded attributes readable after commit,
    so records can be transformed without another round trip.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Default engine (lazy) ────────────────────────────────────────────────
_engine: Optional[AsyncEngine] = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it from Settings on first call."""
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings()
    return _engine


async def dispose_engine(engine: Optional[AsyncEngine] = None) -> None:
    """
    Close all pooled connections.

    When:  Application shutdown (lifespan handler).
    """
    global _engine
    target = engine or _engine
    if target is None:
        return
    await target.dispose()
    if target is _engine:
        _engine = None
    logger.info("Database engine disposed")
