"""
CrudKit — Test Configuration (conftest.py)
============================================

What:  Shared pytest fixtures for the entire test suite.
How:   Integration tests run against a throwaway SQLite file database
       (aiosqlite) so the concurrent list + count sessions each get their
       own connection. Unit tests use `FakeSessionFactory`, a mock store
       that records executed statements.

Fixtures:
    engine            Async engine over tmp_path/test.db with all tables created
    session_factory   async_sessionmaker bound to `engine`
    test_settings     Settings with quiet logging
    app               FastAPI app exposing User, Category and Post under /api
    client            httpx AsyncClient talking to `app` over ASGITransport
    seeded            Two users, one category and three posts
"""

import os
from typing import Any, List
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("CRUDKIT_DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("CRUDKIT_LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from crudkit.config import Settings  # noqa: E402
from crudkit.database import Base, create_session_factory  # noqa: E402
from crudkit.plugin import register_crud_api  # noqa: E402
from tests.models import Category, Post, User  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Mock store
# ══════════════════════════════════════════════════════════════════════════

class FakeSessionFactory:
    """
    Stand-in for `async_sessionmaker`.

    Every session answers COUNT statements with `total` and any other
    SELECT with `records`. Executed statements are kept in `statements`.
    """

    def __init__(self, records: List[Any] = (), total: int = 0):
        self.records = list(records)
        self.total = total
        self.statements: List[Any] = []
        self.session = MagicMock()
        self.session.execute = AsyncMock(side_effect=self._execute)

    async def _execute(self, statement):
        self.statements.append(statement)
        result = MagicMock()
        if "count(" in str(statement).lower():
            result.scalar_one.return_value = self.total
        else:
            result.scalars.return_value.all.return_value = self.records
            result.scalar_one_or_none.return_value = self.records[0] if self.records else None
        return result

    @property
    def data_statements(self) -> List[Any]:
        return [s for s in self.statements if "count(" not in str(s).lower()]

    def __call__(self):
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, *exc_info):
        return False


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    return Settings(database_url="sqlite+aiosqlite:///./test.db", log_level="WARNING")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def app(session_factory, test_settings) -> FastAPI:
    app = FastAPI()
    register_crud_api(
        app,
        [User, Category, Post],
        session_factory=session_factory,
        settings=test_settings,
    )
    return app


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX client for endpoint tests.

    raise_app_exceptions=False: a 500 answered by the catch-all handler is
    returned as a response instead of being re-raised into the test.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Two users, one category, three posts (two by Ada, one by Grace)."""
    ada = User(name="Ada Lovelace", email="ada@example.com", age=36)
    grace = User(name="Grace Hopper", email="grace@example.com", age=85)
    science = Category(name="science")
    async with session_factory() as session:
        async with session.begin():
            session.add_all([ada, grace, science])
            await session.flush()
            posts = [
                Post(title="Notes on the engine", content="test content", views=10,
                     author_id=ada.id, category_id=science.id),
                Post(title="A test of loops", content="bernoulli", views=30,
                     author_id=ada.id),
                Post(title="Compilers", content="first compiler", views=20,
                     author_id=grace.id, category_id=science.id),
            ]
            session.add_all(posts)
            await session.flush()
    return {"ada": ada, "grace": grace, "science": science, "posts": posts}
