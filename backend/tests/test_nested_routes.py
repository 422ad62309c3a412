"""
CrudKit — Nested Route Tests
==============================

What:  Tests for the "children of one parent" list endpoints.

What we test:
    ✅ One GET route per reference field, at {prefix}/{ref lowercased}/{ref_id}/{collection}
    ✅ The path's parent id overrides a conflicting query-string filter
    ✅ No nested routes when GET is not allowed for the resource
    ✅ Two references to the same resource rejected at registration
    ✅ Listing, pagination and 400 on a malformed parent id against a real database
"""

import uuid

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute
from httpx import ASGITransport, AsyncClient

from crudkit.exceptions import ConfigurationError
from crudkit.plugin import register_crud_api
from crudkit.resources import ResourceDefinition
from crudkit.routes.nested import setup_nested_routes
from tests.conftest import FakeSessionFactory
from tests.models import Message, Post, User


def routes_of(router) -> list:
    return [(route.path, sorted(route.methods)) for route in router.routes if isinstance(route, APIRoute)]


class TestRegistration:

    def setup_method(self):
        self.posts = ResourceDefinition.from_model(Post)

    def test_one_route_per_reference_field(self, test_settings):
        router = APIRouter()
        paths = setup_nested_routes(
            router, self.posts, "/api", self.posts.reference_fields, FakeSessionFactory(),
            settings=test_settings,
        )
        assert paths == ["/api/user/{ref_id}/posts", "/api/category/{ref_id}/posts"]
        assert routes_of(router) == [
            ("/api/user/{ref_id}/posts", ["GET"]),
            ("/api/category/{ref_id}/posts", ["GET"]),
        ]

    def test_single_reference(self, test_settings):
        router = APIRouter()
        author_id = self.posts.get_field("author_id")
        setup_nested_routes(
            router, self.posts, "/api", [author_id], FakeSessionFactory(),
            settings=test_settings,
        )
        assert routes_of(router) == [("/api/user/{ref_id}/posts", ["GET"])]

    def test_no_reference_fields(self, test_settings):
        router = APIRouter()
        users = ResourceDefinition.from_model(User)
        assert setup_nested_routes(
            router, users, "/api", users.reference_fields, FakeSessionFactory(),
            settings=test_settings,
        ) == []
        assert router.routes == []

    @pytest.mark.parametrize("methods", [{"posts": []}, {"posts": ["POST", "PUT"]}])
    def test_skipped_without_get(self, test_settings, methods):
        router = APIRouter()
        paths = setup_nested_routes(
            router, self.posts, "/api", self.posts.reference_fields, FakeSessionFactory(),
            methods=methods, settings=test_settings,
        )
        assert paths == []
        assert router.routes == []

    def test_two_references_to_same_resource_rejected(self, test_settings):
        messages = ResourceDefinition.from_model(Message)
        assert [f.ref for f in messages.reference_fields] == ["Member", "Member"]

        with pytest.raises(ConfigurationError) as exc_info:
            setup_nested_routes(
                APIRouter(), messages, "/api", messages.reference_fields, FakeSessionFactory(),
                settings=test_settings,
            )
        assert "sender_id" in exc_info.value.message
        assert "recipient_id" in exc_info.value.message
        assert exc_info.value.context["path"] == "/api/member/{ref_id}/messages"

    def test_plugin_refuses_ambiguous_nesting(self, test_settings):
        with pytest.raises(ConfigurationError):
            register_crud_api(
                FastAPI(), [Message], session_factory=FakeSessionFactory(), settings=test_settings
            )

    def test_ambiguous_nesting_ignored_without_get(self, test_settings):
        messages = ResourceDefinition.from_model(Message)
        assert setup_nested_routes(
            APIRouter(), messages, "/api", messages.reference_fields, FakeSessionFactory(),
            methods={"messages": ["POST"]}, settings=test_settings,
        ) == []


class TestParentConstraint:

    @pytest.mark.asyncio
    async def test_path_id_overrides_query_filter(self, test_settings):
        parent, other = uuid.uuid4(), uuid.uuid4()
        store = FakeSessionFactory(records=[], total=0)
        app = FastAPI()
        register_crud_api(app, [Post], session_factory=store, settings=test_settings)

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(f"/api/user/{parent}/posts", params={"author_id": str(other)})

        assert response.status_code == 200
        assert len(store.statements) == 2
        for statement in store.statements:
            bound = list(statement.compile().params.values())
            assert parent in bound
            assert other not in bound


class TestNestedListing:

    @pytest.mark.asyncio
    async def test_children_of_parent(self, client, seeded):
        ada = seeded["ada"]
        response = await client.get(f"/api/user/{ada.id}/posts")
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 2, "page": 1, "limit": 10, "pages": 1}
        assert {p["author_id"] for p in body["data"]} == {str(ada.id)}

    @pytest.mark.asyncio
    async def test_query_options_apply(self, client, seeded):
        science = seeded["science"]
        response = await client.get(
            f"/api/category/{science.id}/posts",
            params={"limit": 1, "search": "compiler", "populate": "author"},
        )
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert body["pagination"]["pages"] == 2
        assert [p["title"] for p in body["data"]] == ["Compilers"]
        assert body["data"][0]["author"]["name"] == "Grace Hopper"

    @pytest.mark.asyncio
    async def test_malformed_query_value_for_parent_field_ignored(self, client, seeded):
        ada = seeded["ada"]
        response = await client.get(f"/api/user/{ada.id}/posts", params={"author_id": "garbage"})
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert {p["author_id"] for p in body["data"]} == {str(ada.id)}

    @pytest.mark.asyncio
    async def test_conflicting_parent_filter_ignored(self, client, seeded):
        ada, grace = seeded["ada"], seeded["grace"]
        response = await client.get(f"/api/user/{ada.id}/posts", params={"author_id": str(grace.id)})
        assert response.json()["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_unknown_parent_is_empty(self, client, seeded):
        response = await client.get(f"/api/user/{uuid.uuid4()}/posts")
        assert response.status_code == 200
        assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_malformed_parent_id(self, client):
        response = await client.get("/api/user/not-an-id/posts")
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidId"
