import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from conftest import make_post
from feedcomposer.models import PostKeyword, SourceMember
from feedcomposer.routers import feed
from feedcomposer.stores.content import SqlSourceStore
from feedcomposer.stores.feed_config import SqlMembershipStore

pytestmark = pytest.mark.usefixtures("sources")


@pytest_asyncio.fixture
async def client(pipeline, sessions):
    app = FastAPI()
    app.include_router(feed.router, prefix="/feed")
    app.state.pipeline = pipeline
    app.state.sources = SqlSourceStore(sessions)
    app.state.memberships = SqlMembershipStore(sessions)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def node_ids(body):
    return [edge["node"]["id"] for edge in body["edges"]]


class TestFeedEndpoints:
    async def test_anonymous_feed_connection_shape(self, client, add):
        await add(make_post("p1", score=2.0), make_post("p2", score=1.0))
        response = await client.get("/feed/anonymous", params={"first": 1})
        assert response.status_code == 200
        body = response.json()
        assert node_ids(body) == ["p1"]
        assert body["page_info"]["has_next_page"] is True
        assert body["page_info"]["has_previous_page"] is False

        response = await client.get(
            "/feed/anonymous",
            params={"first": 1, "after": body["page_info"]["end_cursor"]},
        )
        assert node_ids(response.json()) == ["p2"]

    async def test_anonymous_feed_client_filters(self, client, add):
        await add(make_post("a1", source_id="a"), make_post("b1", source_id="b"))
        response = await client.get("/feed/anonymous", params={"exclude_sources": ["a"]})
        assert node_ids(response.json()) == ["b1"]

    async def test_malformed_cursor_is_bad_request(self, client):
        response = await client.get("/feed/anonymous", params={"after": "%%%"})
        assert response.status_code == 400

    async def test_non_positive_first_is_bad_request(self, client):
        response = await client.get("/feed/anonymous", params={"first": 0})
        assert response.status_code == 400

    async def test_bookmarks_without_user_is_forbidden(self, client):
        response = await client.get("/feed/bookmarks")
        assert response.status_code == 403

    async def test_my_feed_requires_user(self, client):
        response = await client.get("/feed/my")
        assert response.status_code == 403

    async def test_custom_feeds_require_premium(self, client, add):
        await add(make_post("p1"))
        response = await client.get(
            "/feed/my", params={"feed_id": "other"}, headers={"X-User-Id": "u1"}
        )
        assert response.status_code == 403

        response = await client.get(
            "/feed/my",
            params={"feed_id": "other"},
            headers={"X-User-Id": "u1", "X-User-Premium": "true"},
        )
        assert response.status_code == 200
        assert node_ids(response.json()) == ["p1"]

    async def test_unknown_source_is_not_found(self, client):
        response = await client.get("/feed/sources/missing")
        assert response.status_code == 404

    async def test_private_source_needs_membership(self, client, add):
        await add(make_post("s1", source_id="secret"))
        response = await client.get("/feed/sources/secret", headers={"X-User-Id": "u1"})
        assert response.status_code == 403

        await add(SourceMember(source_id="secret", user_id="u1", flags={}))
        response = await client.get("/feed/sources/secret", headers={"X-User-Id": "u1"})
        assert response.status_code == 200
        assert node_ids(response.json()) == ["s1"]

    async def test_tag_feed(self, client, add):
        await add(make_post("p1"), make_post("p2"))
        await add(PostKeyword(post_id="p2", keyword="rust"))
        response = await client.get("/feed/tags/rust")
        assert node_ids(response.json()) == ["p2"]

    async def test_fixed_ids_feed(self, client, add):
        await add(make_post("a"), make_post("b"), make_post("c"))
        response = await client.get("/feed/ids", params={"ids": ["c", "a", "b"]})
        assert node_ids(response.json()) == ["c", "a", "b"]

        response = await client.get("/feed/ids")
        assert response.status_code == 200
        assert response.json()["edges"] == []

    async def test_random_feed(self, client, add):
        await add(*(make_post(f"p{i}") for i in range(5)))
        response = await client.get("/feed/random")
        assert response.status_code == 200
        assert len(response.json()["edges"]) == 3
