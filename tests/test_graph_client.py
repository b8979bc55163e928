"""Tests for the Graph client against a mocked transport."""
from __future__ import annotations

import json

import httpx
import pytest

from group_cycle_engine.graph.client import GraphAPIError, GraphClient
from group_cycle_engine.safety.guardian import SafetyGuardian

GRAPH = "https://graph.microsoft.com/v1.0"


def _client(handler) -> GraphClient:
    return GraphClient(
        access_token="token",
        guardian=SafetyGuardian(),
        transport=httpx.MockTransport(handler),
        initial_backoff=0.0,
    )


@pytest.mark.asyncio
async def test_pagination_follows_next_link():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        assert request.headers["Authorization"] == "Bearer token"
        if "skiptoken" in str(request.url):
            return httpx.Response(200, json={"value": [{"id": "g3"}]})
        return httpx.Response(200, json={
            "value": [{"id": "g1"}, {"id": "g2"}],
            "@odata.nextLink": f"{GRAPH}/groups?$skiptoken=abc",
        })

    async with _client(handler) as client:
        items = await client.get_all_pages("groups", params={"$select": "id"})

    assert [i["id"] for i in items] == ["g1", "g2", "g3"]
    assert len(seen) == 2
    assert "%24top=999" in seen[0] or "$top=999" in seen[0]


@pytest.mark.asyncio
async def test_forbidden_page_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"error": {"message": "Insufficient privileges"}})

    async with _client(handler) as client:
        with pytest.raises(GraphAPIError) as exc:
            await client.get_all_pages("groups")
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_throttle_then_success():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429, headers={"Retry-After": "0"})
        return httpx.Response(200, json={"value": [{"id": "g1"}]})

    async with _client(handler) as client:
        data = await client.get("groups")
        stats = client.get_stats()

    assert data["value"] == [{"id": "g1"}]
    assert stats["throttle_events"] == 1
    assert stats["total_requests"] == 2


@pytest.mark.asyncio
async def test_server_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "boom"}})

    async with _client(handler) as client:
        with pytest.raises(GraphAPIError, match="boom"):
            await client.get("groups")


@pytest.mark.asyncio
async def test_not_found_is_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with _client(handler) as client:
        data = await client.get("groups/missing")
    assert data["value"] == []
    assert data["_not_found"]


@pytest.mark.asyncio
async def test_batch_results_follow_request_order():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert str(request.url).endswith("/$batch")
        body = json.loads(request.content)
        responses = []
        for sub in reversed(body["requests"]):
            if "bad" in sub["url"]:
                responses.append({
                    "id": sub["id"], "status": 404,
                    "body": {"error": {"message": "Group not found"}},
                })
            else:
                responses.append({
                    "id": sub["id"], "status": 200,
                    "body": {"value": [{"id": sub["url"]}]},
                })
        return httpx.Response(200, json={"responses": responses})

    async with _client(handler) as client:
        results = await client.batch_get(["groups/a/members", "/groups/bad/members", "groups/c/members"])

    assert results[0]["value"] == [{"id": "/groups/a/members"}]
    assert results[1]["_error"] and results[1]["status"] == 404
    assert results[2]["value"] == [{"id": "/groups/c/members"}]


@pytest.mark.asyncio
async def test_requires_context_manager():
    client = _client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(RuntimeError):
        await client.get("groups")
