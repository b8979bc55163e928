"""Tests for the group collector using an in-memory Graph stand-in."""
from __future__ import annotations

import pytest

from group_cycle_engine.cache.store import ScanCache
from group_cycle_engine.collectors import GroupCollector
from group_cycle_engine.config import CollectionConfig
from group_cycle_engine.graph.client import GraphAPIError


class FakeGraph:
    """Answers the two calls the collector makes."""

    def __init__(self, groups, members, pages=None, forbidden=False):
        self.groups = groups
        self.members = members
        self.pages = pages or {}
        self.forbidden = forbidden
        self.list_params = None
        self.batches = []

    async def get_all_pages(self, endpoint, params=None):
        if self.forbidden:
            raise GraphAPIError(403, "Insufficient privileges", endpoint)
        if endpoint == "groups":
            self.list_params = params
            return self.groups
        return self.pages[endpoint]

    async def batch_get(self, endpoints):
        self.batches.append(endpoints)
        bodies = []
        for ep in endpoints:
            gid = ep.split("/")[1]
            bodies.append(self.members[gid])
        return bodies


GROUPS = [
    {"id": "A", "displayName": "Alpha", "securityEnabled": True, "isAssignableToRole": True},
    {"id": "B", "displayName": "Beta", "securityEnabled": True},
    {"displayName": "no id"},
]


class TestGroupCollector:
    @pytest.mark.asyncio
    async def test_groups_with_members(self) -> None:
        graph = FakeGraph(GROUPS, {
            "A": {"value": [{"id": "B"}, {"id": "u1"}]},
            "B": {"value": [{"id": "A"}]},
        })
        result = await GroupCollector(graph, CollectionConfig()).execute()

        assert result.ok
        groups = result.data["groups"]
        assert [g["id"] for g in groups] == ["A", "B"]
        assert groups[0]["members"] == ["B", "u1"]
        assert groups[0]["isAssignableToRole"] is True
        assert groups[1]["members"] == ["A"]
        assert graph.list_params["$filter"] == "securityEnabled eq true"

    @pytest.mark.asyncio
    async def test_all_groups_drops_filter(self) -> None:
        graph = FakeGraph(GROUPS, {"A": {"value": []}, "B": {"value": []}})
        config = CollectionConfig(security_groups_only=False)
        await GroupCollector(graph, config).execute()
        assert "$filter" not in graph.list_params

    @pytest.mark.asyncio
    async def test_member_paging_is_followed(self) -> None:
        next_link = "https://graph.microsoft.com/v1.0/groups/A/members?$skiptoken=x"
        graph = FakeGraph(
            GROUPS,
            {
                "A": {"value": [{"id": "u1"}], "@odata.nextLink": next_link},
                "B": {"value": []},
            },
            pages={next_link: [{"id": "B"}]},
        )
        result = await GroupCollector(graph, CollectionConfig()).execute()
        assert result.data["groups"][0]["members"] == ["u1", "B"]

    @pytest.mark.asyncio
    async def test_failed_member_lookup_is_empty_with_warning(self) -> None:
        graph = FakeGraph(GROUPS, {
            "A": {"_error": True, "status": 404, "_error_message": "Group not found"},
            "B": {"value": [{"id": "A"}]},
        })
        result = await GroupCollector(graph, CollectionConfig()).execute()
        assert result.ok
        assert result.data["groups"][0]["members"] == []
        assert any("Members of group A" in w for w in result.metadata["warnings"])

    @pytest.mark.asyncio
    async def test_batches_respect_chunk_size(self) -> None:
        groups = [{"id": f"g{i}"} for i in range(5)]
        graph = FakeGraph(groups, {f"g{i}": {"value": []} for i in range(5)})
        await GroupCollector(graph, CollectionConfig(member_batch_size=2)).execute()
        assert sorted(len(b) for b in graph.batches) == [1, 2, 2]

    @pytest.mark.asyncio
    async def test_forbidden_listing_is_a_warning(self) -> None:
        graph = FakeGraph([], {}, forbidden=True)
        result = await GroupCollector(graph, CollectionConfig()).execute()
        assert result.data["groups"] == []
        assert result.metadata["warnings"]

    @pytest.mark.asyncio
    async def test_cached_result_is_reused(self, tmp_path) -> None:
        cache = ScanCache(tmp_path)
        graph = FakeGraph(GROUPS, {"A": {"value": []}, "B": {"value": []}})
        first = await GroupCollector(graph, CollectionConfig(), cache, "run1", "t1").execute()
        assert not first.metadata["from_cache"]

        second = await GroupCollector(FakeGraph([], {}), CollectionConfig(), cache, "run2", "t1").execute()
        assert second.metadata["from_cache"]
        assert [g["id"] for g in second.data["groups"]] == ["A", "B"]

    def test_cache_key_tracks_group_filter(self) -> None:
        graph = FakeGraph([], {})
        security = GroupCollector(graph, CollectionConfig(), cache_scope="t1")
        everything = GroupCollector(graph, CollectionConfig(security_groups_only=False), cache_scope="t1")
        assert security.cache_key == "collector:groups:t1:security"
        assert everything.cache_key == "collector:groups:t1:all"

    @pytest.mark.asyncio
    async def test_all_groups_run_ignores_security_only_cache(self, tmp_path) -> None:
        cache = ScanCache(tmp_path)
        graph = FakeGraph(GROUPS, {"A": {"value": []}, "B": {"value": []}})
        await GroupCollector(graph, CollectionConfig(), cache, "run1", "t1").execute()

        wider = FakeGraph(
            GROUPS + [{"id": "C", "displayName": "Mail list", "securityEnabled": False}],
            {"A": {"value": []}, "B": {"value": []}, "C": {"value": []}},
        )
        config = CollectionConfig(security_groups_only=False)
        result = await GroupCollector(wider, config, cache, "run2", "t1").execute()
        assert not result.metadata["from_cache"]
        assert [g["id"] for g in result.data["groups"]] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_partial_member_data_is_not_cached(self, tmp_path) -> None:
        cache = ScanCache(tmp_path)
        graph = FakeGraph(GROUPS, {
            "A": {"_error": True, "status": 503, "_error_message": "Service unavailable"},
            "B": {"value": [{"id": "A"}]},
        })
        collector = GroupCollector(graph, CollectionConfig(), cache, "run1", "t1")
        result = await collector.execute()

        assert result.metadata["partial"]
        assert cache.get(collector.cache_key) is None
