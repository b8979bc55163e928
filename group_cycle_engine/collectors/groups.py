"""
Group Nesting Collector
Enumerates groups and the direct members of each group. Member lists are
kept raw (users, devices, service principals, groups alike); the graph
builder decides which members are groups.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import BATCH_SIZE
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("group_cycle_engine.collectors.groups")

GROUP_SELECT = "id,displayName,securityEnabled,isAssignableToRole,onPremisesSyncEnabled"


class GroupCollector(BaseCollector):
    name = "groups"
    description = "Groups and their direct members"

    @property
    def cache_key(self) -> str:
        scope = "security" if self.config.security_groups_only else "all"
        return f"{super().cache_key}:{scope}"

    async def collect(self, result: CollectorResult):
        groups = await self._collect_groups(result)
        members = await self._collect_members([g["id"] for g in groups], result)
        for group in groups:
            group["members"] = members.get(group["id"], [])
        result.add_data("groups", groups)

    # ── Groups ──────────────────────────────────────────────────────────────

    async def _collect_groups(self, result: CollectorResult) -> list[dict[str, Any]]:
        params = {"$select": GROUP_SELECT, "$top": str(self.config.page_size)}
        if self.config.security_groups_only:
            params["$filter"] = "securityEnabled eq true"

        raw = await self.safe_get_all("groups", result, params=params)
        groups = [
            {
                "id": g.get("id"),
                "displayName": g.get("displayName"),
                "securityEnabled": g.get("securityEnabled"),
                "isAssignableToRole": bool(g.get("isAssignableToRole")),
                "onPremisesSyncEnabled": g.get("onPremisesSyncEnabled"),
            }
            for g in raw
            if g.get("id")
        ]
        logger.info(f"[{self.name}] Enumerated {len(groups)} groups")
        return groups

    # ── Members ─────────────────────────────────────────────────────────────

    async def _collect_members(
        self, group_ids: list[str], result: CollectorResult
    ) -> dict[str, list[str]]:
        """Direct member ids per group, fetched through $batch."""
        chunk_size = max(1, min(self.config.member_batch_size, BATCH_SIZE))
        chunks = [group_ids[i:i + chunk_size] for i in range(0, len(group_ids), chunk_size)]

        members: dict[str, list[str]] = {}
        chunk_results = await asyncio.gather(
            *(self._collect_member_chunk(chunk, result) for chunk in chunks)
        )
        for chunk_members in chunk_results:
            members.update(chunk_members)
        return members

    async def _collect_member_chunk(
        self, group_ids: list[str], result: CollectorResult
    ) -> dict[str, list[str]]:
        endpoints = [
            f"groups/{gid}/members?$select=id&$top={self.config.page_size}"
            for gid in group_ids
        ]
        bodies = await self.graph.batch_get(endpoints)
        result.metadata["endpoints_queried"] += len(endpoints)

        members: dict[str, list[str]] = {}
        for gid, body in zip(group_ids, bodies):
            if body.get("_error"):
                result.add_warning(
                    f"Members of group {gid} unavailable "
                    f"({body.get('status')}: {body.get('_error_message')}); treated as empty",
                    partial=True,
                )
                members[gid] = []
                continue

            ids = [m["id"] for m in body.get("value", []) if m.get("id")]
            next_link = body.get("@odata.nextLink")
            if next_link:
                ids.extend(
                    m["id"]
                    for m in await self.safe_get_all(next_link, result)
                    if m.get("id")
                )
            members[gid] = ids
        return members
