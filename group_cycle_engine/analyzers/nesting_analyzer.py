"""
Circular Nesting Analyzer
Turns detected membership cycles into findings.
"""

from __future__ import annotations

import logging
from typing import Any

from ..nesting import Cycle, DetectionResult, GroupRecord, MembershipGraph
from ..nesting.render import format_chain, render_cycle
from .base import BaseAnalyzer

logger = logging.getLogger("group_cycle_engine.analyzers.nesting")


class NestingAnalyzer(BaseAnalyzer):
    name = "nesting_analyzer"
    domain = "group_nesting"
    prefix = "NST"
    description = "Circular group membership"

    def _analyze(self, data: dict[str, Any]):
        graph: MembershipGraph = data["graph"]
        detection: DetectionResult = data["detection"]
        groups: dict[str, GroupRecord] = data.get("groups", {})

        for cycle in detection.cycles:
            self._cycle_finding(cycle, graph, groups)

        if detection.truncated:
            self.add_finding(
                control_name="Cycle detection incomplete",
                detection_logic="Time budget exhausted before every group was traversed",
                evidence=detection.to_dict(),
                severity="informational",
                risk_explanation=(
                    f"Only {detection.visited_count} of {detection.node_count} groups were "
                    "traversed; further circular nesting may exist."
                ),
                remediation="Re-run with a larger --time-budget or none at all.",
            )

    def _cycle_finding(
        self,
        cycle: Cycle,
        graph: MembershipGraph,
        groups: dict[str, GroupRecord],
    ):
        chain = render_cycle(cycle, graph.display_names)
        role_assignable = [
            gid for gid in cycle
            if groups.get(gid) is not None and groups[gid].is_assignable_to_role
        ]
        synced = [
            gid for gid in cycle
            if groups.get(gid) is not None and groups[gid].on_premises_sync_enabled
        ]

        if role_assignable:
            severity = "high"
        elif cycle.is_self_loop:
            severity = "low"
        else:
            severity = "medium"

        if cycle.is_self_loop:
            control_name = f"Group is a member of itself: {chain[0]}"
            risk = (
                "A group listing itself as a member has no effect on access but "
                "breaks tools that expand membership recursively."
            )
        else:
            control_name = f"Circular nesting across {len(cycle)} groups"
            risk = (
                "Every member of any group in the loop is effectively a member of all "
                "of them. Recursive membership expansion may never terminate, and "
                "access granted to one group silently reaches the others."
            )
        if role_assignable:
            risk += " The loop includes role-assignable groups, so directory roles leak around it."

        self.add_finding(
            control_name=control_name,
            detection_logic="Depth-first traversal of the group-in-group membership graph",
            evidence={
                "chain": format_chain(chain),
                "group_ids": list(cycle),
                "role_assignable_group_ids": role_assignable,
                "on_premises_synced_group_ids": synced,
            },
            risk_explanation=risk,
            blast_radius=f"{len(cycle)} group(s) share effective membership",
            remediation=(
                "Remove one nesting edge in the chain (for synced groups, in on-premises AD)."
            ),
            severity=severity,
        )
