"""Tests for turning cycles into findings."""
from __future__ import annotations

from group_cycle_engine.analyzers import NestingAnalyzer
from group_cycle_engine.nesting import (
    CycleDetector,
    GroupRecord,
    build_membership_graph,
)


def _analyze(records, time_budget=None):
    graph = build_membership_graph(records)
    detection = CycleDetector(graph, time_budget_seconds=time_budget).detect()
    return NestingAnalyzer().analyze({
        "graph": graph,
        "detection": detection,
        "groups": {r.id: r for r in records},
    })


class TestNestingAnalyzer:
    def test_no_cycles_no_findings(self) -> None:
        records = [GroupRecord(id="A", members=["B"]), GroupRecord(id="B")]
        assert _analyze(records) == []

    def test_role_assignable_loop_is_high(self, directory_records) -> None:
        findings = _analyze(directory_records)
        loop = findings[0]
        assert loop.id == "NST-001"
        assert loop.domain == "group_nesting"
        assert loop.severity == "high"
        assert loop.evidence["chain"] == "Admins -> Helpdesk -> Tier1 -> Admins"
        assert loop.evidence["role_assignable_group_ids"] == ["g-admins"]
        assert "3 group(s)" in loop.blast_radius

    def test_self_membership_is_low(self, directory_records) -> None:
        findings = _analyze(directory_records)
        assert findings[1].severity == "low"
        assert findings[1].control_name == "Group is a member of itself: Finance"

    def test_plain_loop_is_medium(self) -> None:
        records = [
            GroupRecord(id="A", display_name="A", members=["B"], on_premises_sync_enabled=True),
            GroupRecord(id="B", display_name="B", members=["A"]),
        ]
        (finding,) = _analyze(records)
        assert finding.severity == "medium"
        assert finding.evidence["on_premises_synced_group_ids"] == ["A"]

    def test_truncated_run_adds_informational_finding(self) -> None:
        records = [GroupRecord(id="A", members=["A"])]
        (finding,) = _analyze(records, time_budget=-1)
        assert finding.severity == "informational"
        assert finding.control_name == "Cycle detection incomplete"

    def test_bad_input_becomes_error_finding(self) -> None:
        (finding,) = NestingAnalyzer().analyze({})
        assert finding.id == "NST-ERR"
        assert finding.severity == "informational"
