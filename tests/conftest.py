"""Shared fixtures for the group cycle engine tests."""
from __future__ import annotations

from typing import Callable

import pytest

from group_cycle_engine.nesting import GroupRecord, MembershipGraph


def records_from_edges(
    nodes: list[str], edges: list[tuple[str, str]]
) -> list[GroupRecord]:
    """One record per node (display name = lower-cased id), members from edges."""
    members: dict[str, list[str]] = {n: [] for n in nodes}
    for src, dst in edges:
        members[src].append(dst)
    return [GroupRecord(id=n, display_name=n.lower(), members=members[n]) for n in nodes]


@pytest.fixture
def make_graph() -> Callable[..., MembershipGraph]:
    """Build a MembershipGraph directly from an edge list, keys in node order."""
    def _make(nodes: list[str], edges: list[tuple[str, str]]) -> MembershipGraph:
        adjacency: dict[str, list[str]] = {n: [] for n in nodes}
        for src, dst in edges:
            adjacency[src].append(dst)
        return MembershipGraph(
            adjacency=adjacency,
            display_names={n: f"Group {n}" for n in nodes},
        )
    return _make


@pytest.fixture
def directory_records() -> list[GroupRecord]:
    """
    A small directory:

        Admins -> Helpdesk -> Tier1 -> Admins     (loop through a role group)
        Finance -> Finance                        (self-membership)
        Sales -> Staff                            (plain nesting)

    plus user and device members that must never become edges.
    """
    return [
        GroupRecord(
            id="g-admins", display_name="Admins",
            members=["u-alice", "g-helpdesk"], is_assignable_to_role=True,
        ),
        GroupRecord(id="g-helpdesk", display_name="Helpdesk", members=["g-tier1", "d-laptop"]),
        GroupRecord(id="g-tier1", display_name="Tier1", members=["u-bob", "g-admins"]),
        GroupRecord(id="g-finance", display_name="Finance", members=["g-finance"]),
        GroupRecord(id="g-sales", display_name="Sales", members=["g-staff", "u-carol"]),
        GroupRecord(id="g-staff", display_name="Staff", members=None),
    ]
