"""
Membership graph builder.

Turns a flat list of group records into group-in-group adjacency. Only
members that are themselves groups in the snapshot become edges; users,
devices and anything outside the snapshot are dropped.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .model import GroupRecord, MembershipGraph

logger = logging.getLogger("group_cycle_engine.nesting.builder")


def build_membership_graph(records: Iterable[GroupRecord]) -> MembershipGraph:
    """
    Build a MembershipGraph from group records.

    Duplicate ids are not merged: the last record for an id wins in both
    the display-name lookup and the adjacency map. A record with no member
    list gets an empty adjacency entry.
    """
    records = list(records)

    display_names: dict[str, str] = {}
    for record in records:
        display_names[record.id] = record.display_name

    adjacency: dict[str, list[str]] = {}
    dropped = 0
    for record in records:
        group_members: list[str] = []
        for member_id in record.members or ():
            if isinstance(member_id, str) and member_id in display_names:
                group_members.append(member_id)
            else:
                dropped += 1
        adjacency[record.id] = group_members

    if len(display_names) != len(records):
        logger.warning(
            f"{len(records) - len(display_names)} duplicate group id(s) in snapshot; "
            f"last record wins"
        )

    graph = MembershipGraph(adjacency=adjacency, display_names=display_names)
    logger.info(
        f"Built membership graph: {graph.node_count} groups, "
        f"{graph.edge_count} nesting edges ({dropped} non-group members ignored)"
    )
    return graph
