"""
Data model for group nesting analysis.
Groups are referred to purely by identifier; the graph never holds object
references between nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


@dataclass
class GroupRecord:
    """
    A single group as acquired from the directory (or a snapshot file).
    `members` holds raw member identifiers of any object type: groups,
    users, devices, service principals, foreign security principals.
    """
    id: str
    display_name: str = ""
    members: Optional[list[str]] = None
    security_enabled: Optional[bool] = None
    is_assignable_to_role: bool = False
    on_premises_sync_enabled: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupRecord":
        """Build a record from the Graph-style camelCase dict."""
        return cls(
            id=data["id"],
            display_name=data.get("displayName") or "",
            members=data.get("members"),
            security_enabled=data.get("securityEnabled"),
            is_assignable_to_role=bool(data.get("isAssignableToRole", False)),
            on_premises_sync_enabled=data.get("onPremisesSyncEnabled"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "members": self.members,
            "securityEnabled": self.security_enabled,
            "isAssignableToRole": self.is_assignable_to_role,
            "onPremisesSyncEnabled": self.on_premises_sync_enabled,
        }


@dataclass(frozen=True)
class GroupNode:
    """Immutable node identity: opaque id plus a display name for reports."""
    id: str
    display_name: str


@dataclass(frozen=True)
class Cycle:
    """
    A circular membership chain.
    nodes[i] lists nodes[i + 1] as a member, and the last node lists nodes[0].
    """
    nodes: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    @property
    def is_self_loop(self) -> bool:
        return len(self.nodes) == 1


@dataclass
class MembershipGraph:
    """
    Group-in-group adjacency: node id -> ordered ids of direct members that
    are themselves groups in the snapshot.

    Every neighbor is expected to be a key of `adjacency`. A neighbor that is
    not (a malformed graph) reads as a node with no members.
    """
    adjacency: dict[str, list[str]] = field(default_factory=dict)
    display_names: dict[str, str] = field(default_factory=dict)

    def neighbors(self, node_id: str) -> list[str]:
        return self.adjacency.get(node_id, [])

    def nodes(self) -> Iterator[str]:
        return iter(self.adjacency)

    def node(self, node_id: str) -> GroupNode:
        return GroupNode(node_id, self.display_name(node_id))

    def display_name(self, node_id: str) -> str:
        """Display name for reporting; falls back to the id itself."""
        return self.display_names.get(node_id) or node_id

    def has_edge(self, src: str, dst: str) -> bool:
        return dst in self.adjacency.get(src, ())

    @property
    def node_count(self) -> int:
        return len(self.adjacency)

    @property
    def edge_count(self) -> int:
        return sum(len(dsts) for dsts in self.adjacency.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.adjacency

    def __len__(self) -> int:
        return self.node_count

    def __repr__(self) -> str:
        return f"MembershipGraph(nodes={self.node_count}, edges={self.edge_count})"
