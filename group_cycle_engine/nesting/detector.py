"""
Circular group nesting detection.

Repeated depth-first search over the membership graph. One DFS launch is
started from every group not yet visited by an earlier launch, in graph
order. Within a launch:

  - reaching a group already on the current path closes a cycle; the cycle
    is the path from that group's position to the end, and the launch stops
    right there
  - reaching a group visited by an earlier launch is a dead end
  - otherwise the group is pushed, its members explored in order, and it is
    popped again once they are exhausted

When a launch ends, every group it touched joins the global visited set,
including the groups of a launch that stopped early on a cycle. So at most
one cycle is reported per launch, and a group sitting on two loops may only
have one of them reported. Coverage is "at least one cycle per region
reachable before the first hit", not every elementary cycle in the graph.

The traversal keeps an explicit stack of (group, member iterator) frames
instead of recursing, so membership chains of any depth are safe.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .model import Cycle, MembershipGraph

logger = logging.getLogger("group_cycle_engine.nesting.detector")

_EXHAUSTED = object()


@dataclass
class TraversalState:
    """
    Visitation state of one detection run.

    global_visited only ever grows. on_stack and path describe the current
    launch's DFS path and always hold the same groups.
    """
    global_visited: set[str] = field(default_factory=set)
    on_stack: set[str] = field(default_factory=set)
    path: list[str] = field(default_factory=list)

    def reset_path(self):
        self.on_stack.clear()
        self.path.clear()

    def push(self, node_id: str):
        self.on_stack.add(node_id)
        self.path.append(node_id)

    def pop(self) -> str:
        node_id = self.path.pop()
        self.on_stack.discard(node_id)
        return node_id

    def cycle_from(self, node_id: str) -> Cycle:
        """Cycle closed by revisiting node_id, which must be on the path."""
        return Cycle(tuple(self.path[self.path.index(node_id):]))


@dataclass
class DetectionResult:
    """Outcome of a detection run."""
    cycles: list[Cycle] = field(default_factory=list)
    node_count: int = 0
    edge_count: int = 0
    launches: int = 0
    visited_count: int = 0
    truncated: bool = False           # Time budget hit before all launches ran
    duration_seconds: float = 0.0

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def to_dict(self) -> dict:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "launches": self.launches,
            "visited_count": self.visited_count,
            "cycle_count": len(self.cycles),
            "truncated": self.truncated,
            "duration_seconds": self.duration_seconds,
        }


class CycleDetector:
    """
    Runs cycle detection over one MembershipGraph.

    Each call to detect() starts from a fresh TraversalState, so a detector
    can be run repeatedly and always yields the same cycles in the same order
    for the same graph.

    Usage:
        detector = CycleDetector(graph)
        result = detector.detect()
        for cycle in result.cycles:
            ...
    """

    def __init__(self, graph: MembershipGraph, time_budget_seconds: Optional[float] = None):
        self.graph = graph
        self.time_budget_seconds = time_budget_seconds
        self.state = TraversalState()

    def detect(self) -> DetectionResult:
        """Launch a DFS from every unvisited group and collect the cycles."""
        self.state = TraversalState()
        result = DetectionResult(
            node_count=self.graph.node_count,
            edge_count=self.graph.edge_count,
        )
        started = time.perf_counter()
        deadline = None
        if self.time_budget_seconds is not None:
            deadline = started + self.time_budget_seconds

        for node_id in self.graph.nodes():
            if node_id in self.state.global_visited:
                continue
            if deadline is not None and time.perf_counter() > deadline:
                result.truncated = True
                logger.warning(
                    f"Time budget of {self.time_budget_seconds}s exhausted after "
                    f"{result.launches} launches; returning partial results"
                )
                break

            result.launches += 1
            cycle = self._launch(node_id)
            if cycle is not None:
                logger.debug(f"Cycle of {len(cycle)} group(s) found from {node_id}")
                result.cycles.append(cycle)

        result.visited_count = len(self.state.global_visited)
        result.duration_seconds = round(time.perf_counter() - started, 3)
        logger.info(
            f"Cycle detection complete — {len(result.cycles)} cycle(s), "
            f"{result.launches} launches over {result.node_count} groups "
            f"in {result.duration_seconds}s"
        )
        return result

    def _launch(self, start: str) -> Optional[Cycle]:
        """One DFS launch from start. Returns the first cycle hit, if any."""
        state = self.state
        state.reset_path()
        touched: set[str] = {start}
        frames: list[tuple[str, Iterator[str]]] = []
        cycle: Optional[Cycle] = None

        state.push(start)
        frames.append((start, iter(self.graph.neighbors(start))))

        while frames:
            _, members = frames[-1]
            member_id = next(members, _EXHAUSTED)

            if member_id is _EXHAUSTED:
                frames.pop()
                state.pop()
                continue

            if member_id in state.on_stack:
                cycle = state.cycle_from(member_id)
                break

            # Already finished, by an earlier launch or earlier in this one
            if member_id in state.global_visited or member_id in touched:
                continue

            touched.add(member_id)
            state.push(member_id)
            frames.append((member_id, iter(self.graph.neighbors(member_id))))

        state.global_visited.update(touched)
        return cycle


def detect_cycles(
    graph: MembershipGraph,
    time_budget_seconds: Optional[float] = None,
) -> list[Cycle]:
    """Convenience wrapper: the cycles of a single detection run."""
    return CycleDetector(graph, time_budget_seconds=time_budget_seconds).detect().cycles
