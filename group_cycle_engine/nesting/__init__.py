"""Group nesting graph and circular membership detection."""

from .model import Cycle, GroupNode, GroupRecord, MembershipGraph
from .builder import build_membership_graph
from .detector import CycleDetector, DetectionResult, TraversalState, detect_cycles
from .render import CycleReport, format_chain, render_cycle

__all__ = [
    "Cycle",
    "GroupNode",
    "GroupRecord",
    "MembershipGraph",
    "build_membership_graph",
    "CycleDetector",
    "DetectionResult",
    "TraversalState",
    "detect_cycles",
    "CycleReport",
    "format_chain",
    "render_cycle",
]
