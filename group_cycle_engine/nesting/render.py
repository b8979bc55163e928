"""
Cycle rendering: ids back to display names, loop closed for reading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .model import Cycle

CHAIN_SEPARATOR = " -> "


def render_cycle(cycle: Cycle | Iterable[str], display_names: Mapping[str, str]) -> list[str]:
    """
    Resolve each id to its display name and repeat the first name at the end.
    Unknown ids (or groups with a blank name) are shown by id.
    """
    names = [display_names.get(node_id) or node_id for node_id in cycle]
    if names:
        names.append(names[0])
    return names


def format_chain(names: Iterable[str]) -> str:
    return CHAIN_SEPARATOR.join(names)


@dataclass
class CycleReport:
    """
    Rendered cycles, in detection order. An empty report is a valid,
    explicit "no circular nesting" result.
    """
    chains: list[list[str]] = field(default_factory=list)
    cycle_ids: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_cycles(cls, cycles: Iterable[Cycle], display_names: Mapping[str, str]) -> "CycleReport":
        report = cls()
        for cycle in cycles:
            report.chains.append(render_cycle(cycle, display_names))
            report.cycle_ids.append(list(cycle))
        return report

    @property
    def has_cycles(self) -> bool:
        return bool(self.chains)

    def lines(self) -> list[str]:
        return [format_chain(chain) for chain in self.chains]

    def __len__(self) -> int:
        return len(self.chains)
