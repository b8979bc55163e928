"""
Plain-text cycle report — one loop per line, e.g. "A -> B -> C -> A".
"""

from __future__ import annotations

from pathlib import Path

from ..nesting.render import CycleReport

NO_CYCLES_MESSAGE = "No circular group nesting found."


def render_text(report: CycleReport) -> str:
    if not report.has_cycles:
        return NO_CYCLES_MESSAGE + "\n"
    lines = [f"Found {len(report)} circular group nesting chain(s):", ""]
    for idx, line in enumerate(report.lines(), start=1):
        lines.append(f"  {idx:>3}. {line}")
    return "\n".join(lines) + "\n"


def export_text(report: CycleReport, output_dir: Path, scan_id: str) -> Path:
    """Write the text report and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"cycles_{scan_id}.txt"
    filepath.write_text(render_text(report), encoding="utf-8")
    return filepath
