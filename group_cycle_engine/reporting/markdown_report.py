"""
Markdown technical report rendered via Jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..nesting import DetectionResult
from ..nesting.render import CycleReport, format_chain
from .text_report import NO_CYCLES_MESSAGE

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "cycle_report.md.j2"

_SEVERITY_ICONS = {
    "critical": "🔴",
    "high":     "🟠",
    "medium":   "🟡",
    "low":      "🟢",
    "informational": "⚪",
}


def _table_chain(names: list[str]) -> str:
    """Chain text safe inside a Markdown table cell."""
    return format_chain(names).replace("|", "\\|")


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["chain"] = _table_chain
    return env


def render_markdown(
    report: CycleReport,
    detection: DetectionResult,
    all_findings: list,
    scan_id: str,
    source: str,
) -> str:
    template = _environment().get_template(TEMPLATE_NAME)
    return template.render(
        scan_id=scan_id,
        source=source,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        stats=detection,
        report=report,
        findings=all_findings,
        severity_icons=_SEVERITY_ICONS,
        no_cycles_message=NO_CYCLES_MESSAGE,
    )


def export_markdown(
    report: CycleReport,
    detection: DetectionResult,
    all_findings: list,
    output_dir: Path,
    scan_id: str,
    source: str,
) -> Path:
    """Generate the Markdown technical report and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"technical_report_{scan_id}.md"
    content = render_markdown(report, detection, all_findings, scan_id, source)
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)
    return filepath
