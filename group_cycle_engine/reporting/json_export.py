"""
JSON exporter — Full machine-readable output of a run.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .. import __version__
from ..nesting import DetectionResult
from ..nesting.render import CycleReport, format_chain


def export_json(
    report: CycleReport,
    detection: DetectionResult,
    all_findings: list,
    output_dir: Path,
    scan_id: str,
    source: str,
    safety_audit: Optional[dict] = None,
) -> Path:
    """
    Write run results to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "engine": "Group Cycle Engine",
            "version": __version__,
            "scan_id": scan_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
            "source": source,
        },
        "statistics": detection.to_dict(),
        "cycles": [
            {
                "index": idx,
                "length": len(ids),
                "group_ids": ids,
                "display_names": chain[:-1],
                "chain": format_chain(chain),
            }
            for idx, (ids, chain) in enumerate(zip(report.cycle_ids, report.chains), start=1)
        ],
        "findings": [f.to_dict() for f in all_findings],
    }
    if safety_audit is not None:
        payload["safety_guardian"] = safety_audit

    filepath = output_dir / f"group_cycles_{scan_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
