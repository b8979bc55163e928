"""
CSV exporter — One row per detected cycle.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..nesting.render import CycleReport, format_chain

CYCLE_FIELDS = ["index", "length", "severity", "finding_id", "chain", "group_ids"]


def export_csv(
    report: CycleReport,
    all_findings: list,
    output_dir: Path,
    scan_id: str,
) -> Path:
    """
    Write the cycle list as CSV.

    Returns:
        Path to the created CSV file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"cycles_{scan_id}.csv"

    findings_by_ids = {
        tuple(f.evidence["group_ids"]): f
        for f in all_findings
        if isinstance(f.evidence, dict) and "group_ids" in f.evidence
    }

    with open(filepath, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=CYCLE_FIELDS)
        writer.writeheader()
        for idx, (ids, chain) in enumerate(zip(report.cycle_ids, report.chains), start=1):
            finding = findings_by_ids.get(tuple(ids))
            writer.writerow({
                "index": idx,
                "length": len(ids),
                "severity": finding.severity if finding else "",
                "finding_id": finding.id if finding else "",
                "chain": format_chain(chain),
                "group_ids": ";".join(ids),
            })

    return filepath
