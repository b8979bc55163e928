"""
Base analyzer class — Abstract interface for analysis modules.
Defines the Finding data model and analyzer contract.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("group_cycle_engine.analyzers")

SEVERITY_ORDER = ["critical", "high", "medium", "low", "informational"]


@dataclass
class Finding:
    """A single finding produced by analysis."""
    id: str                              # Unique finding ID (e.g., "NST-001")
    domain: str                          # Analyzer domain
    control_name: str                    # Human-readable control name
    detection_logic: str                 # How this was detected
    evidence: Any = None                 # Extracted evidence data
    risk_explanation: str = ""           # Why this matters
    blast_radius: str = ""               # Impact scope estimate
    remediation: str = ""                # Suggested manual fix
    severity: str = "medium"             # critical, high, medium, low, informational

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "domain": self.domain,
            "control_name": self.control_name,
            "detection_logic": self.detection_logic,
            "evidence": self.evidence,
            "risk_explanation": self.risk_explanation,
            "blast_radius": self.blast_radius,
            "remediation": self.remediation,
            "severity": self.severity,
        }


class BaseAnalyzer(ABC):
    """
    Abstract base class for all analyzers.
    Analyzers receive the run's data and produce findings.
    """

    name: str = "base"
    domain: str = "general"
    prefix: str = "GEN"
    description: str = "Base analyzer"

    def __init__(self):
        self.findings: list[Finding] = []
        self._finding_counter = 0

    def analyze(self, data: dict[str, Any]) -> list[Finding]:
        """
        Execute analysis and return findings.
        Subclasses implement _analyze() with specific logic.
        """
        self.findings = []
        self._finding_counter = 0

        try:
            self._analyze(data)
        except Exception as e:
            logger.exception(f"[{self.name}] Analysis failed: {e}")
            self.findings.append(Finding(
                id=f"{self.prefix}-ERR",
                domain=self.domain,
                control_name=f"{self.name} Analysis Error",
                detection_logic="Analyzer encountered an exception",
                evidence={"error": str(e)},
                severity="informational",
                risk_explanation=f"Analysis module {self.name} failed to complete",
            ))

        logger.info(f"[{self.name}] Analysis complete — {len(self.findings)} findings")
        return self.findings

    @abstractmethod
    def _analyze(self, data: dict[str, Any]):
        """Implement analysis logic. Add findings via self.add_finding()."""
        raise NotImplementedError

    def add_finding(self, **kwargs) -> Finding:
        """Create and register a new finding."""
        self._finding_counter += 1
        finding_id = kwargs.pop("id", f"{self.prefix}-{self._finding_counter:03d}")

        finding = Finding(
            id=finding_id,
            domain=self.domain,
            **kwargs,
        )
        self.findings.append(finding)
        return finding
