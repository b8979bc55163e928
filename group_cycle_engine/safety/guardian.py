"""
Safety Guardian — Enforces strict read-only operation.
Every outbound Graph request is checked before it is sent; anything that
could modify the directory is refused and recorded.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("group_cycle_engine.safety")

READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# Graph uses POST for $batch; a batch is only safe if every sub-request reads.
SAFE_POST_ENDPOINTS = [
    re.compile(r"/\$batch$"),
]

# Membership-changing URL shapes, blocked on any method
BLOCKED_URL_PATTERNS = [
    re.compile(r"/members/\$ref$", re.IGNORECASE),
    re.compile(r"/members/[^/]+/\$ref$", re.IGNORECASE),
    re.compile(r"/owners/\$ref$", re.IGNORECASE),
    re.compile(r"/addMembers?$", re.IGNORECASE),
    re.compile(r"/removeMembers?$", re.IGNORECASE),
]


class SafetyViolation(Exception):
    """Raised when a write operation is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound HTTP request to ensure read-only operation.
    Keeps a count of checks and a record of refused requests for the report.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate that a request is read-only.
        Returns True if safe, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()

        if method_upper in READ_METHODS:
            return True

        if method_upper == "POST" and any(p.search(url) for p in SAFE_POST_ENDPOINTS):
            for sub in (body or {}).get("requests", []):
                sub_method = str(sub.get("method", "GET")).upper()
                if sub_method not in READ_METHODS:
                    self._refuse(sub_method, sub.get("url", ""), "Write sub-request inside $batch")
            return True

        for pattern in BLOCKED_URL_PATTERNS:
            if pattern.search(url):
                self._refuse(method_upper, url, "Blocked membership-write URL")

        self._refuse(method_upper, url, "Write HTTP method blocked")
        return False

    def _refuse(self, method: str, url: str, reason: str):
        """Record a safety violation and raise."""
        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        })
        logger.critical(f"SAFETY VIOLATION: {reason} — {method} {url}")
        raise SafetyViolation(f"SAFETY VIOLATION: {reason}: {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the safety audit record for the JSON report."""
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": self.violations,
            "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
        }
