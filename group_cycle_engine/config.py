"""
Configuration module for the Group Cycle Engine.
Defines all tunable parameters, API endpoints, and operational settings.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "GroupMember.Read.All",
    ])

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None

    @property
    def tenant_id(self) -> str:
        if self.mode == "delegated" and self.delegated:
            return self.delegated.tenant_id
        if self.certificate:
            return self.certificate.tenant_id
        return ""


CERT_PASSWORD_ENV = "GROUP_CYCLE_CERT_PASSWORD"


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
LOGIN_AUTHORITY = "https://login.microsoftonline.com"

# Rate limiting / throttling
MAX_CONCURRENT_REQUESTS = 4       # Parallel requests to Graph
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000   # Safety cap on pagination loops

# Batch
BATCH_SIZE = 20                   # Graph $batch max is 20 requests


# ─── Collection Settings ────────────────────────────────────────────────────

@dataclass
class CollectionConfig:
    """Controls for group snapshot collection."""
    page_size: int = DEFAULT_PAGE_SIZE
    security_groups_only: bool = True     # $filter=securityEnabled eq true
    member_batch_size: int = BATCH_SIZE   # Groups per $batch member request


# ─── Detection Settings ─────────────────────────────────────────────────────

@dataclass
class DetectionConfig:
    """Controls for the cycle detection run."""
    time_budget_seconds: Optional[float] = None  # None = run to completion


# ─── Output Configuration ───────────────────────────────────────────────────

OUTPUT_FORMATS = ["text", "json", "csv", "markdown"]

@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: list(OUTPUT_FORMATS))

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(
                os.getcwd(),
                f"group_cycle_scan_{self.timestamp}"
            )

    @property
    def scan_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def reports_dir(self) -> Path:
        return self.scan_dir / "reports"

    @property
    def cache_dir(self) -> Path:
        return self.scan_dir / ".cache"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for the entire engine."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    cache_enabled: bool = True
    cache_ttl_hours: int = 24     # Cache validity period
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        for section in ("collection", "detection", "output"):
            target = getattr(config, section)
            for k, v in data.get(section, {}).items():
                if hasattr(target, k):
                    setattr(target, k, v)
        config.cache_enabled = data.get("cache_enabled", True)
        config.cache_ttl_hours = data.get("cache_ttl_hours", 24)
        config.verbose = data.get("verbose", False)
        return config


# ─── Required Graph API Permissions (Least Privilege, Read-Only) ─────────

REQUIRED_PERMISSIONS = {
    "Group.Read.All": "Enumerate groups and their display names",
    "GroupMember.Read.All": "Read direct group members for nesting analysis",
    "Directory.Read.All": "Alternative to the two above on locked-down tenants",
}
