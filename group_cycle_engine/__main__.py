"""
Group Cycle Engine — Main Orchestrator

Usage:
    python -m group_cycle_engine --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt
    python -m group_cycle_engine --config config.json
    python -m group_cycle_engine --tenant-id <GUID> --client-id <GUID> --delegated
    python -m group_cycle_engine --input snapshot.json          # offline
    python -m group_cycle_engine ... --save-snapshot snapshot.json

Other commands:
    python -m group_cycle_engine history        # recent runs from the cache
    python -m group_cycle_engine permissions    # Graph permissions required

This tool is STRICTLY READ-ONLY. It will NEVER modify the directory.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    CertificateAuth,
    DelegatedAuth,
    EngineConfig,
    OUTPUT_FORMATS,
)
from .safety.guardian import SafetyGuardian, SafetyViolation
from .auth.authenticator import AuthenticationError, Authenticator
from .graph.client import GraphAPIError, GraphClient
from .cache.store import ScanCache
from .collectors import GroupCollector
from .analyzers import ALL_ANALYZERS
from .nesting import (
    CycleDetector,
    CycleReport,
    DetectionResult,
    GroupRecord,
    MembershipGraph,
    build_membership_graph,
)
from .snapshot import SnapshotError, load_snapshot, parse_records, save_snapshot
from .reporting import (
    export_csv,
    export_json,
    export_markdown,
    export_text,
    render_text,
)

logger = logging.getLogger("group_cycle_engine")

DEFAULT_OUTPUT_DIR = Path("./group_cycle_output")


class ScanAbort(Exception):
    """Raised inside the run to stop with a user-facing message."""
    pass


# ---------------------------------------------------------------------------
# Arguments & configuration
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="group_cycle_engine",
        description="Circular group nesting scanner (READ-ONLY)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Other commands")
    subparsers.add_parser("history", help="Show recent runs recorded in the cache")
    subparsers.add_parser("permissions", help="List the read-only Graph permissions needed")

    source = parser.add_argument_group("source")
    source.add_argument(
        "--input", "-i",
        type=Path,
        default=None,
        help="Read groups from a JSON snapshot instead of Microsoft Graph",
    )
    source.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    source.add_argument("--tenant-id", type=str, default=None, help="Tenant ID (GUID)")
    source.add_argument("--client-id", type=str, default=None, help="App registration client ID (GUID)")
    source.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded PFX certificate (default: ./base64.txt)",
    )
    source.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    source.add_argument(
        "--all-groups",
        action="store_true",
        help="Include non-security groups (default: security groups only)",
    )
    source.add_argument(
        "--save-snapshot",
        type=Path,
        default=None,
        help="Write the collected groups to a JSON snapshot for offline re-runs",
    )

    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        help=f"Output directory for reports (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=OUTPUT_FORMATS,
        default=list(OUTPUT_FORMATS),
        help="Output formats to generate",
    )
    parser.add_argument(
        "--time-budget",
        type=float,
        default=None,
        help="Stop cycle detection after this many seconds and report partial results",
    )
    parser.add_argument("--no-cache", action="store_true", help="Disable the snapshot cache")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Build engine configuration from config file and CLI overrides."""
    if args.config:
        if not args.config.exists():
            raise ScanAbort(f"Config file not found: {args.config}")
        config = EngineConfig.from_file(args.config)
    else:
        config = EngineConfig()

    if args.delegated:
        config.auth.mode = "delegated"

    if args.tenant_id or args.client_id:
        if not (args.tenant_id and args.client_id):
            raise ScanAbort("--tenant-id and --client-id must be given together.")
        if config.auth.mode == "delegated":
            config.auth.delegated = DelegatedAuth(
                tenant_id=args.tenant_id,
                client_id=args.client_id,
            )
        else:
            config.auth.certificate = CertificateAuth(
                tenant_id=args.tenant_id,
                client_id=args.client_id,
                certificate_path=str(args.cert_path or "./base64.txt"),
            )
    elif args.cert_path and config.auth.certificate:
        config.auth.certificate.certificate_path = str(args.cert_path)

    if args.all_groups:
        config.collection.security_groups_only = False
    if args.time_budget is not None:
        config.detection.time_budget_seconds = args.time_budget
    if args.no_cache:
        config.cache_enabled = False
    if args.verbose:
        config.verbose = True

    config.output.base_dir = str(args.output_dir)
    config.output.formats = list(args.formats)
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

async def collect_from_tenant(
    config: EngineConfig,
    guardian: SafetyGuardian,
    cache: Optional[ScanCache],
    scan_id: str,
) -> list[GroupRecord]:
    """Authenticate and collect groups with their direct members."""
    has_credentials = (
        config.auth.delegated if config.auth.mode == "delegated" else config.auth.certificate
    )
    if not has_credentials:
        raise ScanAbort(
            "No tenant credentials. Use --tenant-id/--client-id, --config, "
            "or --input <snapshot.json> for an offline run."
        )

    print("\n🔐 Authenticating...")
    token = await Authenticator(config.auth).acquire_token()
    print("✅ Authentication successful.")

    async with GraphClient(access_token=token, guardian=guardian) as client:
        collector = GroupCollector(
            graph=client,
            config=config.collection,
            cache=cache,
            scan_id=scan_id,
            cache_scope=config.auth.tenant_id,
        )
        result = await collector.execute()
        stats = client.get_stats()

    for w in result.metadata["warnings"][:20]:
        print(f"      ⚠  {w}")
    if len(result.metadata["warnings"]) > 20:
        print(f"      ⚠  ... {len(result.metadata['warnings']) - 20} more warnings (see log)")
    for e in result.metadata["errors"]:
        print(f"      ❌ {e}")

    source = "cache" if result.metadata["from_cache"] else f"{stats['total_requests']} requests"
    groups = result.data.get("groups", [])
    print(f"  ✅ {len(groups)} groups collected ({source}, "
          f"{result.metadata['duration_seconds']}s)")

    if not groups and not result.ok:
        raise ScanAbort("Group collection failed; nothing to analyze.")
    return parse_records(groups)


def run_detection(
    records: list[GroupRecord],
    config: EngineConfig,
) -> tuple[MembershipGraph, DetectionResult, CycleReport]:
    graph = build_membership_graph(records)
    print(f"  ✅ Membership graph: {graph.node_count} groups, {graph.edge_count} nesting edges")

    detection = CycleDetector(
        graph,
        time_budget_seconds=config.detection.time_budget_seconds,
    ).detect()
    report = CycleReport.from_cycles(detection.cycles, graph.display_names)
    print(f"  ✅ {len(detection.cycles)} cycle(s) found in {detection.duration_seconds}s "
          f"({detection.launches} traversals)")
    if detection.truncated:
        print("  ⚠  Time budget exhausted — results are partial")
    return graph, detection, report


def run_analysis(
    records: list[GroupRecord],
    graph: MembershipGraph,
    detection: DetectionResult,
) -> list:
    data = {
        "graph": graph,
        "detection": detection,
        "groups": {r.id: r for r in records},
    }
    all_findings = []
    for cls in ALL_ANALYZERS:
        findings = cls().analyze(data)
        all_findings.extend(findings)
        severity_counts: dict[str, int] = {}
        for f in findings:
            severity_counts[f.severity] = severity_counts.get(f.severity, 0) + 1
        print(f"  ✅ {cls.__name__}: {len(findings)} findings {severity_counts}")
    return all_findings


def generate_reports(
    report: CycleReport,
    detection: DetectionResult,
    all_findings: list,
    output_dir: Path,
    scan_id: str,
    source: str,
    formats: list[str],
    safety_audit: Optional[dict] = None,
) -> list[Path]:
    """Generate all requested report formats."""
    created = []

    if "text" in formats:
        path = export_text(report, output_dir, scan_id)
        created.append(path)
        print(f"  📄 Text:       {path}")

    if "json" in formats:
        path = export_json(
            report, detection, all_findings, output_dir, scan_id, source, safety_audit
        )
        created.append(path)
        print(f"  📄 JSON:       {path}")

    if "csv" in formats:
        path = export_csv(report, all_findings, output_dir, scan_id)
        created.append(path)
        print(f"  📊 CSV:        {path}")

    if "markdown" in formats:
        path = export_markdown(report, detection, all_findings, output_dir, scan_id, source)
        created.append(path)
        print(f"  📝 Markdown:   {path}")

    return created


def _banner(title: str):
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_history(args: argparse.Namespace) -> int:
    cache_dir = args.output_dir / ".cache"
    if not (cache_dir / "scan_cache.db").exists():
        print(f"No run history under {cache_dir}.")
        return 0
    runs = ScanCache(cache_dir).get_run_history(limit=20)
    print(f"\n  {'Run ID':<28s} {'Started (UTC)':<20s} {'Status':<10s} {'Groups':>7s} {'Cycles':>7s}  Source")
    print(f"  {'─'*28} {'─'*20} {'─'*10} {'─'*7} {'─'*7}  {'─'*20}")
    for run in runs:
        started = datetime.fromtimestamp(run["started_at"], timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"  {run['run_id']:<28s} {started:<20s} {run['status']:<10s} "
            f"{run['group_count'] if run['group_count'] is not None else '-':>7} "
            f"{run['cycle_count'] if run['cycle_count'] is not None else '-':>7}  {run['source'] or ''}"
        )
        if run["error"]:
            print(f"  {'':<28s} ↳ {run['error']}")
    print()
    return 0


def cmd_permissions() -> int:
    print("\n  Microsoft Graph application permissions (read-only):\n")
    for name, purpose in Authenticator.list_required_permissions().items():
        print(f"  {name:<24s} {purpose}")
    print()
    return 0


async def run_scan(args: argparse.Namespace) -> int:
    config = build_config(args)
    configure_logging(config.verbose)

    guardian = SafetyGuardian()
    print("=" * 70)
    print(f" Group Cycle Engine v{__version__}")
    print(" Mode: READ-ONLY — No directory modifications will be made")
    print("=" * 70)

    scan_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    output_dir = config.output.scan_dir
    source = f"snapshot:{args.input}" if args.input else f"tenant:{config.auth.tenant_id or 'unknown'}"

    print(f"\n📋 Scan ID: {scan_id}")
    print(f"📂 Output:  {output_dir.resolve()}")
    print(f"🏢 Source:  {source}")

    cache = None
    if config.cache_enabled:
        cache = ScanCache(config.output.cache_dir, ttl_hours=config.cache_ttl_hours)
        cache.clear_expired()
        cache.start_run(scan_id, source)

    try:
        _banner("PHASE 1: GROUP ACQUISITION")
        if args.input:
            records = load_snapshot(args.input)
            print(f"  ✅ {len(records)} groups loaded from {args.input}")
        else:
            records = await collect_from_tenant(config, guardian, cache, scan_id)
            if args.save_snapshot:
                path = save_snapshot(records, args.save_snapshot, tenant_id=config.auth.tenant_id)
                print(f"  💾 Snapshot:   {path}")

        _banner("PHASE 2: CYCLE DETECTION")
        graph, detection, report = run_detection(records, config)

        _banner("PHASE 3: ANALYSIS")
        all_findings = run_analysis(records, graph, detection)

        _banner("PHASE 4: REPORT GENERATION")
        created_files = generate_reports(
            report=report,
            detection=detection,
            all_findings=all_findings,
            output_dir=config.output.reports_dir,
            scan_id=scan_id,
            source=source,
            formats=config.output.formats,
            safety_audit=guardian.get_audit_record(),
        )
    except Exception as e:
        if cache:
            cache.fail_run(scan_id, f"{type(e).__name__}: {e}")
        raise

    if cache:
        cache.complete_run(scan_id, graph.node_count, len(detection.cycles))

    _banner("SCAN COMPLETE")
    print()
    print(render_text(report))
    print(f"  Files: {len(created_files)} reports generated")
    print(f"  Path:  {output_dir.resolve()}")
    print()
    return 0


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point; returns the process exit code."""
    args = parse_args(argv)

    if args.command == "history":
        return cmd_history(args)
    if args.command == "permissions":
        return cmd_permissions()

    try:
        return await run_scan(args)
    except (ScanAbort, SnapshotError, AuthenticationError, GraphAPIError, SafetyViolation) as e:
        print(f"\n❌ {e}")
        return 1


def main():
    """Synchronous entry point for `python -m group_cycle_engine`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
