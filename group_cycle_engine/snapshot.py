"""
Offline group snapshots.

A snapshot is a JSON file holding group records, either as a bare list or
under a top-level "groups" key:

    {"groups": [{"id": "...", "displayName": "...", "members": ["..."]}]}

Snapshots written by --save-snapshot can be fed back with --input.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .nesting.model import GroupRecord

logger = logging.getLogger("group_cycle_engine.snapshot")


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be read or has the wrong shape."""
    pass


def parse_records(raw_groups: list[Any]) -> list[GroupRecord]:
    """Convert raw dicts into GroupRecords, skipping entries without an id."""
    records = []
    skipped = 0
    for idx, raw in enumerate(raw_groups):
        if not isinstance(raw, dict) or not raw.get("id"):
            skipped += 1
            logger.warning(f"Skipping snapshot entry {idx}: missing group id")
            continue
        members = raw.get("members")
        if members is not None and not isinstance(members, list):
            logger.warning(
                f"Group {raw['id']} has a non-list members field; treating as empty"
            )
            raw = {**raw, "members": None}
        elif members is not None:
            raw = {**raw, "members": _member_ids(raw["id"], members)}
        records.append(GroupRecord.from_dict(raw))
    if skipped:
        logger.warning(f"Skipped {skipped} snapshot entries without an id")
    return records


def _member_ids(group_id: str, members: list[Any]) -> list[str]:
    """
    Member ids as plain strings. Graph-shaped member objects ({"id": ...})
    are unwrapped; anything else is dropped.
    """
    ids = []
    dropped = 0
    for member in members:
        if isinstance(member, dict):
            member = member.get("id")
        if isinstance(member, str) and member:
            ids.append(member)
        else:
            dropped += 1
    if dropped:
        logger.warning(f"Group {group_id}: ignored {dropped} member entries without a string id")
    return ids


def load_snapshot(path: str | Path) -> list[GroupRecord]:
    """Read group records from a snapshot file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError as e:
        raise SnapshotError(f"Snapshot file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Snapshot {path} is not valid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise SnapshotError(f"Snapshot {path} is not UTF-8 text: {e}") from e
    except OSError as e:
        raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("groups")
    if not isinstance(data, list):
        raise SnapshotError(
            f"Snapshot {path} must be a list of groups or an object with a 'groups' list"
        )

    records = parse_records(data)
    logger.info(f"Loaded {len(records)} groups from snapshot {path}")
    return records


def save_snapshot(
    records: list[GroupRecord],
    path: str | Path,
    tenant_id: Optional[str] = None,
) -> Path:
    """Write group records to a snapshot file and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "metadata": {
            "tenant_id": tenant_id,
            "captured_utc": datetime.now(timezone.utc).isoformat(),
            "group_count": len(records),
        },
        "groups": [r.to_dict() for r in records],
    }
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
    logger.info(f"Saved {len(records)} groups to snapshot {path}")
    return path
