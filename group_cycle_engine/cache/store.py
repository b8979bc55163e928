"""
SQLite-backed cache for collected group snapshots, plus a run log used by
the `history` command.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("group_cycle_engine.cache")


class ScanCache:
    """
    Persistent cache backed by SQLite.
    Features:
      - TTL-based expiration of cached collector output
      - Run log with group and cycle counts per run
      - Connection-per-call, so it is safe to use from async code
    """

    def __init__(self, cache_dir: str | Path, ttl_hours: int = 24):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / "scan_cache.db"
        self.ttl_seconds = ttl_hours * 3600
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    scan_id TEXT NOT NULL,
                    item_count INTEGER DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_log (
                    run_id TEXT PRIMARY KEY,
                    started_at REAL NOT NULL,
                    completed_at REAL,
                    status TEXT DEFAULT 'running',
                    source TEXT,
                    group_count INTEGER,
                    cycle_count INTEGER,
                    error TEXT
                )
            """)
            conn.commit()

    def get(self, key: str) -> Optional[Any]:
        """Cached data for key, or None if missing or expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data, timestamp FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None

        data_json, timestamp = row
        if time.time() - timestamp > self.ttl_seconds:
            logger.debug(f"Cache expired for key: {key}")
            return None

        logger.debug(f"Cache hit for key: {key}")
        return json.loads(data_json)

    def put(self, key: str, data: Any, scan_id: str):
        """Store data in cache with current timestamp."""
        data_json = json.dumps(data, default=str)
        item_count = len(data) if isinstance(data, (list, dict)) else 1

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries (key, data, timestamp, scan_id, item_count)
                VALUES (?, ?, ?, ?, ?)
                """,
                (key, data_json, time.time(), scan_id, item_count),
            )
            conn.commit()
        logger.debug(f"Cached {item_count} items for key: {key}")

    def clear_expired(self) -> int:
        """Remove all expired cache entries; returns how many were removed."""
        cutoff = time.time() - self.ttl_seconds
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM cache_entries WHERE timestamp < ?",
                (cutoff,),
            ).rowcount
            conn.commit()
        if deleted:
            logger.info(f"Cleared {deleted} expired cache entries.")
        return deleted

    # ── Run log ─────────────────────────────────────────────────────────────

    def start_run(self, run_id: str, source: str = ""):
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO run_log (run_id, started_at, status, source)
                VALUES (?, ?, 'running', ?)
                """,
                (run_id, time.time(), source),
            )
            conn.commit()

    def complete_run(self, run_id: str, group_count: int, cycle_count: int):
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE run_log
                SET completed_at = ?, status = 'completed', group_count = ?, cycle_count = ?
                WHERE run_id = ?
                """,
                (time.time(), group_count, cycle_count, run_id),
            )
            conn.commit()

    def fail_run(self, run_id: str, error: str):
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE run_log
                SET completed_at = ?, status = 'failed', error = ?
                WHERE run_id = ?
                """,
                (time.time(), error[:500], run_id),
            )
            conn.commit()

    def get_run_history(self, limit: int = 10) -> list[dict]:
        """Most recent runs first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT run_id, started_at, completed_at, status, source, group_count, cycle_count, error
                FROM run_log ORDER BY started_at DESC LIMIT ?
                """,
                (limit,),
            ).fetchall()

        return [
            {
                "run_id": r[0],
                "started_at": r[1],
                "completed_at": r[2],
                "status": r[3],
                "source": r[4],
                "group_count": r[5],
                "cycle_count": r[6],
                "error": r[7],
            }
            for r in rows
        ]
