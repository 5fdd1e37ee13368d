"""SQLite persistence for traceroute runs."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .models import FailureReason, HopRecord, TracerouteRun

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS traceroute_run (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts INTEGER NOT NULL,
    target TEXT NOT NULL,
    hops_json TEXT NOT NULL,
    success INTEGER NOT NULL CHECK(success IN (0, 1)),
    failure_reason TEXT
)
"""


class StoreError(Exception):
    """Persistence-related errors."""

    pass


def _load_hops(hops_json: str | None) -> list[HopRecord]:
    """Decode stored hops. Corrupt data yields an empty list."""
    try:
        rows = json.loads(hops_json or "[]")
        if not isinstance(rows, list):
            return []
        return [HopRecord.from_row(row) for row in rows]
    except (ValueError, TypeError, KeyError) as e:
        logger.warning(f"Ignoring unreadable hops_json: {e}")
        return []


def _row_to_run(row: sqlite3.Row) -> TracerouteRun:
    reason = row["failure_reason"]
    return TracerouteRun(
        timestamp=datetime.fromtimestamp(row["ts"] // 1000, tz=timezone.utc)
        + timedelta(milliseconds=row["ts"] % 1000),
        target=row["target"],
        success=bool(row["success"]),
        hops=_load_hops(row["hops_json"]),
        failure_reason=FailureReason(reason) if reason else None,
    )


class TracerouteStore:
    """Stores completed runs and reads them back by id.

    Each call opens its own connection so the store can be used from any
    thread.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with closing(self._connect()) as conn:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute(SCHEMA)
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialise {self.db_path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def insert(self, run: TracerouteRun) -> int:
        """Persist a run and return its id."""
        hops_json = json.dumps([hop.to_row() for hop in run.hops])
        reason = run.failure_reason.value if run.failure_reason else None
        try:
            with closing(self._connect()) as conn:
                cursor = conn.execute(
                    "INSERT INTO traceroute_run (ts, target, hops_json, success, failure_reason) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (run.ts, run.target, hops_json, 1 if run.success else 0, reason),
                )
                conn.commit()
                return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to store run for {run.target}: {e}") from e

    def get(self, run_id: Any) -> TracerouteRun | None:
        """Return the stored run, or None if the id is invalid or unknown."""
        try:
            numeric_id = int(run_id)
        except (TypeError, ValueError):
            return None
        if numeric_id <= 0 or str(numeric_id) != str(run_id).strip():
            return None

        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT id, ts, target, hops_json, success, failure_reason "
                    "FROM traceroute_run WHERE id = ?",
                    (numeric_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read run {numeric_id}: {e}") from e

        if row is None:
            return None
        return _row_to_run(row)

    def recent(self, limit: int = 20) -> list[tuple[int, TracerouteRun]]:
        """Most recent runs first, as ``(id, run)`` pairs."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT id, ts, target, hops_json, success, failure_reason "
                    "FROM traceroute_run ORDER BY id DESC LIMIT ?",
                    (max(1, int(limit)),),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list runs: {e}") from e
        return [(row["id"], _row_to_run(row)) for row in rows]
