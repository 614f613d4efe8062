"""
Local SQLite store for extraction run tracking and the staged-resource ledger.

The API hands callers a tracking id and processes documents in the background;
this table is where the progress for that id lives until a sweep removes it.
Rows are never evicted implicitly; only ``sweep_expired`` deletes them.

The ledger side-table remembers every object currently staged in S3 so that a
process that crashed mid-run leaves something to clean up from.
"""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

from extractor import config
from extractor.models import ExtractionResult, ProgressSnapshot, StagedResource

_DDL = """
CREATE TABLE IF NOT EXISTS runs (
    tracking_id   TEXT PRIMARY KEY,
    status        TEXT NOT NULL DEFAULT 'processing',
    total         INTEGER NOT NULL DEFAULT 0,
    progress_json TEXT NOT NULL DEFAULT '{}',
    results_json  TEXT NOT NULL DEFAULT '[]',
    error         TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS staged_resources (
    bucket        TEXT NOT NULL,
    key           TEXT NOT NULL,
    name          TEXT NOT NULL DEFAULT '',
    staged_at     TEXT NOT NULL,
    PRIMARY KEY (bucket, key)
);
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _connect(db_path: str | None = None) -> sqlite3.Connection:
    path = db_path or config.TRACKING_DB_PATH
    db_dir = os.path.dirname(path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(_DDL)
    return conn


# ── Runs ─────────────────────────────────────────────────────────────────────

def create_run(tracking_id: str, total: int, db_path: str | None = None) -> None:
    now = _now().isoformat()
    conn = _connect(db_path)
    conn.execute(
        """
        INSERT INTO runs (tracking_id, status, total, progress_json, created_at, updated_at)
        VALUES (?, 'processing', ?, ?, ?, ?)
        """,
        (tracking_id, total, json.dumps({"completed": 0, "total": total}), now, now),
    )
    conn.commit()
    conn.close()


def update_progress(tracking_id: str, snapshot: ProgressSnapshot, db_path: str | None = None) -> None:
    progress = snapshot.model_dump(mode="json", exclude={"results"})
    conn = _connect(db_path)
    conn.execute(
        "UPDATE runs SET progress_json = ?, updated_at = ? WHERE tracking_id = ?",
        (json.dumps(progress), _now().isoformat(), tracking_id),
    )
    conn.commit()
    conn.close()


def complete_run(tracking_id: str, results: list[ExtractionResult], db_path: str | None = None) -> None:
    success = sum(1 for r in results if r.success)
    progress = {
        "completed": len(results),
        "success_count": success,
        "fail_count": len(results) - success,
    }
    conn = _connect(db_path)
    conn.execute(
        """
        UPDATE runs SET status = 'completed', progress_json = ?, results_json = ?, updated_at = ?
        WHERE tracking_id = ?
        """,
        (
            json.dumps(progress),
            json.dumps([r.model_dump(mode="json") for r in results]),
            _now().isoformat(),
            tracking_id,
        ),
    )
    conn.commit()
    conn.close()


def fail_run(tracking_id: str, error: str, db_path: str | None = None) -> None:
    conn = _connect(db_path)
    conn.execute(
        "UPDATE runs SET status = 'failed', error = ?, updated_at = ? WHERE tracking_id = ?",
        (error, _now().isoformat(), tracking_id),
    )
    conn.commit()
    conn.close()


def get_run(tracking_id: str, db_path: str | None = None) -> Optional[dict]:
    conn = _connect(db_path)
    row = conn.execute("SELECT * FROM runs WHERE tracking_id = ?", (tracking_id,)).fetchone()
    conn.close()
    if not row:
        return None
    run = dict(row)
    run["progress"] = json.loads(run.pop("progress_json"))
    run["results"] = json.loads(run.pop("results_json"))
    return run


def sweep_expired(
    max_age_seconds: float | None = None,
    now: datetime | None = None,
    db_path: str | None = None,
) -> int:
    """Delete runs not updated for *max_age_seconds*. Returns rows removed."""
    max_age_seconds = config.TRACKING_TTL_SECONDS if max_age_seconds is None else max_age_seconds
    cutoff = ((now or _now()) - timedelta(seconds=max_age_seconds)).isoformat()
    conn = _connect(db_path)
    cur = conn.execute("DELETE FROM runs WHERE updated_at < ?", (cutoff,))
    conn.commit()
    conn.close()
    return cur.rowcount


# ── Staged-resource ledger ───────────────────────────────────────────────────

class StagingLedger:
    """Records staged S3 objects until they are released."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path

    def record_staged(self, resource: StagedResource) -> None:
        conn = _connect(self.db_path)
        conn.execute(
            "INSERT OR REPLACE INTO staged_resources (bucket, key, name, staged_at) VALUES (?, ?, ?, ?)",
            (resource.bucket, resource.key, resource.name, _now().isoformat()),
        )
        conn.commit()
        conn.close()

    def record_released(self, resource: StagedResource) -> None:
        conn = _connect(self.db_path)
        conn.execute(
            "DELETE FROM staged_resources WHERE bucket = ? AND key = ?",
            (resource.bucket, resource.key),
        )
        conn.commit()
        conn.close()

    def list_orphans(self, older_than: float, now: datetime | None = None) -> list[StagedResource]:
        cutoff = ((now or _now()) - timedelta(seconds=older_than)).isoformat()
        conn = _connect(self.db_path)
        rows = conn.execute(
            "SELECT bucket, key, name FROM staged_resources WHERE staged_at < ? ORDER BY staged_at",
            (cutoff,),
        ).fetchall()
        conn.close()
        return [StagedResource(bucket=r["bucket"], key=r["key"], name=r["name"]) for r in rows]
