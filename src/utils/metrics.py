"""Operation timings (summarization runs, grading, generation) persisted to SQLite."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Resolved at module load time; tests can monkeypatch this symbol.
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DB_PATH: Path = _PROJECT_ROOT / "data" / "app.db"


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def log_metric(operation: str, elapsed_s: float, outcome: str = "", **meta: Any) -> None:
    """Persist a single operation metric row.

    Never raises: a metrics failure must not fail the operation being measured.

    Args:
        operation: e.g. "chunk_summary", "grade", "course_design"
        elapsed_s: Wall-clock seconds the operation took.
        outcome: Short result tag, e.g. "done" or "reduce_failed".
        **meta: Arbitrary key-value pairs stored as JSON (e.g. chunks=3).
    """
    try:
        meta_json = json.dumps(meta, ensure_ascii=False, default=str)
        with _connect() as conn:
            conn.execute(
                """
                INSERT INTO operation_metrics (operation, elapsed_s, outcome, meta_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (operation, round(elapsed_s, 3), outcome or "", meta_json, _now_iso()),
            )
    except Exception:  # noqa: BLE001
        pass


def get_recent_metrics(limit: int = 50, operation: str = "") -> list[dict[str, Any]]:
    """Return the most recent *limit* metric rows, newest first, optionally for one operation.

    Returns an empty list on any error (e.g. table not yet created).
    """
    try:
        query = "SELECT id, operation, elapsed_s, outcome, meta_json, created_at FROM operation_metrics"
        params: list[Any] = []
        if operation:
            query += " WHERE operation = ?"
            params.append(operation)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(max(1, limit))
        with _connect() as conn:
            rows = conn.execute(query, params).fetchall()
        out: list[dict[str, Any]] = []
        for row in rows:
            item = dict(row)
            try:
                item["meta"] = json.loads(item.pop("meta_json") or "{}")
            except json.JSONDecodeError:
                item["meta"] = {}
            out.append(item)
        return out
    except Exception:  # noqa: BLE001
        return []


def get_metrics_summary() -> dict[str, Any]:
    """Return per-operation counts, timing stats and failure counts.

    Returns empty dict on any error.
    """
    try:
        with _connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    operation,
                    COUNT(*)                                      AS total,
                    SUM(CASE WHEN outcome = 'done' THEN 1 ELSE 0 END) AS succeeded,
                    AVG(elapsed_s)                                AS avg_s,
                    MIN(elapsed_s)                                AS min_s,
                    MAX(elapsed_s)                                AS max_s,
                    MAX(created_at)                               AS last_at
                FROM operation_metrics
                GROUP BY operation
                ORDER BY total DESC
                """
            ).fetchall()
        return {
            row["operation"]: {
                "total": row["total"],
                "succeeded": row["succeeded"],
                "avg_s": round(row["avg_s"], 2),
                "min_s": round(row["min_s"], 2),
                "max_s": round(row["max_s"], 2),
                "last_at": row["last_at"],
            }
            for row in rows
        }
    except Exception:  # noqa: BLE001
        return {}
