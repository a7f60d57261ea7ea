from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from prepkit.core.config import settings

RUN_STATUSES = ("success", "error", "empty", "skipped")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(Path(settings.analytics_db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    if not settings.analytics_enabled:
        return
    Path(settings.analytics_db_path).parent.mkdir(parents=True, exist_ok=True)
    with closing(_connect()) as conn, conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_analysis_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                run_id TEXT NOT NULL,
                task TEXT NOT NULL,
                model TEXT NOT NULL,
                temperature REAL,
                prompt_chars INTEGER NOT NULL DEFAULT 0,
                response_chars INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                error_code TEXT,
                latency_ms INTEGER
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_runs_created_at ON ai_analysis_runs (created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_runs_task ON ai_analysis_runs (task, created_at)")
    purge_old_records()


def log_ai_analysis_run(
    *,
    run_id: str,
    task: str,
    model: str,
    status: str,
    temperature: float | None = None,
    prompt_chars: int = 0,
    response_chars: int = 0,
    error_code: str | None = None,
    latency_ms: int | None = None,
) -> None:
    """Record one LLM call (kit generation, answer scoring, résumé analysis, ...)."""
    if not settings.analytics_enabled:
        return
    if status not in RUN_STATUSES:
        raise ValueError(f"unknown run status: {status}")
    with closing(_connect()) as conn, conn:
        conn.execute(
            """
            INSERT INTO ai_analysis_runs (
                created_at, run_id, task, model, temperature,
                prompt_chars, response_chars, status, error_code, latency_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                task,
                model,
                temperature,
                prompt_chars,
                response_chars,
                status,
                error_code,
                latency_ms,
            ),
        )


def purge_old_records() -> dict[str, int]:
    if not settings.analytics_enabled:
        return {"ai_analysis_runs": 0}
    retention = max(1, int(settings.analytics_retention_days))
    with closing(_connect()) as conn, conn:
        cur = conn.execute(
            "DELETE FROM ai_analysis_runs WHERE created_at < datetime('now', ?)",
            (f"-{retention} days",),
        )
    return {"ai_analysis_runs": int(cur.rowcount or 0)}


def get_summary() -> dict[str, Any]:
    """Run counts overall, over the last week, and per task with error rates."""
    if not settings.analytics_enabled:
        return {"enabled": False}
    with closing(_connect()) as conn:
        total = conn.execute("SELECT COUNT(*) FROM ai_analysis_runs").fetchone()[0]
        total_7d = conn.execute(
            "SELECT COUNT(*) FROM ai_analysis_runs WHERE created_at >= datetime('now', '-7 days')"
        ).fetchone()[0]
        rows = conn.execute(
            """
            SELECT task,
                   COUNT(*) AS count,
                   SUM(CASE WHEN status = 'success' THEN 1 ELSE 0 END) AS success,
                   AVG(CASE WHEN status = 'success' THEN latency_ms END) AS avg_latency_ms,
                   AVG(prompt_chars) AS avg_prompt_chars
            FROM ai_analysis_runs
            GROUP BY task
            ORDER BY task
            """
        ).fetchall()
        errors = conn.execute(
            """
            SELECT task, error_code, COUNT(*) AS count
            FROM ai_analysis_runs
            WHERE error_code IS NOT NULL
            GROUP BY task, error_code
            """
        ).fetchall()

    error_codes: dict[str, dict[str, int]] = {}
    for row in errors:
        error_codes.setdefault(row["task"], {})[row["error_code"]] = row["count"]

    by_task = []
    for row in rows:
        count = row["count"]
        by_task.append(
            {
                "task": row["task"],
                "count": count,
                "success": row["success"],
                "error_rate": round(1 - row["success"] / count, 3) if count else 0.0,
                "avg_latency_ms": round(row["avg_latency_ms"]) if row["avg_latency_ms"] is not None else None,
                "avg_prompt_chars": round(row["avg_prompt_chars"] or 0),
                "error_codes": error_codes.get(row["task"], {}),
            }
        )
    return {"enabled": True, "total": total, "total_7d": total_7d, "by_task": by_task}


def get_latest_runs(limit: int = 20, task: str | None = None) -> list[dict[str, Any]]:
    if not settings.analytics_enabled:
        return []
    query = """
        SELECT created_at, run_id, task, model, temperature, prompt_chars,
               response_chars, status, error_code, latency_ms
        FROM ai_analysis_runs
    """
    params: list[Any] = []
    if task:
        query += " WHERE task = ?"
        params.append(task)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    with closing(_connect()) as conn:
        return [dict(row) for row in conn.execute(query, params).fetchall()]
