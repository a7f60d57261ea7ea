from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time

from fastapi import HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from prepkit.core.config import settings

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

LLM_RATE_LIMITED_MESSAGE = "AI 機能のリクエストが多すぎます。1分ほど待ってから再度お試しください。"

_conn: sqlite3.Connection | None = None
_conn_lock = threading.Lock()


class LLMRateLimitExceeded(Exception):
    pass


def rate_limit():
    """Global per-address limit from ``RATE_LIMIT``; a no-op when disabled."""
    if settings.rate_limit_enabled:
        return limiter.limit(settings.rate_limit)

    def decorator(func):
        return func

    return decorator


def _get_connection() -> sqlite3.Connection:
    global _conn
    with _conn_lock:
        if _conn is not None:
            return _conn

        db_path = settings.llm_rate_limit_db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        _conn = sqlite3.connect(
            db_path,
            check_same_thread=False,
            timeout=5,
            isolation_level=None,
        )
        _conn.execute("PRAGMA journal_mode=WAL;")
        _conn.execute("PRAGMA synchronous=NORMAL;")
        _conn.execute("PRAGMA busy_timeout=5000;")
        _conn.execute(
            """
            CREATE TABLE IF NOT EXISTS llm_rate_limit_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                client_key TEXT NOT NULL,
                route_key TEXT NOT NULL,
                created_at REAL NOT NULL
            );
            """
        )
        _conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_llm_rate_limit_lookup
            ON llm_rate_limit_events (client_key, route_key, created_at);
            """
        )
        return _conn


def record_llm_request(client_key: str, route_key: str, limit: int, window_seconds: int = 60) -> None:
    """Count one LLM-backed request in the sliding window, or raise when the window is full."""
    now = time.time()
    cutoff = now - window_seconds
    conn = _get_connection()

    with _conn_lock:
        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute("DELETE FROM llm_rate_limit_events WHERE created_at < ?", (cutoff,))
            row = conn.execute(
                """
                SELECT COUNT(1)
                FROM llm_rate_limit_events
                WHERE client_key = ? AND route_key = ? AND created_at >= ?
                """,
                (client_key, route_key, cutoff),
            ).fetchone()
            if int(row[0] or 0) >= limit:
                raise LLMRateLimitExceeded(f"{client_key} {route_key}")

            conn.execute(
                """
                INSERT INTO llm_rate_limit_events (client_key, route_key, created_at)
                VALUES (?, ?, ?)
                """,
                (client_key, route_key, now),
            )
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")


def clear_llm_rate_limit_events() -> None:
    conn = _get_connection()
    with _conn_lock:
        conn.execute("DELETE FROM llm_rate_limit_events")


def purge_llm_rate_limit_events(window_seconds: int = 60) -> int:
    """Drop events that can no longer count against any window."""
    conn = _get_connection()
    with _conn_lock:
        cur = conn.execute(
            "DELETE FROM llm_rate_limit_events WHERE created_at < ?",
            (time.time() - window_seconds,),
        )
    return int(cur.rowcount or 0)


def client_key(request: Request, user_id: int | None = None) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_llm_rate_limit(request: Request, route_key: str | None = None, *, user_id: int | None = None) -> None:
    if not settings.rate_limit_enabled:
        return
    key = client_key(request, user_id)
    route = route_key or request.url.path
    try:
        record_llm_request(
            client_key=key,
            route_key=route,
            limit=settings.llm_rate_limit_per_minute,
        )
    except LLMRateLimitExceeded as exc:
        logger.warning("llm_rate_limited client=%s route=%s", key, route)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=LLM_RATE_LIMITED_MESSAGE,
        ) from exc
