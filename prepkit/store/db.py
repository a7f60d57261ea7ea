from __future__ import annotations

import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from prepkit.core.config import settings

_conn: sqlite3.Connection | None = None
_conn_path: str | None = None
_conn_lock = threading.RLock()

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT,
        avatar_url TEXT,
        provider TEXT,
        uid TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_provider_uid ON users (provider, uid);",
    """
    CREATE TABLE IF NOT EXISTS histories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER REFERENCES users (id) ON DELETE SET NULL,
        content TEXT NOT NULL,
        memo TEXT,
        asked_at TEXT,
        job_description TEXT,
        company_name TEXT,
        stage_1_memo TEXT,
        stage_2_memo TEXT,
        stage_3_memo TEXT,
        match_score INTEGER,
        match_rank TEXT,
        match_analysis TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_histories_asked_at ON histories (asked_at);",
    "CREATE INDEX IF NOT EXISTS idx_histories_user_asked_at ON histories (user_id, asked_at);",
    "CREATE INDEX IF NOT EXISTS idx_histories_match_score ON histories (match_score);",
    "CREATE INDEX IF NOT EXISTS idx_histories_match_rank ON histories (match_rank);",
    """
    CREATE TABLE IF NOT EXISTS question_answers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        history_id INTEGER NOT NULL REFERENCES histories (id) ON DELETE CASCADE,
        user_id INTEGER REFERENCES users (id) ON DELETE SET NULL,
        question_index INTEGER NOT NULL,
        question_text TEXT NOT NULL,
        user_answer TEXT NOT NULL,
        score INTEGER,
        feedback TEXT,
        status TEXT NOT NULL DEFAULT 'draft',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_question_answers_history_question ON question_answers (history_id, question_index);",
    "CREATE INDEX IF NOT EXISTS idx_question_answers_history_status ON question_answers (history_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_question_answers_history_user_status ON question_answers (history_id, user_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_question_answers_created_at ON question_answers (created_at);",
    """
    CREATE TABLE IF NOT EXISTS resumes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        filename TEXT,
        content_type TEXT,
        byte_size INTEGER,
        file_data BLOB,
        raw_text TEXT,
        summary TEXT,
        status TEXT NOT NULL DEFAULT 'draft',
        analyzed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_resumes_status ON resumes (status);",
    "CREATE INDEX IF NOT EXISTS idx_resumes_user_created_at ON resumes (user_id, created_at);",
    """
    CREATE TABLE IF NOT EXISTS resume_analyses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        resume_id INTEGER NOT NULL REFERENCES resumes (id) ON DELETE CASCADE,
        category TEXT NOT NULL,
        score INTEGER,
        feedback TEXT NOT NULL DEFAULT '{}',
        improved_text TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_resume_analyses_category ON resume_analyses (category);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_resume_analyses_resume_category ON resume_analyses (resume_id, category);",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def load_json(raw: str | None, default: Any = None) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _open(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(
        db_path,
        check_same_thread=False,
        timeout=5,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    conn.execute("PRAGMA foreign_keys=ON;")
    for statement in SCHEMA:
        conn.execute(statement)
    return conn


def get_connection() -> sqlite3.Connection:
    global _conn, _conn_path
    with _conn_lock:
        if _conn is not None:
            return _conn
        _conn_path = _conn_path or settings.database_path
        _conn = _open(_conn_path)
        return _conn


def init_db() -> None:
    get_connection()


def reset_connection(db_path: str | None = None) -> None:
    """Close the shared connection; the next access opens ``db_path`` (or the configured path)."""
    global _conn, _conn_path
    with _conn_lock:
        if _conn is not None:
            _conn.close()
        _conn = None
        _conn_path = db_path


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    conn = get_connection()
    with _conn_lock:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")


def fetch_one(sql: str, params: tuple = ()) -> sqlite3.Row | None:
    conn = get_connection()
    with _conn_lock:
        return conn.execute(sql, params).fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    conn = get_connection()
    with _conn_lock:
        return conn.execute(sql, params).fetchall()


def execute(sql: str, params: tuple = ()) -> sqlite3.Cursor:
    conn = get_connection()
    with _conn_lock:
        return conn.execute(sql, params)
