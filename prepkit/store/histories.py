from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any

from prepkit.store import db
from prepkit.store.models import History

# Large text columns are left out of list queries.
LISTING_COLUMNS = (
    "id, user_id, content, asked_at, company_name, match_score, match_rank, "
    "match_analysis, created_at, updated_at"
)

UPDATABLE_FIELDS = (
    "content",
    "asked_at",
    "memo",
    "company_name",
    "stage_1_memo",
    "stage_2_memo",
    "stage_3_memo",
)


def _row_to_history(row: sqlite3.Row) -> History:
    keys = row.keys()
    return History(
        id=row["id"],
        user_id=row["user_id"],
        content=row["content"],
        memo=row["memo"] if "memo" in keys else None,
        asked_at=row["asked_at"],
        job_description=row["job_description"] if "job_description" in keys else None,
        company_name=row["company_name"],
        stage_1_memo=row["stage_1_memo"] if "stage_1_memo" in keys else None,
        stage_2_memo=row["stage_2_memo"] if "stage_2_memo" in keys else None,
        stage_3_memo=row["stage_3_memo"] if "stage_3_memo" in keys else None,
        match_score=row["match_score"],
        match_rank=row["match_rank"],
        match_analysis=db.load_json(row["match_analysis"], {}) or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_history(
    *,
    content: str,
    user_id: int | None,
    memo: str | None = "",
    asked_at: datetime | None = None,
    job_description: str | None = None,
    company_name: str | None = None,
    stage_1_memo: str | None = None,
    stage_2_memo: str | None = None,
    stage_3_memo: str | None = None,
) -> History:
    if not (content or "").strip():
        raise ValueError("content を入力してください")
    now = db.utc_now()
    cursor = db.execute(
        """
        INSERT INTO histories (
            user_id, content, memo, asked_at, job_description, company_name,
            stage_1_memo, stage_2_memo, stage_3_memo, match_analysis, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '{}', ?, ?)
        """,
        (
            user_id,
            content,
            memo,
            db.to_iso(asked_at or now),
            job_description,
            company_name,
            stage_1_memo,
            stage_2_memo,
            stage_3_memo,
            db.to_iso(now),
            db.to_iso(now),
        ),
    )
    history = get_history(int(cursor.lastrowid))
    if history is None:
        raise LookupError(f"History {cursor.lastrowid} not found after insert")
    return history


def get_history(history_id: int) -> History | None:
    row = db.fetch_one("SELECT * FROM histories WHERE id = ?", (history_id,))
    return _row_to_history(row) if row else None


def list_histories(limit: int | None = None) -> list[History]:
    sql = f"SELECT {LISTING_COLUMNS} FROM histories ORDER BY asked_at DESC, id DESC"
    params: tuple = ()
    if limit is not None:
        sql += " LIMIT ?"
        params = (limit,)
    return [_row_to_history(row) for row in db.fetch_all(sql, params)]


def list_user_histories(user_id: int, limit: int | None = None) -> list[History]:
    sql = f"SELECT {LISTING_COLUMNS} FROM histories WHERE user_id = ? ORDER BY asked_at DESC, id DESC"
    params: tuple = (user_id,)
    if limit is not None:
        sql += " LIMIT ?"
        params = (user_id, limit)
    return [_row_to_history(row) for row in db.fetch_all(sql, params)]


def list_other_histories(user_id: int) -> list[History]:
    """Histories without an owner or owned by someone other than ``user_id``."""
    rows = db.fetch_all(
        f"""
        SELECT {LISTING_COLUMNS} FROM histories
        WHERE user_id IS NULL OR user_id != ?
        ORDER BY asked_at DESC, id DESC
        """,
        (user_id,),
    )
    return [_row_to_history(row) for row in rows]


def update_history(history_id: int, changes: dict[str, Any]) -> History:
    fields = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
    if "content" in fields and not (fields["content"] or "").strip():
        raise ValueError("content を入力してください")
    if "asked_at" in fields and isinstance(fields["asked_at"], datetime):
        fields["asked_at"] = db.to_iso(fields["asked_at"])

    if fields:
        assignments = ", ".join(f"{key} = ?" for key in fields)
        db.execute(
            f"UPDATE histories SET {assignments}, updated_at = ? WHERE id = ?",
            (*fields.values(), db.to_iso(db.utc_now()), history_id),
        )
    history = get_history(history_id)
    if history is None:
        raise LookupError(f"History {history_id} not found")
    return history


def save_match_analysis(
    history_id: int,
    *,
    match_score: int,
    match_rank: str,
    match_analysis: dict[str, Any],
) -> History:
    db.execute(
        """
        UPDATE histories
        SET match_score = ?, match_rank = ?, match_analysis = ?, updated_at = ?
        WHERE id = ?
        """,
        (match_score, match_rank, db.dump_json(match_analysis), db.to_iso(db.utc_now()), history_id),
    )
    history = get_history(history_id)
    if history is None:
        raise LookupError(f"History {history_id} not found")
    return history


def delete_history(history_id: int) -> None:
    db.execute("DELETE FROM histories WHERE id = ?", (history_id,))
