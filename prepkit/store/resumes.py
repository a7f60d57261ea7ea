from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any

from prepkit.store import db
from prepkit.store.models import RESUME_CATEGORIES, Resume, ResumeAnalysis, ResumeStatus

LISTING_COLUMNS = (
    "id, user_id, filename, content_type, byte_size, summary, status, "
    "analyzed_at, created_at, updated_at"
)


def _row_to_analysis(row: sqlite3.Row) -> ResumeAnalysis:
    return ResumeAnalysis(
        id=row["id"],
        resume_id=row["resume_id"],
        category=row["category"],
        score=row["score"],
        feedback=db.load_json(row["feedback"], {}) or {},
        improved_text=row["improved_text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_resume(row: sqlite3.Row, analyses: list[ResumeAnalysis]) -> Resume:
    keys = row.keys()
    return Resume(
        id=row["id"],
        user_id=row["user_id"],
        filename=row["filename"],
        content_type=row["content_type"],
        byte_size=row["byte_size"],
        file_data=row["file_data"] if "file_data" in keys else None,
        raw_text=row["raw_text"] if "raw_text" in keys else None,
        summary=row["summary"],
        status=row["status"],
        analyzed_at=row["analyzed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        analyses=analyses,
    )


def _analyses_for(resume_id: int) -> list[ResumeAnalysis]:
    rows = db.fetch_all(
        "SELECT * FROM resume_analyses WHERE resume_id = ? ORDER BY id ASC",
        (resume_id,),
    )
    return [_row_to_analysis(row) for row in rows]


def create_resume(
    *,
    user_id: int,
    filename: str | None,
    content_type: str | None,
    file_data: bytes,
) -> Resume:
    now = db.to_iso(db.utc_now())
    cursor = db.execute(
        """
        INSERT INTO resumes (
            user_id, filename, content_type, byte_size, file_data, status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, 'draft', ?, ?)
        """,
        (user_id, filename, content_type, len(file_data), file_data, now, now),
    )
    resume = get_resume(int(cursor.lastrowid))
    if resume is None:
        raise LookupError(f"Resume {cursor.lastrowid} not found after insert")
    return resume


def get_resume(resume_id: int) -> Resume | None:
    row = db.fetch_one("SELECT * FROM resumes WHERE id = ?", (resume_id,))
    if row is None:
        return None
    return _row_to_resume(row, _analyses_for(resume_id))


def get_user_resume(user_id: int, resume_id: int) -> Resume | None:
    row = db.fetch_one(
        "SELECT * FROM resumes WHERE id = ? AND user_id = ?",
        (resume_id, user_id),
    )
    if row is None:
        return None
    return _row_to_resume(row, _analyses_for(resume_id))


def list_user_resumes(user_id: int) -> list[Resume]:
    rows = db.fetch_all(
        f"SELECT {LISTING_COLUMNS} FROM resumes WHERE user_id = ? ORDER BY created_at DESC, id DESC",
        (user_id,),
    )
    return [_row_to_resume(row, _analyses_for(row["id"])) for row in rows]


def latest_resume(user_id: int) -> Resume | None:
    row = db.fetch_one(
        "SELECT id FROM resumes WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT 1",
        (user_id,),
    )
    return get_resume(row["id"]) if row else None


def latest_analyzed_resume(user_id: int) -> Resume | None:
    row = db.fetch_one(
        """
        SELECT id FROM resumes
        WHERE user_id = ? AND status = 'analyzed'
        ORDER BY created_at DESC, id DESC
        LIMIT 1
        """,
        (user_id,),
    )
    return get_resume(row["id"]) if row else None


def set_status(resume_id: int, status: ResumeStatus) -> None:
    db.execute(
        "UPDATE resumes SET status = ?, updated_at = ? WHERE id = ?",
        (status, db.to_iso(db.utc_now()), resume_id),
    )


def set_raw_text(resume_id: int, raw_text: str) -> None:
    db.execute(
        "UPDATE resumes SET raw_text = ?, updated_at = ? WHERE id = ?",
        (raw_text, db.to_iso(db.utc_now()), resume_id),
    )


def replace_analyses(
    resume_id: int,
    analyses: list[dict[str, Any]],
    *,
    summary: str,
    analyzed_at: datetime,
) -> Resume:
    """Swap in a fresh set of category analyses and mark the résumé analyzed."""
    now = db.to_iso(db.utc_now())
    with db.transaction() as conn:
        conn.execute("DELETE FROM resume_analyses WHERE resume_id = ?", (resume_id,))
        for analysis in analyses:
            if analysis["category"] not in RESUME_CATEGORIES:
                continue
            conn.execute(
                """
                INSERT INTO resume_analyses (
                    resume_id, category, score, feedback, improved_text, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    resume_id,
                    analysis["category"],
                    analysis.get("score"),
                    db.dump_json(analysis.get("feedback") or {}),
                    analysis.get("improved_text"),
                    now,
                    now,
                ),
            )
        conn.execute(
            """
            UPDATE resumes
            SET summary = ?, status = 'analyzed', analyzed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (summary, db.to_iso(analyzed_at), now, resume_id),
        )
    resume = get_resume(resume_id)
    if resume is None:
        raise LookupError(f"Resume {resume_id} not found")
    return resume


def delete_resume(resume_id: int) -> None:
    db.execute("DELETE FROM resumes WHERE id = ?", (resume_id,))
