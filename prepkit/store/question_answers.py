from __future__ import annotations

import sqlite3
from typing import Any, Literal

from prepkit.store import db
from prepkit.store.models import AnswerStatus, QuestionAnswer

AnswerSort = Literal["score_desc", "score_asc", "newest"]

_ORDER_BY: dict[str, str] = {
    "score_desc": "score DESC, created_at DESC, id DESC",
    "score_asc": "score ASC, created_at DESC, id DESC",
    "newest": "created_at DESC, id DESC",
}


def _row_to_answer(row: sqlite3.Row) -> QuestionAnswer:
    return QuestionAnswer(
        id=row["id"],
        history_id=row["history_id"],
        user_id=row["user_id"],
        question_index=row["question_index"],
        question_text=row["question_text"],
        user_answer=row["user_answer"],
        score=row["score"],
        feedback=db.load_json(row["feedback"], {}) or {},
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_answer(
    *,
    history_id: int,
    user_id: int | None,
    question_index: int,
    question_text: str,
    user_answer: str,
    status: AnswerStatus = "draft",
    score: int | None = None,
    feedback: dict[str, Any] | None = None,
) -> QuestionAnswer:
    if question_index < 0:
        raise ValueError("question_index は0以上で指定してください")
    if not (question_text or "").strip():
        raise ValueError("question_text を入力してください")
    if not (user_answer or "").strip():
        raise ValueError("回答が入力されていません")
    if score is not None and not 0 <= score <= 100:
        raise ValueError("score は0から100の範囲で指定してください")

    now = db.to_iso(db.utc_now())
    cursor = db.execute(
        """
        INSERT INTO question_answers (
            history_id, user_id, question_index, question_text, user_answer,
            score, feedback, status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            history_id,
            user_id,
            question_index,
            question_text,
            user_answer,
            score,
            db.dump_json(feedback) if feedback is not None else None,
            status,
            now,
            now,
        ),
    )
    answer = get_answer(int(cursor.lastrowid))
    if answer is None:
        raise LookupError(f"Answer {cursor.lastrowid} not found after insert")
    return answer


def get_answer(answer_id: int) -> QuestionAnswer | None:
    row = db.fetch_one("SELECT * FROM question_answers WHERE id = ?", (answer_id,))
    return _row_to_answer(row) if row else None


def get_history_answer(history_id: int, answer_id: int) -> QuestionAnswer | None:
    row = db.fetch_one(
        "SELECT * FROM question_answers WHERE id = ? AND history_id = ?",
        (answer_id, history_id),
    )
    return _row_to_answer(row) if row else None


def list_scored_answers(
    history_id: int,
    *,
    user_id: int | None = None,
    question_index: int | None = None,
    sort: str | None = None,
    limit: int | None = None,
) -> list[QuestionAnswer]:
    """Scored answers for a history; ``user_id`` narrows to one user's answers."""
    clauses = ["history_id = ?", "status = 'scored'"]
    params: list[Any] = [history_id]
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if question_index is not None:
        clauses.append("question_index = ?")
        params.append(question_index)

    order_by = _ORDER_BY.get(sort or "newest", _ORDER_BY["newest"])
    sql = f"SELECT * FROM question_answers WHERE {' AND '.join(clauses)} ORDER BY {order_by}"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return [_row_to_answer(row) for row in db.fetch_all(sql, tuple(params))]


def delete_answer(answer_id: int) -> None:
    db.execute("DELETE FROM question_answers WHERE id = ?", (answer_id,))
