from __future__ import annotations

import sqlite3

from prepkit.store import db
from prepkit.store.models import User


class DuplicateEmailError(ValueError):
    pass


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        name=row["name"],
        avatar_url=row["avatar_url"],
        provider=row["provider"],
        uid=row["uid"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_user(
    *,
    email: str,
    password_hash: str,
    name: str | None = None,
    avatar_url: str | None = None,
    provider: str | None = None,
    uid: str | None = None,
) -> User:
    now = db.to_iso(db.utc_now())
    try:
        cursor = db.execute(
            """
            INSERT INTO users (email, password_hash, name, avatar_url, provider, uid, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (email.strip().lower(), password_hash, name, avatar_url, provider, uid, now, now),
        )
    except sqlite3.IntegrityError as exc:
        raise DuplicateEmailError("このメールアドレスは既に登録されています") from exc
    user = get_user(int(cursor.lastrowid))
    if user is None:
        raise LookupError(f"User {cursor.lastrowid} not found after insert")
    return user


def get_user(user_id: int) -> User | None:
    row = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> User | None:
    row = db.fetch_one("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))
    return _row_to_user(row) if row else None


def get_user_by_provider(provider: str, uid: str) -> User | None:
    row = db.fetch_one("SELECT * FROM users WHERE provider = ? AND uid = ?", (provider, uid))
    return _row_to_user(row) if row else None


def update_user_name(user_id: int, name: str | None) -> User:
    db.execute(
        "UPDATE users SET name = ?, updated_at = ? WHERE id = ?",
        (name, db.to_iso(db.utc_now()), user_id),
    )
    user = get_user(user_id)
    if user is None:
        raise LookupError(f"User {user_id} not found")
    return user


def delete_user(user_id: int) -> None:
    """Delete a user; histories and answers keep their rows with the owner cleared."""
    with db.transaction() as conn:
        conn.execute("UPDATE histories SET user_id = NULL WHERE user_id = ?", (user_id,))
        conn.execute("UPDATE question_answers SET user_id = NULL WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM resumes WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

