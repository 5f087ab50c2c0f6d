from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Optional

from models.quiz import QuizSnapshot


def _row_to_quiz(row: sqlite3.Row) -> QuizSnapshot:
    payload = json.loads(row["payload"] or "{}")
    return QuizSnapshot(
        id=row["id"],
        account_id=row["account_id"],
        words=payload.get("words", []),
        review_states=payload.get("reviewStates", {}),
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


class QuizStore:
    """Quiz snapshots shared with a second device, one row per quiz.

    Words and the per-key progress written back by the other device live in
    a JSON payload column.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def save(self, quiz: QuizSnapshot) -> None:
        payload = {
            "words": [word.model_dump(by_alias=True) for word in quiz.words],
            "reviewStates": quiz.review_states,
        }
        self.conn.execute(
            """
            INSERT INTO quizzes (id, account_id, payload, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                account_id = excluded.account_id,
                payload = excluded.payload,
                created_at = excluded.created_at,
                expires_at = excluded.expires_at
            """,
            (quiz.id, quiz.account_id, json.dumps(payload), quiz.created_at, quiz.expires_at),
        )
        self.conn.commit()

    def get(self, quiz_id: str, account_id: Optional[str] = None) -> Optional[QuizSnapshot]:
        if account_id is None:
            row = self.conn.execute("SELECT * FROM quizzes WHERE id = ?", (quiz_id,)).fetchone()
        else:
            row = self.conn.execute(
                "SELECT * FROM quizzes WHERE id = ? AND account_id = ?",
                (quiz_id, account_id),
            ).fetchone()
        return _row_to_quiz(row) if row else None

    def exists(self, quiz_id: str) -> bool:
        return self.conn.execute("SELECT 1 FROM quizzes WHERE id = ?", (quiz_id,)).fetchone() is not None

    def set_progress(self, quiz_id: str, key: str, progress: Dict[str, Any]) -> bool:
        """Store one progress record under `key`. False when the quiz is gone."""
        quiz = self.get(quiz_id)
        if quiz is None:
            return False
        review_states = dict(quiz.review_states)
        review_states[key] = progress
        self.save(quiz.model_copy(update={"review_states": review_states}))
        return True

    def delete(self, quiz_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM quizzes WHERE id = ?", (quiz_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_expired(self, now: int) -> int:
        cursor = self.conn.execute("DELETE FROM quizzes WHERE expires_at < ?", (now,))
        self.conn.commit()
        return cursor.rowcount
