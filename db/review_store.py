from __future__ import annotations

import sqlite3
from collections import defaultdict
from typing import Any, Dict, List, Optional

from models.review import ReviewLogEntry, ReviewState, ReviewStats
from utils.clock import Clock, now_ms, start_of_day
from utils.errors import AlreadyExistsError, NotFoundError, ValidationError
from utils.log import get_logger
from utils.sm2 import parse_rating
from utils.validation import validate_schedule_fields

_STATE_COLUMNS = "word_id, next_review_at, interval_days, ease_factor, repetitions"


class ReviewStore:
    """One SM-2 scheduling record per vocabulary item, plus its review log.

    The log lives in ``review_logs`` and is only ever appended to; a review
    updates the log and the scheduling fields in the same transaction.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Clock = now_ms, logger=None):
        self.conn = conn
        self.clock = clock
        self.logger = logger or get_logger("review_store")

    def create(self, owner_id: str, initial: Any) -> str:
        """Create the record for `owner_id` from anything carrying the four schedule fields."""
        if not owner_id or not isinstance(owner_id, str):
            raise ValidationError("Invalid owner id: must be a non-empty string", field="id", value=owner_id)
        validate_schedule_fields(
            initial.next_review_at,
            initial.interval_days,
            initial.ease_factor,
            initial.repetitions,
        )
        if self._exists(owner_id):
            raise AlreadyExistsError(
                f"ReviewState already exists for word: {owner_id}",
                context={"id": owner_id},
            )
        self.conn.execute(
            f"INSERT INTO review_states ({_STATE_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            (
                owner_id,
                initial.next_review_at,
                initial.interval_days,
                initial.ease_factor,
                initial.repetitions,
            ),
        )
        self.conn.commit()
        return owner_id

    def find_by_owner(self, owner_id: str) -> Optional[ReviewState]:
        row = self.conn.execute(
            f"SELECT {_STATE_COLUMNS} FROM review_states WHERE word_id = ?",
            (owner_id,),
        ).fetchone()
        if not row:
            return None
        return self._build(row, self._history_for([owner_id]).get(owner_id, []))

    def find_due(self, limit: int = 20, now: Optional[int] = None) -> List[ReviewState]:
        """Records due at `now`, earliest first."""
        now = self.clock() if now is None else now
        return self._select(
            "WHERE next_review_at <= ? ORDER BY next_review_at ASC, word_id ASC LIMIT ?",
            (now, int(limit)),
        )

    def find_all(self) -> List[ReviewState]:
        return self._select("ORDER BY word_id ASC")

    def find_reviewed_since(self, timestamp: int) -> List[ReviewState]:
        return self._select(
            """
            WHERE word_id IN (
                SELECT word_id FROM review_logs WHERE reviewed_at > ?
            )
            ORDER BY word_id ASC
            """,
            (timestamp,),
        )

    def record_review(self, owner_id: str, rating: int, output: Any) -> ReviewState:
        """Append a log entry and overwrite the schedule from `output` atomically."""
        rating = parse_rating(rating)
        with self.conn:
            row = self.conn.execute(
                "SELECT interval_days FROM review_states WHERE word_id = ?",
                (owner_id,),
            ).fetchone()
            if not row:
                raise NotFoundError(
                    f"ReviewState not found for word: {owner_id}",
                    context={"id": owner_id},
                )
            self.conn.execute(
                "INSERT INTO review_logs (word_id, reviewed_at, rating, interval_days) VALUES (?, ?, ?, ?)",
                (owner_id, self.clock(), int(rating), row["interval_days"]),
            )
            self.conn.execute(
                """
                UPDATE review_states
                SET next_review_at = ?, interval_days = ?, ease_factor = ?, repetitions = ?
                WHERE word_id = ?
                """,
                (
                    output.next_review_at,
                    output.interval_days,
                    output.ease_factor,
                    output.repetitions,
                    owner_id,
                ),
            )
        self.logger.debug("Review recorded", word_id=owner_id, rating=int(rating))
        return self.find_by_owner(owner_id)

    def apply_progress(self, owner_id: str, progress: Any) -> None:
        """Overwrite only the schedule fields; history is left alone."""
        validate_schedule_fields(
            progress.next_review_at,
            progress.interval_days,
            progress.ease_factor,
            progress.repetitions,
        )
        cursor = self.conn.execute(
            """
            UPDATE review_states
            SET next_review_at = ?, interval_days = ?, ease_factor = ?, repetitions = ?
            WHERE word_id = ?
            """,
            (
                progress.next_review_at,
                progress.interval_days,
                progress.ease_factor,
                progress.repetitions,
                owner_id,
            ),
        )
        if cursor.rowcount == 0:
            self.conn.rollback()
            raise NotFoundError(f"ReviewState not found for word: {owner_id}", context={"id": owner_id})
        self.conn.commit()

    def put(self, state: ReviewState) -> None:
        """Insert or replace a record together with its full history."""
        with self.conn:
            self.conn.execute(
                f"""
                INSERT INTO review_states ({_STATE_COLUMNS}) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(word_id) DO UPDATE SET
                    next_review_at = excluded.next_review_at,
                    interval_days = excluded.interval_days,
                    ease_factor = excluded.ease_factor,
                    repetitions = excluded.repetitions
                """,
                (
                    state.id,
                    state.next_review_at,
                    state.interval_days,
                    state.ease_factor,
                    state.repetitions,
                ),
            )
            self.conn.execute("DELETE FROM review_logs WHERE word_id = ?", (state.id,))
            self.conn.executemany(
                "INSERT INTO review_logs (word_id, reviewed_at, rating, interval_days) VALUES (?, ?, ?, ?)",
                [(state.id, e.reviewed_at, e.rating, e.interval_days) for e in state.history],
            )

    def delete(self, owner_id: str) -> None:
        cursor = self.conn.execute("DELETE FROM review_states WHERE word_id = ?", (owner_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"ReviewState not found for word: {owner_id}", context={"id": owner_id})
        self.conn.commit()

    def stats(self, now: Optional[int] = None) -> ReviewStats:
        now = self.clock() if now is None else now
        today_start = start_of_day(now)
        row = self.conn.execute(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN rs.next_review_at <= ? THEN 1 ELSE 0 END) AS due_today,
                SUM(CASE WHEN last_log.reviewed_at >= ? THEN 1 ELSE 0 END) AS completed_today
            FROM review_states rs
            LEFT JOIN review_logs last_log ON last_log.id = (
                SELECT MAX(id) FROM review_logs WHERE word_id = rs.word_id
            )
            """,
            (now, today_start),
        ).fetchone()
        return ReviewStats(
            total=int(row["total"] or 0),
            due_today=int(row["due_today"] or 0),
            completed_today=int(row["completed_today"] or 0),
        )

    def _exists(self, owner_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM review_states WHERE word_id = ?", (owner_id,)).fetchone()
        return row is not None

    def _select(self, clause: str, params: tuple = ()) -> List[ReviewState]:
        rows = self.conn.execute(f"SELECT {_STATE_COLUMNS} FROM review_states {clause}", params).fetchall()
        history = self._history_for([row["word_id"] for row in rows])
        return [self._build(row, history.get(row["word_id"], [])) for row in rows]

    def _history_for(self, owner_ids: List[str]) -> Dict[str, List[ReviewLogEntry]]:
        history: Dict[str, List[ReviewLogEntry]] = defaultdict(list)
        if not owner_ids:
            return history
        # Chunked to stay under SQLite's bound-parameter limit
        for start in range(0, len(owner_ids), 500):
            chunk = owner_ids[start:start + 500]
            placeholders = ",".join("?" for _ in chunk)
            rows = self.conn.execute(
                f"""
                SELECT word_id, reviewed_at, rating, interval_days
                FROM review_logs
                WHERE word_id IN ({placeholders})
                ORDER BY id ASC
                """,
                chunk,
            ).fetchall()
            for row in rows:
                history[row["word_id"]].append(
                    ReviewLogEntry(
                        reviewed_at=row["reviewed_at"],
                        rating=row["rating"],
                        interval_days=row["interval_days"],
                    )
                )
        return history

    @staticmethod
    def _build(row: sqlite3.Row, history: List[ReviewLogEntry]) -> ReviewState:
        return ReviewState(
            id=row["word_id"],
            next_review_at=row["next_review_at"],
            interval_days=row["interval_days"],
            ease_factor=row["ease_factor"],
            repetitions=row["repetitions"],
            history=history,
        )
