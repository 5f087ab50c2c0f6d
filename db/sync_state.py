from __future__ import annotations

import sqlite3
from typing import Optional

LAST_SYNCED_AT = "last_synced_at"
DEVICE_ID = "device_id"


class SyncStateStore:
    """Key/value rows in ``sync_state``: the sync cursor and this device's id."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM sync_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else default

    def set(self, key: str, value: str) -> None:
        self.conn.execute(
            """
            INSERT INTO sync_state (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, str(value)),
        )
        self.conn.commit()

    def last_synced_at(self) -> int:
        return int(self.get(LAST_SYNCED_AT, "0") or 0)

    def set_last_synced_at(self, timestamp: int) -> None:
        self.set(LAST_SYNCED_AT, str(int(timestamp)))
