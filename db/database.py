import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from config import CONFIG_DIR
from utils.log import get_logger
from utils.snapshot import dump_document, export_backup
from .review_store import ReviewStore
from .schema import SCHEMA_SQL, INDEXES_SQL, SCHEMA_VERSION
from .word_store import WordStore

DB_PATH = CONFIG_DIR / "lexisync.db"
BACKUP_DIR = CONFIG_DIR / "backups"
BACKUP_KEEP = 7

logger = get_logger("db")


def connect(db_path=None) -> sqlite3.Connection:
    """Open a connection with dict-like rows and foreign keys enforced."""
    conn = sqlite3.connect(str(db_path or DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes and bring older databases up to date."""
    conn.executescript(SCHEMA_SQL)
    conn.executescript(INDEXES_SQL)
    ensure_word_columns(conn)
    ensure_schema_version(conn)
    conn.commit()


def init_db():
    """Initialize the on-disk database and take the daily backup."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    with get_conn() as conn:
        init_schema(conn)
    run_daily_backup()


def ensure_word_columns(conn: sqlite3.Connection) -> None:
    """Ensure words table has the columns added after the first release."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA table_info(words)")
    columns = {row[1] for row in cursor.fetchall()}
    if "manually_edited" not in columns:
        cursor.execute("ALTER TABLE words ADD COLUMN manually_edited INTEGER NOT NULL DEFAULT 0")
    if "last_viewed_at" not in columns:
        cursor.execute("ALTER TABLE words ADD COLUMN last_viewed_at INTEGER")
    if "deleted_at" not in columns:
        cursor.execute("ALTER TABLE words ADD COLUMN deleted_at INTEGER")


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the SQLite schema version from PRAGMA user_version."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA user_version")
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Set the SQLite schema version via PRAGMA user_version."""
    conn.execute(f"PRAGMA user_version = {int(version)}")


def ensure_schema_version(conn: sqlite3.Connection) -> None:
    """Ensure the current schema version is written to the database."""
    current = get_schema_version(conn)
    if current != SCHEMA_VERSION:
        set_schema_version(conn, SCHEMA_VERSION)


def write_backup_file(destination: Path, conn: sqlite3.Connection) -> int:
    """Export the whole store as a JSON backup document. Returns the word count."""
    document = export_backup(WordStore(conn), ReviewStore(conn))
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(dump_document(document), indent=2), encoding="utf-8")
    return document.metadata.total_words


def run_daily_backup(today: Optional[date] = None) -> Optional[Path]:
    """Write a daily rolling JSON backup and prune old ones."""
    if not DB_PATH.exists():
        return None
    BACKUP_DIR.mkdir(parents=True, exist_ok=True)
    today = today or date.today()
    existing = sorted(BACKUP_DIR.glob("*.json"), key=lambda path: path.stat().st_mtime, reverse=True)
    if existing:
        latest_date = date.fromtimestamp(existing[0].stat().st_mtime)
        if latest_date == today:
            return None
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    backup_path = BACKUP_DIR / f"backup-{timestamp}.json"
    with get_conn() as conn:
        total = write_backup_file(backup_path, conn)
    logger.info("Daily backup written", path=str(backup_path), words=total)
    existing = sorted(BACKUP_DIR.glob("*.json"), key=lambda path: path.stat().st_mtime, reverse=True)
    for old_backup in existing[BACKUP_KEEP:]:
        old_backup.unlink(missing_ok=True)
    return backup_path


@contextmanager
def get_conn():
    """Context manager for a SQLite connection on DB_PATH."""
    conn = connect(DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def get_db():
    """FastAPI dependency that yields a DB connection and closes it afterwards."""
    with get_conn() as conn:
        yield conn
