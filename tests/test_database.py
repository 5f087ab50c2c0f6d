import json
import os
import time
from datetime import date

from db import database
from db.review_store import ReviewStore
from db.word_store import WordStore
from models.word import WordCreate
from utils.sm2 import initial_review_state


def _use_tmp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DB_PATH", tmp_path / "lexisync.db")
    monkeypatch.setattr(database, "BACKUP_DIR", tmp_path / "backups")


def test_init_schema_is_repeatable_and_versions_database():
    conn = database.connect(":memory:")
    database.init_schema(conn)
    database.init_schema(conn)
    assert database.get_schema_version(conn) > 0
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"words", "review_states", "review_logs", "quizzes", "sync_state"} <= tables


def test_init_db_writes_first_daily_backup(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)
    database.init_db()
    with database.get_conn() as conn:
        word_id = WordStore(conn).create(WordCreate(word="lucid", context="Lucid prose.", url=""))
        ReviewStore(conn).create(word_id, initial_review_state(0))

    backups = list((tmp_path / "backups").glob("*.json"))
    assert len(backups) == 1
    assert database.run_daily_backup() is None


def test_backup_file_is_an_importable_document(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)
    with database.get_conn() as conn:
        database.init_schema(conn)
        word_id = WordStore(conn).create(WordCreate(word="lucid", context="Lucid prose.", url=""))
        ReviewStore(conn).create(word_id, initial_review_state(0))

    path = database.run_daily_backup(today=date.today())
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["metadata"] == {"totalWords": 1, "totalReviewStates": 1}
    assert data["words"][0]["id"] == word_id


def test_old_backups_are_pruned(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)
    with database.get_conn() as conn:
        database.init_schema(conn)
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    old = time.time() - 30 * 24 * 60 * 60
    for index in range(database.BACKUP_KEEP + 2):
        path = backup_dir / f"backup-old-{index}.json"
        path.write_text("{}", encoding="utf-8")
        os.utime(path, (old + index, old + index))

    assert database.run_daily_backup() is not None
    assert len(list(backup_dir.glob("*.json"))) == database.BACKUP_KEEP


def test_backup_skipped_without_database(tmp_path, monkeypatch):
    _use_tmp_db(tmp_path, monkeypatch)
    assert database.run_daily_backup() is None
