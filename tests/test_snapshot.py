import json

import pytest

from db import database
from db.review_store import ReviewStore
from db.word_store import WordStore
from models.snapshot import BACKUP_VERSION, BackupDocument, Snapshot
from models.word import WordCreate
from utils.errors import StructuralValidationError
from utils.sm2 import initial_review_state
from utils.snapshot import dump_document, dumps, export_backup, export_snapshot, loads, parse_document

NOW = 1_700_000_000_000


def _stores():
    conn = database.connect(":memory:")
    database.init_schema(conn)
    clock = lambda: NOW
    words = WordStore(conn, clock=clock)
    reviews = ReviewStore(conn, clock=clock)
    word_id = words.create(WordCreate(word="lucid", context="A lucid explanation.", url="https://example.com/x"))
    reviews.create(word_id, initial_review_state(NOW))
    deleted_id = words.create(WordCreate(word="murky", context="Murky water.", url=""))
    words.soft_delete(deleted_id)
    return words, reviews


def test_export_backup_includes_tombstones_and_metadata():
    words, reviews = _stores()
    document = export_backup(words, reviews, clock=lambda: NOW)

    assert document.version == BACKUP_VERSION
    assert document.exported_at == NOW
    assert len(document.words) == 2
    assert document.metadata.total_words == 2
    assert document.metadata.total_review_states == 1


def test_dump_document_uses_camel_case_keys():
    words, reviews = _stores()
    data = dump_document(export_backup(words, reviews, clock=lambda: NOW))

    assert {"version", "exportedAt", "words", "reviewStates", "metadata"} <= set(data)
    assert data["metadata"] == {"totalWords": 2, "totalReviewStates": 1}
    word = data["words"][0]
    assert {"normalizedWord", "createdAt", "updatedAt", "isFavorite", "viewCount"} <= set(word)
    state = data["reviewStates"][0]
    assert {"nextReviewAt", "intervalDays", "easeFactor", "repetitions", "history"} <= set(state)


def test_backup_round_trips_through_json():
    words, reviews = _stores()
    document = export_backup(words, reviews, clock=lambda: NOW)
    parsed = loads(dumps(document))
    assert isinstance(parsed, BackupDocument)
    assert parsed == document


def test_snapshot_shape_is_detected():
    words, reviews = _stores()
    snapshot = export_snapshot(words, reviews, clock=lambda: NOW)
    parsed = parse_document(json.loads(dumps(snapshot)))
    assert isinstance(parsed, Snapshot)
    assert len(parsed.word_entries) == 2
    assert parsed.created_at == NOW


def test_parse_reports_every_structural_problem():
    raw = {
        "version": "1.0.0",
        "words": [{"word": "x", "context": "y"}],
        "reviewStates": [{"id": "a::b", "nextReviewAt": 1, "intervalDays": 1, "easeFactor": 9, "repetitions": 0}],
    }
    with pytest.raises(StructuralValidationError) as excinfo:
        parse_document(raw)
    errors = excinfo.value.errors
    assert any(error.startswith("exportedAt") for error in errors)
    assert any(error.startswith("words.0") for error in errors)
    assert any(error.startswith("reviewStates.0.easeFactor") for error in errors)


def test_parse_checks_metadata_counts():
    raw = {"version": "1.0.0", "exportedAt": NOW, "words": [], "reviewStates": [], "metadata": {"totalWords": 3, "totalReviewStates": 0}}
    with pytest.raises(StructuralValidationError) as excinfo:
        parse_document(raw)
    assert excinfo.value.errors == ["metadata.totalWords: expected 0, got 3"]


def test_parse_accepts_legacy_review_state_keys():
    raw = {
        "version": "1.0.0",
        "exportedAt": NOW,
        "words": [],
        "reviewStates": [
            {
                "id": "lucid::example.com/x::review",
                "wordId": "lucid::example.com/x",
                "nextReviewAt": NOW,
                "interval": 6,
                "easeFactor": 2.3,
                "repetitions": 2,
                "history": [{"reviewedAt": NOW - 1, "rating": 4, "interval": 1}],
            }
        ],
    }
    document = parse_document(raw)
    state = document.review_states[0]
    assert state.id == "lucid::example.com/x"
    assert state.interval_days == 6
    assert state.history[0].interval_days == 1


def test_loads_rejects_non_json_and_non_objects():
    with pytest.raises(StructuralValidationError):
        loads("{not json")
    with pytest.raises(StructuralValidationError) as excinfo:
        parse_document([1, 2, 3])
    assert excinfo.value.errors == ["<root>: expected a JSON object"]
