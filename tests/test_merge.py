import sqlite3

import pytest

from db import database
from db.review_store import ReviewStore
from db.word_store import WordStore
from models.quiz import RemoteProgress
from models.review import ReviewLogEntry, ReviewState
from models.word import VocabularyItem, WordCreate
from utils.errors import StructuralValidationError
from utils.merge import dominates, import_document, merge_progress, merge_remote_progress
from utils.sm2 import DAY_MS, initial_review_state
from utils.snapshot import dump_document, export_backup

NOW = 1_700_000_000_000


def _stores():
    conn = database.connect(":memory:")
    database.init_schema(conn)
    clock = lambda: NOW
    return WordStore(conn, clock=clock), ReviewStore(conn, clock=clock)


def _item(word: str, updated_at: int = NOW, **extra) -> VocabularyItem:
    data = {
        "id": f"{word}::example.com",
        "word": word,
        "normalized_word": word,
        "context": f"{word} in context",
        "url": "https://example.com",
        "created_at": NOW - DAY_MS,
        "updated_at": updated_at,
    }
    data.update(extra)
    return VocabularyItem(**data)


def _state(word: str, reviews: int, repetitions: int = 1, interval: int = 1, ease: float = 2.5) -> ReviewState:
    return ReviewState(
        id=f"{word}::example.com",
        next_review_at=NOW + interval * DAY_MS,
        interval_days=interval,
        ease_factor=ease,
        repetitions=repetitions,
        history=[ReviewLogEntry(reviewed_at=NOW - i, rating=4, interval_days=1) for i in range(reviews)],
    )


def _document(words, states, exported_at=NOW):
    return {
        "version": "1.0.0",
        "exportedAt": exported_at,
        "words": [item.model_dump(by_alias=True) for item in words],
        "reviewStates": [state.model_dump(by_alias=True) for state in states],
    }


def test_import_into_empty_store_inserts_everything():
    words, reviews = _stores()
    result = import_document(_document([_item("alpha"), _item("beta")], [_state("alpha", 2)]), words, reviews)

    assert (result.words.imported, result.words.skipped, result.words.failed) == (2, 0, 0)
    assert (result.review_states.imported, result.review_states.skipped) == (1, 0)
    assert len(reviews.find_by_owner("alpha::example.com").history) == 2


def test_import_is_idempotent():
    words, reviews = _stores()
    document = _document([_item("alpha")], [_state("alpha", 1)])
    import_document(document, words, reviews)
    before = export_backup(words, reviews, clock=lambda: NOW)

    result = import_document(document, words, reviews)
    assert result.words.imported == 0 and result.words.skipped == 1
    assert result.review_states.imported == 0 and result.review_states.skipped == 1
    assert export_backup(words, reviews, clock=lambda: NOW) == before


def test_import_words_last_writer_wins():
    words, reviews = _stores()
    words.put(_item("alpha", updated_at=NOW, note="local"))
    words.put(_item("beta", updated_at=NOW, note="local"))

    document = _document(
        [_item("alpha", updated_at=NOW + 1, note="remote"), _item("beta", updated_at=NOW, note="remote")],
        [],
    )
    result = import_document(document, words, reviews)

    assert (result.words.imported, result.words.skipped) == (1, 1)
    assert words.find_by_id("alpha::example.com").note == "remote"
    assert words.find_by_id("beta::example.com").note == "local"


def test_import_review_states_longer_history_wins():
    words, reviews = _stores()
    words.put(_item("alpha"))
    words.put(_item("beta"))
    reviews.put(_state("alpha", 2, repetitions=2))
    reviews.put(_state("beta", 2, repetitions=2))

    # alpha: longer history but less progress still wins; beta: equal length keeps local
    document = _document([], [_state("alpha", 3, repetitions=0), _state("beta", 2, repetitions=9)])
    result = import_document(document, words, reviews)

    assert (result.review_states.imported, result.review_states.skipped) == (1, 1)
    assert reviews.find_by_owner("alpha::example.com").repetitions == 0
    assert len(reviews.find_by_owner("alpha::example.com").history) == 3
    assert reviews.find_by_owner("beta::example.com").repetitions == 2


def test_import_skips_review_state_without_local_word():
    words, reviews = _stores()
    result = import_document(_document([], [_state("ghost", 1)]), words, reviews)
    assert (result.review_states.imported, result.review_states.skipped) == (0, 1)
    assert reviews.find_all() == []


def test_import_rejects_whole_document_before_writing():
    words, reviews = _stores()
    document = _document([_item("alpha")], [])
    document["words"].append({"word": "broken"})
    with pytest.raises(StructuralValidationError) as excinfo:
        import_document(document, words, reviews)
    assert excinfo.value.errors
    assert words.find_all() == []


def test_import_counts_failed_records_and_continues(monkeypatch):
    words, reviews = _stores()
    original_put = words.put

    def flaky_put(item):
        if item.id.startswith("alpha"):
            raise sqlite3.IntegrityError("disk says no")
        original_put(item)

    monkeypatch.setattr(words, "put", flaky_put)
    result = import_document(_document([_item("alpha"), _item("beta")], []), words, reviews)

    assert (result.words.imported, result.words.failed) == (1, 1)
    assert words.find_by_id("beta::example.com") is not None


def test_import_accepts_exported_backup():
    source_words, source_reviews = _stores()
    word_id = source_words.create(WordCreate(word="lucid", context="Lucid dreams.", url=""))
    source_reviews.create(word_id, initial_review_state(NOW))
    exported = dump_document(export_backup(source_words, source_reviews, clock=lambda: NOW))

    words, reviews = _stores()
    result = import_document(exported, words, reviews)
    assert result.words.imported == 1
    assert result.review_states.imported == 1


def test_import_rekeys_records_to_derived_id():
    words, reviews = _stores()
    words.put(_item("alpha", note="local"))
    reviews.put(_state("alpha", 1))

    renamed = _item("alpha", updated_at=NOW + 1, id="custom-1", note="remote", url="https://example.com/")
    state = _state("alpha", 3).model_copy(update={"id": "custom-1"})
    result = import_document(_document([renamed], [state]), words, reviews)

    assert (result.words.imported, result.review_states.imported) == (1, 1)
    assert [item.id for item in words.find_all()] == ["alpha::example.com"]
    assert words.find_by_id("custom-1") is None
    assert words.find_by_id("alpha::example.com").note == "remote"
    assert len(reviews.find_by_owner("alpha::example.com").history) == 3


def test_import_counts_item_without_usable_word_as_failed():
    words, reviews = _stores()
    result = import_document(_document([_item("alpha", word="!!!"), _item("beta")], []), words, reviews)
    assert (result.words.imported, result.words.failed) == (1, 1)
    assert [item.id for item in words.find_all()] == ["beta::example.com"]


def test_dominance_is_lexicographic():
    low = RemoteProgress(repetitions=2, interval_days=10, ease_factor=2.5)
    high = RemoteProgress(repetitions=3, interval_days=1, ease_factor=1.3)
    assert dominates(high, low)
    assert not dominates(low, high)

    longer = RemoteProgress(repetitions=2, interval_days=11, ease_factor=1.3)
    assert dominates(longer, low)

    easier = RemoteProgress(repetitions=2, interval_days=10, ease_factor=2.4)
    assert not dominates(easier, low)


def test_merge_progress_tie_keeps_existing():
    existing = RemoteProgress(repetitions=2, interval_days=6, ease_factor=2.5)
    incoming = RemoteProgress(repetitions=2, interval_days=6, ease_factor=2.5)
    assert merge_progress(existing, incoming) is existing
    better = RemoteProgress(repetitions=3, interval_days=6, ease_factor=2.5)
    assert merge_progress(existing, better) is better


def test_merge_remote_progress_creates_updates_and_keeps():
    words, reviews = _stores()
    for word in ("alpha", "beta", "gamma"):
        words.put(_item(word))
    reviews.put(_state("beta", 1, repetitions=1, interval=1))
    reviews.put(_state("gamma", 1, repetitions=5, interval=30))

    records = {
        "alpha::Ab12Cd34": {"nextReviewAt": NOW + DAY_MS, "interval": 1, "easeFactor": 2.5, "repetitions": 1},
        "beta::Ab12Cd34": {"nextReviewAt": NOW + 6 * DAY_MS, "interval": 6, "easeFactor": 2.5, "repetitions": 2},
        "gamma::Ab12Cd34": {"nextReviewAt": NOW + DAY_MS, "interval": 1, "easeFactor": 2.5, "repetitions": 1},
        "ghost::Ab12Cd34": {"interval": 1, "repetitions": 1},
    }
    result = merge_remote_progress(records, words, reviews, clock=lambda: NOW)

    assert (result.created, result.updated, result.kept, result.unmatched) == (1, 1, 1, 1)
    assert result.synced == 2
    assert result.failed == 0

    alpha = reviews.find_by_owner("alpha::example.com")
    assert alpha.repetitions == 1 and alpha.history == []
    beta = reviews.find_by_owner("beta::example.com")
    assert (beta.repetitions, beta.interval_days) == (2, 6)
    assert len(beta.history) == 1
    assert reviews.find_by_owner("gamma::example.com").repetitions == 5


def test_merge_remote_progress_is_idempotent():
    words, reviews = _stores()
    words.put(_item("alpha"))
    records = {"alpha::example.com": {"nextReviewAt": NOW, "intervalDays": 6, "easeFactor": 2.2, "repetitions": 2}}

    first = merge_remote_progress(records, words, reviews, clock=lambda: NOW)
    second = merge_remote_progress(records, words, reviews, clock=lambda: NOW)
    assert first.created == 1
    assert (second.created, second.updated, second.kept) == (0, 0, 1)


def test_merge_remote_progress_counts_invalid_records():
    words, reviews = _stores()
    words.put(_item("alpha"))
    records = {
        "alpha::q1": {"interval": 1, "easeFactor": 9.0, "repetitions": 1},
        "alpha::q2": "not a record",
    }
    result = merge_remote_progress(records, words, reviews, clock=lambda: NOW)
    assert result.failed == 2
    assert reviews.find_by_owner("alpha::example.com") is None


def test_merge_remote_progress_defaults_missing_due_time_to_now():
    words, reviews = _stores()
    words.put(_item("alpha"))
    merge_remote_progress({"alpha::q1": {"interval": 3, "repetitions": 1}}, words, reviews, clock=lambda: NOW)
    state = reviews.find_by_owner("alpha::example.com")
    assert state.next_review_at == NOW
    assert state.ease_factor == 2.5
