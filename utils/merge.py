"""Conflict resolution between the local store and other copies.

Two rule sets live here:

* full-document import: items are last-writer-wins on ``updatedAt``, review
  states keep whichever copy has the longer history;
* cross-device progress: the record that got further (repetitions, then
  interval, then ease) wins, and a full tie keeps what is already stored.

Both are idempotent: applying the same input twice changes nothing the
second time.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from models.quiz import MergeResult, RemoteProgress
from models.review import ReviewState
from models.snapshot import ImportCounts, ImportResult
from models.word import VocabularyItem
from utils.clock import Clock, now_ms
from utils.errors import LexiSyncError, ValidationError
from utils.log import get_logger
from utils.normalize import derive_id, normalize_word, split_id
from utils.snapshot import document_records, parse_document

logger = get_logger("merge")


def progress_key(progress: Any) -> tuple:
    return (progress.repetitions, progress.interval_days, progress.ease_factor)


def dominates(candidate: Any, other: Any) -> bool:
    """True when `candidate` is strictly further along than `other`."""
    return progress_key(candidate) > progress_key(other)


def merge_progress(existing: Any, incoming: Any) -> Any:
    """Pick the winner of two progress records. Ties keep `existing`."""
    return incoming if dominates(incoming, existing) else existing


def _should_replace_word(local: Optional[VocabularyItem], incoming: VocabularyItem) -> bool:
    return local is None or incoming.updated_at > local.updated_at


def _should_replace_state(local: Optional[ReviewState], incoming: ReviewState) -> bool:
    return local is None or len(incoming.history) > len(local.history)


def canonical_item(incoming: VocabularyItem) -> VocabularyItem:
    """Key `incoming` by the id derived from its word and source.

    Records carrying any other id are re-keyed so they land on the same row
    a local create of that word and url would use.
    """
    normalized = normalize_word(incoming.word)
    if not normalized:
        raise ValidationError("Word is empty after normalization", field="word", value=incoming.word)
    word_id = derive_id(incoming.word, incoming.url)
    if word_id == incoming.id and normalized == incoming.normalized_word:
        return incoming
    return incoming.model_copy(update={"id": word_id, "normalized_word": normalized})


def rekey_state(state: ReviewState, aliases: Dict[str, str]) -> ReviewState:
    word_id = aliases.get(state.id)
    return state if word_id is None else state.model_copy(update={"id": word_id})


def apply_word(word_store, incoming: VocabularyItem, counts: ImportCounts) -> str:
    """Last-writer-wins upsert. Returns the id the record is stored under."""
    incoming = canonical_item(incoming)
    local = word_store.find_by_id(incoming.id)
    if not _should_replace_word(local, incoming):
        counts.skipped += 1
        return incoming.id
    word_store.put(incoming)
    counts.imported += 1
    return incoming.id


def apply_review_state(word_store, review_store, incoming: ReviewState, counts: ImportCounts) -> None:
    if word_store.find_by_id(incoming.id) is None:
        logger.debug("Skipping review state without a local word", word_id=incoming.id)
        counts.skipped += 1
        return
    local = review_store.find_by_owner(incoming.id)
    if not _should_replace_state(local, incoming):
        counts.skipped += 1
        return
    review_store.put(incoming)
    counts.imported += 1


def import_document(raw: Any, word_store, review_store, log=None) -> ImportResult:
    """Merge a backup document or snapshot into the local stores.

    The whole document is validated before anything is written. After that a
    record that fails to write is counted as failed and the rest continue.
    """
    log = log or logger
    document = parse_document(raw)
    words, review_states = document_records(document)
    result = ImportResult()
    aliases: Dict[str, str] = {}

    for item in words:
        try:
            word_id = apply_word(word_store, item, result.words)
            if word_id != item.id:
                aliases[item.id] = word_id
        except (LexiSyncError, sqlite3.Error) as exc:
            result.words.failed += 1
            log.warning("Failed to import word", word_id=item.id, error=str(exc))

    for state in review_states:
        try:
            apply_review_state(word_store, review_store, rekey_state(state, aliases), result.review_states)
        except (LexiSyncError, sqlite3.Error) as exc:
            result.review_states.failed += 1
            log.warning("Failed to import review state", word_id=state.id, error=str(exc))

    log.info(
        "Import finished",
        words_imported=result.words.imported,
        words_skipped=result.words.skipped,
        words_failed=result.words.failed,
        states_imported=result.review_states.imported,
        states_skipped=result.review_states.skipped,
        states_failed=result.review_states.failed,
    )
    return result


def resolve_owner(word_store, key: str) -> Optional[str]:
    """Map a progress key to a local item id.

    Keys are either full item ids or ``normalizedWord::quizId``; the latter
    resolve to the oldest live item with that normalized word.
    """
    item = word_store.find_by_id(key)
    if item is not None and item.deleted_at is None:
        return item.id
    word, _ = split_id(key)
    if not normalize_word(word):
        return None
    matches = word_store.find_by_normalized_word(word)
    return matches[0].id if matches else None


def _coerce_progress(value: Any, now: int) -> RemoteProgress:
    progress = value if isinstance(value, RemoteProgress) else RemoteProgress.model_validate(value)
    if progress.next_review_at is None:
        progress = progress.model_copy(update={"next_review_at": now})
    return progress


def merge_remote_progress(
    records: Mapping[str, Any],
    word_store,
    review_store,
    clock: Clock = now_ms,
    log=None,
) -> MergeResult:
    """Fold remote per-item progress into local review states."""
    log = log or logger
    result = MergeResult()
    now = clock()
    for key, value in records.items():
        try:
            progress = _coerce_progress(value, now)
        except (PydanticValidationError, TypeError) as exc:
            result.failed += 1
            log.warning("Invalid remote progress", key=key, error=str(exc))
            continue

        owner_id = resolve_owner(word_store, key)
        if owner_id is None:
            result.unmatched += 1
            log.debug("No local word for remote progress", key=key)
            continue

        try:
            local = review_store.find_by_owner(owner_id)
            if local is None:
                review_store.create(owner_id, progress)
                result.created += 1
                result.synced += 1
            elif merge_progress(local, progress) is progress:
                review_store.apply_progress(owner_id, progress)
                result.updated += 1
                result.synced += 1
            else:
                result.kept += 1
        except (LexiSyncError, sqlite3.Error) as exc:
            result.failed += 1
            log.warning("Failed to merge remote progress", key=key, word_id=owner_id, error=str(exc))

    log.info(
        "Remote progress merged",
        synced=result.synced,
        created=result.created,
        updated=result.updated,
        kept=result.kept,
        unmatched=result.unmatched,
        failed=result.failed,
    )
    return result

