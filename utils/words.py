from __future__ import annotations

from typing import Optional

from models.review import ReviewState
from models.word import VocabularyItem, WordCreate, WordUpdate
from utils.errors import LexiSyncError, NotFoundError
from utils.events import REVIEW_COMPLETED, WORD_CREATED, WORD_DELETED, WORD_UPDATED
from utils.log import get_logger
from utils.sm2 import DEFAULT_SM2_CONFIG, SM2Config, advance, initial_review_state

logger = get_logger("words")


async def save_word(
    draft: WordCreate,
    word_store,
    review_store,
    dictionary=None,
    bus=None,
    notifier=None,
    config: SM2Config = DEFAULT_SM2_CONFIG,
) -> VocabularyItem:
    """Collect a word: fill definitions from the dictionary, store it, schedule it.

    A failed lookup or a failed review-state insert is logged and the word is
    kept anyway. Store validation and duplicate errors propagate.
    """
    if dictionary is not None and not draft.definitions:
        try:
            found = await dictionary.lookup(draft.word)
        except LexiSyncError as exc:
            logger.warning("Dictionary lookup failed", word=draft.word, error=str(exc))
        else:
            draft = draft.model_copy(
                update={
                    "definitions": found.definitions,
                    "phonetic": draft.phonetic or found.phonetic,
                    "audio_url": draft.audio_url or found.audio_url,
                }
            )

    word_id = word_store.create(draft)
    try:
        if review_store.find_by_owner(word_id) is None:
            review_store.create(word_id, initial_review_state(word_store.clock(), config))
    except LexiSyncError as exc:
        logger.error("Failed to create review state", word_id=word_id, error=str(exc))

    item = word_store.find_by_id(word_id)
    if bus is not None:
        bus.emit(WORD_CREATED, {"id": word_id, "word": item.word})
    if notifier is not None:
        notifier.notify("Word saved", f'"{item.word}" added to your vocabulary', "success")
    logger.info("Word saved", word_id=word_id)
    return item


def edit_word(word_id: str, patch: WordUpdate, word_store, bus=None) -> VocabularyItem:
    item = word_store.update(word_id, patch)
    if bus is not None:
        bus.emit(WORD_UPDATED, {"id": word_id})
    return item


def remove_word(word_id: str, word_store, hard: bool = False, bus=None) -> None:
    if hard:
        word_store.delete(word_id)
    else:
        word_store.soft_delete(word_id)
    if bus is not None:
        bus.emit(WORD_DELETED, {"id": word_id, "hard": hard})


def submit_review(
    word_id: str,
    rating: int,
    review_store,
    config: SM2Config = DEFAULT_SM2_CONFIG,
    bus=None,
) -> ReviewState:
    """Schedule the next review of `word_id` from `rating` and record it."""
    state = review_store.find_by_owner(word_id)
    if state is None:
        raise NotFoundError(f"ReviewState not found for word: {word_id}", context={"id": word_id})
    output = advance(state, rating, config, now=review_store.clock())
    updated = review_store.record_review(word_id, rating, output)
    if bus is not None:
        bus.emit(
            REVIEW_COMPLETED,
            {
                "id": word_id,
                "rating": int(rating),
                "nextReviewAt": updated.next_review_at,
                "intervalDays": updated.interval_days,
            },
        )
    return updated
