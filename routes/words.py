from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from db.word_store import WordStore
from db.review_store import ReviewStore
from models.word import VocabularyItem, WordCreate, WordUpdate
from utils.errors import NotFoundError
from utils.events import WORD_DELETED, WORD_UPDATED, EventBus
from utils.sm2 import SM2Config
from utils.words import edit_word, remove_word, save_word
from .deps import (
    get_dictionary,
    get_event_bus,
    get_notifier,
    get_review_store,
    get_sm2_config,
    get_word_store,
)

router = APIRouter()


@router.post("", response_model=VocabularyItem, status_code=status.HTTP_201_CREATED)
async def create_word(
    draft: WordCreate,
    lookup: bool = True,
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
    dictionary=Depends(get_dictionary),
    bus: EventBus = Depends(get_event_bus),
    notifier=Depends(get_notifier),
    sm2_config: SM2Config = Depends(get_sm2_config),
):
    """Collect a word. Definitions are looked up when none are given."""
    return await save_word(
        draft,
        words,
        reviews,
        dictionary=dictionary if lookup else None,
        bus=bus,
        notifier=notifier,
        config=sm2_config,
    )


@router.get("", response_model=List[VocabularyItem])
async def list_words(
    q: Optional[str] = None,
    tag: Optional[str] = None,
    favorites: bool = False,
    limit: int = Query(default=20, ge=1, le=500),
    words: WordStore = Depends(get_word_store),
):
    if q is not None:
        return words.search(q)[:limit]
    if tag:
        return words.find_by_tag(tag)[:limit]
    if favorites:
        return words.find_favorites()[:limit]
    return words.find_recent(limit)


@router.post("/{word_id:path}/view", status_code=status.HTTP_204_NO_CONTENT)
async def view_word(word_id: str, words: WordStore = Depends(get_word_store)):
    words.increment_view_count(word_id)


@router.post("/{word_id:path}/restore", response_model=VocabularyItem)
async def restore_word(
    word_id: str,
    words: WordStore = Depends(get_word_store),
    bus: EventBus = Depends(get_event_bus),
):
    words.restore(word_id)
    bus.emit(WORD_UPDATED, {"id": word_id})
    return words.find_by_id(word_id)


@router.get("/{word_id:path}", response_model=VocabularyItem)
async def get_word(word_id: str, words: WordStore = Depends(get_word_store)):
    item = words.find_by_id(word_id)
    if item is None:
        raise NotFoundError(f"Word not found: {word_id}", context={"id": word_id})
    return item


@router.patch("/{word_id:path}", response_model=VocabularyItem)
async def update_word(
    word_id: str,
    patch: WordUpdate,
    words: WordStore = Depends(get_word_store),
    bus: EventBus = Depends(get_event_bus),
):
    return edit_word(word_id, patch, words, bus=bus)


@router.delete("/{word_id:path}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_word(
    word_id: str,
    hard: bool = False,
    words: WordStore = Depends(get_word_store),
    bus: EventBus = Depends(get_event_bus),
):
    remove_word(word_id, words, hard=hard, bus=bus)


@router.delete("", response_model=None)
async def clear_words(
    words: WordStore = Depends(get_word_store),
    bus: EventBus = Depends(get_event_bus),
):
    count = words.clear_all()
    bus.emit(WORD_DELETED, {"all": True, "count": count})
    return {"deleted": count}
