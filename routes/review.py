from fastapi import APIRouter, Depends, Query
from typing import List

from db.review_store import ReviewStore
from models.review import ReviewState, ReviewStats, ReviewSubmit
from utils.clock import Clock
from utils.errors import NotFoundError
from utils.events import EventBus
from utils.sm2 import SM2Config
from utils.words import submit_review
from .deps import get_clock, get_event_bus, get_review_store, get_sm2_config

router = APIRouter()


@router.get("/due", response_model=List[ReviewState])
async def due_reviews(
    limit: int = Query(default=20, ge=1, le=500),
    reviews: ReviewStore = Depends(get_review_store),
    clock: Clock = Depends(get_clock),
):
    """Review states due now, earliest first."""
    return reviews.find_due(limit=limit, now=clock())


@router.get("/stats", response_model=ReviewStats)
async def review_stats(
    reviews: ReviewStore = Depends(get_review_store),
    clock: Clock = Depends(get_clock),
):
    return reviews.stats(now=clock())


@router.get("/{word_id:path}", response_model=ReviewState)
async def get_review_state(word_id: str, reviews: ReviewStore = Depends(get_review_store)):
    state = reviews.find_by_owner(word_id)
    if state is None:
        raise NotFoundError(f"ReviewState not found for word: {word_id}", context={"id": word_id})
    return state


@router.post("/{word_id:path}", response_model=ReviewState)
async def review_word(
    word_id: str,
    submission: ReviewSubmit,
    reviews: ReviewStore = Depends(get_review_store),
    sm2_config: SM2Config = Depends(get_sm2_config),
    bus: EventBus = Depends(get_event_bus),
):
    """Record a 1-5 rating and return the new schedule."""
    return submit_review(word_id, submission.rating, reviews, config=sm2_config, bus=bus)
