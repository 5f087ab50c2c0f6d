from pydantic import AliasChoices, Field
from typing import Any, Dict, List, Optional

from .word import CamelModel


class RemoteProgress(CamelModel):
    """Scheduling fields recorded by another device for one item."""
    next_review_at: Optional[int] = Field(default=None, ge=0)
    interval_days: int = Field(
        default=1,
        ge=0,
        validation_alias=AliasChoices("intervalDays", "interval_days", "interval"),
    )
    ease_factor: float = Field(default=2.5, ge=1.3, le=2.5)
    repetitions: int = Field(default=0, ge=0)


class QuizWord(CamelModel):
    w: str
    d: List[str] = Field(default_factory=list)
    p: Optional[str] = None
    a: Optional[str] = None


class QuizSnapshot(CamelModel):
    id: str
    account_id: str
    words: List[QuizWord] = Field(default_factory=list)
    # Raw per-key progress; each record is validated on merge
    review_states: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    created_at: int
    expires_at: int


class QuizCreate(CamelModel):
    account_id: str = Field(min_length=1)
    word_ids: Optional[List[str]] = None
    max_words: int = Field(default=20, ge=1, le=200)


class QuizLink(CamelModel):
    quiz_id: str
    url: str
    word_count: int
    expires_at: int


class ProgressUpload(CamelModel):
    account_id: str = Field(min_length=1)
    records: Dict[str, Dict[str, Any]]


class MergeResult(CamelModel):
    synced: int = 0
    created: int = 0
    updated: int = 0
    kept: int = 0
    unmatched: int = 0
    failed: int = 0
