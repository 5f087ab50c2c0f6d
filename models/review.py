from pydantic import AliasChoices, BaseModel, Field, model_validator
from typing import Any, List

from utils.sm2 import Rating
from .word import CamelModel

_INTERVAL_ALIASES = AliasChoices("intervalDays", "interval_days", "interval")


class ReviewLogEntry(CamelModel):
    reviewed_at: int = Field(ge=0)
    rating: int = Field(ge=1, le=5)
    # Interval in effect before this review was recorded
    interval_days: int = Field(ge=0, validation_alias=_INTERVAL_ALIASES)


class ReviewStateBase(CamelModel):
    next_review_at: int = Field(ge=0)
    interval_days: int = Field(ge=0, validation_alias=_INTERVAL_ALIASES)
    ease_factor: float = Field(ge=1.3, le=2.5)
    repetitions: int = Field(ge=0)


class ReviewStateCreate(ReviewStateBase):
    pass


class ReviewState(ReviewStateBase):
    id: str = Field(min_length=1)
    history: List[ReviewLogEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def use_word_id(cls, data: Any) -> Any:
        # Older documents carry the owner in wordId next to a synthetic id
        if isinstance(data, dict) and data.get("wordId"):
            data = {**data, "id": data["wordId"]}
        return data


class ReviewSubmit(BaseModel):
    rating: Rating


class ReviewStats(CamelModel):
    total: int
    due_today: int
    completed_today: int
