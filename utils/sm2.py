from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping, Optional

from utils.clock import now_ms
from utils.errors import ValidationError

DAY_MS = 24 * 60 * 60 * 1000


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4
    VERY_EASY = 5


PASS_RATING = Rating.GOOD


def parse_rating(value: Any) -> Rating:
    try:
        return Rating(int(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Rating must be 1..5, got {value!r}", field="rating", value=value) from exc


@dataclass(frozen=True)
class SM2Config:
    min_ease: float = 1.3
    max_ease: float = 2.5
    first_interval: int = 1
    second_interval: int = 6

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "SM2Config":
        """Build a config from a `[scheduler]` table, falling back to defaults."""
        values = values or {}
        defaults = cls()
        return cls(
            min_ease=float(values.get("min_ease", defaults.min_ease)),
            max_ease=float(values.get("max_ease", defaults.max_ease)),
            first_interval=int(values.get("first_interval", defaults.first_interval)),
            second_interval=int(values.get("second_interval", defaults.second_interval)),
        )


DEFAULT_SM2_CONFIG = SM2Config()
INITIAL_EASE_FACTOR = 2.5


@dataclass(frozen=True)
class SchedulerState:
    interval_days: int
    ease_factor: float
    repetitions: int


@dataclass(frozen=True)
class SchedulerOutput:
    next_review_at: int
    interval_days: int
    ease_factor: float
    repetitions: int


def days_to_ms(days: int) -> int:
    return int(days) * DAY_MS


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def next_ease_factor(ease_factor: float, rating: int, config: SM2Config = DEFAULT_SM2_CONFIG) -> float:
    q = 5 - int(rating)
    updated = ease_factor + (0.1 - q * (0.08 + q * 0.02))
    return max(config.min_ease, min(config.max_ease, updated))


def advance(
    state: Any,
    rating: int,
    config: SM2Config = DEFAULT_SM2_CONFIG,
    now: Optional[int] = None,
) -> SchedulerOutput:
    """Apply one SM-2 review to `state` and return the new schedule.

    `state` is anything with interval_days, ease_factor and repetitions
    attributes (SchedulerState, ReviewState). Ratings below GOOD reset the
    repetition count and fall back to the first interval.
    """
    rating = parse_rating(rating)
    anchor = now_ms() if now is None else now
    new_ef = next_ease_factor(state.ease_factor, rating, config)
    if rating < PASS_RATING:
        new_repetitions = 0
        new_interval = config.first_interval
    else:
        new_repetitions = state.repetitions + 1
        if new_repetitions == 1:
            new_interval = config.first_interval
        elif new_repetitions == 2:
            new_interval = config.second_interval
        else:
            new_interval = _round_half_up(state.interval_days * new_ef)
    return SchedulerOutput(
        next_review_at=anchor + days_to_ms(new_interval),
        interval_days=new_interval,
        ease_factor=new_ef,
        repetitions=new_repetitions,
    )


def initial_review_state(now: Optional[int] = None, config: SM2Config = DEFAULT_SM2_CONFIG) -> SchedulerOutput:
    """Schedule for a freshly collected word: first review one interval out."""
    anchor = now_ms() if now is None else now
    return SchedulerOutput(
        next_review_at=anchor + days_to_ms(config.first_interval),
        interval_days=config.first_interval,
        ease_factor=INITIAL_EASE_FACTOR,
        repetitions=0,
    )


def is_overdue(next_review_at: int, now: Optional[int] = None) -> bool:
    return (now_ms() if now is None else now) > next_review_at


def time_until_review(next_review_at: int, now: Optional[int] = None) -> int:
    """Milliseconds until the review is due; negative once overdue."""
    return next_review_at - (now_ms() if now is None else now)
