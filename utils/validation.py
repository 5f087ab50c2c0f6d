from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import urlsplit

from utils.errors import ValidationError

WORD_MIN_LENGTH = 1
WORD_MAX_LENGTH = 50
CONTEXT_MIN_LENGTH = 1
CONTEXT_MAX_LENGTH = 500
TAG_MAX_COUNT = 10
TAG_MAX_LENGTH = 20
LANGUAGE_CODES = frozenset({"en", "ja", "zh", "ko", "es", "fr", "de", "it", "pt", "ru"})
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5


def is_valid_word(word: Optional[str]) -> bool:
    if not isinstance(word, str):
        return False
    return WORD_MIN_LENGTH <= len(word.strip()) <= WORD_MAX_LENGTH


def is_valid_context(context: Optional[str]) -> bool:
    if not isinstance(context, str):
        return False
    return CONTEXT_MIN_LENGTH <= len(context.strip()) <= CONTEXT_MAX_LENGTH


def is_valid_url(url: Optional[str]) -> bool:
    """Empty is allowed (manual entries have no source page)."""
    if not isinstance(url, str):
        return False
    if not url.strip():
        return True
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc or parts.path)


def is_valid_tags(tags: Iterable[str]) -> bool:
    tags = list(tags)
    if len(tags) > TAG_MAX_COUNT:
        return False
    return all(
        isinstance(tag, str) and 0 < len(tag.strip()) <= TAG_MAX_LENGTH
        for tag in tags
    )


def is_valid_language_code(code: Optional[str]) -> bool:
    return code in LANGUAGE_CODES


def validate_word_fields(
    word: str,
    context: str,
    url: str,
    tags: Iterable[str] = (),
    language: Optional[str] = None,
) -> None:
    """Raise ValidationError for the first field that breaks a constraint."""
    if not is_valid_word(word):
        raise ValidationError(
            f"Invalid word: must be {WORD_MIN_LENGTH}-{WORD_MAX_LENGTH} characters",
            field="word",
            value=word,
        )
    if not is_valid_context(context):
        raise ValidationError(
            f"Invalid context: must be {CONTEXT_MIN_LENGTH}-{CONTEXT_MAX_LENGTH} characters",
            field="context",
            value=context,
        )
    if not is_valid_url(url):
        raise ValidationError("Invalid URL", field="url", value=url)
    tags = list(tags)
    if not is_valid_tags(tags):
        raise ValidationError(
            f"Invalid tags: maximum {TAG_MAX_COUNT} tags, each up to {TAG_MAX_LENGTH} characters",
            field="tags",
            value=tags,
        )
    if language is not None and not is_valid_language_code(language):
        raise ValidationError("Invalid language code", field="language", value=language)


def validate_schedule_fields(
    next_review_at: int,
    interval_days: int,
    ease_factor: float,
    repetitions: int,
) -> None:
    if next_review_at is None or next_review_at < 0:
        raise ValidationError(
            "Invalid nextReviewAt: must be a non-negative timestamp",
            field="next_review_at",
            value=next_review_at,
        )
    if interval_days is None or interval_days < 0:
        raise ValidationError(
            "Invalid intervalDays: must be non-negative",
            field="interval_days",
            value=interval_days,
        )
    if ease_factor is None or not MIN_EASE_FACTOR <= ease_factor <= MAX_EASE_FACTOR:
        raise ValidationError(
            f"Invalid easeFactor: must be between {MIN_EASE_FACTOR} and {MAX_EASE_FACTOR}",
            field="ease_factor",
            value=ease_factor,
        )
    if repetitions is None or repetitions < 0:
        raise ValidationError(
            "Invalid repetitions: must be non-negative",
            field="repetitions",
            value=repetitions,
        )
