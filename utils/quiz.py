"""Short-lived quiz snapshots for reviewing on a second device.

The desktop uploads a handful of words; the second device reviews them and
writes progress back under ``normalizedWord::quizId`` keys; the desktop then
folds that progress into its own review states with the progress-dominance
rule from ``utils.merge``.
"""

from __future__ import annotations

import secrets
import string
from typing import Any, Callable, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from models.quiz import MergeResult, QuizLink, QuizSnapshot, QuizWord, RemoteProgress
from models.word import VocabularyItem
from utils.clock import Clock, now_ms
from utils.errors import NotFoundError, ValidationError
from utils.log import get_logger
from utils.merge import merge_remote_progress
from utils.normalize import ID_SEPARATOR, normalize_word
from utils.sm2 import DAY_MS

BASE62_ALPHABET = string.ascii_letters + string.digits
QUIZ_ID_LENGTH = 8
DEFAULT_EXPIRATION_MS = 7 * DAY_MS
DEFAULT_MAX_WORDS = 20


def generate_quiz_id(length: int = QUIZ_ID_LENGTH) -> str:
    return "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))


def quiz_progress_key(word: str, quiz_id: str) -> str:
    return f"{normalize_word(word)}{ID_SEPARATOR}{quiz_id}"


def select_quiz_words(
    words: Iterable[VocabularyItem],
    review_states: Mapping[str, Any],
    now: int,
    max_words: int = DEFAULT_MAX_WORDS,
) -> List[VocabularyItem]:
    """Due words first (hardest first), then everything else newest first."""

    def priority(item: VocabularyItem) -> tuple:
        state = review_states.get(item.id)
        is_due = state is not None and state.next_review_at <= now
        if is_due:
            return (0, state.ease_factor, -item.created_at)
        return (1, 0.0, -item.created_at)

    live = [item for item in words if item.deleted_at is None]
    return sorted(live, key=priority)[:max_words]


class QuizService:
    def __init__(
        self,
        quiz_store,
        word_store,
        review_store,
        clock: Clock = now_ms,
        base_url: str = "http://127.0.0.1:8000/quiz",
        expiration_ms: int = DEFAULT_EXPIRATION_MS,
        id_factory: Callable[[], str] = generate_quiz_id,
        logger=None,
    ):
        self.quiz_store = quiz_store
        self.word_store = word_store
        self.review_store = review_store
        self.clock = clock
        self.base_url = base_url
        self.expiration_ms = expiration_ms
        self.id_factory = id_factory
        self.logger = logger or get_logger("quiz")

    @classmethod
    def from_config(cls, quiz_store, word_store, review_store, config: Mapping[str, Any], **kwargs) -> "QuizService":
        section = config.get("quiz", {})
        return cls(
            quiz_store,
            word_store,
            review_store,
            base_url=section.get("base_url", "http://127.0.0.1:8000/quiz"),
            expiration_ms=int(section.get("expiration_days", 7)) * DAY_MS,
            **kwargs,
        )

    def quiz_url(self, quiz_id: str, account_id: str) -> str:
        return f"{self.base_url}?id={quiz_id}&uid={account_id}"

    def upload_quiz(
        self,
        account_id: str,
        words: Optional[Iterable[VocabularyItem]] = None,
        max_words: int = DEFAULT_MAX_WORDS,
    ) -> QuizLink:
        """Store a quiz built from `words` (all live words when omitted)."""
        if not account_id:
            raise ValidationError("Account id is required", field="account_id", value=account_id)
        now = self.clock()
        candidates = list(words) if words is not None else self.word_store.find_all(include_deleted=False)
        states = {state.id: state for state in self.review_store.find_all()}
        selected = select_quiz_words(candidates, states, now, max_words)
        if not selected:
            raise ValidationError("No words available for a quiz", field="words")

        quiz_id = self.id_factory()
        while self.quiz_store.exists(quiz_id):
            quiz_id = self.id_factory()
        quiz = QuizSnapshot(
            id=quiz_id,
            account_id=account_id,
            words=[
                QuizWord(w=item.word, d=item.definitions, p=item.phonetic, a=item.audio_url)
                for item in selected
            ],
            review_states={},
            created_at=now,
            expires_at=now + self.expiration_ms,
        )
        self.quiz_store.save(quiz)
        self.logger.info("Quiz uploaded", quiz_id=quiz_id, word_count=len(selected))
        return QuizLink(
            quiz_id=quiz_id,
            url=self.quiz_url(quiz_id, account_id),
            word_count=len(selected),
            expires_at=quiz.expires_at,
        )

    def _live_quiz(self, quiz_id: str, account_id: Optional[str] = None) -> Optional[QuizSnapshot]:
        quiz = self.quiz_store.get(quiz_id, account_id)
        if quiz is None:
            self.logger.warning("Quiz not found", quiz_id=quiz_id)
            return None
        if quiz.expires_at < self.clock():
            self.logger.info("Quiz expired, deleting", quiz_id=quiz_id)
            self.quiz_store.delete(quiz_id)
            return None
        return quiz

    def download_quiz(self, quiz_id: str, account_id: Optional[str] = None) -> Optional[QuizSnapshot]:
        return self._live_quiz(quiz_id, account_id)

    def record_progress(self, account_id: str, quiz_id: str, key: str, progress: Any) -> RemoteProgress:
        """Store progress reported by the second device for one quiz word."""
        quiz = self._live_quiz(quiz_id, account_id)
        if quiz is None:
            raise NotFoundError(f"Quiz not found: {quiz_id}", context={"quiz_id": quiz_id})
        try:
            record = progress if isinstance(progress, RemoteProgress) else RemoteProgress.model_validate(progress)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid progress for {key}", field="progress", value=str(exc)) from exc
        if ID_SEPARATOR not in key:
            key = quiz_progress_key(key, quiz_id)
        self.quiz_store.set_progress(quiz_id, key, record.model_dump(by_alias=True, exclude_none=True))
        return record

    def sync_review_states(self, account_id: str, quiz_id: str) -> MergeResult:
        """Merge the progress stored on a quiz. Absent or expired quizzes merge nothing."""
        quiz = self._live_quiz(quiz_id, account_id)
        if quiz is None:
            return MergeResult()
        if not quiz.review_states:
            self.logger.info("No review states on quiz", quiz_id=quiz_id)
            return MergeResult()
        result = merge_remote_progress(
            quiz.review_states,
            self.word_store,
            self.review_store,
            clock=self.clock,
            log=self.logger,
        )
        self.logger.info("Review states synced from quiz", quiz_id=quiz_id, synced=result.synced)
        return result

    def cleanup_expired(self) -> int:
        count = self.quiz_store.delete_expired(self.clock())
        if count:
            self.logger.info("Expired quizzes removed", count=count)
        return count

