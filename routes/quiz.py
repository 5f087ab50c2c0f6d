from fastapi import APIRouter, Depends, status

from models.quiz import MergeResult, ProgressUpload, QuizCreate, QuizLink, QuizSnapshot
from utils.errors import NotFoundError
from utils.notify import NotificationSink
from utils.quiz import QuizService
from .deps import get_notifier, get_quiz_service

router = APIRouter()


@router.post("", response_model=QuizLink, status_code=status.HTTP_201_CREATED)
async def create_quiz(payload: QuizCreate, quizzes: QuizService = Depends(get_quiz_service)):
    words = None
    if payload.word_ids:
        words = []
        for word_id in payload.word_ids:
            item = quizzes.word_store.find_by_id(word_id)
            if item is None or item.deleted_at is not None:
                raise NotFoundError(f"Word not found: {word_id}", context={"id": word_id})
            words.append(item)
    return quizzes.upload_quiz(payload.account_id, words, max_words=payload.max_words)


@router.post("/cleanup")
async def cleanup_quizzes(quizzes: QuizService = Depends(get_quiz_service)):
    return {"deleted": quizzes.cleanup_expired()}


@router.get("/{quiz_id}", response_model=QuizSnapshot)
async def get_quiz(quiz_id: str, quizzes: QuizService = Depends(get_quiz_service)):
    quiz = quizzes.download_quiz(quiz_id)
    if quiz is None:
        raise NotFoundError(f"Quiz not found or expired: {quiz_id}", context={"quiz_id": quiz_id})
    return quiz


@router.post("/{quiz_id}/progress")
async def upload_progress(
    quiz_id: str,
    payload: ProgressUpload,
    quizzes: QuizService = Depends(get_quiz_service),
):
    """Progress from the second device, keyed by word (or normalizedWord::quizId)."""
    for key, record in payload.records.items():
        quizzes.record_progress(payload.account_id, quiz_id, key, record)
    return {"recorded": len(payload.records)}


@router.post("/{quiz_id}/sync", response_model=MergeResult)
async def sync_quiz(
    quiz_id: str,
    account_id: str,
    quizzes: QuizService = Depends(get_quiz_service),
    notifier: NotificationSink = Depends(get_notifier),
):
    result = quizzes.sync_review_states(account_id, quiz_id)
    if result.synced:
        notifier.notify("Quiz synced", f"{result.synced} review states updated from quiz", "success")
    return result
