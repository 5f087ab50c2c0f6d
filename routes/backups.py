import io
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from db.review_store import ReviewStore
from db.word_store import WordStore
from models.snapshot import ImportResult
from utils.clock import Clock
from utils.merge import import_document
from utils.notify import NotificationSink
from utils.snapshot import dumps, export_backup, export_snapshot, loads
from .deps import get_clock, get_notifier, get_review_store, get_word_store

router = APIRouter()


@router.get("/export")
async def download_backup(
    format: str = "backup",
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
    clock: Clock = Depends(get_clock),
):
    """Whole store as a JSON attachment (`format=snapshot` for the device snapshot shape)."""
    if format not in {"backup", "snapshot"}:
        raise HTTPException(status_code=400, detail="format must be 'backup' or 'snapshot'")
    if format == "snapshot":
        document = export_snapshot(words, reviews, clock=clock)
    else:
        document = export_backup(words, reviews, clock=clock)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    filename = f"lexisync-{format}-{timestamp}.json"
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    data = dumps(document).encode("utf-8")
    return StreamingResponse(io.BytesIO(data), media_type="application/json", headers=headers)


def _summarize(result: ImportResult, notifier: NotificationSink) -> ImportResult:
    failed = result.words.failed + result.review_states.failed
    notifier.notify(
        "Import finished",
        f"{result.words.imported} words and {result.review_states.imported} review states imported"
        + (f", {failed} failed" if failed else ""),
        "warning" if failed else "success",
    )
    return result


@router.post("/import", response_model=ImportResult)
async def import_backup(
    request: Request,
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Merge a backup document or snapshot sent as the JSON request body."""
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="Backup document is required")
    document = loads(body)
    return _summarize(import_document(document, words, reviews), notifier)


@router.post("/restore", response_model=ImportResult)
async def restore_backup(
    file: UploadFile = File(...),
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Same merge as /import, from an uploaded backup file."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Backup file is required")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Backup file is empty")
    document = loads(data)
    return _summarize(import_document(document, words, reviews), notifier)
