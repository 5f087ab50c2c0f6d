from fastapi import APIRouter, Depends

from models.sync import SyncResult, SyncStatus
from utils.notify import NotificationSink
from utils.sync import SyncService
from .deps import get_notifier, get_sync_service

router = APIRouter()


@router.get("/status", response_model=SyncStatus)
async def sync_status(service: SyncService = Depends(get_sync_service)):
    return service.status()


@router.post("", response_model=SyncResult)
async def run_sync(
    service: SyncService = Depends(get_sync_service),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Pull then push now, bypassing the debounce."""
    result = await service.sync()
    notifier.notify(
        "Sync completed",
        f"{result.words_synced} words and {result.reviews_synced} review states synced",
        "success",
    )
    return result


@router.post("/reset")
async def reset_sync(service: SyncService = Depends(get_sync_service)):
    service.reset_cursor()
    return {"lastSyncedAt": 0}
