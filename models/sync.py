from pydantic import Field
from typing import Optional

from .word import CamelModel


class SyncResult(CamelModel):
    timestamp: int
    words_synced: int = 0
    reviews_synced: int = 0
    words_failed: int = 0
    reviews_failed: int = 0


class SyncStatus(CamelModel):
    configured: bool
    account_id: Optional[str] = None
    device_id: Optional[str] = None
    last_synced_at: int = Field(default=0, ge=0)
    sync_in_progress: bool = False
