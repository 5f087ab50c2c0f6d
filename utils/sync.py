"""Account sync against a remote JSON service.

Protocol (all bodies camelCase JSON):

* ``GET  {endpoint}/sync/pull?accountId=..&lastSyncedAt=..`` returns
  ``{"timestamp": ms, "data": {"words": [...], "reviews": [...]}}``
* ``POST {endpoint}/sync/push`` with ``{accountId, deviceId, timestamp,
  words, reviews}`` returns ``{"timestamp": ms, "synced": {"words": n,
  "reviews": n}}``

Pulled items are last-writer-wins on ``updatedAt`` and newer remote
tombstones are applied; pulled review states use the longer-history rule
from ``utils.merge``.
"""

from __future__ import annotations

import asyncio
import secrets
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from db.sync_state import DEVICE_ID, SyncStateStore
from models.review import ReviewState
from models.snapshot import ImportCounts
from models.sync import SyncResult, SyncStatus
from models.word import VocabularyItem
from utils.clock import Clock, now_ms
from utils.errors import LexiSyncError, NetworkError, SyncInProgressError, ValidationError
from utils.events import SYNC_COMPLETED
from utils.log import get_logger
from utils.merge import apply_review_state, canonical_item, rekey_state
from utils.retry import DEFAULT_RETRY_CONFIG, RetryConfig, with_retry

DEFAULT_DEBOUNCE_SECONDS = 3.0
RETRYABLE_STATUS = {408, 429}


def apply_remote_word(word_store, incoming: VocabularyItem, counts: ImportCounts) -> str:
    """Apply one pulled item. Returns the id it is stored under."""
    incoming = canonical_item(incoming)
    local = word_store.find_by_id(incoming.id)
    if local is None:
        word_store.put(incoming)
        counts.imported += 1
    elif incoming.deleted_at is not None:
        if local.deleted_at is None or incoming.deleted_at > local.deleted_at:
            word_store.put(local.model_copy(update={"deleted_at": incoming.deleted_at}))
            counts.imported += 1
        else:
            counts.skipped += 1
    elif incoming.updated_at > local.updated_at:
        word_store.put(incoming)
        counts.imported += 1
    else:
        counts.skipped += 1
    return incoming.id


class SyncService:
    def __init__(
        self,
        word_store,
        review_store,
        state_store: SyncStateStore,
        endpoint: str,
        account_id: str,
        clock: Clock = now_ms,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        retry: RetryConfig = DEFAULT_RETRY_CONFIG,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        bus=None,
        logger=None,
    ):
        self.word_store = word_store
        self.review_store = review_store
        self.state_store = state_store
        self.endpoint = (endpoint or "").rstrip("/")
        self.account_id = account_id
        self.clock = clock
        self.transport = transport
        self.timeout = timeout
        self.retry = retry
        self.debounce_seconds = debounce_seconds
        self.bus = bus
        self.logger = logger or get_logger("sync")
        self.sync_in_progress = False
        self._pending: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, word_store, review_store, state_store, config: Mapping[str, Any], **kwargs) -> "SyncService":
        section = config.get("sync", {})
        return cls(
            word_store,
            review_store,
            state_store,
            endpoint=section.get("endpoint", ""),
            account_id=section.get("account_id", ""),
            timeout=float(section.get("timeout", 10.0)),
            debounce_seconds=float(section.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
            retry=RetryConfig.from_mapping(config.get("retry")),
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.account_id)

    @property
    def last_synced_at(self) -> int:
        return self.state_store.last_synced_at()

    def device_id(self) -> str:
        device_id = self.state_store.get(DEVICE_ID)
        if not device_id:
            device_id = f"device_{self.clock()}_{secrets.token_hex(4)}"
            self.state_store.set(DEVICE_ID, device_id)
        return device_id

    def status(self) -> SyncStatus:
        return SyncStatus(
            configured=self.configured,
            account_id=self.account_id or None,
            device_id=self.state_store.get(DEVICE_ID),
            last_synced_at=self.last_synced_at,
            sync_in_progress=self.sync_in_progress,
        )

    def reset_cursor(self) -> None:
        self.state_store.set_last_synced_at(0)
        self.logger.info("Sync cursor reset")

    @asynccontextmanager
    async def _exclusive(self):
        if self.sync_in_progress:
            raise SyncInProgressError("Sync already in progress")
        self.sync_in_progress = True
        try:
            yield
        finally:
            self.sync_in_progress = False

    def _require_configured(self) -> None:
        if not self.configured:
            raise ValidationError("Sync endpoint and account id must be configured", field="sync")

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Sync request failed: {exc}", url=url) from exc
        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS:
            raise NetworkError(
                f"Sync service returned {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        if response.status_code >= 400:
            raise LexiSyncError(
                f"Sync request rejected: {response.status_code}",
                context={"url": url, "status_code": response.status_code, "body": response.text[:200]},
            )
        return response.json()

    async def _pull(self) -> SyncResult:
        since = self.last_synced_at
        payload = await self._request(
            "GET",
            "/sync/pull",
            params={"accountId": self.account_id, "lastSyncedAt": since},
        )
        data = payload.get("data") or {}
        words: List[Any] = data.get("words") or []
        reviews: List[Any] = data.get("reviews") or []
        word_counts = ImportCounts()
        review_counts = ImportCounts()
        aliases: Dict[str, str] = {}

        for raw in words:
            try:
                item = VocabularyItem.model_validate(raw)
                word_id = apply_remote_word(self.word_store, item, word_counts)
                if word_id != item.id:
                    aliases[item.id] = word_id
            except (PydanticValidationError, LexiSyncError, sqlite3.Error) as exc:
                word_counts.failed += 1
                self.logger.warning("Failed to merge pulled word", word_id=_raw_id(raw), error=str(exc))

        for raw in reviews:
            try:
                apply_review_state(
                    self.word_store,
                    self.review_store,
                    rekey_state(ReviewState.model_validate(raw), aliases),
                    review_counts,
                )
            except (PydanticValidationError, LexiSyncError, sqlite3.Error) as exc:
                review_counts.failed += 1
                self.logger.warning("Failed to merge pulled review", word_id=_raw_id(raw), error=str(exc))

        timestamp = int(payload.get("timestamp") or self.clock())
        if words or reviews:
            self.state_store.set_last_synced_at(timestamp)
        if self.bus is not None and (word_counts.imported or review_counts.imported):
            self.bus.emit(
                SYNC_COMPLETED,
                {
                    "wordsApplied": word_counts.imported,
                    "reviewsApplied": review_counts.imported,
                    "timestamp": timestamp,
                },
            )
        self.logger.info(
            "Pull sync completed",
            words_received=len(words),
            words_applied=word_counts.imported,
            reviews_received=len(reviews),
            reviews_applied=review_counts.imported,
        )
        return SyncResult(
            timestamp=timestamp,
            words_synced=word_counts.imported,
            reviews_synced=review_counts.imported,
            words_failed=word_counts.failed,
            reviews_failed=review_counts.failed,
        )

    async def _push(self, since: Optional[int] = None) -> SyncResult:
        if since is None:
            since = self.last_synced_at
        if since > 0:
            words = self.word_store.find_changed_since(since)
            reviews = self.review_store.find_reviewed_since(since)
        else:
            words = self.word_store.find_all(include_deleted=True)
            reviews = self.review_store.find_all()
        body = {
            "accountId": self.account_id,
            "deviceId": self.device_id(),
            "timestamp": self.clock(),
            "words": [item.model_dump(mode="json", by_alias=True) for item in words],
            "reviews": [state.model_dump(mode="json", by_alias=True) for state in reviews],
        }
        payload = await self._request("POST", "/sync/push", json=body)
        timestamp = int(payload.get("timestamp") or self.clock())
        synced = payload.get("synced") or {}
        self.state_store.set_last_synced_at(timestamp)
        self.logger.info(
            "Push sync completed",
            words_sent=len(words),
            reviews_sent=len(reviews),
            initial=since == 0,
        )
        return SyncResult(
            timestamp=timestamp,
            words_synced=int(synced.get("words", len(words))),
            reviews_synced=int(synced.get("reviews", len(reviews))),
        )

    async def pull(self) -> SyncResult:
        self._require_configured()
        async with self._exclusive():
            return await self._pull()

    async def push(self) -> SyncResult:
        self._require_configured()
        async with self._exclusive():
            return await self._push()

    async def sync(self) -> SyncResult:
        """Pull then push, each retried on network failures.

        The push window starts at the cursor as it was before the pull, so
        local writes made since the last sync are sent even though the pull
        has already moved the cursor forward. Records that arrived in the
        pull may be echoed back; the remote side resolves them by updatedAt.
        """
        self._require_configured()
        async with self._exclusive():
            since = self.last_synced_at
            pulled = await with_retry(self._pull, self.retry, log=self.logger)
            pushed = await with_retry(lambda: self._push(since), self.retry, log=self.logger)
        return SyncResult(
            timestamp=self.clock(),
            words_synced=pulled.words_synced + pushed.words_synced,
            reviews_synced=pulled.reviews_synced + pushed.reviews_synced,
            words_failed=pulled.words_failed,
            reviews_failed=pulled.reviews_failed,
        )

    def schedule_sync(self) -> Optional[asyncio.Task]:
        """Collapse a burst of writes into one sync after the debounce delay.

        Must be called from a running event loop. Does nothing while sync is
        not configured.
        """
        if not self.configured:
            return None
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._debounced())
        return self._pending

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        try:
            await self.sync()
        except LexiSyncError as exc:
            self.logger.error("Debounced sync failed", error=str(exc))

    async def close(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            try:
                await self._pending
            except asyncio.CancelledError:
                pass
        self._pending = None


def _raw_id(raw: Any) -> Optional[str]:
    return raw.get("id") if isinstance(raw, dict) else None
