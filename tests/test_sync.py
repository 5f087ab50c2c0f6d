import asyncio
import json

import httpx
import pytest

from db import database
from db.review_store import ReviewStore
from db.sync_state import SyncStateStore
from db.word_store import WordStore
from models.word import WordCreate
from utils.errors import LexiSyncError, NetworkError, SyncInProgressError, ValidationError
from utils.events import SYNC_COMPLETED, EventHub
from utils.retry import RetryConfig
from utils.sm2 import DAY_MS, Rating, advance, initial_review_state
from utils.sync import SyncService

NOW = 1_700_000_000_000
NO_WAIT = RetryConfig(initial_delay=0.0, max_delay=0.0)


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeServer:
    """Answers pull and push requests and records what it was sent."""

    def __init__(self, words=None, reviews=None, timestamp=NOW + 5000):
        self.words = words or []
        self.reviews = reviews or []
        self.timestamp = timestamp
        self.pulls = []
        self.pushes = []
        self.failures = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.failures:
            return httpx.Response(self.failures.pop(0))
        if request.url.path.endswith("/sync/pull"):
            self.pulls.append(dict(request.url.params))
            return httpx.Response(
                200,
                json={"timestamp": self.timestamp, "data": {"words": self.words, "reviews": self.reviews}},
            )
        body = json.loads(request.content)
        self.pushes.append(body)
        return httpx.Response(
            200,
            json={"timestamp": self.timestamp, "synced": {"words": len(body["words"]), "reviews": len(body["reviews"])}},
        )


def _service(server, endpoint="https://sync.example", account_id="acct-1", **kwargs):
    clock = kwargs.pop("clock", None) or FakeClock()
    conn = database.connect(":memory:")
    database.init_schema(conn)
    service = SyncService(
        WordStore(conn, clock=clock),
        ReviewStore(conn, clock=clock),
        SyncStateStore(conn),
        endpoint=endpoint,
        account_id=account_id,
        clock=clock,
        transport=httpx.MockTransport(server),
        retry=NO_WAIT,
        **kwargs,
    )
    return service, clock


def _remote_word(word, updated_at=NOW, **extra):
    data = {
        "id": f"{word}::example.com",
        "word": word,
        "normalizedWord": word,
        "context": f"{word} remotely",
        "url": "https://example.com",
        "createdAt": NOW - DAY_MS,
        "updatedAt": updated_at,
    }
    data.update(extra)
    return data


def test_pull_applies_records_and_moves_cursor():
    server = FakeServer(
        words=[_remote_word("lucid")],
        reviews=[
            {
                "id": "lucid::example.com",
                "nextReviewAt": NOW + DAY_MS,
                "intervalDays": 1,
                "easeFactor": 2.5,
                "repetitions": 1,
                "history": [{"reviewedAt": NOW, "rating": 4, "intervalDays": 1}],
            }
        ],
    )
    hub = EventHub(clock=lambda: NOW)
    listener = hub.bus()
    events = []
    listener.on(SYNC_COMPLETED, events.append)
    service, clock = _service(server, bus=hub.bus())

    result = asyncio.run(service.pull())

    assert (result.words_synced, result.reviews_synced) == (1, 1)
    assert server.pulls == [{"accountId": "acct-1", "lastSyncedAt": "0"}]
    assert service.last_synced_at == NOW + 5000
    assert service.word_store.find_by_id("lucid::example.com").context == "lucid remotely"
    assert len(service.review_store.find_by_owner("lucid::example.com").history) == 1
    assert events == [{"wordsApplied": 1, "reviewsApplied": 1, "timestamp": NOW + 5000}]


def test_pull_with_nothing_new_keeps_cursor():
    service, clock = _service(FakeServer())
    result = asyncio.run(service.pull())
    assert result.words_synced == 0
    assert service.last_synced_at == 0


def test_pull_is_last_writer_wins_and_applies_newer_tombstones():
    server = FakeServer()
    service, clock = _service(server)
    words = service.word_store
    older = words.create(WordCreate(word="older", context="local copy", url="https://example.com"))
    newer = words.create(WordCreate(word="newer", context="local copy", url="https://example.com"))
    gone = words.create(WordCreate(word="gone", context="local copy", url="https://example.com"))

    server.words = [
        _remote_word("older", updated_at=NOW + 1),
        _remote_word("newer", updated_at=NOW - 1),
        _remote_word("gone", updated_at=NOW - 1, deletedAt=NOW + 2),
        {"id": "broken"},
    ]
    result = asyncio.run(service.pull())

    assert result.words_synced == 2
    assert result.words_failed == 1
    assert words.find_by_id(older).context == "older remotely"
    assert words.find_by_id(newer).context == "local copy"
    tombstone = words.find_by_id(gone)
    assert tombstone.deleted_at == NOW + 2
    assert tombstone.context == "local copy"


def test_first_push_sends_everything_then_only_changes():
    server = FakeServer()
    service, clock = _service(server)
    first = service.word_store.create(WordCreate(word="first", context="one", url=""))
    service.review_store.create(first, initial_review_state(clock.now))

    asyncio.run(service.push())
    assert [word["id"] for word in server.pushes[0]["words"]] == [first]
    assert len(server.pushes[0]["reviews"]) == 1
    assert server.pushes[0]["accountId"] == "acct-1"
    assert server.pushes[0]["deviceId"].startswith("device_")
    assert service.last_synced_at == NOW + 5000

    clock.now = NOW + 10_000
    second = service.word_store.create(WordCreate(word="second", context="two", url=""))
    result = asyncio.run(service.push())
    assert [word["id"] for word in server.pushes[1]["words"]] == [second]
    assert server.pushes[1]["reviews"] == []
    assert result.words_synced == 1


def test_sync_pushes_local_changes_made_before_the_pull():
    server = FakeServer(words=[_remote_word("remote", updated_at=NOW + 10)], timestamp=NOW + 10_000)
    service, clock = _service(server)
    service.state_store.set_last_synced_at(NOW - 1000)
    local = service.word_store.create(WordCreate(word="local", context="written here", url="https://example.com"))
    service.review_store.create(local, initial_review_state(clock.now))
    service.review_store.record_review(
        local, Rating.GOOD, advance(service.review_store.find_by_owner(local), Rating.GOOD, now=clock.now)
    )

    asyncio.run(service.sync())

    assert server.pulls == [{"accountId": "acct-1", "lastSyncedAt": str(NOW - 1000)}]
    assert service.word_store.find_by_id("remote::example.com") is not None
    pushed = server.pushes[0]
    assert local in [word["id"] for word in pushed["words"]]
    assert [review["id"] for review in pushed["reviews"]] == [local]
    assert service.last_synced_at == NOW + 10_000


def test_pull_rekeys_records_to_derived_id():
    server = FakeServer(
        words=[_remote_word("lucid", updated_at=NOW + 1, id="custom-1", context="remote copy")],
        reviews=[
            {
                "id": "custom-1",
                "nextReviewAt": NOW + DAY_MS,
                "intervalDays": 1,
                "easeFactor": 2.5,
                "repetitions": 1,
                "history": [{"reviewedAt": NOW, "rating": 4, "intervalDays": 1}],
            }
        ],
    )
    service, clock = _service(server)
    lucid = service.word_store.create(WordCreate(word="Lucid", context="local copy", url="https://example.com/"))

    result = asyncio.run(service.pull())

    assert (result.words_synced, result.reviews_synced) == (1, 1)
    assert [item.id for item in service.word_store.find_all()] == [lucid]
    assert service.word_store.find_by_id(lucid).context == "remote copy"
    assert len(service.review_store.find_by_owner(lucid).history) == 1


def test_device_id_is_stable():
    service, clock = _service(FakeServer())
    device_id = service.device_id()
    assert device_id == service.device_id()
    assert service.status().device_id == device_id


def test_sync_requires_configuration():
    service, clock = _service(FakeServer(), endpoint="")
    assert not service.configured
    with pytest.raises(ValidationError):
        asyncio.run(service.sync())
    assert service.schedule_sync() is None


def test_concurrent_sync_is_rejected():
    service, clock = _service(FakeServer())
    service.sync_in_progress = True
    with pytest.raises(SyncInProgressError):
        asyncio.run(service.pull())


def test_sync_retries_transient_status_codes():
    server = FakeServer(words=[_remote_word("lucid")])
    server.failures = [503, 429]
    service, clock = _service(server)

    result = asyncio.run(service.sync())
    # first sync: the push window starts at zero, so the pulled word goes back too
    assert result.words_synced == 2
    assert [word["id"] for word in server.pushes[0]["words"]] == ["lucid::example.com"]
    assert len(server.pulls) == 1
    assert len(server.pushes) == 1
    assert service.sync_in_progress is False


def test_sync_gives_up_after_retries():
    server = FakeServer()
    server.failures = [500, 500, 500]
    service, clock = _service(server)
    with pytest.raises(NetworkError):
        asyncio.run(service.sync())
    assert service.sync_in_progress is False


def test_client_errors_are_not_retried():
    server = FakeServer()
    server.failures = [401, 200]
    service, clock = _service(server)
    with pytest.raises(LexiSyncError) as excinfo:
        asyncio.run(service.sync())
    assert not isinstance(excinfo.value, NetworkError)
    assert server.failures == [200]


def test_schedule_sync_debounces_bursts():
    server = FakeServer()
    service, clock = _service(server, debounce_seconds=0.01)

    async def burst():
        service.schedule_sync()
        service.schedule_sync()
        task = service.schedule_sync()
        await task
        await service.close()

    asyncio.run(burst())
    assert len(server.pulls) == 1
    assert len(server.pushes) == 1


def test_reset_cursor():
    service, clock = _service(FakeServer())
    service.state_store.set_last_synced_at(NOW)
    service.reset_cursor()
    assert service.status().last_synced_at == 0
