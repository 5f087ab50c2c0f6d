"""FastAPI dependencies shared by the routers.

Long-lived collaborators (config, clock, event hub, dictionary client, sync
service) live on ``app.state`` and are set up by the lifespan in ``main.py``;
stores are built per request around the request's DB connection.
"""

from typing import Any, Dict

from fastapi import Depends, Request

from config import load_config
from db.database import get_db
from db.quiz_store import QuizStore
from db.review_store import ReviewStore
from db.sync_state import SyncStateStore
from db.word_store import WordStore
from utils.clock import Clock, now_ms
from utils.dictionary import DictionaryClient
from utils.events import EventBus, EventHub
from utils.notify import LogNotificationSink, NotificationSink
from utils.quiz import QuizService
from utils.sm2 import SM2Config
from utils.sync import SyncService


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", now_ms)


def get_app_config(request: Request) -> Dict[str, Any]:
    config = getattr(request.app.state, "config", None)
    if config is None:
        config = load_config()
        request.app.state.config = config
    return config


def get_sm2_config(config: Dict[str, Any] = Depends(get_app_config)) -> SM2Config:
    return SM2Config.from_mapping(config.get("scheduler"))


def get_event_bus(request: Request) -> EventBus:
    bus = getattr(request.app.state, "bus", None)
    if bus is None:
        hub = getattr(request.app.state, "events", None) or EventHub()
        request.app.state.events = hub
        bus = hub.bus()
        request.app.state.bus = bus
    return bus


def get_notifier(request: Request) -> NotificationSink:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = LogNotificationSink()
        request.app.state.notifier = notifier
    return notifier


def get_dictionary(request: Request):
    """The dictionary client, or None when lookups are disabled."""
    return getattr(request.app.state, "dictionary", None)


def get_word_store(conn=Depends(get_db), clock: Clock = Depends(get_clock)) -> WordStore:
    return WordStore(conn, clock=clock)


def get_review_store(conn=Depends(get_db), clock: Clock = Depends(get_clock)) -> ReviewStore:
    return ReviewStore(conn, clock=clock)


def get_quiz_service(
    conn=Depends(get_db),
    clock: Clock = Depends(get_clock),
    config: Dict[str, Any] = Depends(get_app_config),
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
) -> QuizService:
    return QuizService.from_config(QuizStore(conn), words, reviews, config, clock=clock)


def get_sync_service(
    request: Request,
    conn=Depends(get_db),
    clock: Clock = Depends(get_clock),
    config: Dict[str, Any] = Depends(get_app_config),
    words: WordStore = Depends(get_word_store),
    reviews: ReviewStore = Depends(get_review_store),
    bus: EventBus = Depends(get_event_bus),
) -> SyncService:
    service = getattr(request.app.state, "sync_service", None)
    if service is not None:
        return service
    return SyncService.from_config(words, reviews, SyncStateStore(conn), config, clock=clock, bus=bus)


def build_dictionary(config: Dict[str, Any]) -> DictionaryClient:
    section = config.get("dictionary", {})
    return DictionaryClient(
        endpoint=section.get("endpoint", "https://api.dictionaryapi.dev/api/v2/entries/en"),
        timeout=float(section.get("timeout", 10.0)),
    )
