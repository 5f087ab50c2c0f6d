import argparse
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from db import database
from db.database import init_db
from db.review_store import ReviewStore
from db.sync_state import SyncStateStore
from db.word_store import WordStore
from config import load_config
from routes import words_router, review_router, backups_router, quiz_router, sync_router
from routes.deps import build_dictionary
from utils.clock import now_ms
from utils.errors import (
    DuplicateError,
    LexiSyncError,
    NetworkError,
    NotFoundError,
    StructuralValidationError,
    SyncInProgressError,
    ValidationError,
)
from utils.events import EventHub, REVIEW_COMPLETED, WORD_CREATED, WORD_DELETED, WORD_UPDATED
from utils.log import get_logger, setup_logging
from utils.notify import LogNotificationSink
from utils.sync import SyncService

logger = get_logger("app")

# Errors without an entry map to 500
ERROR_STATUS = [
    (StructuralValidationError, 400),
    (ValidationError, 400),
    (NotFoundError, 404),
    (DuplicateError, 409),
    (SyncInProgressError, 409),
    (NetworkError, 502),
]


def status_for(error: LexiSyncError) -> int:
    for kind, status_code in ERROR_STATUS:
        if isinstance(error, kind):
            return status_code
    return 500


def start_sync_listener(app: FastAPI, hub: EventHub) -> None:
    """Schedule a debounced account sync after every local write."""
    conn = database.connect(database.DB_PATH)
    service = SyncService.from_config(
        WordStore(conn),
        ReviewStore(conn),
        SyncStateStore(conn),
        app.state.config,
        bus=app.state.bus,
    )
    app.state.sync_conn = conn
    app.state.sync_service = service
    if not service.configured:
        return
    listener = hub.bus()
    for event_type in (WORD_CREATED, WORD_UPDATED, WORD_DELETED, REVIEW_COMPLETED):
        listener.on(event_type, lambda _data: service.schedule_sync())
    app.state.sync_listener = listener


# First-run init
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: config, logging, DB and long-lived collaborators
    config = load_config()
    setup_logging(config["logging"]["level"], json_format=bool(config["logging"]["json"]))
    init_db()
    hub = EventHub()
    app.state.config = config
    app.state.clock = now_ms
    app.state.events = hub
    app.state.bus = hub.bus()
    app.state.notifier = LogNotificationSink()
    app.state.dictionary = build_dictionary(config)
    start_sync_listener(app, hub)
    logger.info("LexiSync started", db=str(database.DB_PATH))
    yield
    await app.state.sync_service.close()
    app.state.sync_conn.close()


app = FastAPI(
    title="LexiSync",
    description="Vocabulary collection with SM-2 review and multi-device sync",
    lifespan=lifespan,
)

# Include routers
app.include_router(words_router, prefix="/words", tags=["words"])
app.include_router(review_router, prefix="/review", tags=["review"])
app.include_router(backups_router, prefix="/backup", tags=["backup"])
app.include_router(quiz_router, prefix="/quiz", tags=["quiz"])
app.include_router(sync_router, prefix="/sync", tags=["sync"])


@app.exception_handler(LexiSyncError)
async def lexisync_error_handler(request: Request, exc: LexiSyncError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": {"name": "ValidationError", "message": "Invalid request", "errors": errors}},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="LexiSync App")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    args = parser.parse_args()
    if args.init:
        load_config()  # Ensures config is copied if missing
        init_db()
        print("DB initialized and config copied to ~/.lexisync/")
        exit(0)
    # Run server
    reload = args.dev
    uvicorn.run("main:app", host="127.0.0.1", port=args.port, reload=reload, log_level="info")
