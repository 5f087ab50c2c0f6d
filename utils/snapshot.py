"""Encode and decode backup documents and device snapshots.

Both shapes carry the same records under different keys:

* ``BackupDocument``: ``{version, exportedAt, words, reviewStates, metadata}``
* ``Snapshot``: ``{snapshotVersion, wordEntries, reviewStates, createdAt}``

``parse_document`` accepts either and reports every structural problem at
once instead of stopping at the first one.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from models.snapshot import (
    BACKUP_VERSION,
    BackupDocument,
    BackupMetadata,
    Snapshot,
    SNAPSHOT_VERSION,
)
from utils.clock import Clock, now_ms
from utils.errors import StructuralValidationError

Document = Union[BackupDocument, Snapshot]


def export_backup(word_store, review_store, clock: Clock = now_ms) -> BackupDocument:
    """Every item (soft-deleted included) and every review state."""
    words = word_store.find_all(include_deleted=True)
    review_states = review_store.find_all()
    return BackupDocument(
        version=BACKUP_VERSION,
        exported_at=clock(),
        words=words,
        review_states=review_states,
        metadata=BackupMetadata(total_words=len(words), total_review_states=len(review_states)),
    )


def export_snapshot(word_store, review_store, clock: Clock = now_ms) -> Snapshot:
    return Snapshot(
        snapshot_version=SNAPSHOT_VERSION,
        word_entries=word_store.find_all(include_deleted=True),
        review_states=review_store.find_all(),
        created_at=clock(),
    )


def dump_document(document: Document) -> Dict[str, Any]:
    """JSON-ready camelCase dict."""
    return document.model_dump(mode="json", by_alias=True, exclude_none=True)


def dumps(document: Document, indent: int = 2) -> str:
    return json.dumps(dump_document(document), indent=indent, ensure_ascii=False)


def _format_errors(error: PydanticValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        messages.append(f"{location}: {item.get('msg', 'invalid value')}")
    return messages


def parse_document(raw: Any) -> Document:
    """Validate a decoded JSON value as a backup document or a snapshot.

    Raises StructuralValidationError listing every problem found; nothing is
    written by the caller in that case.
    """
    if isinstance(raw, (BackupDocument, Snapshot)):
        return raw
    if not isinstance(raw, dict):
        raise StructuralValidationError(["<root>: expected a JSON object"])

    is_snapshot = "wordEntries" in raw or "snapshotVersion" in raw or "word_entries" in raw
    model = Snapshot if is_snapshot else BackupDocument
    try:
        document = model.model_validate(raw)
    except PydanticValidationError as exc:
        raise StructuralValidationError(_format_errors(exc)) from exc

    errors: List[str] = []
    if isinstance(document, BackupDocument) and document.metadata is not None:
        if document.metadata.total_words != len(document.words):
            errors.append(
                f"metadata.totalWords: expected {len(document.words)}, got {document.metadata.total_words}"
            )
        if document.metadata.total_review_states != len(document.review_states):
            errors.append(
                "metadata.totalReviewStates: "
                f"expected {len(document.review_states)}, got {document.metadata.total_review_states}"
            )
    if errors:
        raise StructuralValidationError(errors)
    return document


def loads(text: Union[str, bytes]) -> Document:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuralValidationError([f"<root>: not valid JSON ({exc.msg})"]) from exc
    return parse_document(raw)


def document_records(document: Document) -> tuple:
    """(words, review_states) regardless of the document shape."""
    if isinstance(document, Snapshot):
        return document.word_entries, document.review_states
    return document.words, document.review_states
