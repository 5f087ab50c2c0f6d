from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Optional

from models.word import VocabularyItem, WordCreate, WordUpdate
from utils.clock import Clock, now_ms
from utils.errors import DuplicateError, NotFoundError, ValidationError
from utils.log import get_logger
from utils.normalize import derive_id, normalize_context, normalize_url, normalize_word, sanitize_html
from utils.tags import parse_tag_names, tag_matches
from utils.validation import (
    is_valid_context,
    is_valid_language_code,
    is_valid_tags,
    validate_word_fields,
)

_COLUMNS = (
    "id, word, normalized_word, definitions, phonetic, audio_url, language, context, url, "
    "source_title, tags, is_favorite, note, manually_edited, view_count, last_viewed_at, "
    "created_at, updated_at, deleted_at"
)

# Edits to these fields mean the entry no longer matches the dictionary lookup
_MANUAL_FIELDS = {"definitions", "note", "tags", "context"}
_NULLABLE_FIELDS = {"note", "phonetic", "audio_url"}


def _row_to_item(row: sqlite3.Row) -> VocabularyItem:
    data = dict(row)
    data["definitions"] = json.loads(data["definitions"] or "[]")
    data["tags"] = json.loads(data["tags"] or "[]")
    data["is_favorite"] = bool(data["is_favorite"])
    data["manually_edited"] = bool(data["manually_edited"])
    return VocabularyItem.model_validate(data)


def _item_params(item: VocabularyItem) -> tuple:
    return (
        item.id,
        item.word,
        item.normalized_word,
        json.dumps(item.definitions),
        item.phonetic,
        item.audio_url,
        item.language,
        item.context,
        item.url,
        item.source_title,
        json.dumps(item.tags),
        int(item.is_favorite),
        item.note,
        int(item.manually_edited),
        item.view_count,
        item.last_viewed_at,
        item.created_at,
        item.updated_at,
        item.deleted_at,
    )


class WordStore:
    """Durable keyed collection of vocabulary items.

    Items are keyed by ``derive_id(word, url)`` so the same word collected
    twice from the same page is one record. Deletion is soft by default;
    lookups skip soft-deleted rows unless they ask for them.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Clock = now_ms, logger=None):
        self.conn = conn
        self.clock = clock
        self.logger = logger or get_logger("word_store")

    # -------------------------
    # Writes
    # -------------------------
    def create(self, draft: WordCreate) -> str:
        tags = parse_tag_names(draft.tags)
        validate_word_fields(draft.word, draft.context, draft.url, tags, draft.language)
        word_id = derive_id(draft.word, draft.url)
        existing = self.find_by_id(word_id)
        if existing and existing.deleted_at is None:
            raise DuplicateError(
                f"Word already exists: {draft.word} at {draft.url}",
                context={"id": word_id},
            )
        now = self.clock()
        item = VocabularyItem(
            id=word_id,
            word=draft.word.strip(),
            normalized_word=normalize_word(draft.word),
            definitions=[text for text in map(sanitize_html, draft.definitions) if text],
            phonetic=draft.phonetic,
            audio_url=draft.audio_url,
            language=draft.language or "en",
            context=normalize_context(draft.context),
            url=draft.url.strip(),
            source_title=(draft.source_title or "").strip(),
            tags=tags,
            is_favorite=draft.is_favorite,
            note=draft.note,
            created_at=now,
            updated_at=now,
        )
        self.put(item)
        if existing:
            self.logger.info("Revived soft-deleted word", word_id=word_id)
        return word_id

    def put(self, item: VocabularyItem) -> None:
        """Insert or overwrite a record as-is, keeping its timestamps."""
        placeholders = ", ".join("?" for _ in _COLUMNS.split(","))
        assignments = ", ".join(
            f"{col.strip()} = excluded.{col.strip()}" for col in _COLUMNS.split(",")[1:]
        )
        self.conn.execute(
            f"INSERT INTO words ({_COLUMNS}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {assignments}",
            _item_params(item),
        )
        self.conn.commit()

    def update(self, word_id: str, patch: WordUpdate) -> VocabularyItem:
        """Apply a partial edit. `updated_at` is always stamped with the clock."""
        item = self._require(word_id)
        changes: Dict[str, Any] = {
            key: value
            for key, value in patch.model_dump(exclude_unset=True, exclude={"updated_at"}).items()
            if value is not None or key in _NULLABLE_FIELDS
        }
        if "context" in changes:
            changes["context"] = normalize_context(changes["context"])
            if not is_valid_context(changes["context"]):
                raise ValidationError("Invalid context", field="context", value=changes["context"])
        if "tags" in changes:
            changes["tags"] = parse_tag_names(changes["tags"])
            if not is_valid_tags(changes["tags"]):
                raise ValidationError("Invalid tags", field="tags", value=changes["tags"])
        if "language" in changes and not is_valid_language_code(changes["language"]):
            raise ValidationError("Invalid language code", field="language", value=changes["language"])
        if "definitions" in changes:
            changes["definitions"] = [text for text in map(sanitize_html, changes["definitions"]) if text]
        if _MANUAL_FIELDS & changes.keys():
            changes["manually_edited"] = True
        changes["updated_at"] = self.clock()
        updated = item.model_copy(update=changes)
        self.put(updated)
        return updated

    def soft_delete(self, word_id: str) -> None:
        self._require(word_id)
        now = self.clock()
        self.conn.execute(
            "UPDATE words SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, word_id),
        )
        self.conn.commit()

    def restore(self, word_id: str) -> None:
        item = self._require(word_id)
        if item.deleted_at is None:
            return
        self.conn.execute(
            "UPDATE words SET deleted_at = NULL, updated_at = ? WHERE id = ?",
            (self.clock(), word_id),
        )
        self.conn.commit()

    def delete(self, word_id: str) -> None:
        """Hard delete. The review state and its history go with it."""
        cursor = self.conn.execute("DELETE FROM words WHERE id = ?", (word_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"Word not found: {word_id}", context={"id": word_id})
        self.conn.commit()

    def clear_all(self) -> int:
        cursor = self.conn.execute("DELETE FROM words")
        self.conn.commit()
        self.logger.warning("Cleared all words", count=cursor.rowcount)
        return cursor.rowcount

    def increment_view_count(self, word_id: str) -> None:
        self._require(word_id)
        now = self.clock()
        self.conn.execute(
            """
            UPDATE words
            SET view_count = view_count + 1, last_viewed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (now, now, word_id),
        )
        self.conn.commit()

    # -------------------------
    # Reads
    # -------------------------
    def find_by_id(self, word_id: str) -> Optional[VocabularyItem]:
        row = self.conn.execute(f"SELECT {_COLUMNS} FROM words WHERE id = ?", (word_id,)).fetchone()
        return _row_to_item(row) if row else None

    def find_by_normalized_word(self, text: str) -> List[VocabularyItem]:
        return self._select(
            "WHERE normalized_word = ? AND deleted_at IS NULL ORDER BY created_at ASC",
            (normalize_word(text),),
        )

    def find_by_url(self, url: str) -> List[VocabularyItem]:
        """Live items from the same source, compared after `normalize_url`."""
        source = normalize_url(url)
        return [item for item in self.find_all(include_deleted=False) if normalize_url(item.url) == source]

    def find_by_tag(self, tag: str) -> List[VocabularyItem]:
        return self._select(
            """
            WHERE deleted_at IS NULL
              AND EXISTS (SELECT 1 FROM json_each(words.tags) WHERE json_each.value = ?)
            ORDER BY created_at DESC
            """,
            (tag.strip().lower(),),
        )

    def find_favorites(self) -> List[VocabularyItem]:
        return self._select("WHERE is_favorite = 1 AND deleted_at IS NULL ORDER BY created_at DESC")

    def find_recent(self, limit: int = 20) -> List[VocabularyItem]:
        return self._select(
            "WHERE deleted_at IS NULL ORDER BY created_at DESC, id ASC LIMIT ?",
            (int(limit),),
        )

    def find_all(self, include_deleted: bool = True) -> List[VocabularyItem]:
        where = "" if include_deleted else "WHERE deleted_at IS NULL "
        return self._select(where + "ORDER BY created_at ASC, id ASC")

    def find_changed_since(self, timestamp: int) -> List[VocabularyItem]:
        return self._select("WHERE updated_at > ? ORDER BY updated_at ASC", (timestamp,))

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM words WHERE deleted_at IS NULL").fetchone()
        return int(row[0] or 0)

    def search(self, query: Optional[str]) -> List[VocabularyItem]:
        """Case-insensitive substring match over word, definitions, context and tags."""
        if not query or not query.strip():
            return []
        term = query.strip().lower()
        results = []
        for item in self.find_all(include_deleted=False):
            if (
                term in item.normalized_word
                or any(term in d.lower() for d in item.definitions)
                or term in item.context.lower()
                or tag_matches(item.tags, term)
            ):
                results.append(item)
        return results

    def _select(self, clause: str, params: tuple = ()) -> List[VocabularyItem]:
        rows = self.conn.execute(f"SELECT {_COLUMNS} FROM words {clause}", params).fetchall()
        return [_row_to_item(row) for row in rows]

    def _require(self, word_id: str) -> VocabularyItem:
        item = self.find_by_id(word_id)
        if not item:
            raise NotFoundError(f"Word not found: {word_id}", context={"id": word_id})
        return item
