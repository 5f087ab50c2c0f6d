from pydantic import Field
from typing import List, Optional

from .review import ReviewState
from .word import CamelModel, VocabularyItem

BACKUP_VERSION = "1.0.0"
SNAPSHOT_VERSION = 1


class BackupMetadata(CamelModel):
    total_words: int = Field(ge=0)
    total_review_states: int = Field(ge=0)


class BackupDocument(CamelModel):
    version: str = Field(min_length=1)
    exported_at: int = Field(gt=0)
    words: List[VocabularyItem]
    review_states: List[ReviewState]
    metadata: Optional[BackupMetadata] = None


class Snapshot(CamelModel):
    snapshot_version: int = SNAPSHOT_VERSION
    word_entries: List[VocabularyItem]
    review_states: List[ReviewState]
    created_at: int = Field(gt=0)


class ImportCounts(CamelModel):
    imported: int = 0
    skipped: int = 0
    failed: int = 0


class ImportResult(CamelModel):
    words: ImportCounts = Field(default_factory=ImportCounts)
    review_states: ImportCounts = Field(default_factory=ImportCounts)
