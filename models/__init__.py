from .word import VocabularyItem, WordCreate, WordUpdate, LookupResult
from .review import ReviewLogEntry, ReviewState, ReviewStateCreate, ReviewStats, ReviewSubmit
from .snapshot import BackupDocument, BackupMetadata, Snapshot, ImportCounts, ImportResult
from .quiz import RemoteProgress, QuizSnapshot, QuizWord, QuizCreate, QuizLink, ProgressUpload, MergeResult
from .sync import SyncResult, SyncStatus

__all__ = [
    'VocabularyItem', 'WordCreate', 'WordUpdate', 'LookupResult',
    'ReviewLogEntry', 'ReviewState', 'ReviewStateCreate', 'ReviewStats', 'ReviewSubmit',
    'BackupDocument', 'BackupMetadata', 'Snapshot', 'ImportCounts', 'ImportResult',
    'RemoteProgress', 'QuizSnapshot', 'QuizWord', 'QuizCreate', 'QuizLink', 'ProgressUpload', 'MergeResult',
    'SyncResult', 'SyncStatus',
]
