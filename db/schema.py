# SQL schema for the LexiSync database

SCHEMA_VERSION = 3

SCHEMA_SQL = """
-- Vocabulary items (id = normalizedWord::normalizedUrl)
CREATE TABLE IF NOT EXISTS words (
    id TEXT PRIMARY KEY,
    word TEXT NOT NULL,
    normalized_word TEXT NOT NULL,
    definitions TEXT NOT NULL DEFAULT '[]',
    phonetic TEXT,
    audio_url TEXT,
    language TEXT NOT NULL DEFAULT 'en',
    context TEXT NOT NULL,
    url TEXT NOT NULL DEFAULT '',
    source_title TEXT NOT NULL DEFAULT '',
    tags TEXT NOT NULL DEFAULT '[]',
    is_favorite INTEGER NOT NULL DEFAULT 0,
    note TEXT,
    manually_edited INTEGER NOT NULL DEFAULT 0,
    view_count INTEGER NOT NULL DEFAULT 0 CHECK(view_count >= 0),
    last_viewed_at INTEGER,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    deleted_at INTEGER
);

-- One SM-2 record per word
CREATE TABLE IF NOT EXISTS review_states (
    word_id TEXT PRIMARY KEY,
    next_review_at INTEGER NOT NULL,
    interval_days INTEGER NOT NULL DEFAULT 1 CHECK(interval_days >= 0),
    ease_factor REAL NOT NULL DEFAULT 2.5 CHECK(ease_factor BETWEEN 1.3 AND 2.5),
    repetitions INTEGER NOT NULL DEFAULT 0 CHECK(repetitions >= 0),
    FOREIGN KEY (word_id) REFERENCES words (id) ON DELETE CASCADE
);

-- Append-only review history
CREATE TABLE IF NOT EXISTS review_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word_id TEXT NOT NULL,
    reviewed_at INTEGER NOT NULL,
    rating INTEGER NOT NULL CHECK(rating BETWEEN 1 AND 5),
    interval_days INTEGER NOT NULL,
    FOREIGN KEY (word_id) REFERENCES review_states (word_id) ON DELETE CASCADE
);

-- Quiz snapshots handed to a second device
CREATE TABLE IF NOT EXISTS quizzes (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL
);

-- Key/value state for the account sync cursor and device id
CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

# Indexes for performance
INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_words_normalized ON words (normalized_word);
CREATE INDEX IF NOT EXISTS idx_words_url ON words (url);
CREATE INDEX IF NOT EXISTS idx_words_created ON words (created_at);
CREATE INDEX IF NOT EXISTS idx_words_updated ON words (updated_at);
CREATE INDEX IF NOT EXISTS idx_words_deleted ON words (deleted_at);
CREATE INDEX IF NOT EXISTS idx_review_states_due ON review_states (next_review_at);
CREATE INDEX IF NOT EXISTS idx_review_logs_word ON review_logs (word_id, id);
CREATE INDEX IF NOT EXISTS idx_review_logs_reviewed ON review_logs (reviewed_at);
CREATE INDEX IF NOT EXISTS idx_quizzes_account ON quizzes (account_id);
CREATE INDEX IF NOT EXISTS idx_quizzes_expires ON quizzes (expires_at);
"""
