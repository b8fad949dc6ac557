"""Bootstrap logic that prepares runtime directories and the SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from .config import AppConfig, _ensure_writable_directory, load_config

LOGGER = logging.getLogger(__name__)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


SCHEMA = """
PRAGMA foreign_keys = ON;
CREATE TABLE IF NOT EXISTS exams (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT DEFAULT '',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS lectures (
    id TEXT PRIMARY KEY,
    exam_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT DEFAULT '',
    status TEXT NOT NULL DEFAULT 'processing',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(exam_id) REFERENCES exams(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS lecture_media (
    id TEXT PRIMARY KEY,
    lecture_id TEXT NOT NULL,
    media_type TEXT NOT NULL DEFAULT 'audio',
    sequence_order INTEGER NOT NULL DEFAULT 0,
    duration_milliseconds INTEGER NOT NULL DEFAULT 0,
    file_path TEXT NOT NULL,
    original_filename TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(lecture_id) REFERENCES lectures(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS transcripts (
    id TEXT PRIMARY KEY,
    lecture_id TEXT NOT NULL UNIQUE,
    language TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(lecture_id) REFERENCES lectures(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS transcript_segments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    transcript_id TEXT NOT NULL,
    media_id TEXT,
    start_millisecond INTEGER NOT NULL,
    end_millisecond INTEGER NOT NULL,
    original_start_milliseconds INTEGER NOT NULL DEFAULT 0,
    original_end_milliseconds INTEGER NOT NULL DEFAULT 0,
    text TEXT NOT NULL,
    confidence REAL,
    speaker TEXT,
    FOREIGN KEY(transcript_id) REFERENCES transcripts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS reference_documents (
    id TEXT PRIMARY KEY,
    lecture_id TEXT NOT NULL,
    document_type TEXT NOT NULL DEFAULT 'pdf',
    title TEXT NOT NULL,
    file_path TEXT NOT NULL,
    original_filename TEXT,
    page_count INTEGER NOT NULL DEFAULT 0,
    extraction_status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(lecture_id) REFERENCES lectures(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS reference_pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL,
    page_number INTEGER NOT NULL,
    image_path TEXT,
    extracted_text TEXT,
    UNIQUE(document_id, page_number),
    FOREIGN KEY(document_id) REFERENCES reference_documents(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    exam_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    language_code TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY(exam_id) REFERENCES exams(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tool_source_references (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tool_id TEXT NOT NULL,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    metadata TEXT,
    FOREIGN KEY(tool_id) REFERENCES tools(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER NOT NULL DEFAULT 0,
    progress_message_text TEXT DEFAULT '',
    payload TEXT,
    metadata TEXT,
    result TEXT,
    error TEXT,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    estimated_cost REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        required = (
            ("storage", self._config.storage_root),
            ("documents", self._config.documents_root),
            ("exports", self._config.exports_root),
        )
        for label, path in required:
            if not _ensure_writable_directory(path):
                raise BootstrapError(f"The {label} directory '{path}' is not writable")
            LOGGER.debug("Ensured directory exists: %s", path)

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        try:
            connection = sqlite3.connect(self._config.database_file)
        except sqlite3.Error as error:
            raise BootstrapError(
                f"Unable to open database '{self._config.database_file}': {error}"
            ) from error
        try:
            cursor = connection.cursor()
            cursor.executescript(SCHEMA)
            connection.commit()

            def _column_exists(table: str, column: str) -> bool:
                cursor.execute(f"PRAGMA table_info({table})")
                return any(row[1] == column for row in cursor.fetchall())

            # Columns added after the first schema revision.
            migrations = (
                ("lectures", "specified_date", "TEXT"),
                ("jobs", "metadata", "TEXT"),
                ("tools", "language_code", "TEXT"),
            )
            for table, column, definition in migrations:
                if not _column_exists(table, column):
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
                    LOGGER.info("Added column %s.%s", table, column)
            connection.commit()
        except sqlite3.Error as error:
            raise BootstrapError(f"Unable to prepare database schema: {error}") from error
        finally:
            connection.close()


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "SCHEMA", "initialize_app"]
