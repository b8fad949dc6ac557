from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

import lecture_studio.config as config_module
from lecture_studio.bootstrap import BootstrapError, Bootstrapper
from lecture_studio.config import AppConfig


def test_bootstrapper_raises_when_storage_directory_unwritable(tmp_path: Path, monkeypatch) -> None:
    storage_root = tmp_path / "storage"
    config = AppConfig(storage_root=storage_root, database_file=storage_root / "lecture_studio.db")

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == storage_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr("lecture_studio.bootstrap._ensure_writable_directory", fake_ensure)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "storage" in str(excinfo.value).lower()


def test_bootstrapper_creates_schema_and_directories(temp_config: AppConfig) -> None:
    assert temp_config.documents_root.is_dir()
    assert temp_config.exports_root.is_dir()

    connection = sqlite3.connect(temp_config.database_file)
    try:
        tables = {
            row[0]
            for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        columns = {row[1] for row in connection.execute("PRAGMA table_info(lectures)")}
    finally:
        connection.close()

    assert {
        "exams",
        "lectures",
        "lecture_media",
        "transcripts",
        "transcript_segments",
        "reference_documents",
        "reference_pages",
        "tools",
        "tool_source_references",
        "jobs",
        "settings",
    } <= tables
    assert "specified_date" in columns


def test_bootstrap_is_idempotent(temp_config: AppConfig) -> None:
    Bootstrapper(temp_config).initialize()
    Bootstrapper(temp_config).initialize()
