from __future__ import annotations

import json
from pathlib import Path

import lecture_studio.config as config_module
from lecture_studio.config import (
    AppConfig,
    TASK_CONTENT_GENERATION,
    TASK_OUTLINE_CREATION,
    load_config,
)


def test_storage_root_falls_back_when_preferred_is_unusable(tmp_path: Path, monkeypatch) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/lecture_studio.db",
        },
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".lecture_studio" / "storage").resolve()
    assert config.storage_root == expected_storage
    assert config.database_file == (expected_storage / "lecture_studio.db").resolve()
    assert expected_storage.is_dir()


def test_settings_are_parsed_with_defaults(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/db.sqlite",
            "llm": {
                "model": "openai/gpt-4o-mini",
                "models": {TASK_OUTLINE_CREATION: "anthropic/claude-sonnet", TASK_CONTENT_GENERATION: ""},
            },
            "safety": {"maximum_retries": "0", "maximum_cost_per_job": "0.25"},
            "jobs": {"workers": 4},
        },
        base_path=tmp_path,
    )

    assert config.llm.model_for_task(TASK_OUTLINE_CREATION) == "anthropic/claude-sonnet"
    assert config.llm.model_for_task(TASK_CONTENT_GENERATION) == "openai/gpt-4o-mini"
    assert config.safety.maximum_retries == 1
    assert config.safety.maximum_cost_per_job == 0.25
    assert config.jobs.workers == 4
    assert config.jobs.poll_interval == 1.0
    assert config.export.pandoc_binary == "pandoc"
    assert config.documents_root == (config.storage_root / "documents").resolve()
    assert config.prompts_root is None


def test_api_key_is_read_from_named_environment_variable(tmp_path: Path, monkeypatch) -> None:
    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/db.sqlite",
            "llm": {"api_key_env": "LECTURE_STUDIO_TEST_KEY"},
        },
        base_path=tmp_path,
    )

    monkeypatch.delenv("LECTURE_STUDIO_TEST_KEY", raising=False)
    assert config.llm.api_key is None

    monkeypatch.setenv("LECTURE_STUDIO_TEST_KEY", "  secret  ")
    assert config.llm.api_key == "secret"


def test_load_config_honours_environment_override(tmp_path: Path, monkeypatch) -> None:
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        json.dumps(
            {
                "storage_root": str(tmp_path / "custom-storage"),
                "database_file": str(tmp_path / "custom-storage" / "custom.db"),
                "llm": {"language": "it-IT"},
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv(config_module.CONFIG_ENV_VAR, str(config_file))

    config = load_config()

    assert config.storage_root == (tmp_path / "custom-storage").resolve()
    assert config.llm.language == "it-IT"
