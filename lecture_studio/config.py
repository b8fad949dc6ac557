"""Configuration loading utilities for the Lecture Studio application."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".lecture_studio_write_check"

CONFIG_ENV_VAR = "LECTURE_STUDIO_CONFIG"

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_LANGUAGE = "en-US"

# Task keys used to look up per-stage model overrides.
TASK_OUTLINE_CREATION = "outline_creation"
TASK_CONTENT_GENERATION = "content_generation"
TASK_CONTENT_VERIFICATION = "content_verification"
TASK_CONTENT_POLISHING = "content_polishing"
TASK_DOCUMENTS_MATCHING = "documents_matching"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The helper attempts to create ``preferred`` and returns it when writable. If
    the preferred location is unavailable, each candidate in ``fallbacks`` is
    tried in order. The first writable fallback is returned along with a flag
    indicating that a fallback was used. When no candidate can be prepared the
    original ``preferred`` path is returned.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _coerce_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class LLMSettings:
    """Model selection and provider endpoints."""

    provider: str = "openrouter"
    model: str = DEFAULT_MODEL
    base_url: str = "https://openrouter.ai/api/v1"
    ollama_url: str = "http://localhost:11434"
    api_key_env: str = "OPENROUTER_API_KEY"
    language: str = DEFAULT_LANGUAGE
    models: Dict[str, str] = field(default_factory=dict)

    @property
    def api_key(self) -> Optional[str]:
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None

    def model_for_task(self, task: str) -> str:
        """Return the model configured for *task*, falling back to the global model."""

        candidate = (self.models.get(task) or "").strip()
        return candidate or self.model

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "LLMSettings":
        models = mapping.get("models") or {}
        return cls(
            provider=str(mapping.get("provider", cls.provider)),
            model=str(mapping.get("model", DEFAULT_MODEL)),
            base_url=str(mapping.get("base_url", cls.base_url)),
            ollama_url=str(mapping.get("ollama_url", cls.ollama_url)),
            api_key_env=str(mapping.get("api_key_env", cls.api_key_env)),
            language=str(mapping.get("language", DEFAULT_LANGUAGE)),
            models={str(key): str(value) for key, value in dict(models).items() if value},
        )


@dataclass(frozen=True)
class SafetySettings:
    """Retry budget and per-call cost ceiling for LLM usage."""

    maximum_retries: int = 3
    maximum_cost_per_job: float = 0.0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "SafetySettings":
        return cls(
            maximum_retries=max(1, _coerce_int(mapping.get("maximum_retries"), 3)),
            maximum_cost_per_job=max(0.0, _coerce_float(mapping.get("maximum_cost_per_job"), 0.0)),
        )


@dataclass(frozen=True)
class JobSettings:
    workers: int = 2
    poll_interval: float = 1.0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "JobSettings":
        return cls(
            workers=max(1, _coerce_int(mapping.get("workers"), 2)),
            poll_interval=max(0.05, _coerce_float(mapping.get("poll_interval"), 1.0)),
        )


@dataclass(frozen=True)
class TranscriptionSettings:
    model: str = "base"
    compute_type: str = "int8"
    beam_size: int = 5

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TranscriptionSettings":
        return cls(
            model=str(mapping.get("model", "base")),
            compute_type=str(mapping.get("compute_type", "int8")),
            beam_size=max(1, _coerce_int(mapping.get("beam_size"), 5)),
        )


@dataclass(frozen=True)
class ExportSettings:
    pandoc_binary: str = "pandoc"
    pdf_engine: str = "tectonic"
    timeout_seconds: float = 300.0
    upload_url: str = "https://tmpfiles.org/api/v1/upload"
    document_dpi: int = 150

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ExportSettings":
        return cls(
            pandoc_binary=str(mapping.get("pandoc_binary", "pandoc")),
            pdf_engine=str(mapping.get("pdf_engine", "tectonic")),
            timeout_seconds=max(1.0, _coerce_float(mapping.get("timeout_seconds"), 300.0)),
            upload_url=str(mapping.get("upload_url", cls.upload_url)),
            document_dpi=max(36, _coerce_int(mapping.get("document_dpi"), 150)),
        )


@dataclass(frozen=True)
class AppConfig:
    """Container describing runtime paths and service settings."""

    storage_root: Path
    database_file: Path
    prompts_root: Optional[Path] = None
    llm: LLMSettings = field(default_factory=LLMSettings)
    safety: SafetySettings = field(default_factory=SafetySettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    transcription: TranscriptionSettings = field(default_factory=TranscriptionSettings)
    export: ExportSettings = field(default_factory=ExportSettings)

    @property
    def documents_root(self) -> Path:
        """Location holding rendered reference pages."""

        return (self.storage_root / "documents").resolve()

    @property
    def exports_root(self) -> Path:
        """Location receiving rendered study material."""

        return (self.storage_root / "exports").resolve()

    @property
    def models_root(self) -> Path:
        return (self.storage_root / "_models").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".lecture_studio" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()

        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        database_parent = database_file.parent
        if not _ensure_writable_directory(database_parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        prompts_root: Optional[Path] = None
        raw_prompts = mapping.get("prompts_root")
        if raw_prompts:
            prompts_root = (base_path / raw_prompts).resolve()

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            prompts_root=prompts_root,
            llm=LLMSettings.from_mapping(mapping.get("llm") or {}),
            safety=SafetySettings.from_mapping(mapping.get("safety") or {}),
            jobs=JobSettings.from_mapping(mapping.get("jobs") or {}),
            transcription=TranscriptionSettings.from_mapping(mapping.get("transcription") or {}),
            export=ExportSettings.from_mapping(mapping.get("export") or {}),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        override = os.environ.get(CONFIG_ENV_VAR, "").strip()
        config_path = Path(override) if override else base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = [
    "AppConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_LANGUAGE",
    "DEFAULT_MODEL",
    "ExportSettings",
    "JobSettings",
    "LLMSettings",
    "SafetySettings",
    "TASK_CONTENT_GENERATION",
    "TASK_CONTENT_POLISHING",
    "TASK_CONTENT_VERIFICATION",
    "TASK_DOCUMENTS_MATCHING",
    "TASK_OUTLINE_CREATION",
    "TranscriptionSettings",
    "load_config",
]
