"""Job records, lifecycle constants and the handler calling convention."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol


class JobError(RuntimeError):
    """Raised by handlers when their inputs are missing or invalid."""


class JobStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ACTIVE = (PENDING, RUNNING)
    TERMINAL = (COMPLETED, FAILED, CANCELLED)


class JobType:
    TRANSCRIBE_MEDIA = "transcribe_media"
    INGEST_DOCUMENTS = "ingest_documents"
    BUILD_MATERIAL = "build_material"
    PUBLISH_MATERIAL = "publish_material"
    DOWNLOAD_REMOTE = "download_remote"

    ALL = (
        TRANSCRIBE_MEDIA,
        INGEST_DOCUMENTS,
        BUILD_MATERIAL,
        PUBLISH_MATERIAL,
        DOWNLOAD_REMOTE,
    )


@dataclass
class JobMetrics:
    """Token usage and estimated cost reported alongside progress updates."""

    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0

    def add(self, other: Optional["JobMetrics"]) -> None:
        if other is None:
            return
        self.input_tokens += int(other.input_tokens or 0)
        self.output_tokens += int(other.output_tokens or 0)
        self.estimated_cost += float(other.estimated_cost or 0.0)

    def is_empty(self) -> bool:
        return not (self.input_tokens or self.output_tokens or self.estimated_cost)


@dataclass
class Job:
    id: str
    type: str
    status: str
    progress: int
    progress_message: str
    payload: Dict[str, Any]
    metadata: Dict[str, Any]
    result: Optional[Dict[str, Any]]
    error: Optional[str]
    input_tokens: int
    output_tokens: int
    estimated_cost: float
    created_at: str
    started_at: Optional[str]
    completed_at: Optional[str]

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "progress": self.progress,
            "progress_message": self.progress_message,
            "payload": self.payload,
            "metadata": self.metadata,
            "result": self.result,
            "error": self.error,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "estimated_cost": self.estimated_cost,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass
class JobEvent:
    """Progress notification delivered to subscribers of one job."""

    job_id: str
    status: str
    progress: int
    message: str = ""
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
            "error": self.error,
            "result": self.result,
            "metadata": self.metadata,
        }


@dataclass
class JobContext:
    """Execution context handed to a handler for one job."""

    job_id: str
    cancelled: threading.Event = field(default_factory=threading.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()


ProgressCallback = Callable[..., None]
"""``update(progress, message, metadata=None, metrics=None)``."""


class JobHandler(Protocol):
    """Callable executing one job type."""

    def __call__(
        self,
        job: Job,
        context: JobContext,
        update: ProgressCallback,
    ) -> Optional[Dict[str, Any]]:
        """Run *job* and return its result payload."""


def payload_string(payload: Dict[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def payload_bool(payload: Dict[str, Any], key: str, default: bool) -> bool:
    """Interpret booleans that may arrive as JSON booleans or strings."""

    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "1", "yes", "on"}:
        return True
    if text in {"false", "0", "no", "off"}:
        return False
    return default


def require_payload_string(payload: Dict[str, Any], key: str) -> str:
    value = payload_string(payload, key)
    if not value:
        raise JobError(f"{key} is required")
    return value


__all__ = [
    "Job",
    "JobContext",
    "JobError",
    "JobEvent",
    "JobHandler",
    "JobMetrics",
    "JobStatus",
    "JobType",
    "ProgressCallback",
    "payload_bool",
    "payload_string",
    "require_payload_string",
]
