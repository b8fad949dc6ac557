"""Structured log events for database queries, job transitions and model calls.

Every event is a single log record on the ``lecture_studio.events`` logger.
The human readable message is ``[KIND] summary (key=value, ...)`` and the
same details are attached to the record as ``event_*`` attributes so a
structured handler can pick them up.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


EVENT_LOGGER = logging.getLogger("lecture_studio.events")

DB_QUERY = "DB_QUERY"
JOB_STATE = "JOB_STATE"
LLM_CALL = "LLM_CALL"

MAX_VALUE_LENGTH = 200


def clean_value(value: Any) -> Any:
    """Return *value* in a loggable form, or ``None`` when it carries nothing."""

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return clean_details(value)
    if isinstance(value, (list, tuple, set)):
        text = ", ".join(str(item) for item in value)
    else:
        text = str(value) if not isinstance(value, Path) else value.as_posix()
    text = text.strip()
    if not text:
        return None
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "..."
    return text


def clean_details(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop empty keys and values from *details* and clean the rest."""

    cleaned: Dict[str, Any] = {}
    for key, raw in (details or {}).items():
        if not key:
            continue
        value = clean_value(raw)
        if value is None or value == "" or value == {}:
            continue
        cleaned[str(key)] = value
    return cleaned


def emit_event(
    kind: str,
    summary: str,
    *,
    details: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger = EVENT_LOGGER,
) -> None:
    if not logger.isEnabledFor(level):
        return
    cleaned = clean_details(details)
    if duration_ms is not None:
        cleaned["duration_ms"] = round(float(duration_ms), 2)
    message = f"[{kind}] {summary}".strip()
    if cleaned:
        message += " (" + ", ".join(f"{key}={value}" for key, value in cleaned.items()) + ")"
    logger.log(
        level,
        message,
        extra={"event_type": kind, "event_summary": summary, "event_details": cleaned},
    )


def emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.DEBUG,
) -> None:
    """Signature matches the repository ``event_emitter`` hook."""

    emit_event(DB_QUERY, action, details=payload, duration_ms=duration_ms, level=level)


def emit_job_event(
    job_id: str,
    status: str,
    message: str = "",
    *,
    payload: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
) -> None:
    details = {"job_id": job_id, "status": status}
    details.update(payload or {})
    emit_event(JOB_STATE, message or status, details=details, duration_ms=duration_ms, level=level)


def emit_llm_event(
    model: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
) -> None:
    emit_event(LLM_CALL, model, details=payload, duration_ms=duration_ms, level=level)


__all__ = [
    "DB_QUERY",
    "EVENT_LOGGER",
    "JOB_STATE",
    "LLM_CALL",
    "clean_details",
    "clean_value",
    "emit_db_event",
    "emit_event",
    "emit_job_event",
    "emit_llm_event",
]
