"""Logging setup shared by the command line and the API server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "lecture_studio.log"

# Client libraries that log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "faster_whisper")

_OWNED_HANDLER_FLAG = "_lecture_studio_handler"


def get_log_file_path(storage_root: Path) -> Path:
    return Path(storage_root) / LOG_FILE_NAME


def configure_logging(
    storage_root: Optional[Path] = None,
    *,
    level: int = logging.INFO,
    stream: bool = True,
) -> Optional[Path]:
    """Route records to the storage log file and to stderr.

    Handlers installed by an earlier call are replaced, so commands can call
    this repeatedly. Returns the log file path, or ``None`` without a storage
    root.
    """

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, _OWNED_HANDLER_FLAG, False):
            root.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = []
    log_file: Optional[Path] = None
    if storage_root is not None:
        log_file = get_log_file_path(storage_root)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    if stream:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _OWNED_HANDLER_FLAG, True)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return log_file


__all__ = ["LOG_FILE_NAME", "LOG_FORMAT", "QUIET_LOGGERS", "configure_logging", "get_log_file_path"]
