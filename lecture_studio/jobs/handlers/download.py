"""Handler staging a remote file for a later upload."""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import unquote, urlparse

import httpx

from ..models import Job, JobContext, JobError, ProgressCallback, payload_string, require_payload_string


LOGGER = logging.getLogger(__name__)


CHUNK_SIZE = 1024 * 1024
PROGRESS_INTERVAL_SECONDS = 0.5
DOWNLOAD_TIMEOUT_SECONDS = 30.0


def upload_staging_dir(job_id: str) -> Path:
    return Path(tempfile.gettempdir()) / "lectures-uploads" / job_id


def filename_from_url(url: str) -> str:
    name = Path(unquote(urlparse(url).path)).name
    return name or "download"


class DownloadRemoteHandler:
    def __init__(self, *, client_factory: Optional[Callable[[], httpx.Client]] = None) -> None:
        self._client_factory = client_factory or (
            lambda: httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True)
        )

    def __call__(self, job: Job, context: JobContext, update: ProgressCallback) -> Optional[Dict[str, Any]]:
        url = require_payload_string(job.payload, "url")
        if urlparse(url).scheme not in ("http", "https"):
            raise JobError(f"unsupported URL scheme: {url}")
        filename = payload_string(job.payload, "filename") or filename_from_url(url)

        staging = upload_staging_dir(job.id)
        staging.mkdir(parents=True, exist_ok=True)
        target = staging / "upload.data"
        update(0, "Downloading file...", metadata={"filename": filename})

        try:
            written = self._download(url, target, context, update)
            (staging / "metadata.json").write_text(
                json.dumps({"filename": filename, "file_size_bytes": written}),
                encoding="utf-8",
            )
        except httpx.HTTPStatusError as error:
            shutil.rmtree(staging, ignore_errors=True)
            raise JobError(f"download failed with status {error.response.status_code}") from error
        except (httpx.HTTPError, OSError) as error:
            shutil.rmtree(staging, ignore_errors=True)
            raise JobError(f"download failed: {error}") from error
        except JobError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        LOGGER.info("Downloaded %s (%d bytes) to %s", filename, written, staging)
        update(100, "Download completed", metadata={"filename": filename, "file_size_bytes": written})
        return {"upload_id": job.id, "filename": filename}

    def _download(
        self,
        url: str,
        target: Path,
        context: JobContext,
        update: ProgressCallback,
    ) -> int:
        written = 0
        last_report = time.monotonic()
        with self._client_factory() as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                with target.open("wb") as handle:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        if context.is_cancelled:
                            raise JobError("download cancelled")
                        handle.write(chunk)
                        written += len(chunk)
                        now = time.monotonic()
                        if now - last_report >= PROGRESS_INTERVAL_SECONDS:
                            last_report = now
                            percent = min(99, int(written * 100 / total)) if total else 0
                            update(
                                percent,
                                "Downloading file...",
                                metadata={"bytes_downloaded": written, "total_bytes": total},
                            )
        return written


__all__ = [
    "CHUNK_SIZE",
    "DownloadRemoteHandler",
    "filename_from_url",
    "upload_staging_dir",
]
