"""Handler turning a lecture's media files into transcript segments."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ...config import AppConfig
from ...services.ingestion import TranscriptionService
from ...services.storage import LectureRepository
from ..models import Job, JobContext, JobError, ProgressCallback, payload_string, require_payload_string


LOGGER = logging.getLogger(__name__)


def job_workdir(job_id: str) -> Path:
    return Path(tempfile.gettempdir()) / "lectures-jobs" / job_id


class TranscribeMediaHandler:
    def __init__(
        self,
        repository: LectureRepository,
        config: AppConfig,
        transcription: TranscriptionService,
    ) -> None:
        self._repository = repository
        self._config = config
        self._transcription = transcription

    def __call__(self, job: Job, context: JobContext, update: ProgressCallback) -> Optional[Dict[str, Any]]:
        lecture_id = require_payload_string(job.payload, "lecture_id")
        if self._repository.get_lecture(lecture_id) is None:
            raise JobError(f"lecture not found: {lecture_id}")
        media_files = self._repository.list_media(lecture_id)
        if not media_files:
            raise JobError(f"no media files found for lecture: {lecture_id}")

        language = payload_string(job.payload, "language_code") or None
        transcript_id = self._repository.prepare_transcript(lecture_id, language)
        update(0, "Transcribing media files...", metadata={"media_files": len(media_files)})

        def _progress(percent: int, message: str) -> None:
            update(int(percent), "Transcribing media files...", metadata={"stage": message})

        workdir = job_workdir(job.id)
        workdir.mkdir(parents=True, exist_ok=True)
        try:
            segments, metrics = self._transcription.transcribe(media_files, workdir, _progress)
        except Exception as error:  # noqa: BLE001 - any backend failure marks the lecture failed
            self._repository.update_transcript_status(transcript_id, "failed")
            self._repository.update_lecture_status(lecture_id, "failed")
            raise JobError(f"transcription service failed: {error}") from error
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        self._repository.replace_transcript_segments(transcript_id, segments)
        ready = self._repository.refresh_lecture_readiness(lecture_id)
        LOGGER.info(
            "Stored %d transcript segments for lecture %s (ready=%s)",
            len(segments),
            lecture_id,
            ready,
        )
        update(
            100,
            "Transcription completed",
            metadata={"segment_count": len(segments)},
            metrics=metrics,
        )
        return {"transcript_id": transcript_id, "segment_count": len(segments)}


__all__ = ["TranscribeMediaHandler", "job_workdir"]
