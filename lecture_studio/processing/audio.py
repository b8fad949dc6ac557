"""Audio transcription backed by :mod:`faster_whisper`."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..jobs.models import JobMetrics
from ..services.ingestion import StageProgress
from ..services.storage import MediaRecord, TranscriptSegmentRecord


LOGGER = logging.getLogger(__name__)


class TranscriptionError(RuntimeError):
    """Raised when a media file cannot be transcribed."""


class TranscriptionDependencyError(TranscriptionError):
    """Raised when faster-whisper is not installed."""


@dataclass
class TranscriptSegment:
    """Represents a single transcript segment in seconds."""

    start: float
    end: float
    text: str
    confidence: Optional[float] = None


class FasterWhisperTranscriptionService:
    """Transcribe lecture media in order, stitching timestamps into one timeline."""

    def __init__(
        self,
        model_size: str = "base",
        *,
        download_root: Optional[Path] = None,
        compute_type: str = "int8",
        beam_size: int = 5,
    ) -> None:
        self._model_size = model_size
        self._download_root = download_root
        self._compute_type = compute_type
        self._beam_size = beam_size
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model
        try:
            from faster_whisper import WhisperModel
        except ImportError as exc:  # pragma: no cover - exercised in runtime, not tests
            raise TranscriptionDependencyError("faster-whisper is not installed") from exc

        download_directory = str(self._download_root) if self._download_root is not None else None
        self._model = WhisperModel(
            self._model_size,
            device="cpu",
            compute_type=self._compute_type,
            download_root=download_directory,
        )
        LOGGER.debug(
            "Loaded faster_whisper model '%s' (download_root=%s)",
            self._model_size,
            download_directory,
        )
        return self._model

    def transcribe(
        self,
        media_files: Sequence[MediaRecord],
        workdir: Path,
        progress: Optional[StageProgress] = None,
    ) -> Tuple[List[TranscriptSegmentRecord], JobMetrics]:
        workdir.mkdir(parents=True, exist_ok=True)
        model = self._load_model()

        records: List[TranscriptSegmentRecord] = []
        offset_milliseconds = 0
        total = len(media_files)

        for index, media in enumerate(media_files):
            if progress is not None:
                progress(int(index / total * 100) if total else 0, "Transcribing media files...")

            LOGGER.debug("Invoking faster_whisper model for %s", media.file_path)
            try:
                raw_segments, info = model.transcribe(media.file_path, beam_size=self._beam_size)
                segments = list(self._collect_segments(raw_segments))
            except (OSError, ValueError, RuntimeError) as error:
                raise TranscriptionError(f"failed to transcribe {media.file_path}: {error}") from error

            media_end = 0
            for segment in segments:
                original_start = int(segment.start * 1000)
                original_end = int(segment.end * 1000)
                media_end = max(media_end, original_end)
                records.append(
                    TranscriptSegmentRecord(
                        media_id=media.id,
                        start_millisecond=offset_milliseconds + original_start,
                        end_millisecond=offset_milliseconds + original_end,
                        original_start_milliseconds=original_start,
                        original_end_milliseconds=original_end,
                        text=segment.text.strip(),
                        confidence=segment.confidence,
                    )
                )

            reported = int(float(getattr(info, "duration", 0.0) or 0.0) * 1000)
            offset_milliseconds += max(reported, media_end)

            segments_file = workdir / f"segments_{media.id}.json"
            segments_file.write_text(
                json.dumps([segment.__dict__ for segment in segments], indent=2),
                encoding="utf-8",
            )
            LOGGER.debug("Segment metadata for media %s saved to %s", media.id, segments_file)

        LOGGER.info("Transcription produced %d segments for %d media files", len(records), total)
        return records, JobMetrics()

    def _collect_segments(self, segments: Iterable[object]) -> Iterable[TranscriptSegment]:
        for segment in segments:
            log_probability = getattr(segment, "avg_logprob", None)
            yield TranscriptSegment(
                start=float(getattr(segment, "start")),
                end=float(getattr(segment, "end")),
                text=str(getattr(segment, "text", "")),
                confidence=float(log_probability) if log_probability is not None else None,
            )


__all__ = [
    "FasterWhisperTranscriptionService",
    "TranscriptSegment",
    "TranscriptionDependencyError",
    "TranscriptionError",
]
