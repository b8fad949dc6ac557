"""Contracts for the collaborators that turn raw lecture assets into text."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from ..jobs.models import JobMetrics
from .storage import DocumentRecord, MediaRecord, PageRecord, TranscriptSegmentRecord


StageProgress = Callable[[int, str], None]
"""``progress(percent, message)`` reported by long running collaborators."""


class TranscriptionService(Protocol):
    """Protocol describing a transcription backend."""

    def transcribe(
        self,
        media_files: Sequence[MediaRecord],
        workdir: Path,
        progress: Optional[StageProgress] = None,
    ) -> Tuple[List[TranscriptSegmentRecord], JobMetrics]:
        """Transcribe *media_files* in order into one continuous segment list.

        ``start_millisecond``/``end_millisecond`` are relative to the start of
        the lecture; ``original_*`` fields are relative to each media file.
        """


class DocumentProcessor(Protocol):
    """Protocol describing a reference document backend."""

    def process(
        self,
        document: DocumentRecord,
        output_dir: Path,
        language: str,
        progress: Optional[StageProgress] = None,
    ) -> Tuple[List[PageRecord], JobMetrics]:
        """Render every page of *document* into *output_dir* and extract its text."""


__all__ = ["DocumentProcessor", "StageProgress", "TranscriptionService"]
