"""Handlers for every job type, and their registration."""

from __future__ import annotations

import logging
from typing import Optional

from ...config import AppConfig
from ...export.assembler import ExportAssembler
from ...services.ingestion import DocumentProcessor, TranscriptionService
from ...services.storage import LectureRepository
from ...tools.generator import ToolGenerator
from ..models import JobType
from ..queue import JobQueue
from .build import BuildMaterialHandler
from .download import DownloadRemoteHandler
from .ingest import IngestDocumentsHandler
from .publish import PublishMaterialHandler
from .transcribe import TranscribeMediaHandler


LOGGER = logging.getLogger(__name__)


def register_handlers(
    queue: JobQueue,
    repository: LectureRepository,
    config: AppConfig,
    *,
    transcription: Optional[TranscriptionService] = None,
    documents: Optional[DocumentProcessor] = None,
    generator: Optional[ToolGenerator] = None,
    assembler: Optional[ExportAssembler] = None,
    downloader: Optional[DownloadRemoteHandler] = None,
) -> None:
    """Register a handler for each job type whose collaborator is available."""

    if transcription is not None:
        queue.register(
            JobType.TRANSCRIBE_MEDIA,
            TranscribeMediaHandler(repository, config, transcription),
        )
    if documents is not None:
        queue.register(
            JobType.INGEST_DOCUMENTS,
            IngestDocumentsHandler(repository, config, documents),
        )
    if generator is not None:
        queue.register(
            JobType.BUILD_MATERIAL,
            BuildMaterialHandler(repository, config, generator),
        )
    if assembler is not None:
        queue.register(JobType.PUBLISH_MATERIAL, PublishMaterialHandler(assembler))
    queue.register(JobType.DOWNLOAD_REMOTE, downloader or DownloadRemoteHandler())
    LOGGER.debug("Registered handlers: %s", ", ".join(queue.job_types))


__all__ = [
    "BuildMaterialHandler",
    "DownloadRemoteHandler",
    "IngestDocumentsHandler",
    "PublishMaterialHandler",
    "TranscribeMediaHandler",
    "register_handlers",
]
