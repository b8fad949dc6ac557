"""Handler rendering and extracting the pages of reference documents."""

from __future__ import annotations

import logging
import shutil
import sqlite3
from typing import Any, Dict, Optional

from ...config import AppConfig
from ...services.ingestion import DocumentProcessor
from ...services.storage import LectureRepository
from ..models import (
    Job,
    JobContext,
    JobError,
    JobMetrics,
    ProgressCallback,
    payload_string,
    require_payload_string,
)


LOGGER = logging.getLogger(__name__)


class IngestDocumentsHandler:
    def __init__(
        self,
        repository: LectureRepository,
        config: AppConfig,
        processor: DocumentProcessor,
    ) -> None:
        self._repository = repository
        self._config = config
        self._processor = processor

    def __call__(self, job: Job, context: JobContext, update: ProgressCallback) -> Optional[Dict[str, Any]]:
        lecture_id = require_payload_string(job.payload, "lecture_id")
        if self._repository.get_lecture(lecture_id) is None:
            raise JobError(f"lecture not found: {lecture_id}")
        documents = self._repository.list_documents(lecture_id)
        if not documents:
            raise JobError(f"no reference documents found for lecture: {lecture_id}")
        language = payload_string(job.payload, "language_code", self._config.llm.language)

        total = len(documents)
        totals = JobMetrics()
        page_count = 0
        for index, document in enumerate(documents):
            if context.is_cancelled:
                LOGGER.info("Stopping ingestion for lecture %s: job cancelled", lecture_id)
                return None
            metadata = {
                "document_index": index,
                "total_documents": total,
                "document_title": document.title,
            }
            update(int(index / total * 100), "Ingesting reference documents...", metadata=metadata)
            self._repository.update_document_status(document.id, "processing")

            document_root = self._config.documents_root / document.id
            output_dir = document_root / "pages"
            output_dir.mkdir(parents=True, exist_ok=True)

            def _progress(percent: int, message: str) -> None:
                overall = int((index + max(0, min(100, percent)) / 100.0) / total * 100)
                update(overall, "Extracting and processing document pages...", metadata=metadata)

            try:
                pages, metrics = self._processor.process(document, output_dir, language, _progress)
            except Exception as error:  # noqa: BLE001 - any backend failure marks the lecture failed
                shutil.rmtree(document_root, ignore_errors=True)
                self._repository.update_document_status(document.id, "failed")
                self._repository.update_lecture_status(lecture_id, "failed")
                raise JobError(f"document processor failed for {document.title}: {error}") from error

            try:
                self._repository.replace_document_pages(document.id, pages)
            except sqlite3.Error:
                shutil.rmtree(document_root, ignore_errors=True)
                raise
            totals.add(metrics)
            page_count += len(pages)
            LOGGER.info("Ingested %d page(s) of %s", len(pages), document.title)

        self._repository.refresh_lecture_readiness(lecture_id)
        update(
            100,
            "Document ingestion completed",
            metadata={"document_count": total, "page_count": page_count},
            metrics=None if totals.is_empty() else totals,
        )
        return {"document_count": total, "page_count": page_count}


__all__ = ["IngestDocumentsHandler"]
