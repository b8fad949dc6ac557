"""Processing backends for lecture ingestion."""

from .audio import (
    FasterWhisperTranscriptionService,
    TranscriptionDependencyError,
    TranscriptionError,
)
from .documents import (
    DocumentProcessingDependencyError,
    DocumentProcessingError,
    PyMuPDFDocumentProcessor,
    get_document_page_count,
)

__all__ = [
    "DocumentProcessingDependencyError",
    "DocumentProcessingError",
    "FasterWhisperTranscriptionService",
    "PyMuPDFDocumentProcessor",
    "TranscriptionDependencyError",
    "TranscriptionError",
    "get_document_page_count",
]
