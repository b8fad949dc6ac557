"""Reference document processing backed by PyMuPDF."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from ..jobs.models import JobMetrics
from ..services.ingestion import StageProgress
from ..services.naming import build_page_image_name
from ..services.storage import DocumentRecord, PageRecord


LOGGER = logging.getLogger(__name__)


class DocumentProcessingError(RuntimeError):
    """Base class for document processing errors."""


class DocumentProcessingDependencyError(DocumentProcessingError):
    """Raised when PyMuPDF is not installed."""


def get_document_page_count(path: Path) -> int:
    """Return the number of pages contained in a document."""

    try:
        import fitz  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime check
        raise DocumentProcessingDependencyError("PyMuPDF (fitz) is not installed") from exc

    try:
        with fitz.open(path) as document:
            return int(document.page_count)
    except (RuntimeError, ValueError) as error:
        raise DocumentProcessingError(f"Unable to inspect document {path}") from error


class PyMuPDFDocumentProcessor:
    """Render each page to PNG and keep its embedded text."""

    def __init__(self, dpi: int = 150) -> None:
        self._dpi = dpi

    def process(
        self,
        document: DocumentRecord,
        output_dir: Path,
        language: str,
        progress: Optional[StageProgress] = None,
    ) -> Tuple[List[PageRecord], JobMetrics]:
        try:
            import fitz  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime check
            raise DocumentProcessingDependencyError("PyMuPDF (fitz) is not installed") from exc

        source = Path(document.file_path)
        if not source.exists():
            raise DocumentProcessingError(f"document file not found: {source}")

        output_dir.mkdir(parents=True, exist_ok=True)
        LOGGER.debug(
            "Processing document %s (%s) into %s at %s dpi (language=%s)",
            document.id,
            source,
            output_dir,
            self._dpi,
            language,
        )

        matrix = fitz.Matrix(self._dpi / 72, self._dpi / 72)
        pages: List[PageRecord] = []
        try:
            with fitz.open(source) as pdf:
                total = int(pdf.page_count)
                for index in range(total):
                    page_number = index + 1
                    page = pdf.load_page(index)
                    image_path = output_dir / build_page_image_name(page_number)
                    pixmap = page.get_pixmap(matrix=matrix, alpha=False)
                    pixmap.save(str(image_path))
                    text = page.get_text("text").strip()
                    pages.append(
                        PageRecord(
                            document_id=document.id,
                            page_number=page_number,
                            image_path=str(image_path),
                            extracted_text=text,
                        )
                    )
                    if progress is not None:
                        progress(int(page_number / total * 100), f"Processed page {page_number}/{total}")
        except (RuntimeError, ValueError) as error:
            raise DocumentProcessingError(f"Unable to render {source}: {error}") from error

        LOGGER.info("Rendered %d pages for document %s", len(pages), document.id)
        return pages, JobMetrics()


__all__ = [
    "DocumentProcessingDependencyError",
    "DocumentProcessingError",
    "PyMuPDFDocumentProcessor",
    "get_document_page_count",
]
