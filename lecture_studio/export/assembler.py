"""Turn stored tools into Markdown, DOCX or PDF files."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import AppConfig
from ..jobs.models import JobError
from ..llm.provider import LLMProviderError
from ..markdown.converter import (
    AudioFileMetadata,
    ConversionError,
    ConversionOptions,
    MarkdownConverter,
    ReferenceFileMetadata,
)
from ..markdown.enrichment import enrich_with_cited_images, resolver_from_mapping
from ..markdown.nodes import ListType, Node, NodeType
from ..markdown.parser import MarkdownParser
from ..markdown.reconstructor import MarkdownReconstructor
from ..prompts.manager import PromptError
from ..services.naming import sanitize_filename
from ..services.storage import LectureRepository, ToolRecord
from ..tools.generator import GenerationError, GenerationReport, ToolGenerator
from ..tools.parsing import load_json_with_fallback
from .qr import QRCodeRenderer
from .uploads import TmpFilesUploader, UploadError


LOGGER = logging.getLogger(__name__)


EXPORT_FORMATS = ("pdf", "docx", "md")

_STORED_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


@dataclass
class ExportOptions:
    format: str = "pdf"
    include_images: bool = True
    include_qr_code: bool = False
    language_code: str = ""


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    try:
        return datetime.strptime(text, _STORED_TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        LOGGER.debug("Ignoring unparsable timestamp %r", value)
        return None


# ----------------------------------------------------------------------
# Structured tools as Markdown
# ----------------------------------------------------------------------
def _entries(data: Any, key: str) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get(key) or []
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def flashcards_to_markdown(title: str, data: Any) -> str:
    root = Node(type=NodeType.DOCUMENT, children=[Node(type=NodeType.HEADING, content=title, level=1)])
    for card in _entries(data, "flashcards"):
        root.children.append(Node(type=NodeType.HEADING, content=str(card.get("front", "")).strip(), level=2))
        root.children.append(Node(type=NodeType.PARAGRAPH, content=str(card.get("back", "")).strip()))
    return MarkdownReconstructor().reconstruct(root)


def quiz_to_markdown(title: str, data: Any) -> str:
    root = Node(type=NodeType.DOCUMENT, children=[Node(type=NodeType.HEADING, content=title, level=1)])
    for question in _entries(data, "questions"):
        root.children.append(
            Node(type=NodeType.HEADING, content=str(question.get("question", "")).strip(), level=2)
        )
        for option in question.get("options") or []:
            root.children.append(
                Node(type=NodeType.LIST_ITEM, content=str(option).strip(), list_type=ListType.UNORDERED)
            )
        answer = str(question.get("correct_answer", "")).strip()
        if answer:
            root.children.append(Node(type=NodeType.PARAGRAPH, content=f"**Correct Answer:** {answer}"))
        explanation = str(question.get("explanation", "")).strip()
        if explanation:
            root.children.append(Node(type=NodeType.PARAGRAPH, content=f"*Explanation:* {explanation}"))
    return MarkdownReconstructor().reconstruct(root)


# ----------------------------------------------------------------------
# Assembler
# ----------------------------------------------------------------------
class ExportAssembler:
    """Render a stored tool with its metadata header, abstract and optional QR code."""

    def __init__(
        self,
        config: AppConfig,
        repository: LectureRepository,
        generator: ToolGenerator,
        converter: MarkdownConverter,
        uploader: Optional[TmpFilesUploader] = None,
        qr_renderer: Optional[QRCodeRenderer] = None,
    ) -> None:
        self._config = config
        self._repository = repository
        self._generator = generator
        self._converter = converter
        self._uploader = uploader or TmpFilesUploader(config.export.upload_url)
        self._qr_renderer = qr_renderer or QRCodeRenderer()

    def export(
        self,
        tool_id: str,
        options: ExportOptions,
        update: Callable[..., None],
    ) -> Tuple[Path, str]:
        tool = self._repository.get_tool(tool_id)
        if tool is None:
            raise JobError(f"tool not found: {tool_id}")
        export_format = (options.format or "pdf").strip().lower()
        if export_format not in EXPORT_FORMATS:
            raise JobError(f"unsupported export format: {export_format}")
        language = options.language_code or tool.language_code or self._config.llm.language

        export_dir = self._config.exports_root / tool.id
        output_path = export_dir / f"{sanitize_filename(tool.title)}.{export_format}"

        update(10, "Preparing document content...")
        content = self._prepare_content(tool, options.include_images, language)

        update(30, "Gathering lecture metadata...")
        conversion = self._conversion_options(tool, language)

        update(40, "Generating document abstract...")
        report = GenerationReport()
        try:
            conversion.description = self._generator.generate_abstract(content, language, report=report)
        except (GenerationError, LLMProviderError, PromptError) as error:
            LOGGER.warning("Exporting %s without an abstract: %s", tool.id, error)

        update(50, f"Generating {export_format} document...", metrics=report.drain_metrics())
        created_dir = not export_dir.exists()
        export_dir.mkdir(parents=True, exist_ok=True)
        try:
            self._render(content, output_path, export_format, conversion, update)
        except Exception:
            output_path.unlink(missing_ok=True)
            if created_dir:
                shutil.rmtree(export_dir, ignore_errors=True)
            raise

        if options.include_qr_code:
            self._add_qr_code(content, output_path, export_format, conversion, update)

        update(
            100,
            "Export completed",
            metadata={"file_path": str(output_path), "format": export_format},
        )
        LOGGER.info("Exported tool %s to %s", tool.id, output_path)
        return output_path, export_format

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def _prepare_content(self, tool: ToolRecord, include_images: bool, language: str) -> str:
        if tool.type in ("flashcard", "quiz"):
            try:
                data = load_json_with_fallback(tool.content)
            except ValueError:
                LOGGER.warning("Tool %s content is not JSON; exporting it verbatim", tool.id)
                return tool.content
            if tool.type == "flashcard":
                return flashcards_to_markdown(tool.title, data)
            return quiz_to_markdown(tool.title, data)

        root = MarkdownParser().parse(tool.content)
        if include_images:
            self._bind_footnote_sources(tool.id, root)
            image_map = self._repository.build_page_image_map(tool.exam_id)
            added = enrich_with_cited_images(root, resolver_from_mapping(image_map))
            LOGGER.debug("Added %d cited page images to tool %s", added, tool.id)
        reconstructor = MarkdownReconstructor(language=language, include_images=include_images)
        return reconstructor.reconstruct(root)

    def _bind_footnote_sources(self, tool_id: str, root: Node) -> None:
        references: Dict[int, Tuple[str, List[int]]] = {}
        for reference in self._repository.list_source_references(tool_id):
            try:
                number = int(reference.metadata.get("footnote_number"))
            except (TypeError, ValueError):
                continue
            pages = [int(page) for page in reference.metadata.get("pages") or []]
            references[number] = (reference.source_id, pages)

        for node in root.walk():
            if node.type != NodeType.FOOTNOTE:
                continue
            bound = references.get(node.footnote_number)
            if bound is None:
                continue
            node.source_file, node.source_pages = bound[0], list(bound[1])

    def _conversion_options(self, tool: ToolRecord, language: str) -> ConversionOptions:
        exam = self._repository.get_exam(tool.exam_id)
        lectures = self._repository.list_lectures(tool.exam_id, status="ready")

        creation_date: Optional[datetime] = None
        audio_files: List[AudioFileMetadata] = []
        reference_files: List[ReferenceFileMetadata] = []
        for lecture in lectures:
            if lecture.specified_date:
                creation_date = parse_timestamp(lecture.specified_date) or creation_date
            for media in self._repository.list_media(lecture.id):
                audio_files.append(
                    AudioFileMetadata(
                        filename=media.original_filename or Path(media.file_path).name,
                        duration=int(media.duration_milliseconds or 0) // 1000,
                    )
                )
            for document in self._repository.list_documents(lecture.id):
                reference_files.append(
                    ReferenceFileMetadata(
                        filename=document.original_filename or document.title,
                        page_count=int(document.page_count or 0),
                    )
                )

        return ConversionOptions(
            language=language,
            course_title=exam.title if exam is not None else "",
            creation_date=creation_date or parse_timestamp(tool.created_at),
            audio_files=audio_files,
            reference_files=reference_files,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _render(
        self,
        content: str,
        output_path: Path,
        export_format: str,
        conversion: ConversionOptions,
        update: Callable[..., None],
    ) -> None:
        document = content
        # PDF output carries the same details through pandoc metadata.
        if export_format in ("md", "docx"):
            header = self._converter.generate_metadata_header(conversion)
            if header:
                document = f"{header.rstrip()}\n\n{content}"

        if export_format == "md":
            self._converter.save_markdown(document, output_path)
            return

        update(60, f"Converting {export_format} document...")
        html = self._converter.markdown_to_html(document)
        if export_format == "docx":
            self._converter.html_to_docx(html, output_path, conversion)
        else:
            self._converter.html_to_pdf(html, output_path, conversion)

    def _add_qr_code(
        self,
        content: str,
        output_path: Path,
        export_format: str,
        conversion: ConversionOptions,
        update: Callable[..., None],
    ) -> None:
        update(70, "Uploading document for QR code generation...")
        qr_path: Optional[Path] = None
        try:
            url = self._uploader.upload(output_path)
            handle, name = tempfile.mkstemp(prefix="lecture-studio-qr-", suffix=".png")
            os.close(handle)
            qr_path = Path(name)
            self._qr_renderer.render(url, qr_path)
            conversion.qr_code_path = qr_path

            update(85, "Re-generating document with QR code...")
            self._render(content, output_path, export_format, conversion, update)
        except (UploadError, ConversionError, OSError, ValueError) as error:
            LOGGER.warning("QR code pass for %s failed: %s", output_path.name, error)
        finally:
            conversion.qr_code_path = None
            if qr_path is not None:
                qr_path.unlink(missing_ok=True)


__all__ = [
    "EXPORT_FORMATS",
    "ExportAssembler",
    "ExportOptions",
    "flashcards_to_markdown",
    "parse_timestamp",
    "quiz_to_markdown",
]
