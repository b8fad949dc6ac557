"""Handler generating a study guide, flashcards or a quiz for a lecture."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...config import AppConfig
from ...llm.provider import LLMProviderError
from ...markdown.citations import parse_citations
from ...markdown.nodes import Node, NodeType
from ...markdown.reconstructor import MarkdownReconstructor
from ...prompts.manager import PromptError
from ...services.storage import LectureRepository, SourceReferenceRecord
from ...tools.generator import (
    DEFAULT_ADHERENCE_THRESHOLD,
    GenerationError,
    GenerationOptions,
    GenerationReport,
    ToolGenerator,
)
from ..models import (
    Job,
    JobContext,
    JobError,
    ProgressCallback,
    payload_bool,
    payload_string,
    require_payload_string,
)


LOGGER = logging.getLogger(__name__)


TOOL_TYPES = ("guide", "flashcard", "quiz", "custom")


def _payload_int(payload: Dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise JobError(f"{key} must be an integer") from error


def generation_options(payload: Dict[str, Any]) -> GenerationOptions:
    return GenerationOptions(
        enable_documents_matching=payload_bool(payload, "enable_documents_matching", False),
        adherence_threshold=_payload_int(payload, "adherence_threshold", DEFAULT_ADHERENCE_THRESHOLD),
        maximum_retries=_payload_int(payload, "maximum_retries", 0),
        model_documents_matching=payload_string(payload, "model_documents_matching"),
        model_structure=payload_string(payload, "model_structure"),
        model_generation=payload_string(payload, "model_generation"),
        model_adherence=payload_string(payload, "model_adherence"),
        model_polishing=payload_string(payload, "model_polishing"),
    )


class BuildMaterialHandler:
    def __init__(
        self,
        repository: LectureRepository,
        config: AppConfig,
        generator: ToolGenerator,
    ) -> None:
        self._repository = repository
        self._config = config
        self._generator = generator

    def build_reference_materials(self, lecture_id: str) -> str:
        """Return every extracted page as ``# Reference File`` / ``## Page N`` Markdown."""

        root = Node(type=NodeType.DOCUMENT)
        for document in self._repository.list_documents(lecture_id):
            pages = self._repository.list_pages(document.id)
            if not pages:
                continue
            file_section = Node(type=NodeType.SECTION, title=f"Reference File: {document.title}", level=1)
            for page in pages:
                page_section = Node(type=NodeType.SECTION, title=f"Page {page.page_number}", level=2)
                text = (page.extracted_text or "").strip()
                if text:
                    page_section.children.append(Node(type=NodeType.PARAGRAPH, content=text))
                file_section.children.append(page_section)
            root.children.append(file_section)
        if not root.children:
            return ""
        return MarkdownReconstructor().reconstruct(root)

    def __call__(self, job: Job, context: JobContext, update: ProgressCallback) -> Optional[Dict[str, Any]]:
        payload = job.payload
        lecture_id = require_payload_string(payload, "lecture_id")
        lecture = self._repository.get_lecture(lecture_id)
        if lecture is None:
            raise JobError(f"lecture not found: {lecture_id}")
        exam_id = payload_string(payload, "exam_id", lecture.exam_id)
        tool_type = payload_string(payload, "type", "guide").lower()
        if tool_type not in TOOL_TYPES:
            raise JobError(f"unsupported tool type: {tool_type}")
        length = payload_string(payload, "length", "medium")
        language = payload_string(payload, "language_code", self._config.llm.language)
        options = generation_options(payload)

        transcript = self._repository.get_transcript_text(lecture_id)
        materials = self.build_reference_materials(lecture_id)
        if not transcript and not materials:
            raise JobError(f"lecture has no transcript or reference material: {lecture_id}")

        report = GenerationReport()
        try:
            if tool_type == "flashcard":
                content, title = self._generator.generate_flashcards(
                    lecture, transcript, materials, language, options, report=report
                )
            elif tool_type == "quiz":
                content, title = self._generator.generate_quiz(
                    lecture, transcript, materials, language, options, report=report
                )
            else:
                content, title = self._generator.generate_study_guide(
                    lecture, transcript, materials, language, length, options, update, report=report
                )
        except (GenerationError, LLMProviderError, PromptError) as error:
            raise JobError(f"tool generation failed: {error}") from error

        is_guide = tool_type in ("guide", "custom")
        content, citations = parse_citations(content)
        if is_guide and citations:
            citations = self._generator.heal_footnotes(citations, options, report=report)
        if is_guide:
            content = MarkdownReconstructor(language=language).append_citations(content, citations)

        metadata: Dict[str, Any] = {"citation_count": len(citations)}
        if report.forced_acceptances:
            metadata["forced_acceptances"] = list(report.forced_acceptances)
        update(95, "Finalizing tool...", metadata=metadata, metrics=report.drain_metrics())

        references: List[SourceReferenceRecord] = [
            SourceReferenceRecord(
                tool_id="",
                source_type="document",
                source_id=citation.file,
                metadata={
                    "footnote_number": citation.number,
                    "description": citation.description,
                    "pages": list(citation.pages),
                },
            )
            for citation in citations
        ]
        tool_id = self._repository.save_tool(
            exam_id,
            tool_type,
            title or lecture.title,
            content,
            language_code=language,
            references=references,
        )
        LOGGER.info("Built %s %s for lecture %s with %d citation(s)", tool_type, tool_id, lecture_id, len(citations))
        return {"tool_id": tool_id}


__all__ = ["BuildMaterialHandler", "TOOL_TYPES", "generation_options"]
