"""Sequential study material generation on top of an LLM provider."""

from __future__ import annotations

import copy
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import (
    AppConfig,
    TASK_CONTENT_GENERATION,
    TASK_CONTENT_POLISHING,
    TASK_CONTENT_VERIFICATION,
    TASK_DOCUMENTS_MATCHING,
    TASK_OUTLINE_CREATION,
)
from ..jobs.models import JobMetrics
from ..llm.provider import ChatRequest, LLMProvider, LLMProviderError, Message
from ..markdown.citations import format_page_numbers
from ..markdown.i18n import base_language
from ..markdown.nodes import Node, NodeType, ParsedCitation
from ..markdown.parser import MarkdownParser
from ..markdown.reconstructor import MarkdownReconstructor
from ..prompts import manager as prompts
from ..prompts.manager import PromptManager
from ..services.events import emit_llm_event
from .matching import PageRange, filter_materials_by_ranges, merge_ranges, ranges_from_response
from .parsing import calculate_similarity, load_json_object


LOGGER = logging.getLogger(__name__)


DEFAULT_ADHERENCE_THRESHOLD = 70
DEFAULT_MAXIMUM_RETRIES = 3
TITLE_SIMILARITY_THRESHOLD = 65.0
FOOTNOTE_BATCH_SIZE = 10
UNTITLED_DOCUMENT = "Untitled Document"

# (minimum, maximum, preferred) section counts per requested length
SECTION_COUNT_POLICY: Dict[str, Tuple[int, int, str]] = {
    "short": (1, 4, "2-3"),
    "medium": (2, 5, "3-4"),
    "long": (4, 7, "5-6"),
}

LANGUAGE_NAMES = {
    "en": "English",
    "it": "Italian",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
}


class GenerationError(RuntimeError):
    """Raised when a generation stage exhausts its attempts."""


class CostLimitExceededError(GenerationError):
    """Raised when one model call costs more than the configured ceiling."""


@dataclass(frozen=True)
class GenerationOptions:
    enable_documents_matching: bool = False
    adherence_threshold: int = DEFAULT_ADHERENCE_THRESHOLD
    maximum_retries: int = 0
    model_documents_matching: str = ""
    model_structure: str = ""
    model_generation: str = ""
    model_adherence: str = ""
    model_polishing: str = ""


@dataclass
class Section:
    title: str
    coverage: str


@dataclass
class GenerationReport:
    """Usage and quality notes collected over one generation call.

    Metrics accumulate under a lock because documents matching runs its calls
    concurrently. ``drain_metrics`` hands over what was added since the last
    drain so progress updates never count usage twice.
    """

    forced_acceptances: List[str] = field(default_factory=list)
    total: JobMetrics = field(default_factory=JobMetrics)
    _pending: JobMetrics = field(default_factory=JobMetrics)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_metrics(self, metrics: JobMetrics) -> None:
        with self._lock:
            self.total.add(metrics)
            self._pending.add(metrics)

    def drain_metrics(self) -> Optional[JobMetrics]:
        with self._lock:
            pending = self._pending
            self._pending = JobMetrics()
        return None if pending.is_empty() else pending


StageUpdate = Callable[..., None]


def language_name(language_code: str) -> str:
    return LANGUAGE_NAMES.get(base_language(language_code), language_code)


# ----------------------------------------------------------------------
# Generator
# ----------------------------------------------------------------------
class ToolGenerator:
    """Build study guides, flashcards and quizzes from a lecture."""

    def __init__(
        self,
        config: AppConfig,
        provider: LLMProvider,
        prompt_manager: Optional[PromptManager] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._provider = provider
        self._prompts = prompt_manager or PromptManager(config.prompts_root)
        self._sleep = sleep
        self._parser = MarkdownParser()
        self._reconstructor = MarkdownReconstructor()

    # ------------------------------------------------------------------
    # Model access
    # ------------------------------------------------------------------
    def _model(self, override: str, task: str) -> str:
        return (override or "").strip() or self._config.llm.model_for_task(task)

    def _retries(self, options: GenerationOptions) -> int:
        if options.maximum_retries and options.maximum_retries > 0:
            return int(options.maximum_retries)
        return self._config.safety.maximum_retries or DEFAULT_MAXIMUM_RETRIES

    def call_llm(
        self,
        prompt: str,
        model: str,
        *,
        history: Optional[Sequence[Message]] = None,
        report: Optional[GenerationReport] = None,
    ) -> str:
        """Send *prompt* after *history* and return the concatenated response text."""

        model = (model or "").strip() or self._config.llm.model
        messages = list(history or []) + [Message(role="user", content=prompt)]
        started = time.perf_counter()

        parts: List[str] = []
        metrics = JobMetrics()
        for chunk in self._provider.chat(ChatRequest(model=model, messages=messages)):
            if chunk.text:
                parts.append(chunk.text)
            metrics.input_tokens += chunk.input_tokens
            metrics.output_tokens += chunk.output_tokens
            metrics.estimated_cost += chunk.cost

        emit_llm_event(
            model,
            payload={
                "input_tokens": metrics.input_tokens,
                "output_tokens": metrics.output_tokens,
                "cost": round(metrics.estimated_cost, 6),
                "messages": len(messages),
            },
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        if report is not None:
            report.add_metrics(metrics)

        limit = self._config.safety.maximum_cost_per_job
        if limit > 0 and metrics.estimated_cost > limit:
            raise CostLimitExceededError(
                f"safety threshold exceeded: call cost ${metrics.estimated_cost:.4f} > limit ${limit:.4f}"
            )
        return "".join(parts)

    # ------------------------------------------------------------------
    # Prompt fragments
    # ------------------------------------------------------------------
    def _latex_instructions(self) -> str:
        return self._prompts.get(prompts.LATEX_INSTRUCTIONS)

    def _language_requirement(self, language_code: str) -> str:
        return self._prompts.get(
            prompts.LANGUAGE_REQUIREMENT,
            {
                "language": language_name(language_code),
                "bcp_47_lang_code": language_code,
            },
        ).strip()

    # ------------------------------------------------------------------
    # Study guide
    # ------------------------------------------------------------------
    def generate_study_guide(
        self,
        lecture: Any,
        transcript: str,
        reference_materials: str,
        language_code: str,
        length: str,
        options: GenerationOptions,
        update: Optional[StageUpdate] = None,
        *,
        report: Optional[GenerationReport] = None,
    ) -> Tuple[str, str]:
        """Return ``(markdown, title)`` for a study guide of *lecture*."""

        report = report or GenerationReport()

        def _progress(progress: int, message: str) -> None:
            if update is not None:
                update(progress, message, metrics=report.drain_metrics())

        if options.enable_documents_matching and reference_materials.strip():
            _progress(5, "Matching relevant reference materials...")
            try:
                reference_materials = self.match_documents(
                    transcript, reference_materials, options, report=report
                )
            except CostLimitExceededError:
                raise
            except GenerationError as error:
                LOGGER.warning("Documents matching failed; using all reference pages: %s", error)

        _progress(10, "Analyzing lecture structure...")
        outline, sections, title = self.generate_outline(
            lecture, transcript, reference_materials, language_code, length, options, report=report
        )

        _progress(15, "Building study guide sections...")
        content = self.generate_sections(
            title or getattr(lecture, "title", ""),
            outline,
            sections,
            transcript,
            reference_materials,
            language_code,
            options,
            _progress,
            report=report,
        )
        _progress(100, "Generation complete.")
        return content, title or getattr(lecture, "title", "")

    def match_documents(
        self,
        transcript: str,
        reference_materials: str,
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> str:
        """Keep only the reference pages that an ensemble of runs finds relevant."""

        runs = self._retries(options)
        model = self._model(options.model_documents_matching, TASK_DOCUMENTS_MATCHING)
        prompt = self._prompts.get(
            prompts.GET_RELEVANT_PAGES,
            {"transcript": transcript, "reference_files": reference_materials},
        )

        def _run(index: int) -> Optional[List[PageRange]]:
            try:
                response = self.call_llm(prompt, model, report=report)
                return ranges_from_response(load_json_object(response))
            except CostLimitExceededError:
                raise
            except (LLMProviderError, ValueError) as error:
                LOGGER.warning("Documents matching run %d failed: %s", index + 1, error)
                return None

        with ThreadPoolExecutor(max_workers=runs, thread_name_prefix="documents-matching") as pool:
            results = list(pool.map(_run, range(runs)))

        parsed = [ranges for ranges in results if ranges is not None]
        if not parsed:
            raise GenerationError("all document matching runs failed")

        merged = merge_ranges(item for ranges in parsed for item in ranges)
        LOGGER.info(
            "Documents matching kept %d range(s) from %d successful run(s)",
            len(merged),
            len(parsed),
        )
        filtered = filter_materials_by_ranges(self._parser.parse(reference_materials), merged)
        return self._reconstructor.reconstruct(filtered)

    def generate_outline(
        self,
        lecture: Any,
        transcript: str,
        reference_materials: str,
        language_code: str,
        length: str,
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> Tuple[str, List[Section], str]:
        """Return ``(outline, sections, title)`` once a valid outline is produced."""

        minimum, maximum, preferred = SECTION_COUNT_POLICY.get(
            (length or "").strip().lower(), SECTION_COUNT_POLICY["medium"]
        )
        has_materials = bool(reference_materials.strip())
        example = (
            prompts.STUDY_GUIDE_WITH_CITATIONS_EXAMPLE
            if has_materials
            else prompts.STUDY_GUIDE_WITHOUT_CITATIONS_EXAMPLE
        )
        prompt = self._prompts.get(
            prompts.ANALYZE_LECTURE_STRUCTURE,
            {
                "language_requirement": f"Use language code {language_code}",
                "minimum_section_count": str(minimum),
                "maximum_section_count": str(maximum),
                "preferred_section_range": preferred,
                "latex_instructions": self._latex_instructions(),
                "example_template": self._prompts.get(example),
                "transcript": transcript,
                "reference_materials": reference_materials,
            },
        )
        model = self._model(options.model_structure, TASK_OUTLINE_CREATION)
        attempts = self._retries(options)

        for attempt in range(1, attempts + 1):
            try:
                outline = self.call_llm(prompt, model, report=report)
            except CostLimitExceededError:
                raise
            except (LLMProviderError, GenerationError) as error:
                if attempt == attempts:
                    raise
                LOGGER.warning("Outline attempt %d/%d failed: %s", attempt, attempts, error)
                self._sleep(attempt)
                continue

            root = self._parser.parse(outline)
            sections = [
                Section(
                    title=child.title,
                    coverage=self._reconstructor.reconstruct(
                        Node(type=NodeType.DOCUMENT, children=child.children)
                    ).strip(),
                )
                for child in root.walk()
                if child.type == NodeType.SECTION and child.level == 2
            ]
            if not minimum <= len(sections) <= maximum:
                LOGGER.warning(
                    "Outline attempt %d/%d produced %d sections (expected %d-%d)",
                    attempt,
                    attempts,
                    len(sections),
                    minimum,
                    maximum,
                )
                continue

            title = _outline_title(root)
            if title:
                try:
                    cleaned = self.clean_document_title(title, options, report=report)
                except CostLimitExceededError:
                    raise
                except (LLMProviderError, GenerationError) as error:
                    LOGGER.warning("Could not clean title %r: %s", title, error)
                    cleaned = title
                if cleaned and cleaned != title:
                    outline = outline.replace(f"# {title}", f"# {cleaned}", 1)
                    title = cleaned
            return outline, sections, title

        raise GenerationError(f"failed to generate valid structure after {attempts} attempts")

    def generate_sections(
        self,
        title: str,
        outline: str,
        sections: Sequence[Section],
        transcript: str,
        reference_materials: str,
        language_code: str,
        options: GenerationOptions,
        progress: Optional[Callable[[int, str], None]] = None,
        *,
        report: Optional[GenerationReport] = None,
    ) -> str:
        """Generate every section in order, keeping only accepted output in the history."""

        report = report or GenerationReport()
        has_materials = bool(reference_materials.strip())
        language_requirement = self._language_requirement(language_code)
        initial_context = self._prompts.get(
            prompts.STUDY_GUIDE_INITIAL_CONTEXT,
            {
                "language_requirement": language_requirement,
                "transcript": transcript,
                "reference_materials": reference_materials,
                "structure_outline": outline,
            },
        )
        citation_instructions = (
            self._prompts.get(prompts.CITATION_INSTRUCTIONS) if has_materials else ""
        )
        example = self._prompts.get(
            prompts.SECTION_WITH_CITATIONS_EXAMPLE
            if has_materials
            else prompts.SECTION_WITHOUT_CITATIONS_EXAMPLE
        )
        latex_instructions = self._latex_instructions()
        model = self._model(options.model_generation, TASK_CONTENT_GENERATION)
        threshold = options.adherence_threshold or DEFAULT_ADHERENCE_THRESHOLD
        attempts = self._retries(options)

        root = Node(
            type=NodeType.DOCUMENT,
            children=[Node(type=NodeType.HEADING, content=title, level=1)],
        )
        accepted: List[Tuple[str, str]] = []

        def _report(value: int, message: str) -> None:
            if progress is not None:
                progress(value, message)

        total = len(sections)
        for index, section in enumerate(sections):
            percent = 20 + int(index / total * 75) if total else 20
            prompt = self._prompts.get(
                prompts.STUDY_GUIDE_SECTION_GENERATION,
                {
                    "language_requirement": language_requirement,
                    "section_title": section.title,
                    "section_coverage": section.coverage,
                    "structure_outline": outline,
                    "citation_instructions": citation_instructions,
                    "latex_instructions": latex_instructions,
                    "example_template": example,
                },
            )

            accepted_node: Optional[Node] = None
            for attempt in range(1, attempts + 1):
                if attempt > 1:
                    _report(percent, "Rebuilding history for retry...")
                _report(percent, f"Generating section {index + 1}/{total}...")

                history = [
                    Message(role="user", content=initial_context),
                    Message(role="assistant", content="Ready."),
                ]
                for accepted_title, accepted_content in accepted:
                    history.append(Message(role="user", content=f"Generate {accepted_title}"))
                    history.append(Message(role="assistant", content=accepted_content))

                try:
                    content = self.call_llm(prompt, model, history=history, report=report)
                except CostLimitExceededError:
                    raise
                except LLMProviderError as error:
                    LOGGER.warning(
                        "Section %d attempt %d/%d failed: %s", index + 1, attempt, attempts, error
                    )
                    continue

                parsed = self._parser.parse(content)
                similarity = calculate_similarity(_generated_title(parsed), section.title)
                if similarity < TITLE_SIMILARITY_THRESHOLD and attempt < attempts:
                    LOGGER.info(
                        "Section %d attempt %d title similarity %.0f is too low",
                        index + 1,
                        attempt,
                        similarity,
                    )
                    continue

                _report(percent, "Verifying adherence...")
                score = self.verify_adherence(section, content, options, report=report)
                if score < threshold and attempt < attempts:
                    LOGGER.info(
                        "Section %d attempt %d adherence %d below threshold %d",
                        index + 1,
                        attempt,
                        score,
                        threshold,
                    )
                    continue

                if score < threshold:
                    LOGGER.warning(
                        "Accepting section %d (%s) after %d attempts with adherence %d < %d",
                        index + 1,
                        section.title,
                        attempts,
                        score,
                        threshold,
                    )
                    report.forced_acceptances.append(section.title)
                accepted_node = parsed
                accepted.append((section.title, content))
                break

            if accepted_node is None:
                raise GenerationError(f"failed to generate section {index + 1}")
            root.children.extend(accepted_node.children)

        return self._reconstructor.reconstruct(root)

    def verify_adherence(
        self,
        section: Section,
        content: str,
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> int:
        """Score 0-100 how well *content* covers *section*. Failures score 0."""

        prompt = self._prompts.get(
            prompts.VERIFY_SECTION_ADHERENCE,
            {
                "section_title": section.title,
                "expected_coverage": section.coverage,
                "generated_section": content,
            },
        )
        model = self._model(options.model_adherence, TASK_CONTENT_VERIFICATION)
        try:
            data = load_json_object(self.call_llm(prompt, model, report=report))
            return int(float(data.get("coverage_score", 0)))
        except CostLimitExceededError:
            raise
        except (LLMProviderError, ValueError, TypeError) as error:
            LOGGER.warning("Adherence check for %r failed: %s", section.title, error)
            return 0

    # ------------------------------------------------------------------
    # Footnote healing
    # ------------------------------------------------------------------
    def heal_footnotes(
        self,
        citations: Sequence[ParsedCitation],
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> List[ParsedCitation]:
        """Return a copy of *citations* with normalized sources and descriptions."""

        healed = [copy.deepcopy(citation) for citation in citations]
        model = self._model(options.model_polishing, TASK_CONTENT_POLISHING)
        latex_instructions = self._latex_instructions()

        for start in range(0, len(healed), FOOTNOTE_BATCH_SIZE):
            batch = healed[start:start + FOOTNOTE_BATCH_SIZE]
            try:
                self._heal_batch(batch, model, latex_instructions, report)
            except (LLMProviderError, GenerationError, ValueError) as error:
                LOGGER.warning(
                    "Footnote batch %d-%d kept unchanged: %s",
                    start + 1,
                    start + len(batch),
                    error,
                )
        return healed

    def _heal_batch(
        self,
        batch: List[ParsedCitation],
        model: str,
        latex_instructions: str,
        report: Optional[GenerationReport],
    ) -> None:
        response = self.call_llm(
            self._prompts.get(
                prompts.PARSE_FOOTNOTES,
                {"footnotes": _footnotes_markdown(batch), "latex_instructions": latex_instructions},
            ),
            model,
            report=report,
        )
        try:
            entries = load_json_object(response).get("footnotes") or []
        except ValueError as error:
            LOGGER.warning("Footnote metadata left unchanged: %s", error)
            entries = []
        for position, entry in enumerate(entries):

            if not isinstance(entry, dict):
                continue
            target = _match_citation(batch, entry.get("number"), position)
            if target is None:
                continue
            if entry.get("file"):
                target.file = str(entry["file"]).strip("` ")
            pages = entry.get("pages")
            if isinstance(pages, list) and pages:
                try:
                    target.pages = sorted({int(page) for page in pages})
                except (TypeError, ValueError):
                    LOGGER.debug("Ignoring unparsable pages for footnote %s", target.number)

        formatted = self.call_llm(
            self._prompts.get(
                prompts.FORMAT_FOOTNOTES,
                {"footnotes": _footnotes_markdown(batch), "latex_instructions": latex_instructions},
            ),
            model,
            report=report,
        )
        footnotes = [
            node for node in self._parser.parse(formatted).walk() if node.type == NodeType.FOOTNOTE
        ]
        for position, node in enumerate(footnotes):
            target = _match_citation(batch, node.footnote_number, position)
            if target is not None and node.content.strip():
                target.description = node.content.strip()

    # ------------------------------------------------------------------
    # Single-call tools
    # ------------------------------------------------------------------
    def _single_call_tool(
        self,
        template: str,
        lecture: Any,
        transcript: str,
        reference_materials: str,
        language_code: str,
        options: GenerationOptions,
        report: Optional[GenerationReport],
    ) -> Tuple[str, str]:
        prompt = self._prompts.get(
            template,
            {
                "language_requirement": f"Generate in code {language_code}",
                "transcript": transcript,
                "reference_materials": reference_materials,
                "latex_instructions": self._latex_instructions(),
            },
        )
        model = self._model(options.model_generation, TASK_CONTENT_GENERATION)
        return self.call_llm(prompt, model, report=report), getattr(lecture, "title", "")

    def generate_flashcards(
        self,
        lecture: Any,
        transcript: str,
        reference_materials: str,
        language_code: str,
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> Tuple[str, str]:
        return self._single_call_tool(
            prompts.GENERATE_FLASHCARDS,
            lecture,
            transcript,
            reference_materials,
            language_code,
            options,
            report,
        )

    def generate_quiz(
        self,
        lecture: Any,
        transcript: str,
        reference_materials: str,
        language_code: str,
        options: GenerationOptions,
        *,
        report: Optional[GenerationReport] = None,
    ) -> Tuple[str, str]:
        return self._single_call_tool(
            prompts.GENERATE_QUIZ,
            lecture,
            transcript,
            reference_materials,
            language_code,
            options,
            report,
        )

    def clean_document_title(
        self,
        title: str,
        options: Optional[GenerationOptions] = None,
        *,
        report: Optional[GenerationReport] = None,
    ) -> str:
        stripped = (title or "").strip()
        if not stripped or stripped == UNTITLED_DOCUMENT:
            return stripped
        options = options or GenerationOptions()
        response = self.call_llm(
            self._prompts.get(prompts.CLEAN_DOCUMENT_TITLE, {"title": stripped}),
            self._model(options.model_polishing, TASK_CONTENT_POLISHING),
            report=report,
        )
        try:
            cleaned = str(load_json_object(response).get("title") or "").strip()
        except ValueError as error:
            raise GenerationError(f"failed to parse cleaned title: {error}") from error
        return cleaned or stripped

    def correct_project_title_description(
        self,
        title: str,
        description: str,
        *,
        report: Optional[GenerationReport] = None,
    ) -> Tuple[str, str]:
        response = self.call_llm(
            self._prompts.get(
                prompts.CORRECT_PROJECT_TITLE_DESCRIPTION,
                {"title": title, "description": description},
            ),
            self._config.llm.model_for_task(TASK_CONTENT_POLISHING),
            report=report,
        )
        try:
            data = load_json_object(response)
        except ValueError as error:
            raise GenerationError(f"failed to parse corrected title: {error}") from error
        return (
            str(data.get("title") or title).strip(),
            str(data.get("description") if data.get("description") is not None else description).strip(),
        )

    def generate_suggested_questions(
        self,
        content: str,
        *,
        report: Optional[GenerationReport] = None,
    ) -> List[str]:
        response = self.call_llm(
            self._prompts.get(
                prompts.GENERATE_CHAT_QUESTIONS,
                {"document_content": content, "latex_instructions": self._latex_instructions()},
            ),
            self._config.llm.model_for_task(TASK_CONTENT_POLISHING),
            report=report,
        )
        try:
            questions = load_json_object(response).get("questions") or []
        except ValueError as error:
            raise GenerationError(f"failed to parse suggested questions: {error}") from error
        return [str(question).strip() for question in questions if str(question).strip()]

    def generate_abstract(
        self,
        content: str,
        language_code: str,
        *,
        report: Optional[GenerationReport] = None,
    ) -> str:
        response = self.call_llm(
            self._prompts.get(
                prompts.GENERATE_DOCUMENT_DESCRIPTION,
                {
                    "document_content": content,
                    "latex_instructions": self._latex_instructions(),
                    "language_requirement": self._language_requirement(language_code),
                },
            ),
            self._config.llm.model_for_task(TASK_CONTENT_POLISHING),
            report=report,
        )
        try:
            return str(load_json_object(response).get("description") or "").strip()
        except ValueError as error:
            raise GenerationError(f"failed to parse abstract: {error}") from error


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _outline_title(root: Node) -> str:
    for node in root.walk():
        if node.type == NodeType.SECTION and node.level == 1:
            return node.title
        if node.type == NodeType.HEADING and node.level == 1:
            return node.content
    return ""


def _generated_title(root: Node) -> str:
    for child in root.children:
        if child.type == NodeType.SECTION and child.level == 2:
            return child.title
        if child.type == NodeType.HEADING and child.level == 2:
            return child.content
    return ""


def _footnotes_markdown(citations: Sequence[ParsedCitation]) -> str:
    parts: List[str] = []
    for citation in citations:
        line = f"[^{citation.number}]: {citation.description}"
        if citation.file:
            source = f"`{citation.file}`"
            if citation.pages:
                prefix = "p." if len(citation.pages) == 1 else "pp."
                source = f"{source}, {prefix} {format_page_numbers(list(citation.pages))}"
            line = f"{line} ({source})"
        parts.append(line + "\n\n")
    return "".join(parts)



def _match_citation(
    batch: List[ParsedCitation], number: Any, position: int
) -> Optional[ParsedCitation]:
    try:
        wanted = int(number)
    except (TypeError, ValueError):
        wanted = None
    if wanted is not None:
        for citation in batch:
            if citation.number == wanted:
                return citation
    if 0 <= position < len(batch):
        return batch[position]
    return None


__all__ = [
    "CostLimitExceededError",
    "DEFAULT_ADHERENCE_THRESHOLD",
    "GenerationError",
    "GenerationOptions",
    "GenerationReport",
    "SECTION_COUNT_POLICY",
    "Section",
    "ToolGenerator",
    "language_name",
]
