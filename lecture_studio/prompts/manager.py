"""Load Markdown prompt templates and fill their ``{{variable}}`` slots."""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional


LOGGER = logging.getLogger(__name__)


TEMPLATES_ROOT = Path(__file__).resolve().parent / "templates"

ANALYZE_LECTURE_STRUCTURE = "general/analyze-lecture-structure.md"
CLEAN_DOCUMENT_TITLE = "general/clean-document-title.md"
CORRECT_PROJECT_TITLE_DESCRIPTION = "general/correct-project-title-description.md"
FORMAT_FOOTNOTES = "general/format-footnotes.md"
GENERATE_CHAT_QUESTIONS = "general/generate-chat-questions.md"
GENERATE_DOCUMENT_DESCRIPTION = "general/generate-document-description.md"
GET_RELEVANT_PAGES = "general/get-relevant-pages.md"
PARSE_FOOTNOTES = "general/parse-footnotes.md"
VERIFY_SECTION_ADHERENCE = "general/verify-section-adherence.md"

CITATION_INSTRUCTIONS = "study-guides/citation-instructions.md"
GENERATE_FLASHCARDS = "study-guides/generate-flashcards.md"
GENERATE_QUIZ = "study-guides/generate-quiz.md"
LANGUAGE_REQUIREMENT = "study-guides/language-requirement.md"
LATEX_INSTRUCTIONS = "study-guides/latex-instructions.md"
SECTION_WITH_CITATIONS_EXAMPLE = "study-guides/section-with-citations-example.md"
SECTION_WITHOUT_CITATIONS_EXAMPLE = "study-guides/section-without-citations-example.md"
STUDY_GUIDE_INITIAL_CONTEXT = "study-guides/study-guide-initial-context.md"
STUDY_GUIDE_SECTION_GENERATION = "study-guides/study-guide-section-generation.md"
STUDY_GUIDE_WITH_CITATIONS_EXAMPLE = "study-guides/study-guide-with-citations-example.md"
STUDY_GUIDE_WITHOUT_CITATIONS_EXAMPLE = "study-guides/study-guide-without-citations-example.md"

# Only bare identifiers are placeholders, so ``{{{description-file.pdf-p3}}}``
# citation markers in examples survive rendering.
_PLACEHOLDER = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")


class PromptError(RuntimeError):
    """Raised when a template cannot be located or read."""


def render(template: str, variables: Optional[Mapping[str, str]] = None) -> str:
    """Replace ``{{name}}`` placeholders with *variables*.

    Substitution happens in a single pass, so variable values that contain
    braces are never expanded again. Unknown placeholders are left intact.
    """

    if not variables:
        return template

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


class PromptManager:
    """Read prompt templates from disk, caching the raw text."""

    def __init__(self, base_directory: Optional[Path] = None) -> None:
        self._base = Path(base_directory or TEMPLATES_ROOT).resolve()
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def base_directory(self) -> Path:
        return self._base

    def load(self, path: str) -> str:
        with self._lock:
            cached = self._cache.get(path)
        if cached is not None:
            return cached

        target = (self._base / path).resolve()
        try:
            target.relative_to(self._base)
        except ValueError as error:
            raise PromptError(f"prompt path escapes template directory: {path}") from error
        try:
            text = target.read_text(encoding="utf-8")
        except OSError as error:
            raise PromptError(f"failed to read prompt {path}: {error}") from error

        with self._lock:
            self._cache[path] = text
        LOGGER.debug("Loaded prompt template %s", path)
        return text

    def get(self, path: str, variables: Optional[Mapping[str, str]] = None) -> str:
        """Return the template at *path* with *variables* substituted."""

        return render(self.load(path), variables)


__all__ = [
    "ANALYZE_LECTURE_STRUCTURE",
    "CITATION_INSTRUCTIONS",
    "CLEAN_DOCUMENT_TITLE",
    "CORRECT_PROJECT_TITLE_DESCRIPTION",
    "FORMAT_FOOTNOTES",
    "GENERATE_CHAT_QUESTIONS",
    "GENERATE_DOCUMENT_DESCRIPTION",
    "GENERATE_FLASHCARDS",
    "GENERATE_QUIZ",
    "GET_RELEVANT_PAGES",
    "LANGUAGE_REQUIREMENT",
    "LATEX_INSTRUCTIONS",
    "PARSE_FOOTNOTES",
    "PromptError",
    "PromptManager",
    "SECTION_WITHOUT_CITATIONS_EXAMPLE",
    "SECTION_WITH_CITATIONS_EXAMPLE",
    "STUDY_GUIDE_INITIAL_CONTEXT",
    "STUDY_GUIDE_SECTION_GENERATION",
    "STUDY_GUIDE_WITHOUT_CITATIONS_EXAMPLE",
    "STUDY_GUIDE_WITH_CITATIONS_EXAMPLE",
    "TEMPLATES_ROOT",
    "VERIFY_SECTION_ADHERENCE",
    "render",
]
