"""Inline citation markers, footnote punctuation and page number helpers.

Generated text cites sources with markers of the form
``{{{description-file.pdf-p3-5}}}``. :func:`parse_citations` replaces each
marker with a ``[^N]`` reference and returns the structured records that are
later persisted alongside the tool.
"""

from __future__ import annotations

import logging
import re
from typing import List, Tuple

from .nodes import ParsedCitation


LOGGER = logging.getLogger(__name__)


_CITATION_MARKER = re.compile(r"\s*\{\{\{(.*?)\s*\}\}\}")
_PAGE_SUFFIX = re.compile(r"-p([\d\s\-,]+)$")
_FILE_WITH_EXTENSION = re.compile(r"^(.*)-([^\-]+?\.[a-z0-9]+)$")

_PUNCTUATION_AROUND_REFERENCE = re.compile(r"[ \t]*([.,]*)[ \t]*(\[\^\d+\])[ \t]*([.,]*)")
_BETWEEN_REFERENCES = re.compile(r"(\[\^\d+\])[ \t.,]*(\[\^\d+\])")
_REPEATED_PUNCTUATION = re.compile(r"([.,]{2,})(\[\^\d+\])")
_TEXT_AFTER_REFERENCE = re.compile(r"(\[\^\d+\])([^\s.,:;!?)\]\[])")
_CAPITAL_AFTER_DOT = re.compile(r"(\.+)([A-Z])")
_TEXT_AFTER_COLON = re.compile(r"(\w+:)([*\s_]*)([^\s/])")
_LEADING_MARKERS = re.compile(r"^([*_]+)")


def normalize_reference_punctuation(text: str) -> str:
    """Move ``.``/``,`` to the left of ``[^N]`` references and merge adjacent references."""

    result = _PUNCTUATION_AROUND_REFERENCE.sub(r"\1\3\2", text)
    result = _BETWEEN_REFERENCES.sub(r"\1\2", result)
    return _REPEATED_PUNCTUATION.sub(lambda match: match.group(1)[0] + match.group(2), result)


def _space_after_colon(match: "re.Match[str]") -> str:
    text = match.group(0)
    if text.lower().startswith(("http:", "https:")):
        return text
    if ": " in text or any(char.isspace() for char in match.group(2)):
        return text
    head, tail = text.split(":", 1)
    markers = _LEADING_MARKERS.match(tail)
    if markers is not None:
        return head + ":" + markers.group(1) + " " + tail[len(markers.group(1)):]
    return head + ": " + tail


def apply_citation_post_processing(text: str) -> str:
    """Normalize reference punctuation and restore spacing around references and colons."""

    result = normalize_reference_punctuation(text)
    result = _TEXT_AFTER_REFERENCE.sub(r"\1 \2", result)
    result = _CAPITAL_AFTER_DOT.sub(r"\1 \2", result)
    return _TEXT_AFTER_COLON.sub(_space_after_colon, result)


def parse_page_string(page_string: str) -> List[int]:
    """Expand ``"1, 2, 5-7"`` (hyphen or en dash, optional ``p`` prefixes) into page numbers."""

    pages: List[int] = []
    if not page_string:
        return pages
    for part in page_string.split(","):
        part = part.strip()
        if part.startswith("p"):
            part = part[1:]
        if "-" in part or "–" in part:
            bounds = part.replace("–", "-").split("-")
            if len(bounds) != 2:
                continue
            try:
                start, end = int(bounds[0].strip()), int(bounds[1].strip())
            except ValueError:
                continue
            if start > 0 and end >= start:
                pages.extend(range(start, end + 1))
        else:
            try:
                number = int(part)
            except ValueError:
                continue
            if number > 0:
                pages.append(number)
    return pages


def format_page_numbers(pages: List[int]) -> str:
    """Collapse page numbers into en-dash ranges, e.g. ``[1, 2, 3, 5]`` -> ``"1–3, 5"``."""

    ordered = sorted(set(pages))
    if not ordered:
        return ""

    ranges: List[str] = []
    start = end = ordered[0]
    for page in ordered[1:]:
        if page == end + 1:
            end = page
            continue
        ranges.append(str(start) if start == end else f"{start}–{end}")
        start = end = page
    ranges.append(str(start) if start == end else f"{start}–{end}")
    return ", ".join(ranges)


def _split_marker(content: str) -> Tuple[str, str, str]:
    page_string = ""
    remaining = content
    page_match = _PAGE_SUFFIX.search(content)
    if page_match is not None:
        page_string = page_match.group(1)
        remaining = content[: page_match.start()]

    file_match = _FILE_WITH_EXTENSION.match(remaining)
    if file_match is not None:
        return file_match.group(1).strip(), file_match.group(2).strip(), page_string

    last_dash = remaining.rfind("-")
    if last_dash != -1:
        return remaining[:last_dash].strip(), remaining[last_dash + 1:].strip(), page_string
    return remaining, "unknown", page_string


def parse_citations(text: str) -> Tuple[str, List[ParsedCitation]]:
    """Replace ``{{{...}}}`` markers with numbered references and return the citations."""

    matches = list(_CITATION_MARKER.finditer(text))
    LOGGER.debug("Found %d citation markers in %d characters", len(matches), len(text))

    citations: List[ParsedCitation] = []
    result = text
    for position, match in enumerate(matches, start=1):
        description, filename, page_string = _split_marker(match.group(1).strip())
        citations.append(
            ParsedCitation(
                number=position,
                description=description,
                file=filename,
                pages=parse_page_string(page_string),
            )
        )
        result = result.replace(match.group(0), f"[^{position}]", 1)

    return normalize_reference_punctuation(result), citations


__all__ = [
    "apply_citation_post_processing",
    "format_page_numbers",
    "normalize_reference_punctuation",
    "parse_citations",
    "parse_page_string",
]
