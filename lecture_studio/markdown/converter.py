"""Rendering Markdown into HTML, PDF and DOCX through pandoc."""

from __future__ import annotations

import base64
import json
import logging
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .i18n import format_duration, format_localized_date, get_label


LOGGER = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """Raised when the rendering toolchain is missing or fails."""


@dataclass
class ReferenceFileMetadata:
    filename: str
    page_range: str = ""
    page_count: int = 0


@dataclass
class AudioFileMetadata:
    filename: str
    duration: int = 0
    """Duration in seconds."""


@dataclass
class ConversionOptions:
    language: str = "en"
    description: str = ""
    course_title: str = ""
    creation_date: Optional[datetime] = None
    reference_files: List[ReferenceFileMetadata] = field(default_factory=list)
    audio_files: List[AudioFileMetadata] = field(default_factory=list)
    qr_code_path: Optional[Path] = None


class MarkdownConverter(Protocol):
    """Protocol describing the document rendering backend."""

    def markdown_to_html(self, markdown_text: str) -> str:
        """Render Markdown into an HTML fragment."""

    def html_to_pdf(self, html: str, output_path: Path, options: ConversionOptions) -> None:
        """Render HTML into a PDF file at *output_path*."""

    def html_to_docx(self, html: str, output_path: Path, options: ConversionOptions) -> None:
        """Render HTML into a DOCX file at *output_path*."""

    def save_markdown(self, markdown_text: str, output_path: Path) -> None:
        """Write Markdown to *output_path*."""

    def generate_metadata_header(self, options: ConversionOptions) -> str:
        """Return a localized Markdown header describing the document."""


_MATH_OR_DOLLAR = re.compile(r"(?<!\\)(?:(\$\$[\s\S]*?\$\$)|(\$[^$\s][^$]*?[^$\s]\$)|(\$[^$\s]\$)|(\$))")
_LATEX_INLINE = re.compile(r"\\\((.*?)\\\)", re.S)
_LATEX_DISPLAY = re.compile(r"\\\[(.*?)\\\]", re.S)


def normalize_math(markdown_text: str) -> str:
    """Prepare math for pandoc's ``tex_math_dollars`` reader.

    Lone currency dollars are escaped, LaTeX delimiters become dollar math and
    ``(*)`` is escaped so it is not read as emphasis.
    """

    def _escape(match: "re.Match[str]") -> str:
        text = match.group(0)
        if len(text) > 1:
            return text
        return "\\$"

    markdown_text = _MATH_OR_DOLLAR.sub(_escape, markdown_text)
    markdown_text = _LATEX_INLINE.sub(lambda match: "$" + match.group(1).strip() + "$", markdown_text)
    markdown_text = _LATEX_DISPLAY.sub(lambda match: "$$" + match.group(1) + "$$", markdown_text)
    return markdown_text.replace("(*)", "(\\*)")


def _image_data_uri(path: Path) -> str:
    try:
        payload = Path(path).read_bytes()
    except OSError as error:
        LOGGER.warning("Unable to embed image %s: %s", path, error)
        return ""
    return "data:image/png;base64," + base64.b64encode(payload).decode("ascii")


def generate_metadata_header(options: ConversionOptions) -> str:
    """Return the Markdown block placed above exported content."""

    language = options.language
    parts: List[str] = []

    if options.qr_code_path:
        data_uri = _image_data_uri(Path(options.qr_code_path))
        if data_uri:
            parts.append(f"![]({data_uri}){{ width=80px }}\n\n")

    if options.course_title:
        parts.append(f"**{get_label(language, 'course_label')}**: {options.course_title}\n\n")

    if options.creation_date is not None:
        date_text = format_localized_date(options.creation_date, language)
        parts.append(f"**{get_label(language, 'date_label')}**: {date_text}\n\n")

    if options.description:
        label = get_label(language, "abstract")
        parts.append(f"### {label[:1].upper() + label[1:]}\n\n{options.description}\n\n")

    if options.audio_files:
        parts.append(f"### {get_label(language, 'audio_files')}\n\n")
        for audio in options.audio_files:
            duration = format_duration(audio.duration, language)
            if duration:
                parts.append(f"- `{audio.filename}` ({duration})\n")
            else:
                parts.append(f"- `{audio.filename}`\n")
        parts.append("\n")

    if options.reference_files:
        page_label = get_label(language, "page_label")
        pages_label = get_label(language, "pages_label")
        parts.append(f"### {get_label(language, 'reference_files')}\n\n")
        for reference in options.reference_files:
            details = ""
            if reference.page_range:
                details = f"{pages_label} {reference.page_range}"
            elif reference.page_count > 0:
                label = page_label if reference.page_count == 1 else pages_label
                details = f"{label} 1-{reference.page_count}"
            if details:
                parts.append(f"- `{reference.filename}` ({details})\n")
            else:
                parts.append(f"- `{reference.filename}`\n")
        parts.append("\n")

    return "".join(parts)


class PandocConverter:
    """Converter backed by the ``pandoc`` command line tool."""

    def __init__(
        self,
        *,
        pandoc_binary: str = "pandoc",
        pdf_engine: str = "tectonic",
        resource_path: Optional[Path] = None,
        timeout: float = 300.0,
    ) -> None:
        self._pandoc_binary = pandoc_binary
        self._pdf_engine = pdf_engine
        self._resource_path = resource_path
        self._timeout = timeout

    def _resolve_binary(self, name: str) -> str:
        resolved = shutil.which(name)
        if resolved is None:
            raise ConversionError(f"{name} not found; install it and make sure it is on PATH")
        return resolved

    def check_dependencies(self) -> None:
        self._resolve_binary(self._pandoc_binary)
        self._resolve_binary(self._pdf_engine)

    def _run(self, arguments: Sequence[str], stdin_text: str, *, label: str) -> str:
        command = [self._resolve_binary(self._pandoc_binary), *arguments]
        LOGGER.debug("Executing pandoc command: %s", " ".join(command))
        try:
            completed = subprocess.run(
                command,
                input=stdin_text.encode("utf-8"),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise ConversionError(f"pandoc {label} conversion timed out after {self._timeout:.0f}s") from error

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="ignore").strip()
            details = (stderr or "pandoc exited with a non-zero status.").splitlines()
            LOGGER.debug("pandoc %s conversion failed (code=%s): %s", label, completed.returncode, stderr)
            raise ConversionError(
                f"pandoc {label} conversion failed: {details[0] if details else 'Unknown error.'}"
            )
        return completed.stdout.decode("utf-8", errors="ignore")

    def _resource_arguments(self) -> List[str]:
        if self._resource_path is None:
            return []
        return ["--resource-path", str(self._resource_path)]

    def markdown_to_html(self, markdown_text: str) -> str:
        return self._run(
            [
                "-f",
                "gfm+smart+tex_math_dollars",
                "-t",
                "html",
                "--mathml",
                "--wrap=none",
                "--toc",
            ],
            normalize_math(markdown_text),
            label="html",
        )

    def html_to_pdf(self, html: str, output_path: Path, options: ConversionOptions) -> None:
        engine = self._resolve_binary(self._pdf_engine)
        with tempfile.TemporaryDirectory(prefix="lecture-studio-pdf-") as scratch:
            metadata_path = Path(scratch) / "metadata.yaml"
            metadata_path.write_text(self._metadata_yaml(options), encoding="utf-8")
            self._run(
                [
                    "-f",
                    "html",
                    "-t",
                    "pdf",
                    *self._resource_arguments(),
                    f"--pdf-engine={engine}",
                    "--toc",
                    "--shift-heading-level-by=-1",
                    "--metadata-file",
                    str(metadata_path),
                    "-o",
                    str(output_path),
                ],
                html,
                label="pdf",
            )

    def html_to_docx(self, html: str, output_path: Path, options: ConversionOptions) -> None:
        arguments = ["-f", "html", "-t", "docx", *self._resource_arguments(), "--toc", "-o", str(output_path)]
        if options.course_title:
            arguments.extend(["--metadata", f"course-title={options.course_title}"])
        self._run(arguments, html, label="docx")

    def save_markdown(self, markdown_text: str, output_path: Path) -> None:
        Path(output_path).write_text(markdown_text, encoding="utf-8")

    def generate_metadata_header(self, options: ConversionOptions) -> str:
        return generate_metadata_header(options)

    @staticmethod
    def _metadata_yaml(options: ConversionOptions) -> str:
        # JSON strings are valid YAML scalars.
        entries = {
            "lang": options.language,
            "course-title": options.course_title,
            "course-title-label": get_label(options.language, "course_label"),
            "abstract-title": get_label(options.language, "abstract"),
            "abstract": options.description,
            "audio-files-title": get_label(options.language, "audio_files"),
            "reference-files-title": get_label(options.language, "reference_files"),
        }
        if options.creation_date is not None:
            entries["date"] = format_localized_date(options.creation_date, options.language)
        return "".join(f"{key}: {json.dumps(value, ensure_ascii=False)}\n" for key, value in entries.items() if value)


__all__ = [
    "AudioFileMetadata",
    "ConversionError",
    "ConversionOptions",
    "MarkdownConverter",
    "PandocConverter",
    "ReferenceFileMetadata",
    "generate_metadata_header",
    "normalize_math",
]
