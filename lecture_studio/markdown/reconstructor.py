"""Render a node tree back into canonical Markdown."""

from __future__ import annotations

import re
from typing import List, Sequence

from .citations import apply_citation_post_processing, format_page_numbers
from .i18n import DEFAULT_LANGUAGE, get_label
from .nodes import ListType, Node, NodeType, ParsedCitation
from .parser import escape_dollar_signs


_ORDERED_BULLET = re.compile(r"^\d+\.")
_DOLLAR_MATH = re.compile(r"(?<!\\)\$\$(.+?)(?<!\\)\$\$|(?<!\\)\$(.+?)(?<!\\)\$", re.S)


def latex_math_delimiters(text: str) -> str:
    """Write parsed ``$..$`` math back as ``\\(..\\)`` and ``$$..$$`` as ``\\[..\\]``.

    The parser reads a bare dollar as currency, so this is the form it turns
    back into the same tree. Any dollar left over is escaped.
    """

    def _replace(match: "re.Match[str]") -> str:
        if match.group(1) is not None:
            return "\\[" + match.group(1) + "\\]"
        return "\\(" + match.group(2) + "\\)"

    return escape_dollar_signs(_DOLLAR_MATH.sub(_replace, text))


class MarkdownReconstructor:
    """Turn nodes into Markdown lines.

    ``language`` selects the page labels used for footnote and figure
    metadata; ``include_images`` controls whether ``image`` nodes are emitted
    as HTML figures.
    """

    def __init__(
        self,
        *,
        indent_unit: int = 4,
        language: str = DEFAULT_LANGUAGE,
        include_images: bool = True,
    ) -> None:
        self.indent_unit = indent_unit
        self.language = language or DEFAULT_LANGUAGE
        self.include_images = include_images

    def reconstruct(self, node: Node) -> str:
        lines: List[str] = []
        self._render(node, lines)
        result = apply_citation_post_processing("\n".join(lines))
        return result.strip() + "\n"

    def append_citations(self, content: str, citations: Sequence[ParsedCitation]) -> str:
        """Append footnote definitions for *citations* below *content*."""

        if not citations:
            return content
        lines: List[str] = [content.strip()]
        for citation in citations:
            self._render(
                Node(
                    type=NodeType.FOOTNOTE,
                    footnote_number=citation.number,
                    content=citation.description,
                    source_file=citation.file,
                    source_pages=list(citation.pages),
                ),
                lines,
            )
        return apply_citation_post_processing("\n".join(lines))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    @staticmethod
    def _ensure_blank_line(lines: List[str]) -> None:
        if lines and lines[-1] != "":
            lines.append("")

    def _page_info(self, pages: Sequence[int]) -> str:
        if not pages:
            return ""
        key = "page_label" if len(pages) == 1 else "pages_label"
        return f"{get_label(self.language, key)} {format_page_numbers(list(pages))}"

    def _render(self, node: Node, lines: List[str]) -> None:
        kind = node.type
        if kind == NodeType.DOCUMENT:
            for child in node.children:
                self._render(child, lines)

        elif kind == NodeType.SECTION:
            if node.title:
                self._ensure_blank_line(lines)
                lines.append(f"{'#' * node.level} {latex_math_delimiters(node.title)}")
                lines.append("")
            for child in node.children:
                self._render(child, lines)

        elif kind == NodeType.PARAGRAPH:
            self._ensure_blank_line(lines)
            lines.append(latex_math_delimiters(node.content))

        elif kind in (NodeType.TEXT, NodeType.INLINE_MATH):
            if kind == NodeType.TEXT:
                text = latex_math_delimiters(node.content)
            else:
                text = f"\\({node.content}\\)"
            if lines and lines[-1] != "":
                lines[-1] = lines[-1] + text
            else:
                if kind == NodeType.TEXT:
                    self._ensure_blank_line(lines)
                lines.append(text)

        elif kind == NodeType.HEADING:
            self._ensure_blank_line(lines)
            lines.append(f"{'#' * node.level} {latex_math_delimiters(node.content)}")
            lines.append("")

        elif kind == NodeType.LIST_ITEM:
            self._render_list_item(node, lines)

        elif kind == NodeType.FOOTNOTE:
            self._ensure_blank_line(lines)
            text = latex_math_delimiters(node.content)
            if node.source_file and node.source_file not in text:
                page_info = self._page_info(node.source_pages)
                if page_info:
                    text = f"{text} (`{node.source_file}`, {page_info})"
                else:
                    text = f"{text} (`{node.source_file}`)"
            lines.append(f"[^{node.footnote_number}]: {text}")

        elif kind == NodeType.TABLE:
            self._ensure_blank_line(lines)
            self._render_table(node, lines)

        elif kind == NodeType.DISPLAY_EQUATION:
            self._ensure_blank_line(lines)
            if node.is_multiline:
                lines.extend(["\\[", node.content, "\\]"])
            else:
                lines.append(f"\\[{node.content}\\]")

        elif kind == NodeType.CODE_BLOCK:
            self._ensure_blank_line(lines)
            lines.extend(["```", node.content, "```"])

        elif kind == NodeType.HORIZONTAL_RULE:
            self._ensure_blank_line(lines)
            lines.append("---")

        elif kind == NodeType.IMAGE and self.include_images:
            self._render_image(node, lines)

    def _render_list_item(self, node: Node, lines: List[str]) -> None:
        indent = " " * (node.depth * self.indent_unit)
        bullet = f"{node.index}. " if node.list_type == ListType.ORDERED else "- "
        if node.depth == 0 and lines:
            previous = lines[-1].strip()
            if not previous.startswith("-") and not _ORDERED_BULLET.match(previous):
                self._ensure_blank_line(lines)
        lines.append(f"{indent}{bullet}{latex_math_delimiters(node.content)}")
        for child in node.children:
            self._render(child, lines)

    @staticmethod
    def _render_table(node: Node, lines: List[str]) -> None:
        for row in node.rows:
            cells = [latex_math_delimiters(cell) for cell in row.cells]
            lines.append("| " + " | ".join(cells) + " |")
            if row.is_header:
                lines.append("| " + " | ".join("---" for _ in row.cells) + " |")

    def _render_image(self, node: Node, lines: List[str]) -> None:
        self._ensure_blank_line(lines)
        caption = ""
        if node.source_file:
            page_info = self._page_info(node.source_pages)
            caption = f"<code>{node.source_file}</code>"
            if page_info:
                caption = f"{caption}, {page_info}"
        elif node.title:
            caption = node.title

        lines.append("<figure>")
        lines.append(f'  <img src="{node.content}" alt="" />')
        if caption:
            lines.append(f"  <figcaption>{caption.strip()}</figcaption>")
        lines.append("</figure>")


def reconstruct_markdown(node: Node, *, language: str = DEFAULT_LANGUAGE, include_images: bool = True) -> str:
    return MarkdownReconstructor(language=language, include_images=include_images).reconstruct(node)


__all__ = ["MarkdownReconstructor", "latex_math_delimiters", "reconstruct_markdown"]
