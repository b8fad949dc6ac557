"""Convert Markdown text into the node tree used throughout the pipeline."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from .citations import parse_page_string
from .nodes import ListType, Node, NodeType, TableRow


LOGGER = logging.getLogger(__name__)


DEFAULT_INDENT_UNIT = 4

_BACKTICK_INLINE_MATH = re.compile(r"`\\\((.*?)\\\)`", re.S)
_BACKTICK_DISPLAY_MATH = re.compile(r"`\\\[(.*?)\\\]`", re.S)
_LATEX_INLINE_MATH = re.compile(r"\\\(.*?\\\)", re.S)
_LATEX_DISPLAY_MATH = re.compile(r"\\\[.*?\\\]", re.S)
_STANDALONE_INLINE_MATH = re.compile(r"^(\s*)\$([^$]+)\$([.,]?)(\s*)$", re.M)

_LIST_MARKER = re.compile(r"^(\s*)([*+-]|(?:\*{0,2}|_{0,2})\d+\.)\s+")
_HEADING = re.compile(r"^(#{1,6})\s+(.+)$")
_UNORDERED_ITEM = re.compile(r"^(\s*)[*+-]\s+(.+)$")
_ORDERED_ITEM = re.compile(r"^(\s*)(\*{0,2}|_{0,2})(\d+)\.(\*{0,2}|_{0,2})\s+(.*)$")
_DISPLAY_EQUATION_WITH_FOOTNOTE = re.compile(r"^\$\$([^$]+)\$\$\s*(\[\^\d+\][.,]?)(.*)$")
_INLINE_EQUATION_WITH_FOOTNOTE = re.compile(r"^\$([^$]+)\$\s*(\[\^\d+\][.,]?)(.*)$")
_DISPLAY_EQUATION_LINE = re.compile(r"^\$\$([^$]+)\$\$$")
_SINGLE_LINE_EQUATION = re.compile(r"^\$([^$]+)\$$")
_TITLE_NUMBERING = re.compile(r"^(?:\d+|[IVXLCDM]+)\.\s*")
_TABLE_ALIGNMENT = re.compile(r"^[:\-| ]+$")
_FOOTNOTE = re.compile(r"^\[\^(\d+)\]:\s+(.+)$")
_FOOTNOTE_METADATA = re.compile(
    r"^(.*?)\s*\(\s*`(.*?)`\s*(?:,\s*)?([^\W\d_]{1,5}\.\s*([\d–\-, ]+))?\s*\)$"
)
_ESCAPED_DISPLAY_EQUATION = re.compile(r"\\\$\\\$([^\$\\]+)\\\$\\\$")


def clean_title(title: str) -> str:
    """Strip leading arabic or roman numbering such as ``"2. "`` or ``"IV. "``."""

    return _TITLE_NUMBERING.sub("", title, count=1)


def unwrap_backtick_math(markdown: str) -> str:
    markdown = _BACKTICK_INLINE_MATH.sub(lambda match: "\\(" + match.group(1) + "\\)", markdown)
    return _BACKTICK_DISPLAY_MATH.sub(lambda match: "\\[" + match.group(1) + "\\]", markdown)


def escape_dollar_signs(text: str) -> str:
    """Prefix every unescaped ``$`` with a backslash."""

    pieces: List[str] = []
    backslashes = 0
    for character in text:
        if character == "$" and backslashes % 2 == 0:
            pieces.append("\\")
        pieces.append(character)
        backslashes = backslashes + 1 if character == "\\" else 0
    return "".join(pieces)


def convert_latex_math_delimiters(markdown: str) -> str:
    """Rewrite ``\\(..\\)`` as ``$..$`` and ``\\[..\\]`` as ``$$..$$``."""

    def _inline(match: "re.Match[str]") -> str:
        return "$" + match.group(0)[2:-2].strip() + "$"

    def _display(match: "re.Match[str]") -> str:
        content = match.group(0)[2:-2]
        if "\n" in content:
            return "$$" + content + "$$"
        return "$$" + content.strip() + "$$"

    markdown = _LATEX_INLINE_MATH.sub(_inline, markdown)
    markdown = _LATEX_DISPLAY_MATH.sub(_display, markdown)
    return _STANDALONE_INLINE_MATH.sub(
        lambda match: f"{match.group(1)}$${match.group(2)}{match.group(3)}$${match.group(4)}",
        markdown,
    )


def detect_indentation_pattern(lines: List[str]) -> int:
    """Guess the list indentation unit (2 or 4 spaces, or a consistent step)."""

    indent_levels: Dict[int, int] = {}
    for line in lines:
        match = _LIST_MARKER.match(line)
        if match is None:
            continue
        indent = len(match.group(1))
        if indent > 0:
            indent_levels[indent] = indent_levels.get(indent, 0) + 1

    if not indent_levels:
        return DEFAULT_INDENT_UNIT

    levels = sorted(indent_levels)
    if len(levels) >= 2:
        step = levels[1] - levels[0]
        consistent = all(levels[i] - levels[i - 1] == step for i in range(1, len(levels)))
        if consistent and step > 0:
            return step

    total = sum(indent_levels.values())
    two_space_score = 0.0
    four_space_score = 0.0
    for level, count in indent_levels.items():
        weight = count / total
        if level % 4 == 0:
            four_space_score += weight
        elif level % 2 == 0:
            two_space_score += weight

    if four_space_score > 0.6 or four_space_score > two_space_score:
        return 4
    return 2


def split_by_pipes_outside_math(line: str) -> List[str]:
    """Split a table row on ``|`` while ignoring pipes inside ``$..$`` or ``$$..$$``."""

    cells: List[str] = []
    current: List[str] = []
    in_inline_math = False
    in_display_math = False

    index = 0
    backslashes = 0
    while index < len(line):
        character = line[index]
        escaped = backslashes % 2 == 1
        backslashes = backslashes + 1 if character == "\\" else 0
        if character == "$" and escaped:
            current.append(character)
        elif character == "$" and index + 1 < len(line) and line[index + 1] == "$":
            in_display_math = not in_display_math
            current.append("$$")
            index += 2
            continue
        elif character == "$" and not in_display_math:
            in_inline_math = not in_inline_math
            current.append(character)
        elif character == "|" and not in_inline_math and not in_display_math:
            cell = "".join(current).strip()
            if cell:
                cells.append(cell)
            current = []
        else:
            current.append(character)
        index += 1

    cell = "".join(current).strip()
    if cell:
        cells.append(cell)
    return cells


class MarkdownParser:
    """Parse Markdown into a ``document`` node with nested sections and lists."""

    def __init__(self, indent_unit: Optional[int] = None) -> None:
        self._fixed_indent_unit = indent_unit
        self.indent_unit = indent_unit or DEFAULT_INDENT_UNIT

    def parse(self, markdown: str) -> Node:
        markdown = unwrap_backtick_math(markdown)
        markdown = escape_dollar_signs(markdown)
        markdown = convert_latex_math_delimiters(markdown)

        lines = markdown.split("\n")
        self.indent_unit = self._fixed_indent_unit or detect_indentation_pattern(lines)

        elements: List[Node] = []
        index = 0
        while index < len(lines):
            for block_parser in (
                self._parse_code_block,
                self._parse_display_equation,
                self._parse_table,
                self._parse_footnote,
            ):
                block, last_index = block_parser(lines, index)
                if block is not None:
                    elements.append(block)
                    index = last_index + 1
                    break
            else:
                element = self._parse_element(lines[index])
                if element is not None:
                    if element.type == NodeType.PARAGRAPH:
                        elements.extend(self._split_paragraph_equations(element))
                    else:
                        elements.append(element)
                index += 1

        nested = self._build_list_hierarchy(elements)
        top_level = [element for position, element in enumerate(elements) if position not in nested]
        return Node(type=NodeType.DOCUMENT, children=self._build_section_hierarchy(top_level))

    # ------------------------------------------------------------------
    # Block elements
    # ------------------------------------------------------------------
    def _parse_code_block(self, lines: List[str], start: int) -> Tuple[Optional[Node], int]:
        if not lines[start].strip().startswith("```"):
            return None, start
        body: List[str] = []
        for position in range(start + 1, len(lines)):
            if lines[position].strip() == "```":
                return Node(type=NodeType.CODE_BLOCK, content="\n".join(body)), position
            body.append(lines[position])
        return None, start

    def _parse_display_equation(self, lines: List[str], start: int) -> Tuple[Optional[Node], int]:
        if lines[start].strip() != "$$":
            return None, start
        body: List[str] = []
        for position in range(start + 1, len(lines)):
            if lines[position].strip() == "$$":
                node = Node(
                    type=NodeType.DISPLAY_EQUATION,
                    content="\n".join(body),
                    is_multiline=True,
                )
                return node, position
            body.append(lines[position])
        return None, start

    def _parse_table(self, lines: List[str], start: int) -> Tuple[Optional[Node], int]:
        if start + 1 >= len(lines):
            return None, start
        header = lines[start].strip()
        alignment = lines[start + 1].strip()
        if "|" not in header or "|" not in alignment:
            return None, start
        if not _TABLE_ALIGNMENT.match(alignment):
            return None, start

        rows = [TableRow(cells=split_by_pipes_outside_math(header), is_header=True)]
        position = start + 2
        while position < len(lines):
            line = lines[position].strip()
            if not line or "|" not in line:
                break
            rows.append(TableRow(cells=split_by_pipes_outside_math(line)))
            position += 1
        return Node(type=NodeType.TABLE, rows=rows), position - 1

    def _parse_footnote(self, lines: List[str], start: int) -> Tuple[Optional[Node], int]:
        match = _FOOTNOTE.match(lines[start].strip())
        if match is None:
            return None, start
        number = int(match.group(1))
        full_content = match.group(2).strip()

        metadata = _FOOTNOTE_METADATA.match(full_content)
        if metadata is None:
            return Node(type=NodeType.FOOTNOTE, content=full_content, footnote_number=number), start

        LOGGER.debug("Footnote %s carries source metadata: %s", number, metadata.group(2))
        return (
            Node(
                type=NodeType.FOOTNOTE,
                footnote_number=number,
                content=metadata.group(1).strip(),
                source_file=metadata.group(2).strip(),
                source_pages=parse_page_string(metadata.group(4) or ""),
            ),
            start,
        )

    # ------------------------------------------------------------------
    # Line elements
    # ------------------------------------------------------------------
    def _parse_element(self, line: str) -> Optional[Node]:
        trimmed = line.strip()
        if not trimmed:
            return None
        if trimmed == "---":
            return Node(type=NodeType.HORIZONTAL_RULE)

        if "[^" in trimmed:
            for pattern in (_DISPLAY_EQUATION_WITH_FOOTNOTE, _INLINE_EQUATION_WITH_FOOTNOTE):
                match = pattern.match(trimmed)
                if match is not None:
                    return Node(type=NodeType.DISPLAY_EQUATION, content=match.group(1).strip())

        match = _HEADING.match(trimmed)
        if match is not None:
            return Node(
                type=NodeType.HEADING,
                content=clean_title(match.group(2)),
                level=len(match.group(1)),
            )

        match = _UNORDERED_ITEM.match(line)
        if match is not None:
            return Node(
                type=NodeType.LIST_ITEM,
                content=match.group(2),
                depth=len(match.group(1)) // self.indent_unit,
                list_type=ListType.UNORDERED,
            )

        match = _ORDERED_ITEM.match(line)
        if match is not None:
            return Node(
                type=NodeType.LIST_ITEM,
                content=match.group(2) + match.group(4) + match.group(5),
                depth=len(match.group(1)) // self.indent_unit,
                list_type=ListType.ORDERED,
                index=int(match.group(3)),
            )

        match = _DISPLAY_EQUATION_LINE.match(trimmed) or _SINGLE_LINE_EQUATION.match(trimmed)
        if match is not None:
            return Node(type=NodeType.DISPLAY_EQUATION, content=match.group(1).strip())

        return Node(type=NodeType.PARAGRAPH, content=trimmed)

    def _split_paragraph_equations(self, paragraph: Node) -> List[Node]:
        content = paragraph.content
        parts: List[Node] = []
        last_index = 0
        for match in _ESCAPED_DISPLAY_EQUATION.finditer(content):
            before = content[last_index:match.start()].strip()
            if before:
                parts.append(Node(type=NodeType.PARAGRAPH, content=before))
            parts.append(Node(type=NodeType.DISPLAY_EQUATION, content=match.group(1).strip()))
            last_index = match.end()
        after = content[last_index:].strip()
        if after:
            parts.append(Node(type=NodeType.PARAGRAPH, content=after))
        return parts or [paragraph]

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------
    @staticmethod
    def _build_list_hierarchy(elements: List[Node]) -> Set[int]:
        """Attach list items to their parent item and return the positions that moved."""

        stack: List[Node] = []
        nested: Set[int] = set()
        for position, element in enumerate(elements):
            if element.type != NodeType.LIST_ITEM:
                continue
            while stack and stack[-1].depth >= element.depth:
                stack.pop()
            if stack:
                stack[-1].children.append(element)
                nested.add(position)
            stack.append(element)
        return nested

    @staticmethod
    def _build_section_hierarchy(elements: List[Node]) -> List[Node]:
        result: List[Node] = []
        stack: List[Node] = []
        for element in elements:
            if element.type == NodeType.HEADING:
                section = Node(type=NodeType.SECTION, title=element.content, level=element.level)
                while stack and stack[-1].level >= element.level:
                    stack.pop()
                if stack:
                    stack[-1].children.append(section)
                else:
                    result.append(section)
                stack.append(section)
            elif stack:
                stack[-1].children.append(element)
            else:
                result.append(element)
        return result


def parse_markdown(markdown: str, *, indent_unit: Optional[int] = None) -> Node:
    return MarkdownParser(indent_unit=indent_unit).parse(markdown)


__all__ = [
    "DEFAULT_INDENT_UNIT",
    "MarkdownParser",
    "clean_title",
    "convert_latex_math_delimiters",
    "detect_indentation_pattern",
    "escape_dollar_signs",
    "parse_markdown",
    "split_by_pipes_outside_math",
    "unwrap_backtick_math",
]
