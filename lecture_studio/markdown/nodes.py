"""Node types shared by the Markdown parser and reconstructor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional


class NodeType:
    DOCUMENT = "document"
    SECTION = "section"
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    LIST_ITEM = "list_item"
    FOOTNOTE = "footnote"
    CODE_BLOCK = "code_block"
    HORIZONTAL_RULE = "horizontal_rule"
    TABLE = "table"
    DISPLAY_EQUATION = "display_equation"
    IMAGE = "image"
    TEXT = "text"
    INLINE_MATH = "inline_math"


class ListType:
    ORDERED = "ordered"
    UNORDERED = "unordered"


@dataclass
class TableRow:
    cells: List[str] = field(default_factory=list)
    is_header: bool = False


@dataclass
class Node:
    type: str
    content: str = ""
    title: str = ""
    level: int = 0
    list_type: str = ""
    depth: int = 0
    index: int = 0
    footnote_number: int = 0
    is_multiline: bool = False
    children: List["Node"] = field(default_factory=list)
    rows: List[TableRow] = field(default_factory=list)
    alignments: List[str] = field(default_factory=list)
    source_file: str = ""
    source_pages: List[int] = field(default_factory=list)

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all descendants depth first."""

        yield self
        for child in self.children:
            yield from child.walk()

    def find_first(self, *types: str) -> Optional["Node"]:
        for node in self.walk():
            if node.type in types:
                return node
        return None


@dataclass
class ParsedCitation:
    number: int
    description: str
    file: str
    pages: List[int] = field(default_factory=list)


def document(*children: Node) -> Node:
    return Node(type=NodeType.DOCUMENT, children=list(children))


__all__ = ["ListType", "Node", "NodeType", "ParsedCitation", "TableRow", "document"]
