"""Page range selection for reference materials."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from ..markdown.nodes import Node, NodeType


LOGGER = logging.getLogger(__name__)


MERGE_GAP = 6

_PAGE_TITLE = re.compile(r"(?i)page\s*(\d+)")


@dataclass(frozen=True)
class PageRange:
    start: int
    end: int

    def contains(self, page: int) -> bool:
        return self.start <= page <= self.end


def ranges_from_response(data: Any) -> List[PageRange]:
    """Read ``{"page_ranges": [{"start": .., "end": ..}]}``, skipping malformed entries."""

    if not isinstance(data, dict):
        return []
    ranges: List[PageRange] = []
    for entry in data.get("page_ranges") or []:
        if not isinstance(entry, dict):
            continue
        try:
            start = int(entry.get("start"))
            end = int(entry.get("end", start))
        except (TypeError, ValueError):
            continue
        if end < start:
            start, end = end, start
        ranges.append(PageRange(start, end))
    return ranges


def merge_ranges(ranges: Iterable[PageRange], *, gap: int = MERGE_GAP) -> List[PageRange]:
    """Union *ranges*, also joining ranges separated by at most *gap* pages."""

    ordered = sorted(ranges, key=lambda item: (item.start, item.end))
    if not ordered:
        return []
    merged: List[PageRange] = [ordered[0]]
    for candidate in ordered[1:]:
        current = merged[-1]
        if candidate.start - current.end <= gap:
            merged[-1] = PageRange(current.start, max(current.end, candidate.end))
        else:
            merged.append(candidate)
    return merged


def _page_number(title: str) -> Optional[int]:
    match = _PAGE_TITLE.search(title or "")
    return int(match.group(1)) if match else None


def filter_materials_by_ranges(root: Node, ranges: List[PageRange]) -> Node:
    """Return a document keeping only pages that fall inside *ranges*.

    Level-1 headings name the reference file; the first kept page of a file
    emits that heading once. Kept pages become level-2 sections.
    """

    result = Node(type=NodeType.DOCUMENT)
    current_file: Optional[str] = None
    emitted_file: Optional[str] = None

    def _keep(title: str, children: List[Node]) -> None:
        nonlocal emitted_file
        if current_file is not None and emitted_file != current_file:
            result.children.append(Node(type=NodeType.SECTION, title=current_file, level=1))
            emitted_file = current_file
        target = result.children[-1] if result.children and result.children[-1].level == 1 else result
        target.children.append(
            Node(type=NodeType.SECTION, title=title, level=2, children=list(children))
        )

    def _visit(node: Node) -> None:
        nonlocal current_file
        if node.type in (NodeType.SECTION, NodeType.HEADING) and node.level == 1:
            current_file = node.title or node.content
            for child in node.children:
                _visit(child)
            return
        if node.type in (NodeType.SECTION, NodeType.HEADING) and node.level >= 2:
            title = node.title or node.content
            page = _page_number(title)
            if page is not None and any(item.contains(page) for item in ranges):
                _keep(title, node.children)
            return
        for child in node.children:
            _visit(child)

    _visit(root)
    return result


__all__ = [
    "MERGE_GAP",
    "PageRange",
    "filter_materials_by_ranges",
    "merge_ranges",
    "ranges_from_response",
]
