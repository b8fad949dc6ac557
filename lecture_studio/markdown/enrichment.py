"""Attach images of cited reference pages to the sections that cite them."""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Set, Tuple

from .nodes import Node, NodeType


LOGGER = logging.getLogger(__name__)


ImageResolver = Callable[[str, int], Optional[str]]
"""``resolver(filename, page_number)`` returns an image path or an empty value."""

_REFERENCE = re.compile(r"\[\^(\d+)\]")


def _collect_footnotes(root: Node) -> Dict[int, Tuple[str, List[int]]]:
    return {
        node.footnote_number: (node.source_file, list(node.source_pages))
        for node in root.walk()
        if node.type == NodeType.FOOTNOTE
    }


def _cited_pages(section: Node, footnotes: Dict[int, Tuple[str, List[int]]]) -> Dict[str, Set[int]]:
    """Return ``{file: pages}`` cited directly in *section*, excluding nested sections."""

    cited: Dict[str, Set[int]] = {}

    def _visit(node: Node) -> None:
        if node.type in (NodeType.PARAGRAPH, NodeType.LIST_ITEM):
            for match in _REFERENCE.finditer(node.content):
                source = footnotes.get(int(match.group(1)))
                if source is None or not source[0]:
                    continue
                cited.setdefault(source[0], set()).update(source[1])
        for child in node.children:
            if child.type != NodeType.SECTION:
                _visit(child)

    _visit(section)
    return cited


def enrich_with_cited_images(root: Optional[Node], resolver: Optional[ImageResolver]) -> int:
    """Append one ``image`` node per newly cited page to each level 2/3 section.

    A page is inserted only the first time it is cited in document order.
    Returns the number of images added.
    """

    if root is None or resolver is None:
        return 0

    footnotes = _collect_footnotes(root)
    inserted: Set[str] = set()
    added = 0

    def _process(node: Node) -> None:
        nonlocal added
        if node.type == NodeType.SECTION and node.level in (2, 3):
            images: List[Node] = []
            cited = _cited_pages(node, footnotes)
            for filename in sorted(cited):
                for page in sorted(cited[filename]):
                    key = f"{filename}:{page}"
                    if key in inserted:
                        continue
                    image_path = resolver(filename, page)
                    if not image_path:
                        continue
                    images.append(
                        Node(
                            type=NodeType.IMAGE,
                            content=str(image_path),
                            source_file=filename,
                            source_pages=[page],
                        )
                    )
                    inserted.add(key)
            node.children.extend(images)
            added += len(images)
            for child in node.children:
                if child.type == NodeType.SECTION:
                    _process(child)
        else:
            for child in node.children:
                _process(child)

    _process(root)
    LOGGER.debug("Attached %d cited page images", added)
    return added


def resolver_from_mapping(page_images: Dict[str, str]) -> ImageResolver:
    """Build a resolver over a prefetched ``{"<file>:<page>": path}`` mapping."""

    def _resolve(filename: str, page_number: int) -> Optional[str]:
        return page_images.get(f"{filename}:{page_number}")

    return _resolve


__all__ = ["ImageResolver", "enrich_with_cited_images", "resolver_from_mapping"]
