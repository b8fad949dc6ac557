from __future__ import annotations

from lecture_studio.markdown.enrichment import enrich_with_cited_images, resolver_from_mapping
from lecture_studio.markdown.nodes import NodeType
from lecture_studio.markdown.parser import MarkdownParser
from lecture_studio.markdown.reconstructor import MarkdownReconstructor


GUIDE = """# Guide

## Section A

Claim one[^1] and two[^2].

### Sub

Again[^1] and new[^3].

## Section B

Repeat[^2].

[^1]: Diagram (`a.pdf`, p. 1)
[^2]: Table (`a.pdf`, pp. 2-3)
[^3]: Photo (`b.pdf`, p. 5)
"""

IMAGES = {"a.pdf:1": "/img/a1.png", "a.pdf:2": "/img/a2.png", "b.pdf:5": "/img/b5.png"}


def _images(section):
    return [child.content for child in section.children if child.type == NodeType.IMAGE]


def test_each_cited_page_is_inserted_once_in_document_order():
    root = MarkdownParser().parse(GUIDE)

    added = enrich_with_cited_images(root, resolver_from_mapping(IMAGES))

    guide = root.children[0]
    section_a, section_b = guide.children
    sub = next(child for child in section_a.children if child.type == NodeType.SECTION)
    assert added == 3
    assert _images(section_a) == ["/img/a1.png", "/img/a2.png"]
    assert _images(sub) == ["/img/b5.png"]
    assert _images(section_b) == []


def test_enriched_tree_renders_figures():
    root = MarkdownParser().parse(GUIDE)
    enrich_with_cited_images(root, resolver_from_mapping(IMAGES))

    rendered = MarkdownReconstructor().reconstruct(root)

    assert rendered.count("<figure>") == 3
    assert "<figcaption><code>a.pdf</code>, p. 1</figcaption>" in rendered


def test_enrichment_without_tree_or_resolver_is_a_no_op():
    root = MarkdownParser().parse(GUIDE)

    assert enrich_with_cited_images(None, resolver_from_mapping(IMAGES)) == 0
    assert enrich_with_cited_images(root, None) == 0
    assert enrich_with_cited_images(root, resolver_from_mapping({})) == 0
