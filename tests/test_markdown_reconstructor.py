from __future__ import annotations

import pytest

from lecture_studio.markdown.citations import apply_citation_post_processing
from lecture_studio.markdown.nodes import ListType, Node, NodeType, ParsedCitation, TableRow
from lecture_studio.markdown.parser import MarkdownParser
from lecture_studio.markdown.reconstructor import MarkdownReconstructor


CANONICAL = (
    "# Title\n"
    "\n"
    "Intro.\n"
    "\n"
    "## First\n"
    "\n"
    "- Item\n"
    "    - Child\n"
    "\n"
    "[^1]: Note (`a.pdf`, p. 2)"
)


def test_canonical_markdown_survives_parse_and_reconstruct():
    root = MarkdownParser().parse(CANONICAL)

    assert MarkdownReconstructor().reconstruct(root) == CANONICAL + "\n"


def test_reference_punctuation_moves_before_reference():
    assert apply_citation_post_processing("Energy is conserved [^1]. Next") == "Energy is conserved.[^1] Next"
    assert apply_citation_post_processing("A claim [^1], then more") == "A claim,[^1] then more"


def test_colon_spacing_skips_urls():
    assert apply_citation_post_processing("Note:this") == "Note: this"
    assert apply_citation_post_processing("**Term:**value") == "**Term:** value"
    assert apply_citation_post_processing("**Correct Answer:** A") == "**Correct Answer:** A"
    assert apply_citation_post_processing("See https://example.com") == "See https://example.com"


def test_append_citations_renders_localized_page_labels():
    citations = [ParsedCitation(number=1, description="Source desc", file="notes.pdf", pages=[1, 2, 3])]

    english = MarkdownReconstructor().append_citations("Body[^1]", citations)
    german = MarkdownReconstructor(language="de").append_citations(
        "Body[^1]", [ParsedCitation(number=1, description="Quelle", file="notes.pdf", pages=[4])]
    )

    assert english == "Body[^1]\n\n[^1]: Source desc (`notes.pdf`, pp. 1–3)"
    assert german.endswith("[^1]: Quelle (`notes.pdf`, S. 4)")
    assert MarkdownReconstructor().append_citations("Body", []) == "Body"


def test_table_cells_keep_currency_escaped_and_math_delimited():
    table = Node(
        type=NodeType.TABLE,
        rows=[
            TableRow(cells=["Item", "Price"], is_header=True),
            TableRow(cells=["Tea", "\\$5"]),
            TableRow(cells=["Norm", "$|x|$"]),
        ],
    )

    rendered = MarkdownReconstructor().reconstruct(Node(type=NodeType.DOCUMENT, children=[table]))

    assert rendered == "| Item | Price |\n| --- | --- |\n| Tea | \\$5 |\n| Norm | \\(|x|\\) |\n"


def test_table_with_currency_is_stable_across_round_trips():
    source = "| a | b |\n| --- | --- |\n| $5 | y |\n"

    once = MarkdownReconstructor().reconstruct(MarkdownParser().parse(source))
    twice = MarkdownReconstructor().reconstruct(MarkdownParser().parse(once))

    assert once == "| a | b |\n| --- | --- |\n| \\$5 | y |\n"
    assert twice == once


def _section(level: int, title: str, *children: Node) -> Node:
    return Node(type=NodeType.SECTION, level=level, title=title, children=list(children))


def _item(content: str, *children: Node, depth: int = 0, index: int = 0) -> Node:
    list_type = ListType.ORDERED if index else ListType.UNORDERED
    return Node(
        type=NodeType.LIST_ITEM,
        content=content,
        depth=depth,
        index=index,
        list_type=list_type,
        children=list(children),
    )


ROUND_TRIP_TREES = {
    "sections_and_multi_page_footnote_in_german": (
        "de",
        [
            _section(
                1,
                "Wärme",
                Node(type=NodeType.PARAGRAPH, content="Energie fließt.[^1]"),
                Node(
                    type=NodeType.FOOTNOTE,
                    footnote_number=1,
                    content="Quelle",
                    source_file="notes.pdf",
                    source_pages=[4, 5, 6],
                ),
            )
        ],
        "# Wärme\n\nEnergie fließt.[^1]\n\n[^1]: Quelle (`notes.pdf`, S. 4–6)\n",
    ),
    "english_footnotes_with_page_ranges": (
        "en",
        [
            Node(type=NodeType.PARAGRAPH, content="Claim.[^1] Other.[^2]"),
            Node(type=NodeType.FOOTNOTE, footnote_number=1, content="Energy", source_file="a.pdf", source_pages=[3, 4, 5, 9]),
            Node(type=NodeType.FOOTNOTE, footnote_number=2, content="Plain note"),
        ],
        "Claim.[^1] Other.[^2]\n\n[^1]: Energy (`a.pdf`, pp. 3–5, 9)\n\n[^2]: Plain note\n",
    ),
    "table_with_currency_and_math": (
        "en",
        [
            Node(
                type=NodeType.TABLE,
                rows=[
                    TableRow(cells=["Item", "Price"], is_header=True),
                    TableRow(cells=["Tea", "\\$5"]),
                    TableRow(cells=["Norm", "$|x|$"]),
                ],
            )
        ],
        "| Item | Price |\n| --- | --- |\n| Tea | \\$5 |\n| Norm | \\(|x|\\) |\n",
    ),
    "display_equations": (
        "en",
        [
            Node(type=NodeType.PARAGRAPH, content="Energy balance."),
            Node(type=NodeType.DISPLAY_EQUATION, content="E = mc^2\nF = ma", is_multiline=True),
            Node(type=NodeType.DISPLAY_EQUATION, content="a+b"),
            Node(type=NodeType.PARAGRAPH, content="Done."),
        ],
        "Energy balance.\n\n\\[\nE = mc^2\nF = ma\n\\]\n\n\\[a+b\\]\n\nDone.\n",
    ),
    "inline_math_next_to_currency": (
        "en",
        [Node(type=NodeType.PARAGRAPH, content="Speed $v$ costs \\$5 per unit.")],
        "Speed \\(v\\) costs \\$5 per unit.\n",
    ),
    "lists_code_and_rule": (
        "en",
        [
            _section(
                2,
                "Steps",
                _item("First step", _item("Detail", depth=1), index=1),
                _item("Second step", index=2),
                Node(type=NodeType.CODE_BLOCK, content="x = 1"),
                Node(type=NodeType.HORIZONTAL_RULE),
            )
        ],
        "## Steps\n\n1. First step\n    - Detail\n2. Second step\n\n```\nx = 1\n```\n\n---\n",
    ),
}


@pytest.mark.parametrize("name", sorted(ROUND_TRIP_TREES))
def test_reconstructed_trees_survive_another_round_trip(name):
    language, children, expected = ROUND_TRIP_TREES[name]
    reconstructor = MarkdownReconstructor(language=language)

    rendered = reconstructor.reconstruct(Node(type=NodeType.DOCUMENT, children=children))
    again = reconstructor.reconstruct(MarkdownParser().parse(rendered))

    assert rendered == expected
    assert again == rendered



def test_images_render_as_figures_only_when_enabled():
    image = Node(type=NodeType.IMAGE, content="/img/p3.png", source_file="f.pdf", source_pages=[3])
    root = Node(type=NodeType.DOCUMENT, children=[Node(type=NodeType.PARAGRAPH, content="Text."), image])

    with_images = MarkdownReconstructor().reconstruct(root)
    without_images = MarkdownReconstructor(include_images=False).reconstruct(root)

    assert '<img src="/img/p3.png" alt="" />' in with_images
    assert "<figcaption><code>f.pdf</code>, p. 3</figcaption>" in with_images
    assert without_images == "Text.\n"
