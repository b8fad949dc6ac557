from __future__ import annotations

from lecture_studio.markdown.nodes import ListType, NodeType
from lecture_studio.markdown.parser import (
    MarkdownParser,
    clean_title,
    convert_latex_math_delimiters,
    detect_indentation_pattern,
    escape_dollar_signs,
    split_by_pipes_outside_math,
)


def test_headings_become_nested_sections_with_clean_titles():
    root = MarkdownParser().parse(
        "# Title\nIntro text.\n## 1. First\nPara one.\n### Detail\nDeep.\n## II. Second\nPara two.\n"
    )

    assert [child.type for child in root.children] == [NodeType.SECTION]
    title = root.children[0]
    assert (title.title, title.level) == ("Title", 1)
    assert [child.type for child in title.children] == [
        NodeType.PARAGRAPH,
        NodeType.SECTION,
        NodeType.SECTION,
    ]
    first, second = title.children[1], title.children[2]
    assert first.title == "First"
    assert second.title == "Second"
    assert first.children[1].title == "Detail"
    assert first.children[1].children[0].content == "Deep."


def test_clean_title_strips_only_leading_numbering():
    assert clean_title("3. Entropy") == "Entropy"
    assert clean_title("IV. Heat engines") == "Heat engines"
    assert clean_title("Entropy in 3. dimensions") == "Entropy in 3. dimensions"


def test_lists_nest_by_detected_indentation():
    root = MarkdownParser().parse("- Top\n  - Child\n    - Grandchild\n- Second\n1. **First** step\n")

    top, second, ordered = root.children
    assert top.content == "Top"
    assert top.children[0].content == "Child"
    assert top.children[0].children[0].content == "Grandchild"
    assert second.content == "Second"
    assert second.children == []
    assert ordered.list_type == ListType.ORDERED
    assert ordered.index == 1
    assert ordered.content == "**First** step"


def test_footnotes_carry_source_metadata():
    root = MarkdownParser().parse(
        "Claim[^1] and note[^2].\n\n[^1]: Kinetic energy definition (`physics.pdf`, pp. 3-5)\n[^2]: Plain note\n"
    )

    footnotes = [node for node in root.walk() if node.type == NodeType.FOOTNOTE]
    assert len(footnotes) == 2
    sourced, plain = footnotes
    assert sourced.footnote_number == 1
    assert sourced.content == "Kinetic energy definition"
    assert sourced.source_file == "physics.pdf"
    assert sourced.source_pages == [3, 4, 5]
    assert plain.content == "Plain note"
    assert plain.source_file == ""


def test_tables_keep_pipes_inside_math():
    root = MarkdownParser().parse("| Symbol | Meaning |\n| --- | --- |\n| \\(|x|\\) | absolute value |\n")

    table = root.children[0]
    assert table.type == NodeType.TABLE
    assert table.rows[0].is_header is True
    assert table.rows[0].cells == ["Symbol", "Meaning"]
    assert table.rows[1].cells == ["$|x|$", "absolute value"]


def test_code_blocks_are_kept_verbatim():
    root = MarkdownParser().parse("```python\n# not a heading\nx = 1\n```\n")

    assert root.children[0].type == NodeType.CODE_BLOCK
    assert root.children[0].content == "# not a heading\nx = 1"


def test_split_by_pipes_outside_math():
    assert split_by_pipes_outside_math("| a | $b|c$ | $$d|e$$ |") == ["a", "$b|c$", "$$d|e$$"]


def test_dollar_escaping_is_idempotent_for_escaped_signs():
    assert escape_dollar_signs("costs $5") == "costs \\$5"
    assert escape_dollar_signs("costs \\$5") == "costs \\$5"


def test_latex_delimiters_become_dollar_math():
    assert convert_latex_math_delimiters("Energy \\(E=mc^2\\) holds") == "Energy $E=mc^2$ holds"
    assert convert_latex_math_delimiters("\\[ a+b \\]") == "$$a+b$$"
    assert convert_latex_math_delimiters("\\(x\\)") == "$$x$$"


def test_detect_indentation_pattern():
    assert detect_indentation_pattern(["- a", "    - b", "        - c"]) == 4
    assert detect_indentation_pattern(["- a", "  - b"]) == 2
    assert detect_indentation_pattern(["plain text"]) == 4


def test_escaped_dollars_do_not_open_math_in_table_rows():
    assert split_by_pipes_outside_math("| \\$5 | y |") == ["\\$5", "y"]
    assert split_by_pipes_outside_math("| \\$5 | $a|b$ |") == ["\\$5", "$a|b$"]


def test_rules_and_single_line_display_equations_are_nodes():
    root = MarkdownParser().parse("Before\n\n---\n\n\\[a+b\\]\n")

    rule, equation = root.children[1], root.children[2]
    assert rule.type == NodeType.HORIZONTAL_RULE
    assert equation.type == NodeType.DISPLAY_EQUATION
    assert equation.content == "a+b"
    assert equation.is_multiline is False


def test_footnotes_accept_localized_page_labels():
    root = MarkdownParser().parse("[^1]: Quelle (`notes.pdf`, S. 4–6)\n[^2]: Fuente (`b.pdf`, pág. 2)\n")

    german, spanish = root.children
    assert (german.source_file, german.source_pages) == ("notes.pdf", [4, 5, 6])
    assert (spanish.content, spanish.source_pages) == ("Fuente", [2])
