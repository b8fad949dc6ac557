from __future__ import annotations

from lecture_studio.markdown.citations import format_page_numbers, parse_citations, parse_page_string


def test_markers_become_numbered_references():
    text, citations = parse_citations(
        "Heat flows{{{Heat diagram-thermo.pdf-p3}}}. Also{{{Table of values-thermo.pdf-p4-6}}}"
    )

    assert text == "Heat flows.[^1] Also[^2]"
    assert [(c.number, c.description, c.file, c.pages) for c in citations] == [
        (1, "Heat diagram", "thermo.pdf", [3]),
        (2, "Table of values", "thermo.pdf", [4, 5, 6]),
    ]


def test_descriptions_may_contain_dashes():
    _, citations = parse_citations("See{{{Carnot-cycle sketch-engines.pdf-p2}}}")

    assert citations[0].description == "Carnot-cycle sketch"
    assert citations[0].file == "engines.pdf"
    assert citations[0].pages == [2]


def test_markers_without_extension_or_dash():
    _, citations = parse_citations("One{{{Some note-slides}}} two{{{orphan}}}")

    assert (citations[0].description, citations[0].file, citations[0].pages) == ("Some note", "slides", [])
    assert (citations[1].description, citations[1].file) == ("orphan", "unknown")


def test_text_without_markers_is_unchanged():
    assert parse_citations("Nothing to cite here.") == ("Nothing to cite here.", [])


def test_parse_page_string_expands_ranges_and_skips_garbage():
    assert parse_page_string("p1, 3-5, x, 0, 7–8") == [1, 3, 4, 5, 7, 8]
    assert parse_page_string("") == []
    assert parse_page_string("9-2") == []


def test_format_page_numbers_collapses_runs():
    assert format_page_numbers([5, 1, 2, 3, 3]) == "1–3, 5"
    assert format_page_numbers([]) == ""
