from __future__ import annotations

from datetime import datetime

from lecture_studio.markdown.converter import (
    AudioFileMetadata,
    ConversionOptions,
    ReferenceFileMetadata,
    generate_metadata_header,
    normalize_math,
)
from lecture_studio.markdown.i18n import format_duration, format_localized_date


def test_header_lists_course_date_abstract_and_sources():
    options = ConversionOptions(
        language="en",
        course_title="Physics",
        creation_date=datetime(2024, 3, 5),
        description="Summary.",
        audio_files=[AudioFileMetadata("lec.mp3", 3725)],
        reference_files=[
            ReferenceFileMetadata("slides.pdf", page_count=12),
            ReferenceFileMetadata("one.pdf", page_count=1),
        ],
    )

    assert generate_metadata_header(options) == (
        "**Course**: Physics\n\n"
        "**Date**: March 5, 2024\n\n"
        "### Abstract\n\nSummary.\n\n"
        "### Audio Files\n\n- `lec.mp3` (1h 2m)\n\n"
        "### Reference Files\n\n- `slides.pdf` (pp. 1-12)\n- `one.pdf` (p. 1-1)\n\n"
    )


def test_header_is_localized():
    header = generate_metadata_header(
        ConversionOptions(
            language="it-IT",
            course_title="Fisica",
            creation_date=datetime(2024, 3, 5),
            description="Sommario breve.",
        )
    )

    assert "**Corso**: Fisica" in header
    assert "**Data**: 5 Marzo 2024" in header
    assert "### Sommario" in header


def test_empty_options_give_empty_header():
    assert generate_metadata_header(ConversionOptions()) == ""


def test_durations_and_dates():
    assert format_duration(0, "en") == ""
    assert format_duration(9, "en") == "9s"
    assert format_duration(250, "en") == "4m 10s"
    assert format_localized_date(datetime(2023, 12, 1), "de") == "1. Dezember 2023"


def test_normalize_math_escapes_currency_only():
    assert normalize_math("Price $5 and $x$") == "Price \\$5 and $x$"
    assert normalize_math("\\(a\\) and (*)") == "$a$ and (\\*)"
    assert normalize_math("\\(v\\) costs \\$5") == "$v$ costs \\$5"
