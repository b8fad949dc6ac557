"""Utility helpers for consistent file naming."""

from __future__ import annotations

import re

__all__ = [
    "build_page_image_name",
    "sanitize_filename",
]


_UNSAFE_FILENAME_CHARACTERS = re.compile(r"[/\\:*?\"<>|#\x00\n\r\t]")


def sanitize_filename(value: str) -> str:
    """Replace characters that are unsafe in file names while keeping the title readable."""

    cleaned = _UNSAFE_FILENAME_CHARACTERS.sub("_", value or "")
    cleaned = cleaned.strip(" .")
    if not cleaned or not cleaned.strip("_"):
        return "document"
    return cleaned


def build_page_image_name(page_number: int, *, extension: str = "png") -> str:
    """Return the canonical image file name for a rendered document page."""

    suffix = extension if extension.startswith(".") else f".{extension}"
    return f"page-{page_number:04d}{suffix.lower()}"
