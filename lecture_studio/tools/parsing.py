"""Helpers for reading model responses."""

from __future__ import annotations

import json
from typing import Any


def load_json_with_fallback(text: str) -> Any:
    """Decode JSON from a model response.

    Responses are often wrapped in code fences or prose, so when the stripped
    text is not valid JSON the substring between the first ``{`` and the last
    ``}`` is tried, then the same for ``[``/``]``. Raises ``ValueError`` when
    nothing decodes.
    """

    stripped = (text or "").strip()
    if not stripped:
        raise ValueError("empty response")
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    for opening, closing in (("{", "}"), ("[", "]")):
        start = stripped.find(opening)
        end = stripped.rfind(closing)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(stripped[start:end + 1])
        except json.JSONDecodeError:
            continue
    raise ValueError(f"no JSON object found in response: {stripped[:80]}")


def load_json_object(text: str) -> dict:
    data = load_json_with_fallback(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def levenshtein_distance(first: str, second: str) -> int:
    if first == second:
        return 0
    if len(first) < len(second):
        first, second = second, first
    previous = list(range(len(second) + 1))
    for row, left in enumerate(first, start=1):
        current = [row]
        for column, right in enumerate(second, start=1):
            current.append(
                min(
                    previous[column] + 1,
                    current[column - 1] + 1,
                    previous[column - 1] + (left != right),
                )
            )
        previous = current
    return previous[-1]


def calculate_similarity(first: str, second: str) -> float:
    """Return a 0-100 similarity score for two titles, ignoring case and padding."""

    left = (first or "").strip().lower()
    right = (second or "").strip().lower()
    if left == right:
        return 100.0
    if not left or not right:
        return 0.0
    distance = levenshtein_distance(left, right)
    return (1.0 - distance / max(len(left), len(right))) * 100.0


__all__ = [
    "calculate_similarity",
    "levenshtein_distance",
    "load_json_object",
    "load_json_with_fallback",
]
