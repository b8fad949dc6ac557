"""Study material generation."""

from .generator import (
    CostLimitExceededError,
    GenerationError,
    GenerationOptions,
    GenerationReport,
    Section,
    ToolGenerator,
)
from .matching import PageRange, filter_materials_by_ranges, merge_ranges
from .parsing import calculate_similarity, load_json_with_fallback

__all__ = [
    "CostLimitExceededError",
    "GenerationError",
    "GenerationOptions",
    "GenerationReport",
    "PageRange",
    "Section",
    "ToolGenerator",
    "calculate_similarity",
    "filter_materials_by_ranges",
    "load_json_with_fallback",
    "merge_ranges",
]
