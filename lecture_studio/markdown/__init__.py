"""Markdown tree engine used for transcripts, generated material and exports."""

from .citations import (
    apply_citation_post_processing,
    format_page_numbers,
    parse_citations,
    parse_page_string,
)
from .enrichment import ImageResolver, enrich_with_cited_images, resolver_from_mapping
from .nodes import ListType, Node, NodeType, ParsedCitation, TableRow
from .parser import MarkdownParser, parse_markdown
from .reconstructor import MarkdownReconstructor, reconstruct_markdown

__all__ = [
    "ImageResolver",
    "ListType",
    "MarkdownParser",
    "MarkdownReconstructor",
    "Node",
    "NodeType",
    "ParsedCitation",
    "TableRow",
    "apply_citation_post_processing",
    "enrich_with_cited_images",
    "format_page_numbers",
    "parse_citations",
    "parse_markdown",
    "parse_page_string",
    "reconstruct_markdown",
    "resolver_from_mapping",
]
