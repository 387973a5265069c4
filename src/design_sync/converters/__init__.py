"""Conversion between source text and the visual component tree."""

from .common import (
    GeneratedSource,
    ParseResult,
    SourceParseError,
    StyleRule,
    language_for_path,
)
from .source_to_tree import parse_documents, source_to_tree
from .tree_to_source import MarkupRenderer, tree_to_source, tree_to_source_roots

__all__ = [
    "GeneratedSource",
    "MarkupRenderer",
    "ParseResult",
    "SourceParseError",
    "StyleRule",
    "language_for_path",
    "parse_documents",
    "source_to_tree",
    "tree_to_source",
    "tree_to_source_roots",
]
