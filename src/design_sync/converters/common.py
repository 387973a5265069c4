"""Common types and utilities for tree <-> source conversion."""

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from design_sync.models import SourceLanguage, VisualComponent

# =============================================================================
# Markup conventions
# =============================================================================
#
# Generated and parsed markup agree on a handful of reserved attributes:
#
#   data-component-id   stable component identity (lifted into ``id``)
#   data-x / data-y     canvas placement (lifted into ``x`` / ``y``)
#   data-z-index        stacking order (lifted into ``z_index``)
#
# Behavior attachments are written as ``onClick={handlers["<id>"]}`` where
# ``handlers`` is the table returned next to the generated markup.
# =============================================================================

COMPONENT_ID_ATTR = "data-component-id"

# Markup attribute -> VisualComponent placement field
PLACEMENT_ATTRS: dict[str, str] = {
    "data-x": "x",
    "data-y": "y",
    "data-z-index": "z_index",
}

HANDLER_TABLE = "handlers"
STYLE_PROP = "style"
TEXT_PROP = "children"

# Root wrapping a list of components for serialization; its tag is not emitted
SYNTHETIC_ROOT_TYPE = "fragment"
SYNTHETIC_ROOT_ID = "__root__"

# Stand-in type for elements whose name cannot be mapped
PLACEHOLDER_TYPE = "placeholder"
ORIGINAL_TYPE_PROP = "originalType"

VOID_ELEMENTS: frozenset[str] = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)

# HTML attributes whose mere presence means true
BOOLEAN_HTML_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "allowfullscreen",
        "async",
        "autofocus",
        "autoplay",
        "checked",
        "controls",
        "default",
        "defer",
        "disabled",
        "formnovalidate",
        "hidden",
        "inert",
        "ismap",
        "loop",
        "multiple",
        "muted",
        "nomodule",
        "novalidate",
        "open",
        "readonly",
        "required",
        "reversed",
        "selected",
    }
)

_LANGUAGE_BY_SUFFIX: dict[str, SourceLanguage] = {
    ".html": SourceLanguage.HTML,
    ".htm": SourceLanguage.HTML,
    ".jsx": SourceLanguage.JSX,
    ".tsx": SourceLanguage.JSX,
    ".js": SourceLanguage.JAVASCRIPT,
    ".mjs": SourceLanguage.JAVASCRIPT,
    ".css": SourceLanguage.CSS,
}

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")
_KEBAB_BOUNDARY = re.compile(r"-([a-z0-9])")
_NUMBER = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?$")
_TAG_NAME = re.compile(r"^[A-Za-z_$][\w$-]*(?:[.:][A-Za-z_$][\w$-]*)*$")


class SourceParseError(ValueError):
    """A source document could not be parsed into a component tree."""


def language_for_path(path: str) -> SourceLanguage:
    """Guess the source language from a file name.

    Raises:
        ValueError: If the suffix is not recognised.
    """
    suffix = PurePath(path).suffix.lower()
    try:
        return _LANGUAGE_BY_SUFFIX[suffix]
    except KeyError:
        raise ValueError(f"Cannot infer source language for '{path}'") from None


# =============================================================================
# Name and value helpers
# =============================================================================


def camel_to_kebab(name: str) -> str:
    """``backgroundColor`` -> ``background-color``; custom properties pass."""
    if name.startswith("--"):
        return name
    return _CAMEL_BOUNDARY.sub(r"-\1", name).lower()


def kebab_to_camel(name: str) -> str:
    """``background-color`` -> ``backgroundColor``; custom properties pass."""
    if name.startswith("--"):
        return name
    return _KEBAB_BOUNDARY.sub(lambda match: match.group(1).upper(), name)


def coerce_number(text: str) -> int | float | str:
    """Turn numeric text into a number, leaving anything else as is."""
    stripped = text.strip()
    if not _NUMBER.match(stripped):
        return text
    number = float(stripped)
    if number.is_integer() and not any(ch in stripped for ch in ".eE"):
        return int(number)
    return number


def parse_inline_style(text: str) -> dict[str, str | int | float]:
    """Parse ``"margin-top: 4px; opacity: 0.5"`` into camelCase declarations."""
    declarations: dict[str, str | int | float] = {}
    for chunk in text.split(";"):
        name, sep, value = chunk.partition(":")
        if not sep or not name.strip():
            continue
        declarations[kebab_to_camel(name.strip())] = coerce_number(value.strip())
    return declarations


def format_inline_style(declarations: dict[str, Any]) -> str:
    """Inverse of :func:`parse_inline_style`, e.g. ``margin-top:4px;opacity:0.5``."""
    return ";".join(
        f"{camel_to_kebab(name)}:{_format_style_value(value)}"
        for name, value in declarations.items()
    )


def _format_style_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def js_literal(value: Any) -> str:
    """Render a Python primitive as the equivalent JavaScript literal."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    return json.dumps(value)


_UNSAFE_TEXT = frozenset("{}<>&\r\n")


def jsx_text(value: Any) -> str:
    """Render text content for an element body.

    Plain text is written as is; numbers and text that JSX would
    reinterpret or drop (braces, angle brackets, entities, line breaks,
    edge whitespace, the empty string) are written as an expression
    container.
    """
    if not isinstance(value, str):
        return f"{{{js_literal(value)}}}"
    if not value or value != value.strip() or any(ch in _UNSAFE_TEXT for ch in value):
        return f"{{{json.dumps(value)}}}"
    return value


def is_valid_tag_name(name: str) -> bool:
    """Whether ``name`` can be written as an element name in markup."""
    return bool(_TAG_NAME.match(name))


# =============================================================================
# Result types
# =============================================================================


@dataclass
class StyleRule:
    """One rule from a style document.

    Attributes:
        selector: Selector text as written (e.g. ``.card > h1``)
        declarations: Property name -> value text
        source_path: Document the rule came from
    """

    selector: str
    declarations: dict[str, str] = field(default_factory=dict)
    source_path: str = ""


@dataclass
class ParseResult:
    """Result of parsing a batch of source documents.

    Attributes:
        components: Root-level components, in document order
        style_rules: Rules collected from style documents
        skipped: Paths of documents that failed to parse or were unsupported
    """

    components: list[VisualComponent] = field(default_factory=list)
    style_rules: list[StyleRule] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class GeneratedSource:
    """Output of serializing a component tree.

    Attributes:
        markup: Generated markup text
        stylesheet: Rules scoped to ``[data-component-id=...]`` selectors
        handlers: Handler id -> live callable referenced from the markup
        styles: Component id -> style declarations that were inlined
    """

    markup: str
    stylesheet: str = ""
    handlers: dict[str, Callable[..., Any]] = field(default_factory=dict)
    styles: dict[str, dict[str, Any]] = field(default_factory=dict)
