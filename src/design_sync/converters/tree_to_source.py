"""Serialize a visual component tree into JSX-compatible markup.

Conversion rules:
- Tag: component type, lower-cased
- First attribute: data-component-id, then data-x / data-y / data-z-index
- String literals: "quoted", or {"json"} when they hold quotes or markup
  characters; true: bare attribute; false / null / numbers: {literal}
- style: inlined as kebab-case declarations and also collected into a
  stylesheet of [data-component-id="..."] rules; string styles are parsed
  into declarations first
- Behavior attachments: onClick={handlers["<id>"]}; the live callables are
  returned in GeneratedSource.handlers, never written as text
- Opaque expressions: {source}
- children text prop: element body when there are no child components
- Void elements (img, input, br, ...) are self-closed
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from design_sync.converters.common import (
    COMPONENT_ID_ATTR,
    HANDLER_TABLE,
    ORIGINAL_TYPE_PROP,
    PLACEHOLDER_TYPE,
    PLACEMENT_ATTRS,
    STYLE_PROP,
    SYNTHETIC_ROOT_ID,
    SYNTHETIC_ROOT_TYPE,
    TEXT_PROP,
    VOID_ELEMENTS,
    GeneratedSource,
    camel_to_kebab,
    format_inline_style,
    is_valid_tag_name,
    js_literal,
    jsx_text,
    parse_inline_style,
)
from design_sync.converters.source_to_tree import JSX_CHILDREN_NODE
from design_sync.models import (
    ExpressionValue,
    LiteralValue,
    PropValue,
    ReferenceValue,
    StyleValue,
    VisualComponent,
)

logger = logging.getLogger(__name__)

_INDENT = "  "
_QUOTE_UNSAFE = frozenset('"&{}<>\r\n')


def tree_to_source(root: VisualComponent) -> GeneratedSource:
    """Serialize one component (and its subtree).

    A root of type ``fragment`` is treated as a list wrapper: only its
    children are emitted.

    Returns:
        GeneratedSource with markup, stylesheet and the handler table.
    """
    renderer = MarkupRenderer()
    markup = renderer.render(root)
    return GeneratedSource(
        markup=markup,
        stylesheet=renderer.stylesheet(),
        handlers=dict(renderer.handlers),
        styles=dict(renderer.styles),
    )


def tree_to_source_roots(components: list[VisualComponent]) -> GeneratedSource:
    """Serialize a list of root components as one fragment."""
    root = VisualComponent(
        id=SYNTHETIC_ROOT_ID, type=SYNTHETIC_ROOT_TYPE, children=list(components)
    )
    return tree_to_source(root)


class MarkupRenderer:
    """Renders components to markup while collecting styles and handlers.

    One renderer is used per serialization; ``styles`` and ``handlers``
    accumulate across every component it renders.
    """

    def __init__(self) -> None:
        self.styles: dict[str, dict[str, Any]] = {}
        self.handlers: dict[str, Callable[..., Any]] = {}

    def render(self, component: VisualComponent, depth: int = 0) -> str:
        if component.type == SYNTHETIC_ROOT_TYPE and component.id == SYNTHETIC_ROOT_ID:
            return "\n".join(self.render(child, depth) for child in component.children)

        indent = _INDENT * depth
        tag = self._tag(component)
        attributes = " ".join(self._attributes(component))

        if tag in VOID_ELEMENTS:
            if component.children or TEXT_PROP in component.props:
                logger.warning(
                    "Void element <%s> (%s) cannot hold content, dropping it",
                    tag,
                    component.id,
                )
            return f"{indent}<{tag} {attributes} />"

        if component.children:
            if TEXT_PROP in component.props:
                logger.debug(
                    "Ignoring %s text of %s; it has child components",
                    TEXT_PROP,
                    component.id,
                )
            inner = "\n".join(
                self.render(child, depth + 1) for child in component.children
            )
            return f"{indent}<{tag} {attributes}>\n{inner}\n{indent}</{tag}>"

        body = self._text_body(component.props.get(TEXT_PROP))
        return f"{indent}<{tag} {attributes}>{body}</{tag}>"

    def stylesheet(self) -> str:
        """Assemble the collected styles into scoped rules."""
        blocks = []
        for component_id, declarations in self.styles.items():
            lines = "\n".join(
                f"{_INDENT}{camel_to_kebab(name)}: {value};"
                for name, value in declarations.items()
            )
            selector = f"[{COMPONENT_ID_ATTR}={json.dumps(component_id)}]"
            blocks.append(f"{selector} {{\n{lines}\n}}")
        return "\n\n".join(blocks)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _tag(self, component: VisualComponent) -> str:
        tag = component.type.lower()
        if is_valid_tag_name(tag):
            return tag
        logger.warning(
            "Component %s has unusable type %r, writing a placeholder",
            component.id,
            component.type,
        )
        return PLACEHOLDER_TYPE

    def _attributes(self, component: VisualComponent) -> list[str]:
        component_id = self._component_id(component)
        attributes = [f"{COMPONENT_ID_ATTR}={_quote(component_id)}"]

        for attr, field_name in PLACEMENT_ATTRS.items():
            value = getattr(component, field_name)
            if value is not None:
                attributes.append(f"{attr}={{{js_literal(value)}}}")

        if (
            not is_valid_tag_name(component.type.lower())
            and ORIGINAL_TYPE_PROP not in component.props
        ):
            attributes.append(f"{ORIGINAL_TYPE_PROP}={_quote(component.type)}")

        for name, value in component.props.items():
            if name in (COMPONENT_ID_ATTR, TEXT_PROP):
                continue
            rendered = self._attribute(component_id, name, value)
            if rendered is not None:
                attributes.append(rendered)
        return attributes

    def _attribute(self, component_id: str, name: str, value: PropValue) -> str | None:
        if isinstance(value, ReferenceValue):
            handler_id = value.handler_id or f"{component_id}.{name}"
            if value.handler is not None:
                self.handlers[handler_id] = value.handler
            return f"{name}={{{HANDLER_TABLE}[{json.dumps(handler_id)}]}}"

        if (
            name == STYLE_PROP
            and isinstance(value, LiteralValue)
            and isinstance(value.value, str)
        ):
            declarations = parse_inline_style(value.value)
            if declarations:
                value = StyleValue(declarations=declarations)

        if isinstance(value, StyleValue):
            if name != STYLE_PROP:
                logger.debug("Writing style object %s of %s inline", name, component_id)
            else:
                self.styles[component_id] = dict(value.declarations)
            return f"{name}={_quote(format_inline_style(value.declarations))}"

        if isinstance(value, ExpressionValue):
            return f"{name}={{{value.source}}}"

        literal = value.value
        if literal is True:
            return name
        if isinstance(literal, str):
            return f"{name}={_quote(literal)}"
        return f"{name}={{{js_literal(literal)}}}"

    @staticmethod
    def _component_id(component: VisualComponent) -> str:
        explicit = component.props.get(COMPONENT_ID_ATTR)
        if isinstance(explicit, LiteralValue) and explicit.value not in (None, ""):
            return str(explicit.value)
        return component.id

    @staticmethod
    def _text_body(value: PropValue | None) -> str:
        if value is None:
            return ""
        if isinstance(value, LiteralValue):
            return "" if value.value is None else jsx_text(value.value)
        if isinstance(value, ExpressionValue):
            if value.node_type == JSX_CHILDREN_NODE:
                return value.source
            return f"{{{value.source}}}"
        logger.debug("Ignoring non-text %s body", value.kind)
        return ""


def _quote(text: str) -> str:
    """Quoted attribute value, or a JSON string container when unsafe."""
    if not text or any(ch in _QUOTE_UNSAFE for ch in text):
        return f"{{{json.dumps(text)}}}"
    return f'"{text}"'
