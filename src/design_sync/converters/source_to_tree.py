"""Parse source documents into a visual component tree.

Supported languages:
- html: markup fragments, parsed with lxml.html
- jsx: a bare JSX markup fragment, parsed with esprima
- javascript: a full ES module with embedded JSX, parsed with esprima
- css: rule lists, parsed with tinycss2 into StyleRule records

Every markup element becomes one VisualComponent. Attribute literals are
copied verbatim; any other attribute expression is kept as opaque source
text (ExpressionValue) and never evaluated. Component ids come from the
``data-component-id`` attribute when present, otherwise from the element's
structural path (``<document path>#0.1.2``), so reparsing unchanged source
yields the same ids.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import esprima
import tinycss2
from lxml import etree
from lxml import html as lxml_html

from design_sync.converters.common import (
    BOOLEAN_HTML_ATTRIBUTES,
    COMPONENT_ID_ATTR,
    HANDLER_TABLE,
    ORIGINAL_TYPE_PROP,
    PLACEHOLDER_TYPE,
    PLACEMENT_ATTRS,
    STYLE_PROP,
    TEXT_PROP,
    ParseResult,
    StyleRule,
    coerce_number,
    is_valid_tag_name,
    jsx_text,
    kebab_to_camel,
    parse_inline_style,
)
from design_sync.models import (
    ExpressionValue,
    LiteralValue,
    PropValue,
    ReferenceValue,
    SourceDocument,
    SourceLanguage,
    StyleValue,
    VisualComponent,
)

logger = logging.getLogger(__name__)

# Element wrapped around a bare JSX fragment so it parses as one expression
_FRAGMENT_WRAPPER = "design-sync-fragment"

# Node type recorded for mixed text/expression element bodies
JSX_CHILDREN_NODE = "JSXChildren"

_INTEGER_RAW = re.compile(r"^(?:\d+|0[xXoObB][0-9a-fA-F_]+)$")
_NOT_LITERAL = object()


def source_to_tree(documents: Iterable[SourceDocument]) -> list[VisualComponent]:
    """Parse documents and return the root-level components.

    Args:
        documents: Source documents, parsed in order.

    Returns:
        Root components of every markup document that parsed successfully.
    """
    return parse_documents(documents).components


def parse_documents(documents: Iterable[SourceDocument]) -> ParseResult:
    """Parse a batch of documents, skipping the ones that fail.

    A failing document is logged and listed in ``ParseResult.skipped``;
    the remaining documents are still parsed.
    """
    result = ParseResult()
    claimed_ids: set[str] = set()
    for document in documents:
        try:
            _parse_document(document, result, claimed_ids)
        except Exception as e:
            logger.error(
                "Failed to parse %s (%s): %s", document.path, document.language, e
            )
            result.skipped.append(document.path)
    return result


def _parse_document(
    document: SourceDocument, result: ParseResult, claimed_ids: set[str]
) -> None:
    language = document.language
    if language == SourceLanguage.CSS:
        result.style_rules.extend(_parse_stylesheet(document))
        return

    builder = _TreeBuilder(document.path, set(claimed_ids))
    if language == SourceLanguage.HTML:
        _walk_html(document.content, builder)
    elif language == SourceLanguage.JSX:
        wrapped = f"<{_FRAGMENT_WRAPPER}>\n{document.content}\n</{_FRAGMENT_WRAPPER}>"
        _ScriptWalker(wrapped, builder, wrapper=_FRAGMENT_WRAPPER).run()
    elif language == SourceLanguage.JAVASCRIPT:
        _ScriptWalker(document.content, builder).run()
    else:
        logger.warning(
            "Unsupported source language %r for %s, skipping", language, document.path
        )
        result.skipped.append(document.path)
        return

    claimed_ids.update(builder.claimed_ids)
    result.components.extend(builder.roots)


# ---------------------------------------------------------------------------
# Tree building
# ---------------------------------------------------------------------------


@dataclass
class _OpenElement:
    node: Any
    component: VisualComponent
    path: tuple[int, ...]
    text: list[Any] = field(default_factory=list)


class _TreeBuilder:
    """Turns enter / text / exit events into nested components."""

    def __init__(self, document_path: str, claimed_ids: set[str]) -> None:
        self.document_path = document_path
        self.claimed_ids = claimed_ids
        self.roots: list[VisualComponent] = []
        self._stack: list[_OpenElement] = []

    def open(
        self, node: Any, type_name: str | None, props: dict[str, PropValue]
    ) -> None:
        parent = self._stack[-1] if self._stack else None
        siblings = parent.component.children if parent else self.roots
        path = (*parent.path, len(siblings)) if parent else (len(siblings),)
        path_id = f"{self.document_path}#{'.'.join(str(i) for i in path)}"

        component_id = self._claim_id(props.pop(COMPONENT_ID_ATTR, None), path_id)
        placement = self._lift_placement(props)

        if type_name is None or not is_valid_tag_name(type_name):
            logger.warning(
                "Unmappable element %r in %s, using placeholder",
                type_name,
                self.document_path,
            )
            props = {ORIGINAL_TYPE_PROP: LiteralValue(value=type_name or ""), **props}
            type_name = PLACEHOLDER_TYPE

        style = props.get(STYLE_PROP)
        if isinstance(style, LiteralValue) and isinstance(style.value, str):
            props[STYLE_PROP] = StyleValue(declarations=parse_inline_style(style.value))

        component = VisualComponent(
            id=component_id, type=type_name, props=props, **placement
        )
        siblings.append(component)
        self._stack.append(_OpenElement(node=node, component=component, path=path))

    def text(self, value: Any, verbatim: bool = False) -> None:
        """Record text content (or an ExpressionValue) for the open element.

        ``verbatim`` values come from literal containers such as ``{""}`` or
        ``{true}`` and are kept untrimmed.
        """
        if not self._stack or value is None:
            return
        if isinstance(value, str) and not verbatim:
            value = value.strip()
            if not value:
                return
        self._stack[-1].text.append(value)

    def close(self, node: Any) -> None:
        if not self._stack or self._stack[-1].node is not node:
            logger.error(
                "Parent stack mismatch while closing an element in %s",
                self.document_path,
            )
            return
        self._finish(self._stack.pop())

    def _finish(self, entry: _OpenElement) -> None:
        if not entry.text:
            return
        component = entry.component
        if component.children:
            logger.debug(
                "Ignoring text of %s alongside child components", component.id
            )
            return
        if TEXT_PROP in component.props:
            logger.debug("Keeping explicit %s prop of %s", TEXT_PROP, component.id)
            return
        component.props[TEXT_PROP] = _text_value(entry.text)

    def _claim_id(self, raw: PropValue | None, path_id: str) -> str:
        candidate = None
        if isinstance(raw, LiteralValue) and isinstance(raw.value, (str, int)):
            if not isinstance(raw.value, bool) and raw.value != "":
                candidate = str(raw.value)
        elif raw is not None:
            logger.warning(
                "Ignoring non-literal %s in %s", COMPONENT_ID_ATTR, self.document_path
            )

        if candidate is not None:
            if candidate not in self.claimed_ids:
                self.claimed_ids.add(candidate)
                return candidate
            logger.warning(
                "Duplicate component id %r in %s, using %s",
                candidate,
                self.document_path,
                path_id,
            )
        self.claimed_ids.add(path_id)
        return path_id

    def _lift_placement(self, props: dict[str, PropValue]) -> dict[str, Any]:
        placement: dict[str, Any] = {}
        for attr, field_name in PLACEMENT_ATTRS.items():
            raw = props.pop(attr, None)
            if raw is None:
                continue
            value = raw.value if isinstance(raw, LiteralValue) else None
            if isinstance(value, str):
                value = coerce_number(value)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.warning(
                    "Ignoring non-numeric %s in %s", attr, self.document_path
                )
                continue
            placement[field_name] = int(value) if field_name == "z_index" else value
        return placement


def _text_value(fragments: list[Any]) -> PropValue:
    if len(fragments) > 1:
        # booleans and empty strings render nothing beside other content
        fragments = [
            fragment
            for fragment in fragments
            if not isinstance(fragment, bool) and fragment != ""
        ] or fragments[:1]
    if len(fragments) == 1:
        only = fragments[0]
        return only if isinstance(only, ExpressionValue) else LiteralValue(value=only)
    if not any(isinstance(fragment, ExpressionValue) for fragment in fragments):
        return LiteralValue(value=" ".join(str(fragment) for fragment in fragments))
    source = " ".join(
        f"{{{fragment.source}}}"
        if isinstance(fragment, ExpressionValue)
        else jsx_text(fragment)
        for fragment in fragments
    )
    return ExpressionValue(source=source, node_type=JSX_CHILDREN_NODE)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def _walk_html(content: str, builder: _TreeBuilder) -> None:
    if not content.strip():
        return
    for fragment in lxml_html.fragments_fromstring(content):
        if isinstance(fragment, str):
            logger.debug("Ignoring top-level text in %s", builder.document_path)
            continue
        for event, node in etree.iterwalk(fragment, events=("start", "end")):
            if not isinstance(node.tag, str):
                # comments and processing instructions; keep their tail text
                if event == "end":
                    builder.text(node.tail)
                continue
            if event == "start":
                builder.open(node, node.tag, _html_attributes(node))
                builder.text(node.text)
            else:
                builder.close(node)
                builder.text(node.tail)


def _html_attributes(element: Any) -> dict[str, PropValue]:
    props: dict[str, PropValue] = {}
    for name, value in element.attrib.items():
        if name in BOOLEAN_HTML_ATTRIBUTES and value in ("", name):
            props[name] = LiteralValue(value=True)
        else:
            props[name] = LiteralValue(value=value)
    return props


# ---------------------------------------------------------------------------
# JSX / JavaScript
# ---------------------------------------------------------------------------


class _ScriptWalker:
    """Walks an esprima syntax tree (as plain dicts) feeding a _TreeBuilder."""

    def __init__(
        self, code: str, builder: _TreeBuilder, wrapper: str | None = None
    ) -> None:
        self.code = code
        self.builder = builder
        self.wrapper = wrapper

    def run(self) -> None:
        program = esprima.parseModule(self.code, jsx=True, range=True)
        self.visit(program.toDict())

    def visit(self, node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                self.visit(item)
            return
        if not isinstance(node, dict):
            return

        node_type = node.get("type")
        if node_type == "JSXElement":
            self._visit_element(node)
        elif node_type == "JSXFragment":
            self._visit_children(node.get("children") or [])
        elif node_type == "JSXText":
            self.builder.text(node.get("value"))
        elif node_type == "JSXExpressionContainer":
            self._visit_children([node])
        else:
            for key, value in node.items():
                if key not in ("type", "range", "loc"):
                    self.visit(value)

    def _visit_element(self, node: dict) -> None:
        opening = node.get("openingElement") or {}
        name = _jsx_name(opening.get("name"))
        children = node.get("children") or []
        if self.wrapper is not None and name == self.wrapper:
            self._visit_children(children)
            return

        props = self._attributes(opening.get("attributes") or [])
        self.builder.open(node, name, props)
        self._visit_children(children)
        self.builder.close(node)

    def _visit_children(self, children: list) -> None:
        for child in children:
            if child.get("type") != "JSXExpressionContainer":
                self.visit(child)
                continue
            expression = child.get("expression") or {}
            if expression.get("type") == "JSXEmptyExpression":
                continue
            literal = _literal_value(expression)
            if literal is not _NOT_LITERAL:
                self.builder.text(literal, verbatim=True)
            elif _contains_jsx(expression):
                self.visit(expression)
            else:
                self.builder.text(
                    ExpressionValue(
                        source=self._slice(expression),
                        node_type=expression.get("type", "Expression"),
                    )
                )

    def _attributes(self, attributes: list) -> dict[str, PropValue]:
        props: dict[str, PropValue] = {}
        for attribute in attributes:
            if attribute.get("type") != "JSXAttribute":
                logger.warning(
                    "Ignoring spread attribute %s in %s",
                    self._slice(attribute),
                    self.builder.document_path,
                )
                continue
            name = _jsx_name(attribute.get("name"))
            if name is None:
                continue
            props[name] = self._attribute_value(name, attribute.get("value"))
        return props

    def _attribute_value(self, name: str, value: dict | None) -> PropValue:
        if value is None:
            return LiteralValue(value=True)
        value_type = value.get("type")
        if value_type == "Literal":
            return LiteralValue(value=value.get("value"))
        if value_type == "JSXExpressionContainer":
            return self._expression_value(name, value.get("expression") or {})
        return ExpressionValue(
            source=self._slice(value), node_type=value_type or "Expression"
        )

    def _expression_value(self, name: str, expression: dict) -> PropValue:
        literal = _literal_value(expression)
        if literal is not _NOT_LITERAL:
            return LiteralValue(value=literal)
        handler_id = _handler_reference(expression)
        if handler_id is not None:
            return ReferenceValue(handler_id=handler_id)
        if name == STYLE_PROP:
            declarations = _style_object(expression)
            if declarations is not None:
                return StyleValue(declarations=declarations)
        return ExpressionValue(
            source=self._slice(expression),
            node_type=expression.get("type", "Expression"),
        )

    def _slice(self, node: dict) -> str:
        span = node.get("range")
        if not span:
            return ""
        return self.code[span[0] : span[1]]


def _jsx_name(node: dict | None) -> str | None:
    if not node:
        return None
    node_type = node.get("type")
    if node_type == "JSXIdentifier":
        return node.get("name")
    if node_type == "JSXNamespacedName":
        namespace = _jsx_name(node.get("namespace"))
        local = _jsx_name(node.get("name"))
        return f"{namespace}:{local}" if namespace and local else None
    if node_type == "JSXMemberExpression":
        owner = _jsx_name(node.get("object"))
        member = _jsx_name(node.get("property"))
        return f"{owner}.{member}" if owner and member else None
    return None


def _literal_value(node: dict) -> Any:
    """Plain value of a literal expression node, or ``_NOT_LITERAL``."""
    node_type = node.get("type")
    if node_type == "Literal" and not node.get("regex"):
        value = node.get("value")
        if (
            isinstance(value, float)
            and value.is_integer()
            and _INTEGER_RAW.match(str(node.get("raw", "")))
        ):
            return int(value)
        return value
    if node_type == "UnaryExpression" and node.get("operator") == "-":
        argument = _literal_value(node.get("argument") or {})
        if isinstance(argument, (int, float)) and not isinstance(argument, bool):
            return -argument
    return _NOT_LITERAL


def _handler_reference(node: dict) -> str | None:
    """Handler id of a ``handlers["id"]`` / ``handlers.id`` expression."""
    if node.get("type") != "MemberExpression":
        return None
    owner = node.get("object") or {}
    member = node.get("property") or {}
    if owner.get("type") != "Identifier" or owner.get("name") != HANDLER_TABLE:
        return None
    if node.get("computed"):
        value = member.get("value") if member.get("type") == "Literal" else None
        return value if isinstance(value, str) else None
    return member.get("name") if member.get("type") == "Identifier" else None


def _style_object(node: dict) -> dict[str, str | int | float] | None:
    """Declarations of an object literal whose values are all literals."""
    if node.get("type") != "ObjectExpression":
        return None
    declarations: dict[str, str | int | float] = {}
    for prop in node.get("properties") or []:
        if prop.get("type") != "Property" or prop.get("computed"):
            return None
        key = prop.get("key") or {}
        if key.get("type") == "Identifier":
            name = key.get("name")
        elif key.get("type") == "Literal" and isinstance(key.get("value"), str):
            name = key["value"]
        else:
            return None
        value = _literal_value(prop.get("value") or {})
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return None
        declarations[kebab_to_camel(name)] = value
    return declarations


def _contains_jsx(node: Any) -> bool:
    if isinstance(node, list):
        return any(_contains_jsx(item) for item in node)
    if not isinstance(node, dict):
        return False
    if str(node.get("type", "")).startswith("JSX"):
        return True
    return any(
        _contains_jsx(value)
        for key, value in node.items()
        if key not in ("type", "range", "loc")
    )


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------


def _parse_stylesheet(document: SourceDocument) -> list[StyleRule]:
    rules: list[StyleRule] = []
    nodes = tinycss2.parse_stylesheet(
        document.content, skip_comments=True, skip_whitespace=True
    )
    for node in nodes:
        if node.type == "error":
            logger.warning(
                "CSS error in %s at line %s: %s",
                document.path,
                node.source_line,
                node.message,
            )
            continue
        if node.type != "qualified-rule":
            logger.debug("Skipping %s in %s", node.type, document.path)
            continue

        declarations: dict[str, str] = {}
        for declaration in tinycss2.parse_declaration_list(
            node.content, skip_comments=True, skip_whitespace=True
        ):
            if declaration.type != "declaration":
                continue
            value = tinycss2.serialize(declaration.value).strip()
            if declaration.important:
                value += " !important"
            declarations[declaration.lower_name] = value

        rules.append(
            StyleRule(
                selector=tinycss2.serialize(node.prelude).strip(),
                declarations=declarations,
                source_path=document.path,
            )
        )
    return rules
