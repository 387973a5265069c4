"""Pydantic models for the visual component tree.

Defines the data contracts shared by the converters and the sync engine:

- ``SourceLanguage``: Enum of parseable source languages.
- ``LiteralValue`` / ``StyleValue`` / ``ReferenceValue`` / ``ExpressionValue``:
  the typed property values a component can carry (``PropValue``).
- ``VisualComponent``: One node of the visual tree.
- ``SourceDocument``: One named piece of source text.

Raw Python values are coerced into typed property values on construction,
so ``VisualComponent(id="a", type="div", props={"label": "Hi"})`` works.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceLanguage(str, Enum):
    """Languages the parser knows how to read."""

    HTML = "html"
    JSX = "jsx"
    JAVASCRIPT = "javascript"
    CSS = "css"


# ---------------------------------------------------------------------------
# Property values
# ---------------------------------------------------------------------------


class LiteralValue(BaseModel):
    """A plain string, number, boolean or null attribute value."""

    kind: Literal["literal"] = "literal"
    value: bool | int | float | str | None = None

    model_config = {"frozen": True}


class StyleValue(BaseModel):
    """A nested style object (camelCase property -> value)."""

    kind: Literal["style"] = "style"
    declarations: dict[str, str | int | float] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ReferenceValue(BaseModel):
    """A behavior attachment such as an event handler.

    Functions are never turned into text: ``handler`` holds the live
    callable when the tree came from a canvas, ``handler_id`` the name under
    which generated source refers to it.
    """

    kind: Literal["reference"] = "reference"
    handler_id: str | None = None
    handler: Callable[..., Any] | None = Field(default=None, exclude=True)

    model_config = {"frozen": True}


class ExpressionValue(BaseModel):
    """An expression kept as opaque source text; it is never evaluated."""

    kind: Literal["expression"] = "expression"
    source: str
    node_type: str = "Expression"

    model_config = {"frozen": True}


PropValue = Annotated[
    Union[LiteralValue, StyleValue, ReferenceValue, ExpressionValue],
    Field(discriminator="kind"),
]

_PROP_KINDS = frozenset({"literal", "style", "reference", "expression"})
_PROP_MODELS = (LiteralValue, StyleValue, ReferenceValue, ExpressionValue)


def coerce_prop_value(raw: Any) -> Any:
    """Wrap a raw Python value in the matching typed property value.

    Already-typed values (model instances, or dicts carrying a known
    ``kind``) are returned unchanged for pydantic to validate.
    """
    if isinstance(raw, _PROP_MODELS):
        return raw
    if isinstance(raw, dict):
        if raw.get("kind") in _PROP_KINDS:
            return raw
        return StyleValue(declarations=raw)
    if callable(raw):
        return ReferenceValue(handler=raw)
    return LiteralValue(value=raw)


# ---------------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------------


class VisualComponent(BaseModel):
    """One node of the visual component tree.

    Attributes:
        id: Identifier, unique across a tree.
        type: Element/component name (``div``, ``Button``, ``UI.Card``).
        props: Ordered mapping of property name to typed value.
        children: Ordered child components.
        x: Optional horizontal canvas position.
        y: Optional vertical canvas position.
        z_index: Optional stacking order (alias ``zIndex``).
    """

    id: str
    type: str
    props: dict[str, PropValue] = Field(default_factory=dict)
    children: list[VisualComponent] = Field(default_factory=list)
    x: int | float | None = None
    y: int | float | None = None
    z_index: int | None = Field(default=None, alias="zIndex")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("props", mode="before")
    @classmethod
    def _coerce_props(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {key: coerce_prop_value(raw) for key, raw in value.items()}

    def walk(self) -> Iterator[VisualComponent]:
        """Yield this component and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def literal_props(self) -> dict[str, Any]:
        """Plain view of the props that hold literal values."""
        return {
            key: value.value
            for key, value in self.props.items()
            if isinstance(value, LiteralValue)
        }

    def detached(self) -> VisualComponent:
        """Copy of this component without its children."""
        return VisualComponent(
            id=self.id,
            type=self.type,
            props=dict(self.props),
            x=self.x,
            y=self.y,
            z_index=self.z_index,
        )

    def placement(self) -> dict[str, int | float | None]:
        return {"x": self.x, "y": self.y, "z_index": self.z_index}


def validate_tree(roots: list[VisualComponent]) -> list[str]:
    """Check the single-parent and unique-id invariants of a tree.

    Args:
        roots: Root components of the tree.

    Returns:
        List of problem descriptions; empty when the tree is well formed.
    """
    problems: list[str] = []
    seen_ids: set[str] = set()
    seen_nodes: set[int] = set()
    for root in roots:
        for component in root.walk():
            if id(component) in seen_nodes:
                problems.append(
                    f"Component '{component.id}' appears under more than one parent"
                )
                continue
            seen_nodes.add(id(component))
            if component.id in seen_ids:
                problems.append(f"Duplicate component id '{component.id}'")
            seen_ids.add(component.id)
    return problems


class SourceDocument(BaseModel):
    """A named piece of source text in one language.

    Attributes:
        path: Document name, used in derived component ids and log messages.
        content: Full text; a new document replaces the old one wholesale.
        language: How to parse ``content``.
    """

    path: str
    content: str
    language: SourceLanguage

    model_config = {"frozen": True}
