"""Serializer output parses back into the same tree."""

import pytest

from design_sync.converters.source_to_tree import source_to_tree
from design_sync.converters.tree_to_source import tree_to_source_roots
from design_sync.models import (
    ExpressionValue,
    LiteralValue,
    ReferenceValue,
    SourceDocument,
    SourceLanguage,
    StyleValue,
    VisualComponent,
)


def _reparse(components):
    markup = tree_to_source_roots(components).markup
    document = SourceDocument(path="index.jsx", content=markup, language=SourceLanguage.JSX)
    return source_to_tree([document])


def _page():
    return [
        VisualComponent(
            id="page",
            type="main",
            props={"className": "page", "style": {"padding": 8, "color": "#333"}},
            children=[
                VisualComponent(
                    id="title",
                    type="h1",
                    props={"children": "Welcome"},
                    x=10,
                    y=20.5,
                    z_index=2,
                ),
                VisualComponent(
                    id="cta",
                    type="Button",
                    props={
                        "label": 'Say "hi"',
                        "count": 3,
                        "disabled": True,
                        "hidden": False,
                        "onClick": ReferenceValue(handler_id="cta.onClick"),
                        "items": ExpressionValue(
                            source="rows.map(r => r.id)", node_type="CallExpression"
                        ),
                    },
                ),
            ],
        ),
        VisualComponent(id="footer", type="footer", props={"children": "a < b"}),
    ]


class TestRoundTrip:
    """tree -> source -> tree preserves ids, types, props and placement."""

    def test_structure_and_ids(self):
        reparsed = _reparse(_page())
        assert [c.id for root in reparsed for c in root.walk()] == [
            "page",
            "title",
            "cta",
            "footer",
        ]
        assert reparsed[0].children[1].type == "button"

    def test_props_and_placement(self):
        original = _page()
        reparsed = _reparse(original)

        title = reparsed[0].children[0]
        assert title.props == original[0].children[0].props
        assert (title.x, title.y, title.z_index) == (10, 20.5, 2)
        assert reparsed[0].props == original[0].props
        assert reparsed[0].children[1].props == original[0].children[1].props
        assert reparsed[1].props == original[1].props

    def test_reserialized_markup_is_identical(self):
        first = tree_to_source_roots(_page()).markup
        second = tree_to_source_roots(_reparse(_page())).markup
        assert first == second

    @pytest.mark.parametrize("value", ["", True, False, 0, " padded "])
    def test_literal_bodies(self, value):
        component = VisualComponent(id="t", type="p", props={"children": value})
        reparsed = _reparse([component])
        assert reparsed[0].props["children"] == LiteralValue(value=value)

    def test_string_style_matches_collected_rules(self):
        component = VisualComponent(
            id="a", type="div", props={"style": "color: red; margin-top: 4px"}
        )
        generated = tree_to_source_roots([component])

        reparsed = _reparse([component])

        assert generated.styles == {"a": {"color": "red", "marginTop": "4px"}}
        assert reparsed[0].props["style"] == StyleValue(
            declarations=generated.styles["a"]
        )
