"""Tests for sync/differ.py: structure maps and tree / source diffs."""

from __future__ import annotations

import logging

import pytest

from design_sync.converters.common import SourceParseError
from design_sync.models import LiteralValue, VisualComponent
from design_sync.sync.differ import (
    StructuralDiffer,
    build_structure_map,
    diff_props,
    diff_trees,
)
from design_sync.sync.models import (
    AddOperation,
    ChangeTarget,
    DeleteOperation,
    MoveOperation,
    UpdateOperation,
)
from design_sync.sync.state import BaselineState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _tree(**overrides) -> list[VisualComponent]:
    """root(div) > [title(h1), cta(Button)] with optional field overrides."""
    title = VisualComponent(id="title", type="h1", props={"children": "Hi"})
    cta = VisualComponent(id="cta", type="Button", props={"label": "Go"})
    for key, value in overrides.items():
        setattr(cta, key, value)
    return [VisualComponent(id="root", type="div", children=[title, cta])]


# ---------------------------------------------------------------------------
# Structure map and props
# ---------------------------------------------------------------------------


class TestBuildStructureMap:
    def test_pre_order_with_parents_and_indexes(self):
        structure = build_structure_map(_tree())

        assert list(structure) == ["root", "title", "cta"]
        assert structure["root"].parent_id is None
        assert structure["cta"].parent_id == "root"
        assert structure["cta"].index == 1

    def test_duplicate_ids_warn(self, caplog):
        tree = [VisualComponent(id="a", type="p"), VisualComponent(id="a", type="b")]
        with caplog.at_level(logging.WARNING):
            structure = build_structure_map(tree)
        assert structure["a"].component.type == "b"
        assert "Duplicate component id" in caplog.text


class TestDiffProps:
    def test_changed_added_and_removed(self):
        old = {"a": LiteralValue(value=1), "b": LiteralValue(value=2)}
        new = {"a": LiteralValue(value=1), "b": LiteralValue(value=3), "c": LiteralValue(value=4)}
        changes, removed = diff_props(old, new)

        assert changes == {"b": LiteralValue(value=3), "c": LiteralValue(value=4)}
        assert removed == []

        changes, removed = diff_props(new, old)
        assert changes == {"b": LiteralValue(value=2)}
        assert removed == ["c"]

    def test_component_id_attribute_ignored(self):
        changes, removed = diff_props(
            {"data-component-id": LiteralValue(value="x")},
            {"data-component-id": LiteralValue(value="y")},
        )
        assert changes == {}
        assert removed == []


# ---------------------------------------------------------------------------
# Tree diffs
# ---------------------------------------------------------------------------


class TestDiffTrees:
    """Operations that turn a baseline tree into the current tree."""

    def test_identical_trees_produce_nothing(self):
        assert diff_trees(_tree(), _tree(), ChangeTarget.TREE) == []

    def test_prop_update(self):
        current = _tree()
        current[0].children[1].props["label"] = LiteralValue(value="Buy")

        operations = diff_trees(current, _tree(), ChangeTarget.TREE)

        assert operations == [
            UpdateOperation(
                target=ChangeTarget.TREE,
                component_id="cta",
                changes={"label": LiteralValue(value="Buy")},
            )
        ]

    def test_type_and_layout_update(self):
        operations = diff_trees(_tree(type="a", x=5), _tree(), ChangeTarget.SOURCE)

        assert len(operations) == 1
        update = operations[0]
        assert update.target == ChangeTarget.SOURCE
        assert update.new_type == "a"
        assert update.layout == {"x": 5}
        assert update.changes == {}

    def test_add_is_detached(self):
        current = _tree()
        current[0].children.append(
            VisualComponent(
                id="box", type="section", children=[VisualComponent(id="inner", type="p")]
            )
        )

        operations = diff_trees(current, _tree(), ChangeTarget.TREE)

        assert [type(op) for op in operations] == [AddOperation, AddOperation]
        box, inner = operations
        assert box.component.id == "box"
        assert box.component.children == []
        assert (box.parent_id, box.index) == ("root", 2)
        assert (inner.parent_id, inner.index) == ("box", 0)

    def test_delete(self):
        current = _tree()
        del current[0].children[0]

        operations = diff_trees(current, _tree(), ChangeTarget.TREE)

        assert DeleteOperation(target=ChangeTarget.TREE, component_id="title") in operations
        # cta shifted from index 1 to 0
        assert MoveOperation(
            target=ChangeTarget.TREE, component_id="cta", new_parent_id="root", new_index=0
        ) in operations
        assert isinstance(operations[-1], DeleteOperation)

    def test_move_and_update_are_separate(self):
        current = _tree()
        cta = current[0].children.pop()
        cta.props["label"] = LiteralValue(value="Moved")
        current.append(cta)

        operations = diff_trees(current, _tree(), ChangeTarget.TREE)
        kinds = [(op.kind, getattr(op, "component_id", None)) for op in operations]

        assert ("update", "cta") in kinds
        assert ("move", "cta") in kinds
        move = next(op for op in operations if op.kind == "move")
        assert (move.new_parent_id, move.new_index) == (None, 1)


# ---------------------------------------------------------------------------
# StructuralDiffer
# ---------------------------------------------------------------------------


class TestStructuralDiffer:
    """Tree and source diffs against one baseline."""

    BASE_SOURCE = '<div data-component-id="root">\n  <p data-component-id="p">Hi</p>\n</div>'

    def _baseline(self, differ):
        return BaselineState.create(differ.parse(self.BASE_SOURCE), self.BASE_SOURCE)

    def test_unchanged_source_is_not_parsed(self, monkeypatch):
        differ = StructuralDiffer()
        baseline = self._baseline(differ)

        def fail(text):
            raise AssertionError("parsed unchanged source")

        monkeypatch.setattr(differ, "parse", fail)
        # cosmetic trailing whitespace does not count
        assert differ.diff_source(self.BASE_SOURCE + "  \n\n", baseline) == []

    def test_source_operations_are_tagged(self):
        differ = StructuralDiffer()
        baseline = self._baseline(differ)
        edited = self.BASE_SOURCE.replace(">Hi<", ">Hello<")

        operations = differ.diff(baseline.tree_copy(), edited, baseline)

        assert operations == [
            UpdateOperation(
                target=ChangeTarget.SOURCE,
                component_id="p",
                changes={"children": LiteralValue(value="Hello")},
            )
        ]

    def test_tree_operations_come_first(self):
        differ = StructuralDiffer()
        baseline = self._baseline(differ)
        tree = baseline.tree_copy()
        tree[0].props["title"] = LiteralValue(value="t")
        edited = self.BASE_SOURCE.replace(">Hi<", ">Hello<")

        operations = differ.diff(tree, edited, baseline)

        assert [op.target for op in operations] == [ChangeTarget.TREE, ChangeTarget.SOURCE]

    def test_unparseable_source_raises(self):
        differ = StructuralDiffer()
        baseline = self._baseline(differ)
        with pytest.raises(SourceParseError):
            differ.diff_source("<div>", baseline)
