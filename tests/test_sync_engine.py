"""Tests for the core sync engine."""

from __future__ import annotations

import asyncio
import logging

import pytest
from pydantic import ValidationError

from design_sync.config_schema import ConflictStrategy, SyncMode
from design_sync.converters.source_to_tree import source_to_tree
from design_sync.models import (
    LiteralValue,
    ReferenceValue,
    SourceDocument,
    SourceLanguage,
    VisualComponent,
)
from design_sync.sync.differ import build_structure_map, diff_trees
from design_sync.sync.engine import SyncEngine
from design_sync.sync.events import (
    SOURCE_CHANGED,
    SOURCE_UPDATED,
    SYNC_CONFLICT,
    SYNC_ERROR,
    TREE_CHANGED,
    TREE_UPDATED,
    TreeChanged,
)
from design_sync.sync.models import (
    ChangeTarget,
    MoveOperation,
    SyncOutcome,
    SyncPhase,
    UpdateOperation,
)
from design_sync.sync.resolver import create_resolver

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BASE_SOURCE = (
    '<div data-component-id="root">\n'
    '  <button data-component-id="btn" label="A"></button>\n'
    '  <p data-component-id="text">Hello</p>\n'
    "</div>"
)


def _bootstrap(engine: SyncEngine) -> list[VisualComponent]:
    """Commit BASE_SOURCE as the baseline and return a copy of its tree."""
    report = engine.sync_from_source(BASE_SOURCE)
    assert report.committed
    return engine.baseline.tree_copy()


def _find(tree: list[VisualComponent], component_id: str) -> VisualComponent:
    return build_structure_map(tree)[component_id].component


def _with_label(tree: list[VisualComponent], label: str) -> list[VisualComponent]:
    _find(tree, "btn").props["label"] = LiteralValue(value=label)
    return tree


# ---------------------------------------------------------------------------
# Example scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    """The four reference scenarios, end to end through public APIs."""

    def test_nested_tag_becomes_root_with_child(self):
        """outer containing inner -> one root, child at index 0."""
        roots = source_to_tree(
            [SourceDocument(path="index.jsx", content="<outer><inner /></outer>", language="jsx")]
        )
        structure = build_structure_map(roots)

        assert len(roots) == 1
        inner = structure[roots[0].children[0].id]
        assert inner.parent_id == roots[0].id
        assert inner.index == 0

    def test_label_change_is_one_tree_update(self, engine):
        tree = _with_label(_bootstrap(engine), "B")

        report = engine.sync_from_tree(tree)

        assert report.tree_changes == [
            UpdateOperation(
                target=ChangeTarget.TREE,
                component_id="btn",
                changes={"label": LiteralValue(value="B")},
            )
        ]

    def test_reparent_under_new_sibling_is_one_move(self):
        baseline = [
            VisualComponent(id="root", type="div", children=[VisualComponent(id="b", type="p")])
        ]
        current = [
            VisualComponent(
                id="root",
                type="div",
                children=[
                    VisualComponent(
                        id="s", type="section", children=[VisualComponent(id="b", type="p")]
                    )
                ],
            )
        ]

        operations = diff_trees(current, baseline, ChangeTarget.TREE)
        moves = [op for op in operations if isinstance(op, MoveOperation)]

        assert moves == [
            MoveOperation(
                target=ChangeTarget.TREE, component_id="b", new_parent_id="s", new_index=0
            )
        ]

    @pytest.mark.parametrize("strategy", ["preferTree", "preferSource"])
    def test_independent_edits_both_survive(self, engine, recorder, strategy):
        engine.set_config(conflict_strategy=strategy)
        tree = _with_label(_bootstrap(engine), "B")
        engine.record_source(BASE_SOURCE.replace("Hello", "Bye"))
        sources = recorder(SOURCE_UPDATED)
        trees = recorder(TREE_UPDATED)

        report = engine.sync_from_tree(tree)

        assert report.conflicts == []
        assert {op.target for op in report.kept} == {ChangeTarget.TREE, ChangeTarget.SOURCE}
        assert 'label="B"' in sources[-1].code
        assert ">Bye</p>" in sources[-1].code
        assert _find(trees[-1].component_tree, "text").props["children"] == LiteralValue(
            value="Bye"
        )


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestSyncFromSource:
    """Source edits flow into the tree."""

    def test_initial_sync_publishes_tree(self, engine, recorder):
        trees = recorder(TREE_UPDATED)
        sources = recorder(SOURCE_UPDATED)

        report = engine.sync_from_source(BASE_SOURCE)

        assert report.outcome == SyncOutcome.COMMITTED
        assert len(report.added) == 3
        assert [c.id for c in trees[0].component_tree[0].walk()] == ["root", "btn", "text"]
        assert sources == []
        assert engine.baseline.source == BASE_SOURCE
        assert engine.phase == SyncPhase.IDLE

    def test_source_edit_updates_tree(self, engine, recorder):
        _bootstrap(engine)
        trees = recorder(TREE_UPDATED)
        edited = BASE_SOURCE.replace('label="A"', 'label="C"')

        report = engine.sync_from_source(edited)

        assert [op.target for op in report.source_changes] == [ChangeTarget.SOURCE]
        assert _find(trees[0].component_tree, "btn").props["label"] == LiteralValue(value="C")
        # the author's text is kept as the new baseline
        assert engine.baseline.source == edited

    def test_cosmetic_edit_changes_nothing(self, engine):
        _bootstrap(engine)
        report = engine.sync_from_source(BASE_SOURCE + "   \n\n")
        assert report.committed
        assert report.kept == []

    def test_unparseable_source_keeps_baseline(self, engine, recorder):
        _bootstrap(engine)
        errors = recorder(SYNC_ERROR)
        before = engine.baseline

        report = engine.sync_from_source("<div>")

        assert report.outcome == SyncOutcome.FAILED
        assert errors[0].error_type == "SourceParseError"
        assert errors[0].source.value == "source"
        assert engine.baseline is before


class TestSyncFromTree:
    """Tree edits flow into the source."""

    def test_tree_edit_regenerates_source(self, engine, recorder):
        tree = _with_label(_bootstrap(engine), "B")
        sources = recorder(SOURCE_UPDATED)
        trees = recorder(TREE_UPDATED)

        report = engine.sync_from_tree(tree)

        assert report.committed
        assert sources[0].code == BASE_SOURCE.replace('label="A"', 'label="B"')
        assert trees == []
        assert engine.baseline.source == sources[0].code
        assert "+++ committed" in report.source_diff

    def test_handlers_are_published_not_written(self, engine, recorder):
        def on_click(event):
            return event

        tree = _bootstrap(engine)
        _find(tree, "btn").props["onClick"] = ReferenceValue(handler=on_click)
        sources = recorder(SOURCE_UPDATED)

        engine.sync_from_tree(tree)

        assert 'onClick={handlers["btn.onClick"]}' in sources[0].code
        assert sources[0].handlers == {"btn.onClick": on_click}

    def test_baseline_is_isolated_from_caller_mutation(self, engine):
        tree = _with_label(_bootstrap(engine), "B")
        engine.sync_from_tree(tree)

        tree[0].type = "section"
        assert engine.baseline.tree[0].type == "div"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class TestConflicts:
    """The same component edited on both sides."""

    def _conflicting(self, engine):
        tree = _with_label(_bootstrap(engine), "B")
        engine.record_source(BASE_SOURCE.replace('label="A"', 'label="C"'))
        return tree

    def test_prefer_tree(self, engine, recorder):
        tree = self._conflicting(engine)
        sources = recorder(SOURCE_UPDATED)

        report = engine.sync_from_tree(tree)

        assert report.conflicts == ["btn"]
        assert [op.target for op in report.dropped] == [ChangeTarget.SOURCE]
        assert 'label="B"' in sources[0].code

    def test_prefer_source(self, engine, recorder):
        engine.set_config(conflict_strategy=ConflictStrategy.PREFER_SOURCE)
        tree = self._conflicting(engine)
        sources = recorder(SOURCE_UPDATED)
        trees = recorder(TREE_UPDATED)

        report = engine.sync_from_tree(tree)

        assert [op.target for op in report.dropped] == [ChangeTarget.TREE]
        assert 'label="C"' in sources[0].code
        assert _find(trees[0].component_tree, "btn").props["label"] == LiteralValue(value="C")

    def test_manual_stops_and_keeps_baseline(self, engine, recorder):
        engine.set_config(conflict_strategy="manual")
        tree = self._conflicting(engine)
        before = engine.baseline
        conflicts = recorder(SYNC_CONFLICT)
        sources = recorder(SOURCE_UPDATED)

        report = engine.sync_from_tree(tree)

        assert report.outcome == SyncOutcome.CONFLICT
        assert engine.phase == SyncPhase.AWAITING_RESOLUTION
        assert engine.baseline is before
        assert sources == []
        event = conflicts[0]
        assert event.conflicts == ["btn"]
        assert event.has_merge_conflicts
        assert "<<<<<<< TREE" in event.merge_preview
        assert engine.pending_conflict.conflicts == ["btn"]

    def test_resolve_pending(self, engine, recorder):
        engine.set_config(conflict_strategy="manual")
        engine.sync_from_tree(self._conflicting(engine))
        trees = recorder(TREE_UPDATED)

        report = engine.resolve_pending("preferSource")

        assert report.committed
        assert engine.pending_conflict is None
        assert engine.phase == SyncPhase.IDLE
        assert _find(trees[0].component_tree, "btn").props["label"] == LiteralValue(value="C")

    def test_source_recorded_while_pending_survives_resolution(self, engine, recorder):
        engine.set_config(conflict_strategy="manual")
        engine.sync_from_tree(self._conflicting(engine))
        typed = BASE_SOURCE.replace('label="A"', 'label="C"').replace(
            "Hello", "typed later"
        )
        engine.record_source(typed)

        assert engine.resolve_pending("preferTree").committed
        engine.set_config(conflict_strategy="preferTree")
        trees = recorder(TREE_UPDATED)
        report = engine.sync_from_source()

        assert report.committed
        text = _find(trees[0].component_tree, "text")
        assert text.props["children"] == LiteralValue(value="typed later")

    def test_resolve_pending_rejects_manual(self, engine):
        engine.set_config(conflict_strategy="manual")
        engine.sync_from_tree(self._conflicting(engine))
        with pytest.raises(ValueError, match="preferTree or preferSource"):
            engine.resolve_pending("manual")

    def test_resolve_without_pending(self, engine):
        with pytest.raises(ValueError, match="No pending conflict"):
            engine.resolve_pending("preferTree")

    def test_discard_pending(self, engine):
        engine.set_config(conflict_strategy="manual")
        engine.sync_from_tree(self._conflicting(engine))

        engine.discard_pending()

        assert engine.pending_conflict is None
        assert engine.phase == SyncPhase.IDLE


# ---------------------------------------------------------------------------
# Guard and failures
# ---------------------------------------------------------------------------


class TestSingleFlight:
    def test_reentrant_sync_is_skipped(self, engine, bus, caplog):
        tree = _with_label(_bootstrap(engine), "B")
        nested = []
        bus.subscribe(
            SOURCE_UPDATED, lambda event: nested.append(engine.sync_from_source(event.code))
        )

        with caplog.at_level(logging.INFO):
            report = engine.sync_from_tree(tree)

        assert report.committed
        assert nested[0].outcome == SyncOutcome.SKIPPED
        assert "already in progress" in caplog.text
        assert not engine.is_syncing

    def test_edits_recorded_during_a_cycle_are_kept(self, engine, bus, recorder):
        tree = _with_label(_bootstrap(engine), "B")
        typed = BASE_SOURCE.replace("Hello", "typed")
        bus.subscribe(SOURCE_UPDATED, lambda event: engine.record_source(typed))
        engine.sync_from_tree(tree)
        trees = recorder(TREE_UPDATED)

        engine.sync_from_source()

        text = _find(trees[0].component_tree, "text")
        assert text.props["children"] == LiteralValue(value="typed")


class TestFailures:
    def test_error_publishes_and_keeps_baseline(self, engine, recorder, monkeypatch):
        tree = _with_label(_bootstrap(engine), "B")
        before = engine.baseline
        errors = recorder(SYNC_ERROR)

        def explode(baseline, operations):
            raise RuntimeError("boom")

        monkeypatch.setattr("design_sync.sync.engine.apply_operations", explode)
        report = engine.sync_from_tree(tree)

        assert report.outcome == SyncOutcome.FAILED
        assert report.error == "boom"
        assert errors[0].error_type == "RuntimeError"
        assert engine.baseline is before
        assert not engine.is_syncing
        assert engine.phase == SyncPhase.IDLE

    def test_engine_recovers_after_failure(self, engine, monkeypatch):
        tree = _with_label(_bootstrap(engine), "B")
        monkeypatch.setattr(
            "design_sync.sync.engine.create_resolver",
            lambda strategy: (_ for _ in ()).throw(RuntimeError("boom")),
        )
        assert engine.sync_from_tree(tree).outcome == SyncOutcome.FAILED

        monkeypatch.setattr("design_sync.sync.engine.create_resolver", create_resolver)
        assert engine.sync_from_tree(tree).committed


# ---------------------------------------------------------------------------
# Events and configuration
# ---------------------------------------------------------------------------


class TestInboundEvents:
    """tree:changed / source:changed subscriptions."""

    def test_automatic_mode_syncs_on_source_change(self, engine, bus):
        bus.publish(SOURCE_CHANGED, {"content": BASE_SOURCE})
        assert engine.baseline.source == BASE_SOURCE

    def test_automatic_mode_syncs_on_tree_change(self, engine, bus, recorder):
        tree = _with_label(_bootstrap(engine), "B")
        sources = recorder(SOURCE_UPDATED)

        bus.publish(TREE_CHANGED, TreeChanged(tree=tree))

        assert 'label="B"' in sources[0].code

    def test_manual_mode_only_records(self, engine, bus, recorder):
        tree = _with_label(_bootstrap(engine), "B")
        engine.set_config(sync_mode=SyncMode.MANUAL)
        sources = recorder(SOURCE_UPDATED)
        before = engine.baseline

        bus.publish(TREE_CHANGED, {"tree": [c.model_dump() for c in tree]})
        assert sources == []
        assert engine.baseline is before

        engine.sync_from_tree()
        assert 'label="B"' in sources[0].code

    def test_malformed_payload_is_ignored(self, engine, bus, caplog):
        with caplog.at_level(logging.WARNING):
            bus.publish(TREE_CHANGED, {"tree": "not a tree"})
        assert "Ignoring malformed tree:changed payload" in caplog.text
        assert engine.baseline.committed_at is None

    async def test_outbound_events_arrive_on_next_tick(self, engine, recorder):
        trees = recorder(TREE_UPDATED)

        engine.sync_from_source(BASE_SOURCE)
        assert trees == []

        await asyncio.sleep(0)
        assert len(trees) == 1

    def test_close_unsubscribes(self, engine, bus):
        engine.close()
        assert bus.listener_count(TREE_CHANGED) == 0
        assert bus.listener_count(SOURCE_CHANGED) == 0


class TestSetConfig:
    def test_partial_dict_and_aliases(self, engine):
        config = engine.set_config({"conflictStrategy": "preferSource"})
        assert config.conflict_strategy == ConflictStrategy.PREFER_SOURCE
        assert engine.config is config

    def test_invalid_key_keeps_config(self, engine):
        before = engine.config
        with pytest.raises(ValidationError):
            engine.set_config(bogus=True)
        assert engine.config is before

    def test_language_change_rebuilds_differ(self, engine):
        engine.set_config(source_language="javascript", source_path="page.js")
        report = engine.sync_from_source(
            'export const page = <section data-component-id="s"><h1>Hi</h1></section>;'
        )
        assert report.committed
        assert [op.component.id for op in report.added] == ["s", "page.js#0.0"]

    def test_html_is_not_a_live_source_language(self, engine):
        with pytest.raises(ValidationError, match="jsx or javascript"):
            engine.set_config(source_language="html")
        assert engine.config.source_language == SourceLanguage.JSX
