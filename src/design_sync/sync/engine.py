"""Core sync engine that keeps the component tree and its source in step.

The ``SyncEngine`` ties together the converters, differ, resolver, patcher
and merger into one sync cycle. A cycle:

1. Takes a snapshot of both sides (the edited side plus the latest known
   state of the other side).
2. Diffs each side against the baseline.
3. Under the ``manual`` strategy, publishes ``sync:conflict`` and stops,
   leaving the baseline untouched.
4. Otherwise resolves conflicting operations and applies the kept ones to
   the baseline tree.
5. Serializes the merged tree and publishes ``source:updated`` and/or
   ``tree:updated``.
6. Commits the new baseline and returns a ``SyncReport``.

Cycles are single-flight: a sync requested while one is running is
dropped. Any failure publishes ``sync:error`` and leaves the baseline as
it was.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from design_sync.config_schema import ConflictStrategy, SyncConfig, SyncMode
from design_sync.converters.tree_to_source import tree_to_source_roots
from design_sync.core.context import SyncContext
from design_sync.models import VisualComponent
from design_sync.sync.differ import StructuralDiffer
from design_sync.sync.events import (
    SOURCE_CHANGED,
    SOURCE_UPDATED,
    SYNC_CONFLICT,
    SYNC_ERROR,
    TREE_CHANGED,
    TREE_UPDATED,
    SourceChanged,
    SourceUpdated,
    SyncConflict,
    SyncError,
    TreeChanged,
    TreeUpdated,
)
from design_sync.sync.merger import generate_diff, merge_preview
from design_sync.sync.models import (
    ChangeTarget,
    SyncDirection,
    SyncOutcome,
    SyncPhase,
    SyncReport,
)
from design_sync.sync.patch import apply_operations
from design_sync.sync.resolver import create_resolver, find_conflicts
from design_sync.sync.state import BaselineState

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PendingConflict:
    """Snapshot of a cycle stopped for manual resolution."""

    direction: SyncDirection
    tree: list[VisualComponent]
    source: str
    conflicts: list[str]


class SyncEngine:
    """Keep a visual component tree and its source text consistent.

    Args:
        context: Session context; the engine listens and publishes on
            ``context.bus``.
        config: Sync settings; defaults to ``SyncConfig()``.
    """

    def __init__(
        self, context: SyncContext, config: SyncConfig | None = None
    ) -> None:
        self.context = context
        self.config = config or SyncConfig()
        self.baseline = BaselineState.empty()
        self.phase = SyncPhase.IDLE
        self.pending_conflict: PendingConflict | None = None

        self._syncing = False
        self._latest_tree: list[VisualComponent] | None = None
        self._latest_source: str | None = None
        self._differ = self._make_differ()
        self._unsubscribers: list[Callable[[], None]] = [
            context.bus.subscribe(TREE_CHANGED, self._on_tree_changed),
            context.bus.subscribe(SOURCE_CHANGED, self._on_source_changed),
        ]
        logger.info(
            "Sync engine ready for session %s (mode=%s, strategy=%s)",
            context.session_id,
            self.config.sync_mode.value,
            self.config.conflict_strategy.value,
        )

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    # ------------------------------------------------------------------
    # Configuration and live state
    # ------------------------------------------------------------------

    def set_config(
        self, partial: dict[str, Any] | None = None, **changes: Any
    ) -> SyncConfig:
        """Merge ``partial`` / keyword changes into the config.

        Raises:
            pydantic.ValidationError: If a value or key is invalid; the
                current config is kept.
        """
        self.config = self.config.merged({**(partial or {}), **changes})
        self._differ = self._make_differ()
        logger.info(
            "Sync config updated (mode=%s, strategy=%s, language=%s)",
            self.config.sync_mode.value,
            self.config.conflict_strategy.value,
            self.config.source_language.value,
        )
        return self.config

    def record_tree(self, tree: list[VisualComponent]) -> None:
        """Remember the canvas tree without starting a cycle."""
        self._latest_tree = list(tree)

    def record_source(self, text: str) -> None:
        """Remember the editor text without starting a cycle."""
        self._latest_source = text

    def close(self) -> None:
        """Stop listening to inbound events."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ------------------------------------------------------------------
    # Sync entry points
    # ------------------------------------------------------------------

    def sync_from_tree(
        self, tree: list[VisualComponent] | None = None
    ) -> SyncReport:
        """Push tree edits into the source.

        Args:
            tree: Edited root components; defaults to the latest recorded
                tree.

        Returns:
            The cycle report. A call made while another cycle runs is
            skipped.
        """
        if tree is not None:
            self.record_tree(tree)
        return self._guarded(
            SyncDirection.TREE,
            self._tree_snapshot(),
            self._source_snapshot(),
            self.config.conflict_strategy,
        )

    def sync_from_source(self, text: str | None = None) -> SyncReport:
        """Pull source edits into the tree.

        Args:
            text: Edited source text; defaults to the latest recorded text.

        Returns:
            The cycle report. A call made while another cycle runs is
            skipped.
        """
        if text is not None:
            self.record_source(text)
        return self._guarded(
            SyncDirection.SOURCE,
            self._tree_snapshot(),
            self._source_snapshot(),
            self.config.conflict_strategy,
        )

    def resolve_pending(self, strategy: str | ConflictStrategy) -> SyncReport:
        """Re-run the cycle stopped for manual resolution.

        Args:
            strategy: ``preferTree`` or ``preferSource``.

        Raises:
            ValueError: If nothing is pending or the strategy is ``manual``.
        """
        pending = self.pending_conflict
        if pending is None:
            raise ValueError("No pending conflict to resolve")
        strategy = ConflictStrategy(strategy)
        if strategy == ConflictStrategy.MANUAL:
            raise ValueError("A pending conflict needs preferTree or preferSource")
        logger.info(
            "Resolving pending conflict from %s with %s",
            pending.direction.value,
            strategy.value,
        )
        return self._guarded(
            pending.direction, pending.tree, pending.source, strategy
        )

    def discard_pending(self) -> None:
        """Drop the pending manual conflict; the baseline stays as it was."""
        if self.pending_conflict is not None:
            logger.info(
                "Discarding pending conflict from %s",
                self.pending_conflict.direction.value,
            )
        self.pending_conflict = None
        if self.phase == SyncPhase.AWAITING_RESOLUTION:
            self.phase = SyncPhase.IDLE

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _guarded(
        self,
        direction: SyncDirection,
        tree: list[VisualComponent],
        source: str,
        strategy: ConflictStrategy,
    ) -> SyncReport:
        started_at = _now()
        if self._syncing:
            logger.info(
                "Sync already in progress, skipping %s -> %s sync",
                direction.value,
                _other(direction),
            )
            return SyncReport(
                direction=direction,
                outcome=SyncOutcome.SKIPPED,
                started_at=started_at,
                completed_at=_now(),
            )

        self._syncing = True
        previous_phase = self.phase
        self.phase = SyncPhase.SYNCING
        try:
            return self._run_cycle(direction, tree, source, strategy, started_at)
        except Exception as exc:
            logger.exception(
                "Error during %s -> %s sync", direction.value, _other(direction)
            )
            self.context.bus.publish(
                SYNC_ERROR,
                SyncError(
                    source=direction, error=str(exc), error_type=type(exc).__name__
                ),
            )
            if previous_phase == SyncPhase.AWAITING_RESOLUTION:
                self.phase = previous_phase
            return SyncReport(
                direction=direction,
                outcome=SyncOutcome.FAILED,
                error=str(exc),
                started_at=started_at,
                completed_at=_now(),
            )
        finally:
            self._syncing = False
            if self.phase in (SyncPhase.SYNCING, SyncPhase.COMMITTED):
                self.phase = SyncPhase.IDLE

    def _run_cycle(
        self,
        direction: SyncDirection,
        tree: list[VisualComponent],
        source: str,
        strategy: ConflictStrategy,
        started_at: str,
    ) -> SyncReport:
        operations = self._differ.diff(tree, source, self.baseline)
        tree_ops = [op for op in operations if op.target == ChangeTarget.TREE]
        source_ops = [op for op in operations if op.target == ChangeTarget.SOURCE]
        logger.debug(
            "%s -> %s: %d tree op(s), %d source op(s)",
            direction.value,
            _other(direction),
            len(tree_ops),
            len(source_ops),
        )

        if strategy == ConflictStrategy.MANUAL:
            return self._await_resolution(
                direction, tree, source, tree_ops, source_ops, started_at
            )

        resolution = create_resolver(strategy).resolve(tree_ops, source_ops)
        merged_tree = apply_operations(self.baseline.tree, resolution.kept)
        kept_tree = any(op.target == ChangeTarget.TREE for op in resolution.kept)
        kept_source = any(
            op.target == ChangeTarget.SOURCE for op in resolution.kept
        )
        dropped_tree = any(
            op.target == ChangeTarget.TREE for op in resolution.dropped
        )
        dropped_source = any(
            op.target == ChangeTarget.SOURCE for op in resolution.dropped
        )
        generated = tree_to_source_roots(merged_tree)

        bus = self.context.bus
        if direction == SyncDirection.TREE or kept_tree or dropped_source:
            new_source = generated.markup
            bus.publish(
                SOURCE_UPDATED,
                SourceUpdated(
                    code=generated.markup,
                    stylesheet=generated.stylesheet,
                    handlers=generated.handlers,
                ),
            )
        else:
            # nothing from the tree side to fold in; keep the author's text
            new_source = source
        if direction == SyncDirection.SOURCE or kept_source or dropped_tree:
            bus.publish(
                TREE_UPDATED,
                TreeUpdated(
                    component_tree=[
                        component.model_copy(deep=True) for component in merged_tree
                    ]
                ),
            )

        source_diff = generate_diff(
            self.baseline.source, new_source, "baseline", "committed"
        )
        self.baseline = BaselineState.create(merged_tree, new_source)
        # edits recorded after this cycle took its inputs stay pending
        if self._latest_tree is None or self._latest_tree == tree:
            self._latest_tree = merged_tree
        if self._latest_source is None or self._latest_source == source:
            self._latest_source = new_source
        self.pending_conflict = None
        self.phase = SyncPhase.COMMITTED
        logger.info(
            "Committed %s -> %s sync: %d kept, %d dropped, %d conflict(s)",
            direction.value,
            _other(direction),
            len(resolution.kept),
            len(resolution.dropped),
            len(resolution.conflicts),
        )
        return SyncReport(
            direction=direction,
            outcome=SyncOutcome.COMMITTED,
            tree_changes=tree_ops,
            source_changes=source_ops,
            kept=resolution.kept,
            dropped=resolution.dropped,
            conflicts=resolution.conflicts,
            source_diff=source_diff,
            started_at=started_at,
            completed_at=_now(),
        )

    def _await_resolution(
        self,
        direction: SyncDirection,
        tree: list[VisualComponent],
        source: str,
        tree_ops: list[Any],
        source_ops: list[Any],
        started_at: str,
    ) -> SyncReport:
        conflicts = sorted(find_conflicts(tree_ops, source_ops))
        preview, has_markers = merge_preview(
            self.baseline.source, tree_to_source_roots(tree).markup, source
        )
        self.pending_conflict = PendingConflict(
            direction=direction,
            tree=[component.model_copy(deep=True) for component in tree],
            source=source,
            conflicts=conflicts,
        )
        self.phase = SyncPhase.AWAITING_RESOLUTION
        logger.warning(
            "Manual conflict resolution required for %s -> %s sync "
            "(%d conflicting component(s))",
            direction.value,
            _other(direction),
            len(conflicts),
        )
        self.context.bus.publish(
            SYNC_CONFLICT,
            SyncConflict(
                source=direction,
                tree_changes=tree_ops,
                source_changes=source_ops,
                conflicts=conflicts,
                merge_preview=preview,
                has_merge_conflicts=has_markers,
            ),
        )
        return SyncReport(
            direction=direction,
            outcome=SyncOutcome.CONFLICT,
            tree_changes=tree_ops,
            source_changes=source_ops,
            conflicts=conflicts,
            started_at=started_at,
            completed_at=_now(),
        )

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def _on_tree_changed(self, payload: Any) -> None:
        try:
            event = TreeChanged.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s payload: %s", TREE_CHANGED, exc)
            return
        if self.config.sync_mode == SyncMode.AUTOMATIC:
            self.sync_from_tree(event.tree)
        else:
            self.record_tree(event.tree)

    def _on_source_changed(self, payload: Any) -> None:
        try:
            event = SourceChanged.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s payload: %s", SOURCE_CHANGED, exc)
            return
        if self.config.sync_mode == SyncMode.AUTOMATIC:
            self.sync_from_source(event.content)
        else:
            self.record_source(event.content)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _make_differ(self) -> StructuralDiffer:
        return StructuralDiffer(
            language=self.config.source_language,
            source_path=self.config.source_path,
        )

    def _tree_snapshot(self) -> list[VisualComponent]:
        if self._latest_tree is not None:
            return list(self._latest_tree)
        return self.baseline.tree

    def _source_snapshot(self) -> str:
        if self._latest_source is not None:
            return self._latest_source
        return self.baseline.source


def _other(direction: SyncDirection) -> str:
    return "source" if direction == SyncDirection.TREE else "tree"
