"""Structural differ: what changed on each side since the baseline.

Each tree is flattened once into ``id -> ComponentStructure`` with a single
depth-first walk, then the two maps are compared:

- id only in the current tree -> ``AddOperation``
- id in both, props / type / placement differ -> ``UpdateOperation``
- id in both, parent or position differ -> ``MoveOperation`` (separately)
- id only in the baseline -> ``DeleteOperation``

The source side is compared the same way after parsing, but only when its
content hash differs from the baseline hash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from design_sync.converters.common import COMPONENT_ID_ATTR, SourceParseError
from design_sync.converters.source_to_tree import parse_documents
from design_sync.models import (
    PropValue,
    SourceDocument,
    SourceLanguage,
    VisualComponent,
)
from design_sync.sync.models import (
    AddOperation,
    ChangeOperation,
    ChangeTarget,
    DeleteOperation,
    MoveOperation,
    UpdateOperation,
)
from design_sync.sync.state import BaselineState, content_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentStructure:
    """Where a component sits in its tree."""

    component: VisualComponent
    parent_id: str | None
    index: int


def build_structure_map(
    roots: list[VisualComponent],
) -> dict[str, ComponentStructure]:
    """Flatten a tree into ``id -> ComponentStructure`` in pre-order."""
    structure: dict[str, ComponentStructure] = {}

    def visit(
        components: list[VisualComponent], parent_id: str | None
    ) -> None:
        for index, component in enumerate(components):
            if component.id in structure:
                logger.warning(
                    "Duplicate component id %r in tree, later one wins",
                    component.id,
                )
            structure[component.id] = ComponentStructure(
                component=component, parent_id=parent_id, index=index
            )
            visit(component.children, component.id)

    visit(roots, None)
    return structure


def diff_props(
    old: dict[str, PropValue], new: dict[str, PropValue]
) -> tuple[dict[str, PropValue], list[str]]:
    """Compare two prop maps over the union of their keys.

    ``data-component-id`` is identity, not a prop, and is never compared.

    Returns:
        ``(changes, removed)``: added or changed props with their new
        values, and the names of props that disappeared.
    """
    changes: dict[str, PropValue] = {}
    removed: list[str] = []
    for key in dict.fromkeys([*old, *new]):
        if key == COMPONENT_ID_ATTR:
            continue
        if key not in new:
            removed.append(key)
        elif key not in old or old[key] != new[key]:
            changes[key] = new[key]
    return changes, removed


def diff_component(
    old: VisualComponent, new: VisualComponent, target: ChangeTarget
) -> UpdateOperation | None:
    """Update operation for one component, or None if it is unchanged."""
    changes, removed = diff_props(old.props, new.props)
    new_type = new.type if new.type != old.type else None
    old_placement = old.placement()
    layout = {
        name: value
        for name, value in new.placement().items()
        if value != old_placement[name]
    }
    if not changes and not removed and new_type is None and not layout:
        return None
    return UpdateOperation(
        target=target,
        component_id=new.id,
        changes=changes,
        removed=removed,
        new_type=new_type,
        layout=layout,
    )


def diff_trees(
    current: list[VisualComponent],
    baseline: list[VisualComponent],
    target: ChangeTarget,
) -> list[ChangeOperation]:
    """Operations that turn ``baseline`` into ``current``.

    Args:
        current: Root components as they are now.
        baseline: Root components as last committed.
        target: Side tag stamped on every operation.

    Returns:
        Adds, updates and moves in current-tree order, then deletes in
        baseline order.
    """
    current_map = build_structure_map(current)
    baseline_map = build_structure_map(baseline)
    operations: list[ChangeOperation] = []

    for component_id, now in current_map.items():
        before = baseline_map.get(component_id)
        if before is None:
            operations.append(
                AddOperation(
                    target=target,
                    component=now.component.detached(),
                    parent_id=now.parent_id,
                    index=now.index,
                )
            )
            continue

        update = diff_component(before.component, now.component, target)
        if update is not None:
            operations.append(update)
        if before.parent_id != now.parent_id or before.index != now.index:
            operations.append(
                MoveOperation(
                    target=target,
                    component_id=component_id,
                    new_parent_id=now.parent_id,
                    new_index=now.index,
                )
            )

    for component_id in baseline_map:
        if component_id not in current_map:
            operations.append(
                DeleteOperation(target=target, component_id=component_id)
            )
    return operations


class StructuralDiffer:
    """Diffs the tree and the source text against a baseline.

    Args:
        language: Language the source text is written in.
        source_path: Document name used for derived component ids.
    """

    def __init__(
        self,
        language: SourceLanguage = SourceLanguage.JSX,
        source_path: str = "index.jsx",
    ) -> None:
        self.language = language
        self.source_path = source_path

    def diff(
        self,
        tree: list[VisualComponent],
        source: str,
        baseline: BaselineState,
    ) -> list[ChangeOperation]:
        """Tree-side operations followed by source-side operations."""
        operations = diff_trees(tree, baseline.tree, ChangeTarget.TREE)
        operations.extend(self.diff_source(source, baseline))
        return operations

    def diff_source(
        self, source: str, baseline: BaselineState
    ) -> list[ChangeOperation]:
        """Source-side operations; empty without parsing when unchanged.

        Raises:
            SourceParseError: If ``source`` cannot be parsed.
        """
        if content_hash(source) == baseline.source_hash:
            return []
        current = self.parse(source)
        previous = self.parse(baseline.source)
        return diff_trees(current, previous, ChangeTarget.SOURCE)

    def parse(self, text: str) -> list[VisualComponent]:
        """Parse source text in the configured language.

        Raises:
            SourceParseError: If the document fails to parse.
        """
        document = SourceDocument(
            path=self.source_path, content=text, language=self.language
        )
        result = parse_documents([document])
        if result.skipped:
            raise SourceParseError(
                f"Could not parse {self.source_path} as {self.language.value}"
            )
        return result.components
