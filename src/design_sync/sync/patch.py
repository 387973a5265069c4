"""Apply resolved change operations to a baseline tree.

The baseline is flattened into slots (component copy + parent + position),
operations edit the slots, and the tree is rebuilt by grouping slots under
their parents. The input tree is never mutated. Applying
``diff_trees(tree, baseline)`` onto ``baseline`` reproduces ``tree``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from design_sync.models import VisualComponent
from design_sync.sync.differ import build_structure_map
from design_sync.sync.models import (
    AddOperation,
    DeleteOperation,
    MoveOperation,
    UpdateOperation,
)

logger = logging.getLogger(__name__)

# Position given to components that lost their parent
_END = 1 << 30


@dataclass
class _Slot:
    component: VisualComponent
    parent_id: str | None
    index: int
    order: int


def apply_operations(
    baseline: list[VisualComponent], operations: list[Any]
) -> list[VisualComponent]:
    """Return a new tree: ``baseline`` with ``operations`` applied.

    Deletes are applied first, then adds, updates and moves. Children are
    ordered by their recorded index; ties keep baseline order, then
    insertion order. Components whose parent no longer exists are
    re-attached at root level.

    Args:
        baseline: Root components of the committed tree (not modified).
        operations: Operations to apply, typically ``Resolution.kept``.

    Returns:
        Root components of the patched tree, built from fresh copies.
    """
    slots: dict[str, _Slot] = {}
    for order, (component_id, structure) in enumerate(
        build_structure_map(baseline).items()
    ):
        slots[component_id] = _Slot(
            component=structure.component.detached(),
            parent_id=structure.parent_id,
            index=structure.index,
            order=order,
        )
    next_order = len(slots)

    for op in _ordered(operations):
        if isinstance(op, DeleteOperation):
            if slots.pop(op.component_id or "", None) is None:
                logger.debug("Delete of unknown component %s", op.component_id)
        elif isinstance(op, AddOperation):
            if op.component.id in slots:
                logger.warning(
                    "Add of existing component %s replaces it", op.component.id
                )
            slots[op.component.id] = _Slot(
                component=op.component.detached(),
                parent_id=op.parent_id,
                index=op.index,
                order=next_order,
            )
            next_order += 1
        elif isinstance(op, UpdateOperation):
            slot = slots.get(op.component_id or "")
            if slot is None:
                logger.warning(
                    "Update of missing component %s skipped", op.component_id
                )
                continue
            _apply_update(slot.component, op)
        elif isinstance(op, MoveOperation):
            slot = slots.get(op.component_id or "")
            if slot is None:
                logger.warning(
                    "Move of missing component %s skipped", op.component_id
                )
                continue
            slot.parent_id = op.new_parent_id
            slot.index = op.new_index

    return _assemble(slots)


def _ordered(operations: list[Any]) -> list[Any]:
    rank = {DeleteOperation: 0, AddOperation: 1, UpdateOperation: 2, MoveOperation: 3}
    return sorted(operations, key=lambda op: rank.get(type(op), 4))


def _apply_update(component: VisualComponent, op: UpdateOperation) -> None:
    for key in op.removed:
        component.props.pop(key, None)
    component.props.update(op.changes)
    if op.new_type is not None:
        component.type = op.new_type
    for name, value in op.layout.items():
        setattr(component, name, value)


def _assemble(slots: dict[str, _Slot]) -> list[VisualComponent]:
    for component_id, slot in slots.items():
        if slot.parent_id is not None and slot.parent_id not in slots:
            logger.warning(
                "Parent %s of %s is gone, attaching at root level",
                slot.parent_id,
                component_id,
            )
            slot.parent_id = None
            slot.index = _END

    while True:
        children: dict[str | None, list[_Slot]] = defaultdict(list)
        for slot in slots.values():
            children[slot.parent_id].append(slot)
        for group in children.values():
            group.sort(key=lambda slot: (slot.index, slot.order))

        reachable: set[str] = set()
        pending = list(children[None])
        while pending:
            slot = pending.pop()
            reachable.add(slot.component.id)
            pending.extend(children.get(slot.component.id, ()))

        cut_off = [
            slot for slot in slots.values() if slot.component.id not in reachable
        ]
        if not cut_off:
            break
        # only a parent cycle can hide components from the roots
        first = min(cut_off, key=lambda slot: slot.order)
        logger.warning(
            "Component %s is part of a parent cycle, attaching at root level",
            first.component.id,
        )
        first.parent_id = None
        first.index = _END

    for slot in slots.values():
        slot.component.children = [
            child.component for child in children.get(slot.component.id, ())
        ]
    return [slot.component for slot in children[None]]
