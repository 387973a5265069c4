"""Conflict resolution strategies for the sync engine.

A conflict is a component id touched by operations on both the tree side
and the source side in the same cycle. Every non-conflicting operation is
kept; for conflicting ids one side wins:

- ``PreferTreeResolver``: keep the tree-side operations.
- ``PreferSourceResolver``: keep the source-side operations.

The ``manual`` strategy is never resolved in-process: the engine stops the
cycle and publishes ``sync:conflict`` instead, so ``create_resolver()``
rejects it.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel

from design_sync.config_schema import ConflictStrategy
from design_sync.sync.models import (
    ChangeOperation,
    ChangeTarget,
    operation_component_id,
)

logger = logging.getLogger(__name__)


class Resolution(BaseModel):
    """Outcome of resolving one cycle's operations.

    Attributes:
        kept: Operations to apply, tree side first, each in observed order.
        dropped: Operations discarded in favour of the other side.
        conflicts: Sorted ids edited on both sides.
    """

    kept: list[ChangeOperation] = []
    dropped: list[ChangeOperation] = []
    conflicts: list[str] = []

    model_config = {"frozen": True}


def find_conflicts(
    tree_ops: list[Any], source_ops: list[Any]
) -> set[str]:
    """Ids that appear in operations on both sides."""
    tree_ids = {operation_component_id(op) for op in tree_ops}
    source_ids = {operation_component_id(op) for op in source_ops}
    return (tree_ids & source_ids) - {None}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(
        self, tree_ops: list[Any], source_ops: list[Any]
    ) -> Resolution:
        """Merge both sides' operations into one list to apply.

        Args:
            tree_ops: Operations observed on the tree side.
            source_ops: Operations observed on the source side.

        Returns:
            The kept and dropped operations plus the conflicting ids.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Preference resolvers
# ---------------------------------------------------------------------------


class _PreferenceResolver:
    """Keeps the preferred side's operations for conflicting ids."""

    preferred: ChangeTarget

    def resolve(
        self, tree_ops: list[Any], source_ops: list[Any]
    ) -> Resolution:
        conflicts = find_conflicts(tree_ops, source_ops)
        kept: list[Any] = []
        dropped: list[Any] = []

        for side, operations in (
            (ChangeTarget.TREE, tree_ops),
            (ChangeTarget.SOURCE, source_ops),
        ):
            for op in operations:
                component_id = operation_component_id(op)
                if component_id is None:
                    logger.warning(
                        "Operation without a component id passed through: %s",
                        op.kind,
                    )
                    kept.append(op)
                elif component_id not in conflicts or side == self.preferred:
                    kept.append(op)
                else:
                    dropped.append(op)

        if conflicts:
            logger.info(
                "Resolved %d conflicting component(s) in favour of %s",
                len(conflicts),
                self.preferred.value,
            )
        return Resolution(kept=kept, dropped=dropped, conflicts=sorted(conflicts))


class PreferTreeResolver(_PreferenceResolver):
    """Always resolve conflicts in favour of the tree."""

    preferred = ChangeTarget.TREE


class PreferSourceResolver(_PreferenceResolver):
    """Always resolve conflicts in favour of the source."""

    preferred = ChangeTarget.SOURCE


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[ConflictStrategy, type] = {
    ConflictStrategy.PREFER_TREE: PreferTreeResolver,
    ConflictStrategy.PREFER_SOURCE: PreferSourceResolver,
}


def create_resolver(strategy: str | ConflictStrategy) -> ConflictResolver:
    """Create a conflict resolver for the given strategy.

    Args:
        strategy: ``"preferTree"`` or ``"preferSource"`` (or the enum).

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy is unknown or ``"manual"``.
    """
    try:
        key = ConflictStrategy(strategy)
    except ValueError:
        key = None
    cls = _STRATEGY_MAP.get(key) if key is not None else None
    if cls is None:
        valid = sorted(s.value for s in _STRATEGY_MAP)
        raise ValueError(
            f"No in-process resolver for conflict strategy '{strategy}'. "
            f"Valid strategies: {valid}"
        )
    return cls()  # type: ignore[return-value]
