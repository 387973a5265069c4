"""Pydantic models for the tree <-> source sync engine.

Defines the core data contracts used across all sync modules:

- ``ChangeTarget``: Which side an operation was observed on.
- ``AddOperation`` / ``UpdateOperation`` / ``DeleteOperation`` /
  ``MoveOperation``: Structural edits (``ChangeOperation``).
- ``SyncDirection``, ``SyncPhase``, ``SyncOutcome``: Cycle bookkeeping.
- ``SyncReport``: Outcome of one sync cycle.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from design_sync.models import PropValue, VisualComponent


class ChangeTarget(str, Enum):
    """Side on which a change was observed."""

    TREE = "tree"
    SOURCE = "source"


class SyncDirection(str, Enum):
    """Side whose edit started a sync cycle."""

    TREE = "tree"
    SOURCE = "source"


class SyncPhase(str, Enum):
    """Lifecycle of the engine between and during cycles."""

    IDLE = "idle"
    SYNCING = "syncing"
    COMMITTED = "committed"
    AWAITING_RESOLUTION = "awaiting_resolution"


class SyncOutcome(str, Enum):
    """How a sync cycle ended."""

    COMMITTED = "committed"
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Change operations
# ---------------------------------------------------------------------------


class AddOperation(BaseModel):
    """A component that exists now but not in the baseline.

    Attributes:
        target: Side the change was observed on.
        component: The new component, without its children (each child
            gets its own operation).
        parent_id: Id of the parent, or None for a root component.
        index: Position among the parent's children.
    """

    kind: Literal["add"] = "add"
    target: ChangeTarget
    component: VisualComponent
    parent_id: str | None = None
    index: int = 0

    model_config = {"frozen": True}


class UpdateOperation(BaseModel):
    """Changed props, type or placement of an existing component.

    Attributes:
        target: Side the change was observed on.
        component_id: Affected component.
        changes: Only the props that were added or changed.
        removed: Props that disappeared.
        new_type: New component type when the tag changed.
        layout: Changed placement fields (``x``, ``y``, ``z_index``).
    """

    kind: Literal["update"] = "update"
    target: ChangeTarget
    component_id: str | None
    changes: dict[str, PropValue] = Field(default_factory=dict)
    removed: list[str] = Field(default_factory=list)
    new_type: str | None = None
    layout: dict[str, int | float | None] = Field(default_factory=dict)

    model_config = {"frozen": True}


class DeleteOperation(BaseModel):
    """A baseline component that no longer exists."""

    kind: Literal["delete"] = "delete"
    target: ChangeTarget
    component_id: str | None

    model_config = {"frozen": True}


class MoveOperation(BaseModel):
    """A component whose parent or position changed."""

    kind: Literal["move"] = "move"
    target: ChangeTarget
    component_id: str | None
    new_parent_id: str | None = None
    new_index: int = 0

    model_config = {"frozen": True}


ChangeOperation = Annotated[
    Union[AddOperation, UpdateOperation, DeleteOperation, MoveOperation],
    Field(discriminator="kind"),
]


def operation_component_id(operation: Any) -> str | None:
    """Id of the component an operation affects, or None if unusable."""
    if isinstance(operation, AddOperation):
        component_id = operation.component.id
    else:
        component_id = getattr(operation, "component_id", None)
    return component_id or None


# ---------------------------------------------------------------------------
# Cycle report
# ---------------------------------------------------------------------------


class SyncReport(BaseModel):
    """Outcome of one sync cycle.

    Attributes:
        direction: Side whose edit started the cycle.
        outcome: How the cycle ended.
        tree_changes: Operations observed on the tree side.
        source_changes: Operations observed on the source side.
        kept: Operations applied to the baseline.
        dropped: Operations discarded by conflict resolution.
        conflicts: Component ids edited on both sides.
        source_diff: Unified diff from the old to the new baseline source.
        error: Error message when the cycle failed.
        started_at: ISO 8601 timestamp when the cycle started.
        completed_at: ISO 8601 timestamp when the cycle ended.
    """

    direction: SyncDirection
    outcome: SyncOutcome
    tree_changes: list[ChangeOperation] = []
    source_changes: list[ChangeOperation] = []
    kept: list[ChangeOperation] = []
    dropped: list[ChangeOperation] = []
    conflicts: list[str] = []
    source_diff: str = ""
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def committed(self) -> bool:
        return self.outcome == SyncOutcome.COMMITTED

    def _kept_of(self, kind: str) -> list[Any]:
        return [op for op in self.kept if op.kind == kind]

    @property
    def added(self) -> list[AddOperation]:
        """Kept operations that add components."""
        return self._kept_of("add")

    @property
    def updated(self) -> list[UpdateOperation]:
        """Kept operations that update components."""
        return self._kept_of("update")

    @property
    def deleted(self) -> list[DeleteOperation]:
        """Kept operations that delete components."""
        return self._kept_of("delete")

    @property
    def moved(self) -> list[MoveOperation]:
        """Kept operations that move components."""
        return self._kept_of("move")

    def summary(self) -> str:
        """Format a human-readable summary of the cycle.

        Returns:
            Multi-line summary string with counts by operation kind.
        """
        lines = [
            f"Sync from {self.direction.value}: {self.outcome.value}",
            f"  Tree changes:   {len(self.tree_changes)}",
            f"  Source changes: {len(self.source_changes)}",
            f"  Added:          {len(self.added)}",
            f"  Updated:        {len(self.updated)}",
            f"  Deleted:        {len(self.deleted)}",
            f"  Moved:          {len(self.moved)}",
            f"  Dropped:        {len(self.dropped)}",
            f"  Conflicts:      {len(self.conflicts)}",
        ]
        return "\n".join(lines)
