"""Event names and payload models exchanged over the session bus.

Inbound (published by canvas / editor, consumed by the engine):

- ``tree:changed``   -> ``TreeChanged``
- ``source:changed`` -> ``SourceChanged``

Outbound (published by the engine):

- ``source:updated`` -> ``SourceUpdated``
- ``tree:updated``   -> ``TreeUpdated``
- ``sync:conflict``  -> ``SyncConflict``
- ``sync:error``     -> ``SyncError``

Inbound payloads may be plain dicts; the engine validates them with these
models and ignores malformed ones.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from design_sync.models import VisualComponent
from design_sync.sync.models import ChangeOperation, SyncDirection

TREE_CHANGED = "tree:changed"
SOURCE_CHANGED = "source:changed"
SOURCE_UPDATED = "source:updated"
TREE_UPDATED = "tree:updated"
SYNC_CONFLICT = "sync:conflict"
SYNC_ERROR = "sync:error"


class TreeChanged(BaseModel):
    """The canvas edited the component tree."""

    tree: list[VisualComponent]

    model_config = {"frozen": True}


class SourceChanged(BaseModel):
    """The editor changed the source text."""

    content: str

    model_config = {"frozen": True}


class SourceUpdated(BaseModel):
    """New source text generated from the merged tree.

    Attributes:
        code: Generated markup.
        stylesheet: Rules collected from component styles.
        handlers: Handler id -> callable referenced by ``code``.
    """

    code: str
    stylesheet: str = ""
    handlers: dict[str, Callable[..., Any]] = Field(default_factory=dict)

    model_config = {"frozen": True}


class TreeUpdated(BaseModel):
    """New component tree for the canvas."""

    component_tree: list[VisualComponent]

    model_config = {"frozen": True}


class SyncConflict(BaseModel):
    """A cycle stopped for manual resolution.

    Attributes:
        source: Side whose edit started the cycle.
        tree_changes: Operations observed on the tree side.
        source_changes: Operations observed on the source side.
        conflicts: Component ids edited on both sides.
        merge_preview: Three-way text merge of baseline, tree-generated and
            live source, with conflict markers where the sides disagree.
        has_merge_conflicts: Whether ``merge_preview`` contains markers.
    """

    source: SyncDirection
    tree_changes: list[ChangeOperation] = []
    source_changes: list[ChangeOperation] = []
    conflicts: list[str] = []
    merge_preview: str = ""
    has_merge_conflicts: bool = False

    model_config = {"frozen": True}


class SyncError(BaseModel):
    """A cycle failed; the baseline was left untouched."""

    source: SyncDirection
    error: str
    error_type: str

    model_config = {"frozen": True}
