"""Bidirectional tree <-> source sync engine.

Public API for keeping a visual component tree and its markup source
consistent while both are edited in one session.

Architecture
------------
The engine uses **baseline-based reconciliation**: each side is compared
against the last committed baseline, never directly against the other
side. Edits on different components merge cleanly; a component edited on
both sides is a conflict settled by the configured strategy.

Modules:

- ``engine``    -- ``SyncEngine``: orchestrates one sync cycle.
- ``state``     -- ``BaselineState``, ``content_hash``.
- ``differ``    -- ``StructuralDiffer``, ``diff_trees``: structural diffs.
- ``resolver``  -- Conflict resolution strategies (preferTree,
  preferSource).
- ``patch``     -- ``apply_operations``: rebuild a tree from a baseline and
  resolved operations.
- ``merger``    -- Three-way text merge preview via ``merge3``.
- ``events``    -- Event names and payload models.
- ``models``    -- Change operations and ``SyncReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from design_sync.core import SyncContext
    from design_sync.sync import SyncEngine, format_sync_report
    from design_sync.sync.events import SOURCE_UPDATED

    context = SyncContext()
    context.bus.subscribe(SOURCE_UPDATED, lambda event: print(event.code))

    engine = SyncEngine(context)
    report = engine.sync_from_source('<div data-component-id="root">Hi</div>')
    print(format_sync_report(report))
"""

from .differ import StructuralDiffer, diff_trees
from .engine import SyncEngine
from .models import (
    AddOperation,
    ChangeTarget,
    DeleteOperation,
    MoveOperation,
    SyncDirection,
    SyncOutcome,
    SyncPhase,
    SyncReport,
    UpdateOperation,
)
from .patch import apply_operations
from .reporter import format_operations, format_sync_report, report_to_json
from .resolver import create_resolver, find_conflicts
from .state import BaselineState, content_hash

__all__ = [
    "AddOperation",
    "BaselineState",
    "ChangeTarget",
    "DeleteOperation",
    "MoveOperation",
    "StructuralDiffer",
    "SyncDirection",
    "SyncEngine",
    "SyncOutcome",
    "SyncPhase",
    "SyncReport",
    "UpdateOperation",
    "apply_operations",
    "content_hash",
    "create_resolver",
    "diff_trees",
    "find_conflicts",
    "format_operations",
    "format_sync_report",
    "report_to_json",
]
