"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync cycles:

- ``format_operation`` -- one line per change operation.
- ``format_operations`` -- an operation list, one line each.
- ``format_sync_report`` -- full post-cycle summary.
- ``format_conflict`` -- a ``sync:conflict`` payload for review.
- ``report_to_json`` -- structured dict for JSON output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .models import AddOperation, DeleteOperation, MoveOperation, UpdateOperation

if TYPE_CHECKING:
    from .events import SyncConflict
    from .models import SyncReport

_PREVIEW_LINES = 20

# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------


def format_operation(op: Any) -> str:
    """Format a single change operation as ``[side] kind details``."""
    side = f"[{op.target.value}]"
    if isinstance(op, AddOperation):
        parent = op.parent_id or "<root>"
        return (
            f"{side} + {op.component.id} ({op.component.type}) "
            f"under {parent} at {op.index}"
        )
    if isinstance(op, DeleteOperation):
        return f"{side} - {op.component_id}"
    if isinstance(op, MoveOperation):
        parent = op.new_parent_id or "<root>"
        return f"{side} > {op.component_id} to {parent} at {op.new_index}"
    if isinstance(op, UpdateOperation):
        details = [f"{key}={_describe(value)}" for key, value in op.changes.items()]
        details.extend(f"-{key}" for key in op.removed)
        if op.new_type is not None:
            details.append(f"type={op.new_type}")
        details.extend(f"{name}={value}" for name, value in op.layout.items())
        return f"{side} ~ {op.component_id}: {', '.join(details)}"
    return f"{side} ? {op!r}"


def format_operations(operations: list[Any]) -> str:
    if not operations:
        return "No changes."
    return "\n".join(format_operation(op) for op in operations)


def _describe(value: Any) -> str:
    kind = getattr(value, "kind", None)
    if kind == "literal":
        return repr(value.value)
    if kind == "style":
        pairs = ", ".join(f"{k}: {v}" for k, v in value.declarations.items())
        return f"{{{pairs}}}"
    if kind == "reference":
        return f"<handler {value.handler_id or 'unnamed'}>"
    if kind == "expression":
        return f"{{{value.source}}}"
    return repr(value)


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport, show_diff: bool = False) -> str:
    """Format a cycle report as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        report: The finished cycle report.
        show_diff: Include the unified diff of the committed source.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(
        f"Sync from {report.direction.value}: {report.outcome.value}"
    )
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{len(report.tree_changes)} tree change(s), "
        f"{len(report.source_changes)} source change(s): "
        f"{len(report.added)} added, {len(report.updated)} updated, "
        f"{len(report.deleted)} deleted, {len(report.moved)} moved"
    )
    lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for component_id in report.conflicts:
            lines.append(f"  {component_id}")
        lines.append("")

    if report.dropped:
        lines.append("Dropped:")
        for op in report.dropped:
            lines.append(f"  {format_operation(op)}")
        lines.append("")

    if report.error:
        lines.append(f"Error: {report.error}")
        lines.append("")

    if show_diff and report.source_diff:
        lines.append(report.source_diff.rstrip())
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflict(event: SyncConflict) -> str:
    """Format a ``sync:conflict`` payload for review.

    Lists both sides' operations and the start of the merge preview.
    """
    lines = [f"Conflict during sync from {event.source.value}", ""]
    if event.conflicts:
        lines.append(f"Edited on both sides: {', '.join(event.conflicts)}")
        lines.append("")

    for title, operations in (
        ("Tree changes:", event.tree_changes),
        ("Source changes:", event.source_changes),
    ):
        if operations:
            lines.append(title)
            lines.extend(f"  {format_operation(op)}" for op in operations)
            lines.append("")

    if event.merge_preview:
        lines.append("--- Merge preview ---")
        preview = event.merge_preview.splitlines()
        lines.extend(f"  {line}" for line in preview[:_PREVIEW_LINES])
        if len(preview) > _PREVIEW_LINES:
            lines.append(f"  ... ({len(preview) - _PREVIEW_LINES} more lines)")
        lines.append("")

    if event.has_merge_conflicts:
        lines.append("WARNING: Merge preview contains conflict markers.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a cycle report to a structured dict for JSON serialisation.

    Args:
        report: The cycle report.

    Returns:
        Dict with outcome, counts, conflicts and the kept / dropped
        operations.
    """
    result: dict = {
        "direction": report.direction.value,
        "outcome": report.outcome.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "tree_changes": len(report.tree_changes),
            "source_changes": len(report.source_changes),
            "added": len(report.added),
            "updated": len(report.updated),
            "deleted": len(report.deleted),
            "moved": len(report.moved),
            "dropped": len(report.dropped),
            "conflicts": len(report.conflicts),
        },
        "conflicts": list(report.conflicts),
        "kept": [op.model_dump(mode="json") for op in report.kept],
        "dropped": [op.model_dump(mode="json") for op in report.dropped],
    }
    if report.error:
        result["error"] = report.error
    return result
