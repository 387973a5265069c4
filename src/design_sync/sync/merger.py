"""Three-way merge and diff utilities for the sync engine.

Uses the ``merge3`` library for three-way merging and ``difflib`` for
unified diff generation.

* The merge preview shown with ``sync:conflict`` merges the baseline
  source with the source generated from the edited tree and the live
  source text. Conflict markers are ``<<<<<<< TREE``, ``=======``,
  ``>>>>>>> SOURCE``.
* ``generate_diff`` is a thin wrapper around ``difflib.unified_diff`` for
  cycle reports.
"""

from __future__ import annotations

import difflib

from merge3 import Merge3

TREE_MARKER = "<<<<<<< TREE"
MID_MARKER = "======="
SOURCE_MARKER = ">>>>>>> SOURCE"


def merge_preview(
    base_source: str,
    tree_source: str,
    live_source: str,
) -> tuple[str, bool]:
    """Three-way merge of both sides' source text against the baseline.

    Args:
        base_source: Source text of the baseline.
        tree_source: Source generated from the edited tree.
        live_source: Source text as the editor has it now.

    Returns:
        A tuple of ``(merged_text, has_conflicts)`` where *has_conflicts*
        is ``True`` if conflict markers are present.
    """
    m3 = Merge3(
        base_source.splitlines(True),
        tree_source.splitlines(True),
        live_source.splitlines(True),
    )
    merged_text = "".join(
        m3.merge_lines(
            name_a="TREE",
            name_b="SOURCE",
            start_marker="<<<<<<<",
            mid_marker=MID_MARKER,
            end_marker=">>>>>>>",
        )
    )
    return merged_text, TREE_MARKER in merged_text


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Generate a unified diff between two strings.

    Returns:
        A unified diff string. Empty string if the contents are identical.
    """
    return "".join(
        difflib.unified_diff(
            old_content.splitlines(True),
            new_content.splitlines(True),
            fromfile=label_old,
            tofile=label_new,
        )
    )
