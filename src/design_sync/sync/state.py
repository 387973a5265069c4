"""Baseline state: the last committed tree and source.

The baseline is created empty when a session starts and replaced wholesale
after every committed sync cycle. The differ compares each side against
it, so a change is anything that differs from what both sides last agreed
on.

* **Immutable snapshots**: ``BaselineState`` is frozen and holds deep
  copies, so callers that later mutate a published tree cannot corrupt it.
* **Content hashing**: ``content_hash()`` normalises content (BOM,
  line-endings, trailing whitespace) before SHA-256, so cosmetic edits of
  the source do not count as changes.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from pydantic import BaseModel

from design_sync.models import VisualComponent


def content_hash(content: str) -> str:
    """Compute a normalised SHA-256 hex digest of *content*.

    Normalisation steps (applied in order):

    1. Strip BOM (``\\ufeff``).
    2. Replace ``\\r\\n`` with ``\\n``.
    3. Right-strip each line.
    4. Strip trailing empty lines.
    """
    text = content.lstrip("\ufeff").replace("\r\n", "\n")
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    normalised = "\n".join(lines)
    return hashlib.sha256(normalised.encode("utf-8")).hexdigest()


class BaselineState(BaseModel):
    """Last committed agreement between tree and source.

    Attributes:
        tree: Root components of the committed tree.
        source: Committed source text.
        source_hash: ``content_hash`` of ``source``.
        committed_at: ISO 8601 timestamp of the commit, None when empty.
    """

    tree: list[VisualComponent] = []
    source: str = ""
    source_hash: str
    committed_at: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def empty(cls) -> BaselineState:
        return cls(tree=[], source="", source_hash=content_hash(""))

    @classmethod
    def create(cls, tree: list[VisualComponent], source: str) -> BaselineState:
        """Snapshot ``tree`` (deep-copied) and ``source`` as the new baseline."""
        return cls(
            tree=[component.model_copy(deep=True) for component in tree],
            source=source,
            source_hash=content_hash(source),
            committed_at=datetime.now(timezone.utc).isoformat(),
        )

    def tree_copy(self) -> list[VisualComponent]:
        """Deep copy of the committed tree, safe to hand to collaborators."""
        return [component.model_copy(deep=True) for component in self.tree]
