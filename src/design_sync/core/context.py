"""Explicit per-session context handed to every sync collaborator."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from design_sync.core.bus import EventBus


@dataclass
class SyncContext:
    """Shared services of one editing session.

    Attributes:
        bus: Event bus connecting the engine with canvas and editor.
        session_id: Identifier used in log messages.
    """

    bus: EventBus = field(default_factory=EventBus)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
