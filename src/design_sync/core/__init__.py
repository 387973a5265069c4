"""Session infrastructure: event bus and context."""

from .bus import EventBus
from .context import SyncContext

__all__ = ["EventBus", "SyncContext"]
