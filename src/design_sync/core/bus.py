"""Publish/subscribe event bus with priority-ordered listeners.

``publish()`` defers delivery to the next tick of the running asyncio event
loop, so a publisher never re-enters its own listeners. ``publish_sync()``
delivers immediately. A failing listener is logged and never stops the
listeners after it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ListenerCallback = Callable[[Any], None]
ListenerFilter = Callable[[Any], bool]


@dataclass(frozen=True, eq=False)
class _Listener:
    callback: ListenerCallback
    filter: ListenerFilter | None = None
    priority: int = 0


class EventBus:
    """Named-event bus shared by one sync session."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Listener]] = {}

    def subscribe(
        self,
        event_name: str,
        callback: ListenerCallback,
        *,
        filter: ListenerFilter | None = None,
        priority: int = 0,
    ) -> Callable[[], None]:
        """Register a listener for an event.

        Listeners run in descending priority; equal priorities keep their
        registration order.

        Args:
            event_name: Event to listen for (e.g. ``"tree:changed"``).
            callback: Called with the event payload.
            filter: Optional predicate; the listener is skipped when it
                returns false for a payload.
            priority: Higher values run first.

        Returns:
            A function that removes exactly this registration. Calling it
            more than once is harmless.
        """
        listener = _Listener(callback=callback, filter=filter, priority=priority)
        listeners = self._listeners.setdefault(event_name, [])
        listeners.append(listener)
        listeners.sort(key=lambda entry: entry.priority, reverse=True)

        def unsubscribe() -> None:
            self._remove(event_name, listener)

        return unsubscribe

    def unsubscribe(self, event_name: str, callback: ListenerCallback) -> None:
        """Remove the first registration of ``callback`` for ``event_name``."""
        for listener in self._listeners.get(event_name, []):
            if listener.callback == callback:
                self._remove(event_name, listener)
                return

    def publish(self, event_name: str, payload: Any = None) -> None:
        """Deliver ``payload`` to the current listeners on the next loop tick.

        The listener list is snapshotted now; listeners added later do not
        see this event. Without a running event loop the payload is
        delivered immediately.
        """
        listeners = list(self._listeners.get(event_name, ()))
        if not listeners:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                "No running event loop, delivering %s synchronously", event_name
            )
            self._dispatch(event_name, listeners, payload)
            return
        loop.call_soon(self._dispatch, event_name, listeners, payload)

    def publish_sync(self, event_name: str, payload: Any = None) -> None:
        """Deliver ``payload`` to the current listeners before returning."""
        listeners = list(self._listeners.get(event_name, ()))
        self._dispatch(event_name, listeners, payload)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def clear(self) -> None:
        """Drop every registration."""
        self._listeners.clear()

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _remove(self, event_name: str, listener: _Listener) -> None:
        listeners = self._listeners.get(event_name)
        if not listeners:
            return
        for index, entry in enumerate(listeners):
            if entry is listener:
                del listeners[index]
                break
        if not listeners:
            del self._listeners[event_name]

    @staticmethod
    def _dispatch(
        event_name: str, listeners: list[_Listener], payload: Any
    ) -> None:
        for listener in listeners:
            try:
                if listener.filter is not None and not listener.filter(payload):
                    continue
                listener.callback(payload)
            except Exception:
                logger.exception("Listener for %s failed", event_name)
