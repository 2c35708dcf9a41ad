"""Subscriber lists keyed by event type.

Used by the Runner and the FlowManager for lifecycle notifications. A
failing listener is logged and never affects the emitter or other listeners.
"""

import inspect
from collections import defaultdict
from typing import Any, Callable, Hashable

from .logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], Any]

ALL_EVENTS = "*"


class ListenerRegistry:
    """Per-event-type listener fan-out."""

    def __init__(self) -> None:
        self._listeners: dict[Hashable, list[Listener]] = defaultdict(list)

    def add(self, event_type: Hashable, listener: Listener) -> None:
        """Subscribe a listener. ``ALL_EVENTS`` receives every event."""
        self._listeners[event_type].append(listener)

    def remove(self, event_type: Hashable, listener: Listener) -> bool:
        """Unsubscribe a listener.

        Returns:
            True if the listener was subscribed
        """
        listeners = self._listeners.get(event_type)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        return True

    def clear(self, event_type: Hashable | None = None) -> None:
        if event_type is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event_type, None)

    def count(self, event_type: Hashable | None = None) -> int:
        if event_type is None:
            return sum(len(listeners) for listeners in self._listeners.values())
        return len(self._listeners.get(event_type, []))

    def emit(self, event_type: Hashable, event: Any) -> None:
        """Deliver an event to listeners of its type, then to wildcard listeners.

        Coroutine listeners are not awaited; returning a coroutine is logged
        and the coroutine is closed.
        """
        targets = list(self._listeners.get(event_type, []))
        if event_type != ALL_EVENTS:
            targets.extend(self._listeners.get(ALL_EVENTS, []))

        for listener in targets:
            try:
                result = listener(event)
                if inspect.iscoroutine(result):
                    result.close()
                    logger.warning(f"Async listener {listener!r} ignored for event {event_type}")
            except Exception as e:
                logger.error(f"Listener {listener!r} failed for event {event_type}: {e}")
