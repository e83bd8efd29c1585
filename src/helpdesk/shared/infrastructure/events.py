"""
Domain Event Dispatcher
=======================

In-process, fire-and-forget publication of domain events.

Publishing is best-effort: a failing subscriber is logged and never
affects the operation that emitted the event.

Events published while a unit of work is open are held back and only
delivered once the outermost scope completes; a scope that rolls back
drops the events it collected.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Type

from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Any], None]


class EventDispatcher:
    """Routes events to the handlers subscribed to their class."""

    def __init__(self):
        self._handlers: DefaultDict[type, List[EventHandler]] = defaultdict(list)
        self._local = threading.local()

    @property
    def _buffers(self) -> List[List[Any]]:
        # One stack per thread: the SLA job publishes from the scheduler thread
        if not hasattr(self._local, "buffers"):
            self._local.buffers = []
        return self._local.buffers

    @property
    def buffering(self) -> bool:
        return bool(self._buffers)

    def subscribe(self, event_type: Type[Any], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type[Any], handler: EventHandler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def publish(self, event: Any) -> None:
        if self._buffers:
            self._buffers[-1].append(event)
            return
        self._deliver(event)

    # ========== Unit of work scopes ==========

    def hold(self) -> None:
        """Open a buffer; events published from now on are held."""
        self._buffers.append([])

    def release(self) -> None:
        """Close the innermost buffer, handing its events to the enclosing one or to subscribers."""
        events = self._buffers.pop()
        if self._buffers:
            self._buffers[-1].extend(events)
            return
        for event in events:
            self._deliver(event)

    def discard(self) -> None:
        """Close the innermost buffer and drop its events."""
        dropped = self._buffers.pop()
        if dropped:
            logger.debug(
                "Discarded events of rolled back scope",
                extra={"events": [type(event).__name__ for event in dropped]}
            )

    def _deliver(self, event: Any) -> None:
        for event_type in type(event).__mro__:
            for handler in list(self._handlers.get(event_type, [])):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        "Event handler failed",
                        extra={
                            "event": type(event).__name__,
                            "handler": getattr(handler, "__qualname__", repr(handler)),
                            "error": str(e),
                        },
                    )


class NullEventDispatcher(EventDispatcher):
    """Dispatcher that drops every event."""

    def publish(self, event: Any) -> None:
        return None
