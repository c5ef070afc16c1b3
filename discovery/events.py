"""In-process synchronous publish/subscribe for orchestrator events."""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from discovery.models import utcnow

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass
class Event:
    type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)


Listener = Callable[[Event], None]


class EventBus:
    """Fan-out to listeners in subscription order.

    A failing listener is logged and skipped; emit() never raises.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, event_type: str, listener: Listener) -> Callable[[], None]:
        """Register a listener for one event type, or ALL_EVENTS.

        Returns:
            A callable that removes the listener.
        """
        self._listeners[event_type].append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners[event_type].remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, event_type: str, **data: Any) -> Event:
        event = Event(type=event_type, data=data)
        for listener in [*self._listeners.get(event_type, []), *self._listeners.get(ALL_EVENTS, [])]:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener for %s failed", event_type)
        return event
