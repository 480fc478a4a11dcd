"""
Event bus between the turn orchestrator and its collaborators.

Renderers, sound and statistics collaborators subscribe to the events they
care about; the orchestrator emits without knowing who listens. One bus per
game orchestrator, driven from a single event loop.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    STATE_CHANGED = auto()
    GAME_STARTED = auto()
    CARD_FLIPPED = auto()
    PAIR_MATCHED = auto()
    PAIR_MISMATCHED = auto()
    TURN_CHANGED = auto()
    GAME_PAUSED = auto()
    GAME_RESUMED = auto()
    GAME_FINISHED = auto()


@dataclass
class Event:
    """
    A single notification.

    Attributes:
        event_type: what happened
        data: payload (card ids, player id, scores, or the new GameState)
        source: emitting component
    """
    event_type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    source: str = ""


Handler = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: Dict[EventType, List[Handler]] = {}
        self._global_handlers: List[Handler] = []

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to %s", event_type.name)

    def subscribe_all(self, handler: Handler) -> None:
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed handler from %s", event_type.name)

    def emit(self, event: Event) -> None:
        """
        Call every handler for the event synchronously, in subscription order.
        A failing handler is logged and does not stop the others.
        """
        specific = list(self._handlers.get(event.event_type, []))
        everyone = list(self._global_handlers)
        for handler in specific + everyone:
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in event handler for %s: %s", event.event_type.name, e, exc_info=True)

    def emit_simple(self, event_type: EventType, data: Dict[str, Any] | None = None, source: str = "") -> None:
        self.emit(Event(event_type=event_type, data=data or {}, source=source))

    def clear(self) -> None:
        self._handlers.clear()
        self._global_handlers.clear()


class EventRecorder:
    """Collects emitted events in order; handy for tests and replays."""

    def __init__(self, bus: EventBus) -> None:
        self.events: List[Event] = []
        bus.subscribe_all(self.events.append)

    def of_type(self, event_type: EventType) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]
