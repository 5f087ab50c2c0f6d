"""In-process event channel shared by components of one LexiSync server.

An ``EventHub`` is the channel; each component gets its own ``EventBus``
endpoint with a unique sender id. A message is delivered to every attached
bus except the one that sent it. Handler failures are logged and never
reach the emitter.
"""

from __future__ import annotations

import secrets
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from utils.clock import Clock, now_ms
from utils.log import get_logger

WORD_CREATED = "word:created"
WORD_UPDATED = "word:updated"
WORD_DELETED = "word:deleted"
REVIEW_COMPLETED = "review:completed"
SYNC_COMPLETED = "sync:completed"

EventHandler = Callable[[Any], None]


@dataclass(frozen=True)
class EventMessage:
    type: str
    data: Any
    timestamp: int
    sender_id: Optional[str] = None


@dataclass
class EventHub:
    name: str = "lexisync-events"
    clock: Clock = now_ms
    buses: List["EventBus"] = field(default_factory=list)

    def attach(self, bus: "EventBus") -> None:
        if bus not in self.buses:
            self.buses.append(bus)

    def detach(self, bus: "EventBus") -> None:
        if bus in self.buses:
            self.buses.remove(bus)

    def post(self, message: EventMessage) -> None:
        for bus in list(self.buses):
            bus.handle_message(message)

    def bus(self, logger=None) -> "EventBus":
        return EventBus(self, logger=logger)


def _generate_sender_id(clock: Clock) -> str:
    return f"sender-{clock()}-{secrets.token_hex(4)}"


class EventBus:
    def __init__(self, hub: Optional[EventHub], sender_id: Optional[str] = None, logger=None):
        self.hub = hub
        self.logger = logger or get_logger("events")
        self.sender_id = sender_id or _generate_sender_id(hub.clock if hub else now_ms)
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        if hub is not None:
            hub.attach(self)

    def emit(self, event_type: str, data: Any = None) -> None:
        """Post to the hub. Never raises."""
        if self.hub is None:
            self.logger.warning("Event hub is not available", event=event_type)
            return
        message = EventMessage(
            type=event_type,
            data=data,
            timestamp=self.hub.clock(),
            sender_id=self.sender_id,
        )
        try:
            self.hub.post(message)
        except Exception:
            self.logger.exception("Failed to emit event", event=event_type)

    def on(self, event_type: str, handler: EventHandler) -> None:
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def off(self, event_type: str, handler: Optional[EventHandler] = None) -> None:
        """Remove one handler, or every handler for `event_type` when none is given."""
        if event_type not in self._handlers:
            return
        if handler is None:
            del self._handlers[event_type]
            return
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._handlers[event_type]

    def handle_message(self, message: EventMessage) -> None:
        if message.sender_id == self.sender_id:
            return
        for handler in list(self._handlers.get(message.type, ())):
            try:
                handler(message.data)
            except Exception:
                self.logger.exception("Error in event handler", event=message.type)

    def handler_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, ()))
        return sum(len(handlers) for handlers in self._handlers.values())

    def close(self) -> None:
        self._handlers.clear()
        if self.hub is not None:
            self.hub.detach(self)
            self.hub = None
