"""
THINROUTER Events

Typed records emitted by the router and a small synchronous pub/sub bus.
``BridgeInitiated`` is the observable output of every successful route; it
carries the message hash and global route id that off-chain relayers key on.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Type

logger = logging.getLogger("thinrouter.events")

DEFAULT_MAX_HISTORY = 10_000


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


def _hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


@dataclass
class Event:
    """Base class for router events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = {k: _hex(v) for k, v in asdict(self).items()}
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


# ════════════════════════════════════════════════════════════════════════════
# ROUTER EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class BridgeInitiated(Event):
    """Emitted once per successful route; ``amount`` is the net amount."""
    initiator: str = ""
    asset: str = ""
    amount: int = 0
    protocol_fee: int = 0
    relayer_fee: int = 0
    target: str = ""
    dst_chain_id: int = 0
    nonce: int = 0
    message_hash: bytes = b""
    global_route_id: bytes = b""
    intent_hash: Optional[bytes] = None
    protocol_share: int = 0
    lp_share: int = 0


@dataclass
class AdapterChanged(Event):
    """Emitted when the adapter role set or legacy slot changes."""
    action: str = ""
    adapter: str = ""
    authorization_state: str = ""


@dataclass
class FeeConfigChanged(Event):
    """Emitted when a fee setting changes."""
    setting: str = ""
    old_value: Any = None
    new_value: Any = None


@dataclass
class AdminTransferred(Event):
    """Emitted when the admin role moves to a new account."""
    previous_admin: str = ""
    new_admin: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


class EventHandlerError(Exception):
    """Error raised by a subscriber."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {handler.__name__} failed for {event.event_type}: {cause}")


class EventBus:
    """
    Synchronous in-memory pub/sub.

    Subscriber failures are reported through ``on_error`` and logged; they
    never undo the state change that produced the event. ``history()``
    keeps the most recent ``max_history`` events.

    Example:
        bus = EventBus()

        @bus.subscribe(BridgeInitiated)
        def relay(event):
            queue.put(event.global_route_id)
    """

    def __init__(
        self,
        on_error: Optional[Callable[[EventHandlerError], None]] = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        self._handlers: List[tuple] = []
        self._history: Deque[Event] = deque(maxlen=max_history)
        self._published_count = 0
        self._lock = threading.RLock()
        self._on_error = on_error
        self._error_count = 0

    def subscribe(self, *event_types: Type[Event]) -> Callable[[EventHandler], EventHandler]:
        types: Set[Type[Event]] = set(event_types) if event_types else {Event}

        def decorator(handler: EventHandler) -> EventHandler:
            with self._lock:
                self._handlers.append((handler, types))
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            before = len(self._handlers)
            self._handlers = [(h, t) for h, t in self._handlers if h != handler]
            return len(self._handlers) < before

    def publish(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            self._published_count += 1
            matching = [h for h, types in self._handlers if any(isinstance(event, t) for t in types)]

        for handler in matching:
            try:
                handler(event)
            except Exception as e:
                with self._lock:
                    self._error_count += 1
                error = EventHandlerError(event, handler, e)
                logger.warning("%s", error)
                if self._on_error:
                    self._on_error(error)

    def history(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        with self._lock:
            if event_type is None:
                return list(self._history)
            return [e for e in self._history if isinstance(e, event_type)]

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }
