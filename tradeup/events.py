"""
TRADE-UP Event Infrastructure

Domain events emitted by an escrow, and the synchronous bus that delivers
them. Events are immutable facts published after the state change they
describe has been committed.

Usage
─────

    from tradeup.events import AssetRedeemed, EventBus

    bus = EventBus()

    @bus.subscribe(AssetRedeemed)
    def on_redeemed(event: AssetRedeemed):
        print(f"{event.recipient} received {event.asset_class}#{event.asset_id}")

    escrow = TradeUpEscrow(config, event_bus=bus)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all escrow events.

    Each event has a unique ID, a wall-clock timestamp and the correlation id
    of the operation that produced it.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    escrow_address: str = ""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class DepositAccepted(Event):
    """Emitted when the gate appends a deposit to the ledger."""
    index: int = 0
    depositor: str = ""
    asset_class: str = ""
    asset_id: int = 0
    status: str = ""
    chain_time: int = 0


@dataclass
class ChainSucceeded(Event):
    """Emitted when an accepted deposit completes the chain."""
    final_index: int = 0
    chain_length: int = 0
    chain_time: int = 0


@dataclass
class AssetRedeemed(Event):
    """Emitted after a redemption's transfer has been issued."""
    index: int = 0
    recipient: str = ""
    asset_class: str = ""
    asset_id: int = 0
    kind: str = ""
    source_index: int = 0


@dataclass
class TokenMinted(Event):
    """Emitted when the minting collaborator credits a redeemer."""
    index: int = 0
    recipient: str = ""
    token: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        super().__init__(f"Handler {handler.__name__} failed for {event.event_type}: {cause}")


class EventBus:
    """
    In-memory synchronous event bus.

    Handlers run in priority order (higher first) on the publishing thread.
    A failing handler is counted and reported through `on_error`; it never
    fails the escrow operation that published the event.

    Example:
        bus = EventBus()

        @bus.subscribe(DepositAccepted, ChainSucceeded)
        def audit(event):
            print(event.to_json())
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator subscribing a handler to event types (all events if none given)."""
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Deliver an event to every matching handler."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
            ]

        # Call handlers outside the lock
        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


class EventRecorder:
    """Subscriber that keeps every event it sees, in publication order."""

    def __init__(self, bus: EventBus):
        self.events: List[Event] = []
        bus.subscribe()(self._record)

    def _record(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[Event]) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
