# Overview: In-process subscriber registry for post-commit inventory events.

"""
Inventory change notifications.

Views that cache stock figures subscribe here instead of watching a shared
"needs refresh" flag. Services publish only AFTER their transaction commits,
so a subscriber never hears about a change that was rolled back.

Rules:
- Event types follow category.action format (e.g. "sale.settled").
- Subscribing to "*" receives every event.
- A failing subscriber is logged and skipped; it cannot undo a commit that
  already happened, and it must not stop the other subscribers.
- Thread-safe; in-memory only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

WILDCARD = "*"

SALE_SETTLED = "sale.settled"
SALE_REFUNDED = "sale.refunded"
STOCK_MOVED = "inventory.movement"
STOCK_COUNTED = "inventory.counted"
LEDGER_RECONCILED = "inventory.reconciled"
SNAPSHOT_CREATED = "snapshot.created"


@dataclass(frozen=True)
class InventoryEvent:
    event_type: str
    payload: dict = field(default_factory=dict)
    version: int | None = None


class InventoryEventBus:
    def __init__(self):
        self._subscribers: dict[str, list[Callable[[InventoryEvent], Any]]] = {}
        self._lock = Lock()

    @staticmethod
    def _validate_event_type(event_type: str) -> None:
        if event_type == WILDCARD:
            return
        if not event_type or "." not in event_type:
            raise ValueError(f"invalid event type: {event_type!r}")

    def subscribe(self, event_type: str, handler: Callable[[InventoryEvent], Any]) -> None:
        self._validate_event_type(event_type)
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler in handlers:
                raise ValueError(f"handler already subscribed to {event_type}")
            handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: Callable[[InventoryEvent], Any]) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def publish(self, event_type: str, payload: dict | None = None, *, version: int | None = None) -> InventoryEvent:
        self._validate_event_type(event_type)
        event = InventoryEvent(event_type=event_type, payload=payload or {}, version=version)
        with self._lock:
            handlers = list(self._subscribers.get(event_type, [])) + list(
                self._subscribers.get(WILDCARD, [])
            )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %r failed for %s", handler, event_type)
        return event


event_bus = InventoryEventBus()
