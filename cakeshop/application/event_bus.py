"""In-process business event bus.

Publish/subscribe with a bounded history. Emission is synchronous and
best-effort: handlers run in registration order and a failing handler is
logged and skipped, never propagated to the emitter.
"""

from collections import Counter, deque
from datetime import datetime
from typing import Any

import structlog

from cakeshop.application.ports import Auditor, EventHandler, InventoryWatcher, Notifier
from cakeshop.domain.events import BusinessEvent, EventName, redact

logger = structlog.get_logger()

NOTIFIER_EVENTS = (
    EventName.ORDER_PENDING,
    EventName.ORDER_CONFIRMED,
    EventName.ORDER_PREPARING,
    EventName.ORDER_READY,
    EventName.ORDER_DELIVERED,
    EventName.ORDER_CANCELLED,
    EventName.CUSTOM_ORDER_PENDING,
    EventName.CUSTOM_ORDER_CONFIRMED,
    EventName.CUSTOM_ORDER_IN_PROGRESS,
    EventName.CUSTOM_ORDER_COMPLETED,
    EventName.CUSTOM_ORDER_CANCELLED,
    EventName.PAYMENT_PENDING,
    EventName.PAYMENT_PAID,
    EventName.PAYMENT_FAILED,
    EventName.PAYMENT_REFUNDED,
    EventName.REFUND_REQUESTED,
)
AUDITOR_EVENTS = (EventName.STATE_TRANSITION, EventName.BUSINESS_ERROR)
INVENTORY_EVENTS = (EventName.STOCK_LOW, EventName.STOCK_OUT, EventName.STOCK_RESTORED)


def _key(name: str | EventName) -> str:
    return name.value if isinstance(name, EventName) else name


class EventBus:
    """Typed publish/subscribe bus with bounded history.

    Example:
        bus = EventBus(max_history=1000)
        bus.subscribe(EventName.ORDER_CONFIRMED, send_confirmation)
        bus.emit(EventName.ORDER_CONFIRMED, {"order": order.to_dict()})
    """

    def __init__(self, max_history: int = 1000) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._wildcard: list[EventHandler] = []
        self._history: deque[BusinessEvent] = deque(maxlen=max_history)
        self._handler_failures = 0

    @property
    def max_history(self) -> int:
        return self._history.maxlen or 0

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, name: str | EventName, handler: EventHandler) -> None:
        """Register ``handler`` for one event name."""
        self._handlers.setdefault(_key(name), []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register ``handler`` for every event."""
        self._wildcard.append(handler)

    def unsubscribe(self, name: str | EventName, handler: EventHandler) -> bool:
        """Remove a handler; returns False if it was not registered."""
        handlers = self._handlers.get(_key(name), [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def register(
        self,
        *,
        notifier: Notifier | None = None,
        auditor: Auditor | None = None,
        inventory_watcher: InventoryWatcher | None = None,
    ) -> None:
        """Wire typed subscribers to the events they consume.

        Args:
            notifier: Receives order, custom order, payment and refund events.
            auditor: Receives state transitions and business errors.
            inventory_watcher: Receives stock level events.
        """
        if notifier is not None:
            for name in NOTIFIER_EVENTS:
                self.subscribe(name, notifier.notify)
        if auditor is not None:
            for name in AUDITOR_EVENTS:
                self.subscribe(name, auditor.audit)
        if inventory_watcher is not None:
            for name in INVENTORY_EVENTS:
                self.subscribe(name, inventory_watcher.stock_changed)

    def subscriber_count(self, name: str | EventName | None = None) -> int:
        if name is None:
            return sum(len(h) for h in self._handlers.values()) + len(self._wildcard)
        return len(self._handlers.get(_key(name), [])) + len(self._wildcard)

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(self, name: str | EventName, data: dict[str, Any] | None = None) -> BusinessEvent:
        """Record an event and deliver it to every subscriber.

        Args:
            name: Event name.
            data: Event payload, delivered to handlers unmodified.

        Returns:
            The recorded event.
        """
        event = BusinessEvent(name=_key(name), data=data or {})
        self._history.append(event)
        logger.info(
            "Business event",
            event_name=event.name,
            event_id=event.id,
            data=redact(event.data),
        )

        for handler in [*self._handlers.get(event.name, []), *self._wildcard]:
            try:
                handler(event)
            except Exception:
                self._handler_failures += 1
                logger.exception(
                    "Event handler failed",
                    event_name=event.name,
                    event_id=event.id,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
        return event

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_event_history(
        self,
        event_name: str | EventName | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[BusinessEvent]:
        """Recorded events, oldest first.

        Args:
            event_name: Only events with this name.
            since: Only events at or after this time.
            limit: Keep only the most recent ``limit`` events.
        """
        events = list(self._history)
        if event_name is not None:
            events = [e for e in events if e.name == _key(event_name)]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def get_event_stats(self) -> dict[str, Any]:
        """Counts by event name over the retained history."""
        counts = Counter(event.name for event in self._history)
        return {
            "total_events": len(self._history),
            "max_history": self.max_history,
            "event_counts": dict(counts),
            "handler_failures": self._handler_failures,
            "oldest_event": self._history[0].timestamp.isoformat() if self._history else None,
            "newest_event": self._history[-1].timestamp.isoformat() if self._history else None,
        }

    def clear_event_history(self) -> None:
        self._history.clear()
