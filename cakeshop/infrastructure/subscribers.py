"""Default event subscribers.

Log-backed implementations of the notifier, auditor and inventory watcher
ports. Each keeps a bounded record of what it received so operators (and
tests) can inspect recent activity.
"""

from collections import deque
from typing import Any

import structlog

from cakeshop.domain.events import BusinessEvent, EventName, redact

logger = structlog.get_logger()

NOTIFICATION_MESSAGES: dict[str, str] = {
    EventName.ORDER_PENDING.value: "Order {order_id} is pending confirmation",
    EventName.ORDER_CONFIRMED.value: "Order {order_id} confirmed",
    EventName.ORDER_PREPARING.value: "Order {order_id} preparation started",
    EventName.ORDER_READY.value: "Order {order_id} is ready",
    EventName.ORDER_DELIVERED.value: "Order {order_id} delivered",
    EventName.ORDER_CANCELLED.value: "Order {order_id} cancelled",
    EventName.CUSTOM_ORDER_PENDING.value: "Custom order {order_id} submitted",
    EventName.CUSTOM_ORDER_CONFIRMED.value: "Custom order {order_id} confirmed with pricing",
    EventName.CUSTOM_ORDER_IN_PROGRESS.value: "Custom order {order_id} work started",
    EventName.CUSTOM_ORDER_COMPLETED.value: "Custom order {order_id} completed",
    EventName.CUSTOM_ORDER_CANCELLED.value: "Custom order {order_id} cancelled",
    EventName.PAYMENT_PENDING.value: "Payment for {order_id} initiated",
    EventName.PAYMENT_PAID.value: "Payment for {order_id} completed",
    EventName.PAYMENT_FAILED.value: "Payment for {order_id} failed",
    EventName.PAYMENT_REFUNDED.value: "Payment for {order_id} refunded",
    EventName.REFUND_REQUESTED.value: "Refund requested for {order_id}",
}


def _subject(event: BusinessEvent) -> dict[str, Any]:
    for key in ("order", "custom_order", "payment"):
        if isinstance(event.data.get(key), dict):
            return event.data[key]
    return event.data


class LoggingNotifier:
    """Customer notifications, written to the log instead of sent."""

    def __init__(self, max_records: int = 500) -> None:
        self.sent: deque[dict[str, Any]] = deque(maxlen=max_records)

    def notify(self, event: BusinessEvent) -> None:
        subject = _subject(event)
        order_id = subject.get("order_id", "unknown")
        message = NOTIFICATION_MESSAGES.get(event.name, "{order_id}: " + event.name).format(
            order_id=order_id
        )
        recipient = subject.get("customer_email") or (subject.get("customer_info") or {}).get(
            "email"
        )
        self.sent.append(
            {"event": event.name, "order_id": order_id, "recipient": recipient, "message": message}
        )
        logger.info(message, event_name=event.name, order_id=order_id, recipient=recipient)


class AuditLog:
    """Append-only trail of state transitions and business errors."""

    def __init__(self, max_entries: int = 1000) -> None:
        self.entries: deque[dict[str, Any]] = deque(maxlen=max_entries)

    def audit(self, event: BusinessEvent) -> None:
        entry = {
            "event_id": event.id,
            "event": event.name,
            "timestamp": event.timestamp.isoformat(),
            "data": redact(event.data),
        }
        self.entries.append(entry)
        if event.name == EventName.BUSINESS_ERROR.value:
            logger.warning(
                "Business error recorded",
                error=event.data.get("error"),
                context=event.data.get("context"),
            )
        else:
            logger.info(
                "State transition recorded",
                entity_type=event.data.get("entity_type"),
                entity_id=event.data.get("entity_id"),
                old_state=event.data.get("old_state"),
                new_state=event.data.get("new_state"),
            )

    def transitions_for(self, entity_id: str) -> list[dict[str, Any]]:
        return [
            entry
            for entry in self.entries
            if entry["event"] == EventName.STATE_TRANSITION.value
            and entry["data"].get("entity_id") == entity_id
        ]


class StockWatcher:
    """Tracks products currently low on or out of stock."""

    def __init__(self) -> None:
        self.alerts: dict[str, dict[str, Any]] = {}

    def stock_changed(self, event: BusinessEvent) -> None:
        product = event.data.get("product") or {}
        product_id = product.get("id")
        if product_id is None:
            return
        if event.name == EventName.STOCK_RESTORED.value and not product.get("is_low_stock"):
            self.alerts.pop(product_id, None)
            logger.info("Stock restored", product=product.get("name"))
            return
        self.alerts[product_id] = {
            "name": product.get("name"),
            "stock_quantity": product.get("stock_quantity"),
            "level": "out" if event.name == EventName.STOCK_OUT.value else "low",
        }
        logger.warning(
            "Stock alert",
            product=product.get("name"),
            stock_quantity=product.get("stock_quantity"),
            level=self.alerts[product_id]["level"],
        )
