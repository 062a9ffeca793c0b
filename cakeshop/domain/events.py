"""Business events.

Business events represent significant occurrences in the order pipeline.
They are used for:
- Notifications to customers and staff
- Audit logging
- Inventory monitoring (low stock, restocks)
"""

import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cakeshop.domain.base import utcnow


class EventName(str, Enum):
    """Names of every event the core emits."""

    ORDER_PENDING = "orderPending"
    ORDER_CONFIRMED = "orderConfirmed"
    ORDER_PREPARING = "orderPreparing"
    ORDER_READY = "orderReady"
    ORDER_DELIVERED = "orderDelivered"
    ORDER_CANCELLED = "orderCancelled"

    CUSTOM_ORDER_PENDING = "customOrderPending"
    CUSTOM_ORDER_CONFIRMED = "customOrderConfirmed"
    CUSTOM_ORDER_IN_PROGRESS = "customOrderInProgress"
    CUSTOM_ORDER_COMPLETED = "customOrderCompleted"
    CUSTOM_ORDER_CANCELLED = "customOrderCancelled"

    PAYMENT_PENDING = "paymentPending"
    PAYMENT_PAID = "paymentPaid"
    PAYMENT_FAILED = "paymentFailed"
    PAYMENT_REFUNDED = "paymentRefunded"
    REFUND_REQUESTED = "refundRequested"

    STATE_TRANSITION = "stateTransition"
    BUSINESS_ERROR = "businessError"

    STOCK_LOW = "stockLow"
    STOCK_OUT = "stockOut"
    STOCK_RESTORED = "stockRestored"


# Fields never written to logs. Subscribers still receive the full payload.
SENSITIVE_FIELDS = frozenset(
    {
        "phone",
        "customer_phone",
        "address",
        "payment_details",
        "card_number",
        "cvv",
    }
)


def new_event_id() -> str:
    """Generate an event ID of the form ``evt_<epoch ms>_<random>``."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=9))
    return f"evt_{millis}_{suffix}"


def redact(data: Any) -> Any:
    """Return a copy of ``data`` with sensitive fields masked."""
    if isinstance(data, dict):
        return {
            key: "[REDACTED]" if key in SENSITIVE_FIELDS else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(value) for value in data]
    return data


@dataclass(frozen=True)
class BusinessEvent:
    """An emitted event as stored in the bus history.

    Attributes:
        name: Event name (usually an EventName value).
        data: Event payload.
        timestamp: Emission time (UTC).
        id: Unique event identifier.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_event_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


def status_event_name(prefix: str, status: str) -> str:
    """Build a lifecycle event name such as ``orderConfirmed``.

    Args:
        prefix: ``order``, ``customOrder`` or ``payment``.
        status: State value, hyphenated states are camel-cased.

    Returns:
        Event name string.
    """
    words = status.replace("_", "-").split("-")
    return prefix + "".join(word.capitalize() for word in words)
