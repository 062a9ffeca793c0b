"""Base classes for domain layer.

Provides foundational abstractions for value objects, entities and
aggregate roots shared by orders, custom orders and products.
"""

from abc import ABC
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def local_clock(tz_name: str) -> Callable[[], datetime]:
    """Clock returning the current time in the shop's time zone.

    Raises:
        ZoneInfoNotFoundError: If ``tz_name`` is not a known zone.
    """
    zone = ZoneInfo(tz_name)
    return lambda: datetime.now(zone)


# ============================================================================
# Value Object Base
# ============================================================================


@dataclass(frozen=True)
class ValueObject(ABC):
    """Base class for value objects.

    Value objects are immutable and compared by their attributes,
    not by identity.
    """

    pass


# ============================================================================
# Entity Base
# ============================================================================


@dataclass(kw_only=True)
class Entity(ABC):
    """Base class for entities.

    Two entities are equal if they have the same internal identity,
    regardless of their other attributes.

    Attributes:
        id: Internal identifier (persistence key).
    """

    id: str = field(default_factory=lambda: str(uuid4()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


# ============================================================================
# Aggregate Root Base
# ============================================================================


@dataclass(kw_only=True, eq=False)
class AggregateRoot(Entity):
    """Base class for order aggregates.

    Attributes:
        version: Optimistic locking version for concurrency control.
        created_at: Timestamp when the aggregate was created.
        updated_at: Timestamp of last modification.
        status_history: Append-only log of status changes.
    """

    version: int = field(default=1, compare=False)
    created_at: datetime = field(default_factory=utcnow, compare=False)
    updated_at: datetime = field(default_factory=utcnow, compare=False)
    status_history: list[dict[str, Any]] = field(default_factory=list, compare=False)

    def record_status_change(
        self,
        from_status: str | None,
        to_status: str,
        *,
        field_name: str = "status",
        actor: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Append an entry to the status history.

        Args:
            from_status: Previous state value (None on creation).
            to_status: New state value.
            field_name: Which status field changed.
            actor: Who initiated the change.
            reason: Free-text reason.
        """
        now = utcnow()
        self.status_history.append(
            {
                "field": field_name,
                "from_status": from_status,
                "to_status": to_status,
                "actor": actor,
                "reason": reason,
                "created_at": now.isoformat(),
            }
        )
        self.updated_at = now

    def touch(self) -> None:
        """Update the updated_at timestamp and increment version."""
        self.updated_at = utcnow()
        self.version += 1
