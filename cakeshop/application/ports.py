"""Collaborator interfaces of the order core.

The application services depend only on these protocols. In-memory
implementations live in ``cakeshop.infrastructure``.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol, TypeVar

from cakeshop.domain.base import AggregateRoot
from cakeshop.domain.entities import CustomOrder, Order, Product
from cakeshop.domain.events import BusinessEvent
from cakeshop.domain.state_machines import PaymentStatus

AggregateT = TypeVar("AggregateT", bound=AggregateRoot)

EventHandler = Callable[[BusinessEvent], None]


# ============================================================================
# Persistence
# ============================================================================


class AggregateRepository(Protocol[AggregateT]):
    """Persistence of one order collection.

    ``save`` enforces optimistic locking: the stored version must equal the
    version the caller loaded, and a successful save bumps the version.
    """

    async def find_by_order_id(self, order_id: str) -> AggregateT | None:
        """Load an aggregate by public order ID."""
        ...

    async def save(self, aggregate: AggregateT) -> AggregateT:
        """Insert or update an aggregate.

        Raises:
            ConcurrentModificationError: If the stored version moved on.
        """
        ...

    async def delete(self, internal_id: str) -> bool:
        """Delete by internal ID, returning whether anything was removed."""
        ...

    async def exists(self, order_id: str) -> bool:
        ...

    async def count_with_prefix(self, prefix: str) -> int:
        """Count aggregates whose public order ID starts with ``prefix``."""
        ...

    async def list_all(
        self,
        *,
        status: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        customer_email: str | None = None,
    ) -> list[AggregateT]:
        """List aggregates, newest first.

        Args:
            status: Only aggregates in this status.
            created_from: Only aggregates created at or after this time.
            created_to: Only aggregates created at or before this time.
            customer_email: Only aggregates for this (lower-cased) email.
        """
        ...


OrderRepository = AggregateRepository[Order]
CustomOrderRepository = AggregateRepository[CustomOrder]


class InventoryRepository(Protocol):
    """Product stock with atomic conditional adjustments.

    Every adjustment is applied as one step under the repository's lock;
    callers never read-modify-write quantities themselves. Products made
    to order are returned unchanged by every adjustment.
    """

    async def get_product(self, product_id: str) -> Product | None:
        ...

    async def save_product(self, product: Product) -> Product:
        ...

    async def reserve_stock(self, product_id: str, quantity: int) -> Product:
        """Hold ``quantity`` units for a pending order.

        Raises:
            ProductNotFoundError: If the product does not exist.
            ProductUnavailableError: If the product is inactive.
            InsufficientStockError: If fewer than ``quantity`` units are free.
        """
        ...

    async def release_stock(self, product_id: str, quantity: int) -> Product:
        """Drop a hold without selling the units."""
        ...

    async def commit_stock(self, product_id: str, quantity: int) -> Product:
        """Turn a hold into a sale (stock and reservation down, sold count up)."""
        ...

    async def restock(self, product_id: str, quantity: int) -> Product:
        """Return sold units to the shelf (stock up, sold count down)."""
        ...


# ============================================================================
# Payment Gateway
# ============================================================================


class PaymentGateway(Protocol):
    """Read-only view of the payment provider."""

    async def get_payment_status(self, order_id: str) -> PaymentStatus | None:
        """Current payment status, or None when no payment was started."""
        ...


# ============================================================================
# Event Subscribers
# ============================================================================


class Notifier(Protocol):
    """Receives order, custom order and payment lifecycle events."""

    def notify(self, event: BusinessEvent) -> None:
        ...


class Auditor(Protocol):
    """Receives state transitions and business errors."""

    def audit(self, event: BusinessEvent) -> None:
        ...


class InventoryWatcher(Protocol):
    """Receives stock level events."""

    def stock_changed(self, event: BusinessEvent) -> None:
        ...
