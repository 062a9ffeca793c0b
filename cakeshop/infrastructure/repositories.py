"""In-memory repositories.

Stand-ins for database persistence. Aggregates are stored as deep copies so
callers never share state with the store, every mutation runs under an
``asyncio.Lock``, and saves are guarded by an optimistic version check.
"""

import asyncio
from copy import deepcopy
from datetime import datetime
from typing import Generic, TypeVar

import structlog

from cakeshop.domain.base import AggregateRoot
from cakeshop.domain.entities import CustomOrder, Order, Product
from cakeshop.domain.exceptions import (
    ConcurrentModificationError,
    ConsistencyError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductUnavailableError,
    ValidationError,
)

logger = structlog.get_logger()

AggregateT = TypeVar("AggregateT", bound=AggregateRoot)


# ============================================================================
# Order Repositories
# ============================================================================


class InMemoryAggregateRepository(Generic[AggregateT]):
    """In-memory store for one order collection.

    In production, this would be replaced with database persistence.
    """

    def __init__(self) -> None:
        self._items: dict[str, AggregateT] = {}
        self._by_order_id: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def find_by_order_id(self, order_id: str) -> AggregateT | None:
        internal_id = self._by_order_id.get(order_id)
        if internal_id is None:
            return None
        return deepcopy(self._items[internal_id])

    async def save(self, aggregate: AggregateT) -> AggregateT:
        """Insert or update an aggregate.

        A successful update bumps the aggregate's version.

        Raises:
            ConsistencyError: If a new aggregate reuses a taken order ID.
            ConcurrentModificationError: If the stored version moved on.
        """
        order_id = getattr(aggregate, "order_id")
        async with self._lock:
            stored = self._items.get(aggregate.id)
            if stored is None:
                if order_id in self._by_order_id:
                    raise ConsistencyError([f"Order ID already exists: {order_id}"])
            elif stored.version != aggregate.version:
                raise ConcurrentModificationError(order_id, aggregate.version, stored.version)
            else:
                aggregate.touch()

            self._items[aggregate.id] = deepcopy(aggregate)
            self._by_order_id[order_id] = aggregate.id

        logger.debug("Aggregate saved", order_id=order_id, version=aggregate.version)
        return aggregate

    async def delete(self, internal_id: str) -> bool:
        async with self._lock:
            aggregate = self._items.pop(internal_id, None)
            if aggregate is None:
                return False
            self._by_order_id.pop(getattr(aggregate, "order_id"), None)
        logger.info("Aggregate deleted", order_id=getattr(aggregate, "order_id"))
        return True

    async def exists(self, order_id: str) -> bool:
        return order_id in self._by_order_id

    async def count_with_prefix(self, prefix: str) -> int:
        return sum(1 for order_id in self._by_order_id if order_id.startswith(prefix))

    async def list_all(
        self,
        *,
        status: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        customer_email: str | None = None,
    ) -> list[AggregateT]:
        """List aggregates with filtering, newest first."""
        items = list(self._items.values())

        # Apply filters
        if status:
            items = [a for a in items if getattr(a, "status").value == str(status)]
        if created_from:
            items = [a for a in items if a.created_at >= created_from]
        if created_to:
            items = [a for a in items if a.created_at <= created_to]
        if customer_email:
            email = customer_email.strip().lower()
            items = [a for a in items if getattr(a, "customer_email") == email]

        items.sort(key=lambda a: a.created_at, reverse=True)
        return [deepcopy(a) for a in items]


class InMemoryOrderRepository(InMemoryAggregateRepository[Order]):
    pass


class InMemoryCustomOrderRepository(InMemoryAggregateRepository[CustomOrder]):
    pass


# ============================================================================
# Inventory Repository
# ============================================================================


class InMemoryInventoryRepository:
    """In-memory product stock.

    Each adjustment checks and updates quantities in one step under the
    lock. Products made to order are returned unchanged.
    """

    def __init__(self, products: list[Product] | None = None) -> None:
        self._products: dict[str, Product] = {p.id: deepcopy(p) for p in products or []}
        self._lock = asyncio.Lock()

    async def get_product(self, product_id: str) -> Product | None:
        product = self._products.get(product_id)
        return deepcopy(product) if product is not None else None

    async def save_product(self, product: Product) -> Product:
        async with self._lock:
            self._products[product.id] = deepcopy(product)
        return product

    async def list_products(self) -> list[Product]:
        return [deepcopy(p) for p in self._products.values()]

    def _require(self, product_id: str, quantity: int) -> Product:
        if quantity <= 0:
            raise ValidationError([f"Quantity must be positive, got {quantity}"])
        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def reserve_stock(self, product_id: str, quantity: int) -> Product:
        async with self._lock:
            product = self._require(product_id, quantity)
            if not product.is_active:
                raise ProductUnavailableError(product.name)
            if product.tracks_stock:
                if product.available_quantity < quantity:
                    raise InsufficientStockError(
                        product.name, product.available_quantity, quantity
                    )
                product.reserved_quantity += quantity
            snapshot = deepcopy(product)
        logger.debug("Stock reserved", product_id=product_id, quantity=quantity)
        return snapshot

    async def release_stock(self, product_id: str, quantity: int) -> Product:
        async with self._lock:
            product = self._require(product_id, quantity)
            if product.tracks_stock:
                product.reserved_quantity = max(0, product.reserved_quantity - quantity)
            snapshot = deepcopy(product)
        logger.debug("Stock released", product_id=product_id, quantity=quantity)
        return snapshot

    async def commit_stock(self, product_id: str, quantity: int) -> Product:
        async with self._lock:
            product = self._require(product_id, quantity)
            if product.tracks_stock:
                if product.stock_quantity < quantity:
                    raise InsufficientStockError(product.name, product.stock_quantity, quantity)
                product.stock_quantity -= quantity
                product.reserved_quantity = max(0, product.reserved_quantity - quantity)
                product.sold_count += quantity
            snapshot = deepcopy(product)
        logger.debug("Stock committed", product_id=product_id, quantity=quantity)
        return snapshot

    async def restock(self, product_id: str, quantity: int) -> Product:
        async with self._lock:
            product = self._require(product_id, quantity)
            if product.tracks_stock:
                product.stock_quantity += quantity
                product.sold_count = max(0, product.sold_count - quantity)
            snapshot = deepcopy(product)
        logger.debug("Stock restored", product_id=product_id, quantity=quantity)
        return snapshot
