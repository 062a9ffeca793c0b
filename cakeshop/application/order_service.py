"""Order application service.

Orchestrates the order lifecycle:
- Placing standard orders (validation, pricing, stock reservation)
- Placing custom cake orders
- Status and payment transitions through the workflow manager
- Cancellation and pre-modification checks

Every failure is reported on the event bus as ``businessError`` before it
propagates to the caller.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from cakeshop.application.event_bus import EventBus
from cakeshop.application.ports import CustomOrderRepository, InventoryRepository, OrderRepository
from cakeshop.application.workflow import WorkflowManager, WorkflowType
from cakeshop.domain.base import utcnow
from cakeshop.domain.delivery import DeliveryOptions
from cakeshop.domain.entities import CustomOrder, Order, OrderItem, new_custom_order, new_order
from cakeshop.domain.events import EventName
from cakeshop.domain.exceptions import (
    ConsistencyError,
    DomainError,
    InsufficientStockError,
    OrderNotCancellableError,
    OrderNotFoundError,
    ProductNotFoundError,
    ProductUnavailableError,
    RuleViolationError,
    SideEffectError,
)
from cakeshop.domain.order_ids import OrderIdGenerator, OrderType
from cakeshop.domain.rules import OrderTotals, RulesEngine
from cakeshop.domain.state_machines import AdvancePaymentStatus, CustomOrderStatus
from cakeshop.domain.validators import DataValidators
from cakeshop.domain.value_objects import CustomerInfo

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CreateOrderResult:
    """Result of placing a standard order."""

    order: Order
    totals: OrderTotals


@dataclass
class CustomOrderUpdate:
    """Staff changes applied to a custom order alongside a status change.

    Fields left as None are not touched.
    """

    estimated_price: int | None = None
    advance_amount: int | None = None
    admin_notes: str | None = None
    notes: str | None = None
    user: str | None = None
    reason: str | None = None

    def to_context(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in {
                "estimated_price": self.estimated_price,
                "advance_amount": self.advance_amount,
                "user": self.user,
                "reason": self.reason,
            }.items()
            if value is not None
        }


@dataclass
class ModificationCheck:
    can_modify: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class StockCheck:
    """Availability of one requested item."""

    product_id: str
    available: bool
    requested_quantity: int = 0
    product_name: str | None = None
    available_stock: int | None = None
    is_available_on_order: bool = False
    error: str | None = None


def _item_fields(item: Any) -> tuple[str, int]:
    if isinstance(item, Mapping):
        product_id = item.get("product_id") or item.get("product") or ""
        quantity = item.get("quantity", 0)
    else:
        product_id = item.product_id
        quantity = item.quantity
    return str(product_id), int(quantity)


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for standard and custom orders.

    Example:
        service = OrderService(rules, validators, workflow, events,
                               orders, custom_orders, inventory, id_generator)
        result = await service.create_order(payload)
        await service.update_order_status(result.order.order_id, "confirmed")
    """

    def __init__(
        self,
        rules: RulesEngine,
        validators: DataValidators,
        workflow: WorkflowManager,
        events: EventBus,
        orders: OrderRepository,
        custom_orders: CustomOrderRepository,
        inventory: InventoryRepository,
        id_generator: OrderIdGenerator,
    ) -> None:
        """Initialize service.

        Args:
            rules: Business rules engine.
            validators: Payload validators.
            workflow: State machine driver.
            events: Event bus for lifecycle and error events.
            orders: Standard order repository.
            custom_orders: Custom order repository.
            inventory: Product stock repository.
            id_generator: Public order ID generator.
        """
        self.rules = rules
        self.validators = validators
        self.workflow = workflow
        self.events = events
        self.orders = orders
        self.custom_orders = custom_orders
        self.inventory = inventory
        self.id_generator = id_generator

    def _report(self, operation: str, error: Exception, **context: Any) -> None:
        message = error.message if isinstance(error, DomainError) else str(error)
        logger.error(
            "Order operation failed",
            operation=operation,
            error=message,
            error_type=type(error).__name__,
            **context,
        )
        self.events.emit(
            EventName.BUSINESS_ERROR,
            {
                "error": message,
                "error_type": type(error).__name__,
                "errors": error.messages if isinstance(error, DomainError) else [message],
                "context": {"operation": operation, **context},
            },
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str) -> Order:
        """Load a standard order.

        Raises:
            OrderNotFoundError: If no order has this ID.
        """
        order = await self.orders.find_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_custom_order(self, order_id: str) -> CustomOrder:
        custom_order = await self.custom_orders.find_by_order_id(order_id)
        if custom_order is None:
            raise OrderNotFoundError(order_id, kind="Custom order")
        return custom_order

    # ------------------------------------------------------------------
    # Standard orders
    # ------------------------------------------------------------------

    async def create_order(self, data: Mapping[str, Any]) -> CreateOrderResult:
        """Place a standard order.

        The order is saved before stock is reserved. If any reservation
        fails, reservations already made are released and the saved order
        is deleted.

        Args:
            data: Order payload (customer_info, items, delivery_date and
                optional time_slot, is_express, customer_tier,
                special_instructions, payment_method, created_by).

        Returns:
            CreateOrderResult with the pending order and its totals.

        Raises:
            ValidationError: If the payload is malformed.
            RuleViolationError: If a placement rule fails or stock is short.
            ProductNotFoundError: If an item references an unknown product.
            ConsistencyError: If the derived pricing does not add up.
            SideEffectError: If stock reservation fails after saving.
        """
        try:
            payload = self.validators.parse_order(data)
            customer = payload.customer_info.model_dump()
            placement = self.rules.can_place_order(
                {
                    "delivery_date": payload.delivery_date,
                    "customer_info": customer,
                    "items": [item.model_dump() for item in payload.items],
                }
            )
            if not placement.can_place:
                raise RuleViolationError(
                    "Order cannot be placed", errors=placement.errors
                )

            items = await self._resolve_items(payload.items)
            customer_info = CustomerInfo.from_dict(customer)
            subtotal = sum(item.subtotal for item in items)
            totals = self.rules.calculate_order_totals(
                subtotal,
                DeliveryOptions(
                    city=customer_info.city,
                    is_express=payload.is_express,
                    time_slot=payload.time_slot,
                    customer_tier=payload.customer_tier.value,
                ),
            )

            order = new_order(
                order_id=await self.id_generator.generate(OrderType.STANDARD),
                customer_info=customer_info,
                items=items,
                delivery=totals.delivery.to_delivery_info(
                    self.rules.delivery.time_slot_name(payload.time_slot)
                ),
                delivery_date=payload.delivery_date,
                payment_method=payload.payment_method,
                customer_tier=payload.customer_tier.value,
                special_instructions=payload.special_instructions,
            )
            errors = self.validators.validate_order_consistency(order)
            if errors:
                raise ConsistencyError(errors)

            order = await self.orders.save(order)
            await self._reserve_items(order)
            await self.workflow.enter_initial_state(
                order, WorkflowType.ORDER, {"created_by": payload.created_by}
            )

            logger.info(
                "Order created",
                order_id=order.order_id,
                items=len(order.items),
                subtotal=totals.subtotal,
                delivery_fee=totals.delivery_fee,
                total=totals.total,
            )
            return CreateOrderResult(order=order, totals=totals)

        except Exception as e:
            self._report("createOrder", e)
            raise

    async def _resolve_items(self, requested: Iterable[Any]) -> list[OrderItem]:
        """Price requested items from current product data.

        Raises:
            ProductNotFoundError: If a product does not exist.
            ProductUnavailableError: If a product is inactive.
            InsufficientStockError: If a product cannot cover the quantity.
        """
        items: list[OrderItem] = []
        for entry in requested:
            product_id, quantity = _item_fields(entry)
            product = await self.inventory.get_product(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if not product.is_active:
                raise ProductUnavailableError(product.name)
            if not self.rules.check_rule("order.stockAvailability", product, quantity):
                raise InsufficientStockError(product.name, product.available_quantity, quantity)
            items.append(
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    price=product.unit_price,
                    quantity=quantity,
                )
            )
        return items

    async def _reserve_items(self, order: Order) -> None:
        reserved: list[OrderItem] = []
        try:
            for item in order.items:
                await self.inventory.reserve_stock(item.product_id, item.quantity)
                reserved.append(item)
        except Exception as exc:
            message = exc.message if isinstance(exc, DomainError) else str(exc)
            logger.warning(
                "Stock reservation failed, rolling back order",
                order_id=order.order_id,
                reserved_items=len(reserved),
                error=message,
            )
            try:
                await self._release_items(order, reserved)
            finally:
                await self.orders.delete(order.id)
            raise SideEffectError("reserve stock", message, entity_id=order.order_id) from exc

    async def _release_items(self, order: Order, items: list[OrderItem]) -> None:
        for item in items:
            try:
                await self.inventory.release_stock(item.product_id, item.quantity)
            except Exception as exc:
                logger.error(
                    "Failed to release reserved stock",
                    order_id=order.order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    error=str(exc),
                )

    async def update_order_status(
        self,
        order_id: str,
        new_status: str,
        context: dict[str, Any] | None = None,
    ) -> Order:
        """Move an order through its fulfilment workflow and persist it.

        Raises:
            OrderNotFoundError: If the order does not exist.
            IllegalTransitionError: If the move is not allowed.
            ConcurrentModificationError: If the order changed since it was loaded.
        """
        try:
            order = await self.get_order(order_id)
            await self.workflow.transition_state(order, WorkflowType.ORDER, new_status, context)
            order = await self.orders.save(order)
            logger.info("Order status updated", order_id=order_id, status=order.status.value)
            return order
        except Exception as e:
            self._report("updateOrderStatus", e, order_id=order_id, new_status=str(new_status))
            raise

    async def update_payment_status(
        self,
        order_id: str,
        new_status: str,
        context: dict[str, Any] | None = None,
    ) -> Order:
        """Move an order through its payment workflow and persist it."""
        try:
            order = await self.get_order(order_id)
            await self.workflow.transition_state(order, WorkflowType.PAYMENT, new_status, context)
            order = await self.orders.save(order)
            logger.info(
                "Payment status updated",
                order_id=order_id,
                payment_status=order.payment_status.value,
            )
            return order
        except Exception as e:
            self._report("updatePaymentStatus", e, order_id=order_id, new_status=str(new_status))
            raise

    async def cancel_order(self, order_id: str, reason: str, cancelled_by: str) -> Order:
        """Cancel a standard order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            OrderNotCancellableError: If the order is delivered or cancelled.
        """
        try:
            order = await self.get_order(order_id)
            if order.is_terminal:
                raise OrderNotCancellableError(order_id, order.status.value)

            await self.workflow.transition_state(
                order,
                WorkflowType.ORDER,
                "cancelled",
                {
                    "reason": reason,
                    "cancelled_by": cancelled_by,
                    "cancelled_at": utcnow().isoformat(),
                },
            )
            order.notes = f"Cancelled by {cancelled_by}: {reason}"
            order = await self.orders.save(order)

            logger.info("Order cancelled", order_id=order_id, cancelled_by=cancelled_by)
            return order
        except Exception as e:
            self._report("cancelOrder", e, order_id=order_id, reason=reason)
            raise

    # ------------------------------------------------------------------
    # Custom orders
    # ------------------------------------------------------------------

    async def create_custom_order(self, data: Mapping[str, Any]) -> CustomOrder:
        """Place a custom cake order.

        Raises:
            ValidationError: If the payload is malformed.
            RuleViolationError: If the notice or customer rules fail.
        """
        try:
            payload = self.validators.parse_custom_order(data)
            placement = self.rules.can_place_custom_order(payload.model_dump())
            if not placement.can_place:
                raise RuleViolationError(
                    "Custom order cannot be placed", errors=placement.errors
                )

            custom_order = new_custom_order(
                order_id=await self.id_generator.generate(OrderType.CUSTOM),
                customer_name=payload.customer_name,
                customer_email=payload.customer_email,
                customer_phone=payload.customer_phone,
                event_type=payload.event_type,
                cake_size=payload.cake_size,
                flavor=payload.flavor,
                delivery_date=payload.delivery_date,
                special_requirements=payload.special_requirements,
            )
            custom_order = await self.custom_orders.save(custom_order)
            await self.workflow.enter_initial_state(custom_order, WorkflowType.CUSTOM_ORDER)

            logger.info(
                "Custom order created",
                order_id=custom_order.order_id,
                event_type=custom_order.event_type,
                cake_size=custom_order.cake_size,
            )
            return custom_order
        except Exception as e:
            self._report("createCustomOrder", e)
            raise

    async def update_custom_order_status(
        self,
        order_id: str,
        new_status: str,
        update: CustomOrderUpdate | None = None,
    ) -> CustomOrder:
        """Apply staff changes and move a custom order to a new status.

        Args:
            order_id: Public custom order ID.
            new_status: Target status.
            update: Price, advance and note changes applied before the move.

        Raises:
            OrderNotFoundError: If the custom order does not exist.
            IllegalTransitionError: If the move is not allowed.
            ConsistencyError: If the changes leave the advance incoherent.
        """
        update = update or CustomOrderUpdate()
        try:
            custom_order = await self.get_custom_order(order_id)
            self.workflow.ensure_transition_allowed(
                custom_order, WorkflowType.CUSTOM_ORDER, new_status
            )
            self._apply_custom_update(custom_order, new_status, update)
            errors = self.validators.validate_custom_order_consistency(custom_order)
            if errors:
                raise ConsistencyError(errors)

            await self.workflow.transition_state(
                custom_order, WorkflowType.CUSTOM_ORDER, new_status, update.to_context()
            )
            custom_order = await self.custom_orders.save(custom_order)

            logger.info(
                "Custom order status updated",
                order_id=order_id,
                status=custom_order.status.value,
                estimated_price=custom_order.estimated_price,
                advance_amount=custom_order.advance_amount,
            )
            return custom_order
        except Exception as e:
            self._report(
                "updateCustomOrderStatus", e, order_id=order_id, new_status=str(new_status)
            )
            raise

    def _apply_custom_update(
        self, custom_order: CustomOrder, new_status: str, update: CustomOrderUpdate
    ) -> None:
        if update.estimated_price is not None:
            custom_order.estimated_price = update.estimated_price
            if str(getattr(new_status, "value", new_status)) == CustomOrderStatus.CONFIRMED.value:
                advance = self.rules.calculate_advance_payment(custom_order)
                if advance.required:
                    custom_order.advance_amount = advance.amount
                    custom_order.advance_payment_status = AdvancePaymentStatus.PENDING
        if update.advance_amount is not None:
            custom_order.advance_amount = update.advance_amount
            if update.advance_amount > 0:
                custom_order.advance_payment_status = AdvancePaymentStatus.PENDING
        if update.admin_notes is not None:
            custom_order.admin_notes = update.admin_notes
        if update.notes is not None:
            custom_order.notes = update.notes

    async def cancel_custom_order(
        self, order_id: str, reason: str, cancelled_by: str
    ) -> CustomOrder:
        """Cancel a custom order.

        Raises:
            OrderNotFoundError: If the custom order does not exist.
            OrderNotCancellableError: If it is completed or cancelled.
        """
        try:
            custom_order = await self.get_custom_order(order_id)
            if custom_order.is_terminal:
                raise OrderNotCancellableError(
                    order_id, custom_order.status.value, kind="custom order"
                )

            await self.workflow.transition_state(
                custom_order,
                WorkflowType.CUSTOM_ORDER,
                "cancelled",
                {
                    "reason": reason,
                    "cancelled_by": cancelled_by,
                    "cancelled_at": utcnow().isoformat(),
                },
            )
            custom_order.notes = f"Cancelled by {cancelled_by}: {reason}"
            custom_order = await self.custom_orders.save(custom_order)

            logger.info("Custom order cancelled", order_id=order_id, cancelled_by=cancelled_by)
            return custom_order
        except Exception as e:
            self._report("cancelCustomOrder", e, order_id=order_id, reason=reason)
            raise

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def validate_order_modification(
        self, order_id: str, modifications: Mapping[str, Any]
    ) -> ModificationCheck:
        """Check whether an order could take the given changes.

        Nothing is changed; the result lists every reason the changes
        would be refused.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self.get_order(order_id)
        errors: list[str] = []

        if order.is_terminal:
            errors.append("Cannot modify completed or cancelled orders")

        if modifications.get("items"):
            try:
                await self._resolve_items(modifications["items"])
            except DomainError as exc:
                errors.append(f"Item validation failed: {exc.message}")

        if modifications.get("delivery_date"):
            try:
                self.rules.validate_rule(
                    "order.minimumAdvanceNotice", modifications["delivery_date"]
                )
            except RuleViolationError as exc:
                errors.append(f"Delivery date validation failed: {exc.message}")

        return ModificationCheck(can_modify=not errors, errors=errors)

    async def check_stock_availability(self, items: Iterable[Any]) -> list[StockCheck]:
        """Report availability for each requested item without reserving."""
        checks: list[StockCheck] = []
        for entry in items:
            product_id, quantity = _item_fields(entry)
            product = await self.inventory.get_product(product_id)
            if product is None:
                checks.append(
                    StockCheck(
                        product_id=product_id,
                        available=False,
                        requested_quantity=quantity,
                        error="Product not found",
                    )
                )
                continue
            checks.append(
                StockCheck(
                    product_id=product.id,
                    available=self.rules.check_rule("order.stockAvailability", product, quantity),
                    requested_quantity=quantity,
                    product_name=product.name,
                    available_stock=product.available_quantity,
                    is_available_on_order=product.is_available_on_order,
                )
            )
        return checks
