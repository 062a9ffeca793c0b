"""Workflow manager.

State machines for standard orders, custom orders and payments. Each state
declares its allowed transitions, the validations that must pass before it
is entered, and entry/exit actions that carry the side effects (inventory
adjustments, refund requests, notifications).

The manager mutates the entity in memory only. Persisting it is the
caller's job.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from cakeshop.application.event_bus import EventBus
from cakeshop.application.ports import InventoryRepository, PaymentGateway
from cakeshop.domain.base import AggregateRoot
from cakeshop.domain.entities import CustomOrder, Order, OrderItem, Product
from cakeshop.domain.events import EventName, status_event_name
from cakeshop.domain.exceptions import (
    DomainError,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidStateError,
    ProductNotFoundError,
    RuleNotFoundError,
    RuleViolationError,
    SideEffectError,
)
from cakeshop.domain.rules import RulesEngine
from cakeshop.domain.state_machines import (
    AdvancePaymentStatus,
    CustomOrderStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

logger = structlog.get_logger()

Action = Callable[[Any, str, dict[str, Any]], Awaitable[None]]
Validation = Callable[[Any, dict[str, Any]], Awaitable[None]]


# ============================================================================
# Workflow Definitions
# ============================================================================


class WorkflowType(str, Enum):
    """The three independent state machines."""

    ORDER = "order"
    CUSTOM_ORDER = "customOrder"
    PAYMENT = "payment"


class ValidationKind(str, Enum):
    """Checks that must pass before a state is entered."""

    CHECK_STOCK_AVAILABILITY = "checkStockAvailability"
    VALIDATE_DELIVERY_DATE = "validateDeliveryDate"
    VALIDATE_CUSTOMER_INFO = "validateCustomerInfo"
    ENSURE_PAYMENT_INITIATED = "ensurePaymentInitiated"
    VALIDATE_CUSTOM_ORDER_REQUIREMENTS = "validateCustomOrderRequirements"
    CHECK_DELIVERY_DATE_FEASIBILITY = "checkDeliveryDateFeasibility"
    ENSURE_PRICING_SET = "ensurePricingSet"
    CHECK_ADVANCE_PAYMENT = "checkAdvancePaymentIfRequired"


@dataclass(frozen=True)
class StateDefinition:
    """One state of a workflow.

    Attributes:
        name: State value.
        description: Human-readable description.
        allowed_transitions: Target states reachable from here.
        validations: Checks run before this state is entered.
        on_enter: Called with (entity, previous_state, context) after the move.
        on_exit: Called with (entity, next_state, context) before the move.
        terminal: Whether the state has no way out.
    """

    name: str
    description: str
    allowed_transitions: tuple[str, ...] = ()
    validations: tuple[ValidationKind, ...] = ()
    on_enter: Action | None = None
    on_exit: Action | None = None
    terminal: bool = False


@dataclass(frozen=True)
class WorkflowDefinition:
    """A complete state machine.

    Attributes:
        type: Workflow type.
        states: States keyed by value.
        initial_state: State new entities start in.
        status_field: Entity attribute holding the state.
        status_enum: Enum the attribute is typed with.
        transition_rule: Rules engine rule that must agree with the graph.
    """

    type: WorkflowType
    states: dict[str, StateDefinition]
    initial_state: str
    status_field: str
    status_enum: type[Enum]
    transition_rule: str


@dataclass(frozen=True)
class NextState:
    state: str
    description: str


@dataclass
class StateInfo:
    """Read-only view of a state for callers."""

    name: str
    description: str
    allowed_transitions: list[str] = field(default_factory=list)
    validations: list[str] = field(default_factory=list)
    terminal: bool = False


def _state_value(state: Any) -> str:
    return state.value if isinstance(state, Enum) else str(state)


# ============================================================================
# Workflow Manager
# ============================================================================


class WorkflowManager:
    """Drives orders, custom orders and payments through their state graphs.

    Example:
        manager = WorkflowManager(rules, events, inventory)
        await manager.transition_state(order, WorkflowType.ORDER, "confirmed")
    """

    def __init__(
        self,
        rules: RulesEngine,
        events: EventBus,
        inventory: InventoryRepository,
        payment_gateway: PaymentGateway | None = None,
    ) -> None:
        """Initialize manager.

        Args:
            rules: Rules engine used for cross-checks and validations.
            events: Bus that receives lifecycle and transition events.
            inventory: Stock adjustments made by entry actions.
            payment_gateway: Optional provider queried before confirming
                online-transfer orders.
        """
        self.rules = rules
        self.events = events
        self.inventory = inventory
        self.payment_gateway = payment_gateway
        self._validations: dict[ValidationKind, Validation] = {
            ValidationKind.CHECK_STOCK_AVAILABILITY: self._check_stock_availability,
            ValidationKind.VALIDATE_DELIVERY_DATE: self._validate_delivery_date,
            ValidationKind.VALIDATE_CUSTOMER_INFO: self._validate_customer_info,
            ValidationKind.ENSURE_PAYMENT_INITIATED: self._ensure_payment_initiated,
            ValidationKind.VALIDATE_CUSTOM_ORDER_REQUIREMENTS: self._validate_custom_requirements,
            ValidationKind.CHECK_DELIVERY_DATE_FEASIBILITY: self._check_delivery_feasibility,
            ValidationKind.ENSURE_PRICING_SET: self._ensure_pricing_set,
            ValidationKind.CHECK_ADVANCE_PAYMENT: self._check_advance_payment,
        }
        self._workflows: dict[WorkflowType, WorkflowDefinition] = {
            WorkflowType.ORDER: self._order_workflow(),
            WorkflowType.CUSTOM_ORDER: self._custom_order_workflow(),
            WorkflowType.PAYMENT: self._payment_workflow(),
        }

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _order_workflow(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            type=WorkflowType.ORDER,
            initial_state=OrderStatus.PENDING.value,
            status_field="status",
            status_enum=OrderStatus,
            transition_rule="order.statusTransition",
            states={
                "pending": StateDefinition(
                    "pending",
                    "Order placed, awaiting confirmation",
                    ("confirmed", "cancelled"),
                    validations=(
                        ValidationKind.CHECK_STOCK_AVAILABILITY,
                        ValidationKind.VALIDATE_DELIVERY_DATE,
                        ValidationKind.VALIDATE_CUSTOMER_INFO,
                    ),
                    on_enter=self._on_order_lifecycle,
                    on_exit=self._log_exit,
                ),
                "confirmed": StateDefinition(
                    "confirmed",
                    "Order confirmed, ready for preparation",
                    ("preparing", "cancelled"),
                    validations=(ValidationKind.ENSURE_PAYMENT_INITIATED,),
                    on_enter=self._on_order_confirmed,
                    on_exit=self._log_exit,
                ),
                "preparing": StateDefinition(
                    "preparing",
                    "Order being prepared",
                    ("ready", "cancelled"),
                    on_enter=self._on_order_lifecycle,
                    on_exit=self._log_exit,
                ),
                "ready": StateDefinition(
                    "ready",
                    "Order ready for delivery/pickup",
                    ("delivered",),
                    on_enter=self._on_order_lifecycle,
                    on_exit=self._log_exit,
                ),
                "delivered": StateDefinition(
                    "delivered",
                    "Order completed and delivered",
                    on_enter=self._on_order_lifecycle,
                    terminal=True,
                ),
                "cancelled": StateDefinition(
                    "cancelled",
                    "Order cancelled",
                    on_enter=self._on_order_cancelled,
                    terminal=True,
                ),
            },
        )

    def _custom_order_workflow(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            type=WorkflowType.CUSTOM_ORDER,
            initial_state=CustomOrderStatus.PENDING.value,
            status_field="status",
            status_enum=CustomOrderStatus,
            transition_rule="customOrder.statusTransition",
            states={
                "pending": StateDefinition(
                    "pending",
                    "Custom order submitted, awaiting review",
                    ("confirmed", "cancelled"),
                    validations=(
                        ValidationKind.VALIDATE_CUSTOM_ORDER_REQUIREMENTS,
                        ValidationKind.CHECK_DELIVERY_DATE_FEASIBILITY,
                    ),
                    on_enter=self._on_custom_order_lifecycle,
                    on_exit=self._log_exit,
                ),
                "confirmed": StateDefinition(
                    "confirmed",
                    "Custom order confirmed with pricing",
                    ("in-progress", "cancelled"),
                    validations=(
                        ValidationKind.ENSURE_PRICING_SET,
                        ValidationKind.CHECK_ADVANCE_PAYMENT,
                    ),
                    on_enter=self._on_custom_order_confirmed,
                    on_exit=self._log_exit,
                ),
                "in-progress": StateDefinition(
                    "in-progress",
                    "Custom order in progress",
                    ("completed", "cancelled"),
                    on_enter=self._on_custom_order_lifecycle,
                    on_exit=self._log_exit,
                ),
                "completed": StateDefinition(
                    "completed",
                    "Custom order completed",
                    on_enter=self._on_custom_order_lifecycle,
                    terminal=True,
                ),
                "cancelled": StateDefinition(
                    "cancelled",
                    "Custom order cancelled",
                    on_enter=self._on_custom_order_cancelled,
                    terminal=True,
                ),
            },
        )

    def _payment_workflow(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            type=WorkflowType.PAYMENT,
            initial_state=PaymentStatus.PENDING.value,
            status_field="payment_status",
            status_enum=PaymentStatus,
            transition_rule="payment.statusTransition",
            states={
                "pending": StateDefinition(
                    "pending",
                    "Payment initiated, awaiting completion",
                    ("paid", "failed"),
                    on_enter=self._on_payment_lifecycle,
                    on_exit=self._log_exit,
                ),
                "paid": StateDefinition(
                    "paid",
                    "Payment completed successfully",
                    ("refunded",),
                    on_enter=self._on_payment_lifecycle,
                    on_exit=self._log_exit,
                ),
                "failed": StateDefinition(
                    "failed",
                    "Payment failed",
                    ("pending",),
                    on_enter=self._on_payment_lifecycle,
                    on_exit=self._log_exit,
                ),
                "refunded": StateDefinition(
                    "refunded",
                    "Payment refunded",
                    on_enter=self._on_payment_lifecycle,
                    terminal=True,
                ),
            },
        )

    def get_workflow(self, workflow_type: WorkflowType | str) -> WorkflowDefinition:
        """Look up a workflow definition.

        Raises:
            RuleNotFoundError: If the workflow type is unknown.
        """
        try:
            return self._workflows[WorkflowType(workflow_type)]
        except ValueError as exc:
            raise RuleNotFoundError(str(workflow_type), kind="Workflow") from exc

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def ensure_transition_allowed(
        self, entity: Any, workflow_type: WorkflowType | str, new_state: Any
    ) -> tuple[str, str]:
        """Check the graph and the rules engine for a move, without side effects.

        Returns:
            The current and target state values. They are equal when the
            entity is already in the target state.

        Raises:
            InvalidStateError: If either state is not part of the workflow.
            IllegalTransitionError: If the graph does not allow the move.
            RuleViolationError: If the rules engine disagrees with the graph.
        """
        workflow = self.get_workflow(workflow_type)
        current = _state_value(getattr(entity, workflow.status_field))
        target = _state_value(new_state)

        if current not in workflow.states:
            raise InvalidStateError(workflow.type.value, current, which="current")
        if target not in workflow.states:
            raise InvalidStateError(workflow.type.value, target, which="target")
        if current == target:
            return current, target

        current_def = workflow.states[current]
        if target not in current_def.allowed_transitions:
            raise IllegalTransitionError(
                entity_type=workflow.type.value,
                entity_id=getattr(entity, "order_id", entity.id),
                current_state=current,
                target_state=target,
                allowed_transitions=list(current_def.allowed_transitions),
            )
        if not self.rules.check_rule(workflow.transition_rule, current, target):
            raise RuleViolationError(
                f"Business rules prevent transition from {current} to {target}",
                rule=workflow.transition_rule,
            )
        return current, target

    async def transition_state(
        self,
        entity: AggregateRoot,
        workflow_type: WorkflowType | str,
        new_state: Any,
        context: dict[str, Any] | None = None,
    ) -> AggregateRoot:
        """Move an entity to a new state.

        Nothing on the entity changes until every check has passed. Moving
        an entity to the state it is already in does nothing.

        Args:
            entity: Order or custom order.
            workflow_type: Which state machine to use.
            new_state: Target state (enum member or value).
            context: Free-form details (actor, reason) passed to actions and events.

        Returns:
            The same entity, updated in memory.

        Raises:
            InvalidStateError: If either state is not part of the workflow.
            IllegalTransitionError: If the graph does not allow the move.
            RuleViolationError: If the rules engine or a state validation rejects it.
            SideEffectError: If an entry or exit action fails.
        """
        workflow = self.get_workflow(workflow_type)
        context = dict(context or {})
        current, target = self.ensure_transition_allowed(entity, workflow_type, new_state)

        if current == target:
            logger.debug(
                "Transition to current state skipped",
                workflow=workflow.type.value,
                order_id=getattr(entity, "order_id", entity.id),
                state=current,
            )
            return entity

        current_def = workflow.states[current]
        target_def = workflow.states[target]
        for kind in target_def.validations:
            await self._validations[kind](entity, context)

        if current_def.on_exit is not None:
            await current_def.on_exit(entity, target, context)

        setattr(entity, workflow.status_field, workflow.status_enum(target))
        entity.record_status_change(
            current,
            target,
            field_name=workflow.status_field,
            actor=context.get("cancelled_by") or context.get("user"),
            reason=context.get("reason"),
        )

        if target_def.on_enter is not None:
            await target_def.on_enter(entity, current, context)

        self._emit_transition(entity, workflow, current, target, context)
        return entity

    async def enter_initial_state(
        self,
        entity: AggregateRoot,
        workflow_type: WorkflowType | str,
        context: dict[str, Any] | None = None,
    ) -> AggregateRoot:
        """Run the initial state's entry action for a freshly created entity.

        Raises:
            InvalidStateError: If the entity is not in the initial state.
        """
        workflow = self.get_workflow(workflow_type)
        context = dict(context or {})
        current = _state_value(getattr(entity, workflow.status_field))
        if current != workflow.initial_state:
            raise InvalidStateError(workflow.type.value, current, which="initial")
        initial = workflow.states[current]
        if initial.on_enter is not None:
            await initial.on_enter(entity, "", context)
        self._emit_transition(entity, workflow, None, current, context)
        return entity

    def _emit_transition(
        self,
        entity: AggregateRoot,
        workflow: WorkflowDefinition,
        old_state: str | None,
        new_state: str,
        context: dict[str, Any],
    ) -> None:
        order_id = getattr(entity, "order_id", entity.id)
        logger.info(
            "State transition",
            workflow=workflow.type.value,
            order_id=order_id,
            old_state=old_state,
            new_state=new_state,
        )
        self.events.emit(
            EventName.STATE_TRANSITION,
            {
                "entity_type": workflow.type.value,
                "entity_id": order_id,
                "old_state": old_state,
                "new_state": new_state,
                "context": context,
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_transition(
        self, entity: Any, workflow_type: WorkflowType | str, new_state: Any
    ) -> bool:
        """Whether the graph and rules allow the move. Never raises."""
        try:
            workflow = self.get_workflow(workflow_type)
            current = _state_value(getattr(entity, workflow.status_field))
            target = _state_value(new_state)
            state = workflow.states.get(current)
            if state is None or target not in state.allowed_transitions:
                return False
            return self.rules.check_rule(workflow.transition_rule, current, target)
        except (DomainError, AttributeError, ValueError):
            return False

    def get_next_possible_states(
        self, entity: Any, workflow_type: WorkflowType | str
    ) -> list[NextState]:
        """States reachable in one step. Never raises."""
        try:
            workflow = self.get_workflow(workflow_type)
            current = _state_value(getattr(entity, workflow.status_field))
        except (DomainError, AttributeError, ValueError):
            return []
        state = workflow.states.get(current)
        if state is None:
            return []
        return [
            NextState(target, workflow.states[target].description)
            for target in state.allowed_transitions
        ]

    def get_workflow_states(self, workflow_type: WorkflowType | str) -> list[StateInfo]:
        """Describe every state of a workflow. Never raises."""
        try:
            workflow = self.get_workflow(workflow_type)
        except DomainError:
            return []
        return [
            StateInfo(
                name=state.name,
                description=state.description,
                allowed_transitions=list(state.allowed_transitions),
                validations=[kind.value for kind in state.validations],
                terminal=state.terminal,
            )
            for state in workflow.states.values()
        ]

    # ------------------------------------------------------------------
    # Validations
    # ------------------------------------------------------------------

    async def _check_stock_availability(self, order: Order, context: dict[str, Any]) -> None:
        for item in order.items:
            product = await self.inventory.get_product(item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)
            if not self.rules.check_rule("order.stockAvailability", product, item.quantity):
                raise InsufficientStockError(
                    item.name, product.available_quantity, item.quantity
                )

    def _revalidate(self, rule_name: str, value: Any, prefix: str) -> None:
        try:
            self.rules.validate_rule(rule_name, value)
        except RuleViolationError as exc:
            raise RuleViolationError(f"{prefix}: {exc.message}", rule=rule_name) from exc

    async def _validate_delivery_date(self, order: Order, context: dict[str, Any]) -> None:
        self._revalidate(
            "order.minimumAdvanceNotice", order.delivery_date, "Delivery date validation failed"
        )

    async def _validate_customer_info(self, order: Order, context: dict[str, Any]) -> None:
        self._revalidate(
            "customer.validation", order.customer_info, "Customer info validation failed"
        )

    async def _ensure_payment_initiated(self, order: Order, context: dict[str, Any]) -> None:
        if order.payment_method == PaymentMethod.CASH_ON_DELIVERY:
            return
        status: PaymentStatus | None = order.payment_status
        if self.payment_gateway is not None:
            status = await self.payment_gateway.get_payment_status(order.order_id)
        if status not in (PaymentStatus.PENDING, PaymentStatus.PAID):
            raise RuleViolationError(
                "Payment must be initiated before confirming order",
                rule="payment.statusTransition",
            )

    async def _validate_custom_requirements(
        self, custom_order: CustomOrder, context: dict[str, Any]
    ) -> None:
        self._revalidate(
            "customOrder.minimumAdvanceNotice",
            custom_order.delivery_date,
            "Custom order requirements validation failed",
        )

    async def _check_delivery_feasibility(
        self, custom_order: CustomOrder, context: dict[str, Any]
    ) -> None:
        self._revalidate(
            "customOrder.maximumAdvance",
            custom_order.delivery_date,
            "Delivery date feasibility check failed",
        )

    async def _ensure_pricing_set(self, custom_order: CustomOrder, context: dict[str, Any]) -> None:
        if not custom_order.estimated_price or custom_order.estimated_price <= 0:
            raise RuleViolationError(
                "Estimated price must be set before confirming custom order",
                rule="product.pricing",
            )

    async def _check_advance_payment(
        self, custom_order: CustomOrder, context: dict[str, Any]
    ) -> None:
        # An unset advance is filled in by the confirmed entry action.
        advance = self.rules.calculate_advance_payment(custom_order)
        if not advance.required or custom_order.advance_amount == 0:
            return
        if custom_order.advance_payment_status not in (
            AdvancePaymentStatus.PENDING,
            AdvancePaymentStatus.PAID,
        ):
            raise RuleViolationError(
                "Advance payment must be processed before confirming custom order",
                rule="payment.advanceRequired",
            )

    # ------------------------------------------------------------------
    # Order actions
    # ------------------------------------------------------------------

    async def _log_exit(self, entity: Any, next_state: str, context: dict[str, Any]) -> None:
        logger.debug(
            "Leaving state",
            order_id=getattr(entity, "order_id", None),
            next_state=next_state,
        )

    def _order_payload(self, order: Order, context: dict[str, Any]) -> dict[str, Any]:
        return {"order": order.to_dict(), "context": context}

    async def _on_order_lifecycle(
        self, order: Order, previous: str, context: dict[str, Any]
    ) -> None:
        self.events.emit(
            status_event_name("order", order.status.value), self._order_payload(order, context)
        )

    async def _on_order_confirmed(
        self, order: Order, previous: str, context: dict[str, Any]
    ) -> None:
        committed: list[OrderItem] = []
        try:
            for item in order.items:
                product = await self._adjust_stock(
                    self.inventory.commit_stock,
                    "commit stock",
                    order,
                    item.product_id,
                    item.quantity,
                )
                committed.append(item)
                self._emit_stock_levels(product, order.order_id)
        except Exception:
            await self._uncommit(order, committed)
            raise
        self.events.emit(EventName.ORDER_CONFIRMED, self._order_payload(order, context))

    async def _uncommit(self, order: Order, items: list[OrderItem]) -> None:
        """Put committed lines back on the shelf and hold them for the order again.

        The stored order is still pending, so its reservation must survive.
        """
        for item in items:
            try:
                await self.inventory.restock(item.product_id, item.quantity)
                await self.inventory.reserve_stock(item.product_id, item.quantity)
            except Exception as exc:
                logger.error(
                    "Failed to undo stock commit",
                    order_id=order.order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    error=str(exc),
                )

    async def _on_order_cancelled(
        self, order: Order, previous: str, context: dict[str, Any]
    ) -> None:
        if previous == OrderStatus.PENDING.value:
            for item in order.items:
                await self._adjust_stock(
                    self.inventory.release_stock,
                    "release stock",
                    order,
                    item.product_id,
                    item.quantity,
                )
        elif OrderStatus(previous).holds_committed_stock():
            for item in order.items:
                product = await self._adjust_stock(
                    self.inventory.restock, "restore stock", order, item.product_id, item.quantity
                )
                if product.tracks_stock:
                    self.events.emit(
                        EventName.STOCK_RESTORED,
                        {
                            "product": product.to_dict(),
                            "quantity": item.quantity,
                            "order_id": order.order_id,
                        },
                    )

        if order.payment_status == PaymentStatus.PAID:
            self.events.emit(
                EventName.REFUND_REQUESTED,
                {
                    "order_id": order.order_id,
                    "amount": order.total_amount,
                    "reason": "Order cancellation",
                },
            )
        self.events.emit(EventName.ORDER_CANCELLED, self._order_payload(order, context))

    async def _adjust_stock(
        self,
        adjust: Callable[[str, int], Awaitable[Product]],
        action: str,
        order: Order,
        product_id: str,
        quantity: int,
    ) -> Product:
        try:
            return await adjust(product_id, quantity)
        except DomainError as exc:
            logger.error(
                "Inventory adjustment failed",
                action=action,
                order_id=order.order_id,
                product_id=product_id,
                error=exc.message,
            )
            raise SideEffectError(action, exc.message, entity_id=order.order_id) from exc

    def _emit_stock_levels(self, product: Product, order_id: str) -> None:
        if not product.tracks_stock:
            return
        if product.is_out_of_stock:
            self.events.emit(
                EventName.STOCK_OUT, {"product": product.to_dict(), "order_id": order_id}
            )
        elif self.rules.check_rule("inventory.lowStockAlert", product):
            self.events.emit(
                EventName.STOCK_LOW,
                {
                    "product": product.to_dict(),
                    "alert": self.rules.calculate_rule("inventory.lowStockAlert", product),
                    "order_id": order_id,
                },
            )

    # ------------------------------------------------------------------
    # Custom order actions
    # ------------------------------------------------------------------

    def _custom_payload(self, custom_order: CustomOrder, context: dict[str, Any]) -> dict[str, Any]:
        return {"custom_order": custom_order.to_dict(), "context": context}

    async def _on_custom_order_lifecycle(
        self, custom_order: CustomOrder, previous: str, context: dict[str, Any]
    ) -> None:
        self.events.emit(
            status_event_name("customOrder", custom_order.status.value),
            self._custom_payload(custom_order, context),
        )

    async def _on_custom_order_confirmed(
        self, custom_order: CustomOrder, previous: str, context: dict[str, Any]
    ) -> None:
        advance = self.rules.calculate_advance_payment(custom_order)
        if advance.required and custom_order.advance_amount == 0:
            custom_order.advance_amount = advance.amount
            custom_order.advance_payment_status = AdvancePaymentStatus.PENDING
            logger.info(
                "Advance payment requested",
                order_id=custom_order.order_id,
                advance_amount=advance.amount,
            )
        self.events.emit(
            EventName.CUSTOM_ORDER_CONFIRMED, self._custom_payload(custom_order, context)
        )

    async def _on_custom_order_cancelled(
        self, custom_order: CustomOrder, previous: str, context: dict[str, Any]
    ) -> None:
        if custom_order.advance_payment_status == AdvancePaymentStatus.PAID:
            self.events.emit(
                EventName.REFUND_REQUESTED,
                {
                    "order_id": custom_order.order_id,
                    "amount": custom_order.advance_amount,
                    "reason": "Custom order cancellation",
                },
            )
        self.events.emit(
            EventName.CUSTOM_ORDER_CANCELLED, self._custom_payload(custom_order, context)
        )

    # ------------------------------------------------------------------
    # Payment actions
    # ------------------------------------------------------------------

    async def _on_payment_lifecycle(
        self, order: Order, previous: str, context: dict[str, Any]
    ) -> None:
        self.events.emit(
            status_event_name("payment", order.payment_status.value),
            {
                "payment": {
                    "order_id": order.order_id,
                    "amount": order.total_amount,
                    "method": order.payment_method.value,
                    "status": order.payment_status.value,
                    "previous_status": previous or None,
                },
                "context": context,
            },
        )
