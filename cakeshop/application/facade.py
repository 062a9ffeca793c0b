"""Business logic facade.

Single entry point that wires the rules engine, validators, event bus,
workflow manager, order service and analytics together. Components are
built explicitly by ``build_business_logic``; nothing is created at import
time.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import structlog

from cakeshop.application.analytics import CustomerOrderHistory, OrderAnalyticsService
from cakeshop.application.event_bus import EventBus
from cakeshop.application.order_service import (
    CreateOrderResult,
    CustomOrderUpdate,
    OrderService,
)
from cakeshop.application.ports import (
    CustomOrderRepository,
    InventoryRepository,
    OrderRepository,
    PaymentGateway,
)
from cakeshop.application.workflow import NextState, StateInfo, WorkflowManager, WorkflowType
from cakeshop.domain.base import AggregateRoot, local_clock, utcnow
from cakeshop.domain.entities import CustomOrder, Order
from cakeshop.domain.events import BusinessEvent
from cakeshop.domain.order_ids import OrderIdGenerator, OrderType
from cakeshop.domain.rules import AdvancePayment, OrderTotals, PlacementCheck, RulesEngine
from cakeshop.domain.validators import DataValidators, ValidationResult
from cakeshop.infrastructure.config import Settings, get_settings
from cakeshop.infrastructure.payment_gateway import HttpPaymentGateway
from cakeshop.infrastructure.repositories import (
    InMemoryCustomOrderRepository,
    InMemoryInventoryRepository,
    InMemoryOrderRepository,
)
from cakeshop.infrastructure.subscribers import AuditLog, LoggingNotifier, StockWatcher

logger = structlog.get_logger()


@dataclass
class Repositories:
    """Persistence collaborators."""

    orders: OrderRepository = field(default_factory=InMemoryOrderRepository)
    custom_orders: CustomOrderRepository = field(default_factory=InMemoryCustomOrderRepository)
    inventory: InventoryRepository = field(default_factory=InMemoryInventoryRepository)


@dataclass
class BusinessLogic:
    """Explicitly constructed business layer components."""

    settings: Settings
    rules: RulesEngine
    validators: DataValidators
    events: EventBus
    workflows: WorkflowManager
    orders: OrderService
    analytics: OrderAnalyticsService
    repositories: Repositories
    notifier: LoggingNotifier
    audit_log: AuditLog
    stock_watcher: StockWatcher
    payment_gateway: PaymentGateway | None = None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_order(self, data: Any) -> ValidationResult:
        return self.validators.format_validation_result(self.validators.validate_order(data))

    def validate_custom_order(self, data: Any) -> ValidationResult:
        return self.validators.format_validation_result(
            self.validators.validate_custom_order(data)
        )

    def validate_product(self, data: Any) -> ValidationResult:
        return self.validators.format_validation_result(self.validators.validate_product(data))

    # ------------------------------------------------------------------
    # Business rules
    # ------------------------------------------------------------------

    def can_place_order(self, data: Mapping[str, Any]) -> PlacementCheck:
        return self.rules.can_place_order(data)

    def can_place_custom_order(self, data: Mapping[str, Any]) -> PlacementCheck:
        return self.rules.can_place_custom_order(data)

    def calculate_order_totals(
        self, subtotal: int, options: Mapping[str, Any] | None = None
    ) -> OrderTotals:
        return self.rules.calculate_order_totals(subtotal, options)

    def calculate_advance_payment(self, custom_order: Any) -> AdvancePayment:
        return self.rules.calculate_advance_payment(custom_order)

    def get_all_business_rules(self) -> list[dict[str, Any]]:
        return self.rules.get_all_rules()

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def transition_order_status(
        self, order: Order, new_status: str, context: dict[str, Any] | None = None
    ) -> AggregateRoot:
        return await self.workflows.transition_state(order, WorkflowType.ORDER, new_status, context)

    async def transition_custom_order_status(
        self, custom_order: CustomOrder, new_status: str, context: dict[str, Any] | None = None
    ) -> AggregateRoot:
        return await self.workflows.transition_state(
            custom_order, WorkflowType.CUSTOM_ORDER, new_status, context
        )

    def get_next_possible_states(self, entity: Any, workflow_type: str) -> list[NextState]:
        return self.workflows.get_next_possible_states(entity, workflow_type)

    def get_workflow_states(self, workflow_type: str) -> list[StateInfo]:
        return self.workflows.get_workflow_states(workflow_type)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(self, data: Mapping[str, Any]) -> CreateOrderResult:
        return await self.orders.create_order(data)

    async def create_custom_order(self, data: Mapping[str, Any]) -> CustomOrder:
        return await self.orders.create_custom_order(data)

    async def update_order_status(
        self, order_id: str, new_status: str, context: dict[str, Any] | None = None
    ) -> Order:
        return await self.orders.update_order_status(order_id, new_status, context)

    async def update_custom_order_status(
        self, order_id: str, new_status: str, update: CustomOrderUpdate | None = None
    ) -> CustomOrder:
        return await self.orders.update_custom_order_status(order_id, new_status, update)

    async def cancel_order(self, order_id: str, reason: str, cancelled_by: str) -> Order:
        return await self.orders.cancel_order(order_id, reason, cancelled_by)

    async def cancel_custom_order(
        self, order_id: str, reason: str, cancelled_by: str
    ) -> CustomOrder:
        return await self.orders.cancel_custom_order(order_id, reason, cancelled_by)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def get_order_analytics(self, filters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return await self.analytics.get_order_analytics(filters)

    async def get_business_insights(self, period: str = "30d") -> dict[str, Any]:
        return await self.analytics.get_business_insights(period)

    async def get_customer_order_history(self, email: str) -> CustomerOrderHistory:
        return await self.analytics.get_customer_order_history(email)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit_business_event(self, name: str, data: dict[str, Any]) -> BusinessEvent:
        return self.events.emit(name, data)

    def get_event_history(self, **filters: Any) -> list[BusinessEvent]:
        return self.events.get_event_history(**filters)

    def get_event_stats(self) -> dict[str, Any]:
        return self.events.get_event_stats()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health_status(self) -> dict[str, Any]:
        """Report component wiring and basic counters."""
        return {
            "business_logic": "operational",
            "components": {
                "rules_engine": "active",
                "validators": "active",
                "workflow_manager": "active",
                "event_bus": "active",
                "order_service": "active",
                "payment_gateway": "active" if self.payment_gateway else "not configured",
            },
            "stats": {
                "total_rules": len(self.rules.get_all_rules()),
                "event_history": len(self.events.get_event_history()),
                "subscribers": self.events.subscriber_count(),
                "workflow_types": len(WorkflowType),
            },
            "timestamp": utcnow().isoformat(),
        }


def build_business_logic(
    settings: Settings | None = None,
    repositories: Repositories | None = None,
    payment_gateway: PaymentGateway | None = None,
    today: Callable[[], date] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> BusinessLogic:
    """Wire the business layer.

    Args:
        settings: Application settings; read from the environment when omitted.
        repositories: Persistence collaborators; in-memory when omitted.
        payment_gateway: Payment provider; an HTTP client is built when
            ``settings.payment_gateway_url`` is set and none is given.
        today: Calendar clock for date rules; defaults to the date of ``clock``.
        clock: Wall clock for order IDs and analytics periods; defaults to
            the current time in ``settings.shop_timezone``.

    Returns:
        Fully wired BusinessLogic.
    """
    settings = settings or get_settings()
    repositories = repositories or Repositories()
    clock = clock or local_clock(settings.shop_timezone)
    today = today or (lambda: clock().date())

    if payment_gateway is None and settings.payment_gateway_url:
        payment_gateway = HttpPaymentGateway(
            settings.payment_gateway_url, timeout=settings.payment_gateway_timeout
        )

    rules = RulesEngine(settings.rules_config(), today=today)
    validators = DataValidators(rules)
    events = EventBus(max_history=settings.event_history_size)

    notifier, audit_log, stock_watcher = LoggingNotifier(), AuditLog(), StockWatcher()
    events.register(notifier=notifier, auditor=audit_log, inventory_watcher=stock_watcher)

    workflows = WorkflowManager(rules, events, repositories.inventory, payment_gateway)

    async def count_orders(order_type: OrderType, day: date) -> int:
        repository = (
            repositories.orders if order_type == OrderType.STANDARD else repositories.custom_orders
        )
        return await repository.count_with_prefix(f"ORD-{order_type.value}-{day:%Y%m%d}-")

    async def order_id_taken(order_id: str) -> bool:
        if await repositories.orders.exists(order_id):
            return True
        return await repositories.custom_orders.exists(order_id)

    orders = OrderService(
        rules=rules,
        validators=validators,
        workflow=workflows,
        events=events,
        orders=repositories.orders,
        custom_orders=repositories.custom_orders,
        inventory=repositories.inventory,
        id_generator=OrderIdGenerator(count_orders, order_id_taken, clock=clock),
    )

    logger.info(
        "Business logic initialized",
        rules=len(rules.get_all_rules()),
        payment_gateway=payment_gateway is not None,
    )
    return BusinessLogic(
        settings=settings,
        rules=rules,
        validators=validators,
        events=events,
        workflows=workflows,
        orders=orders,
        analytics=OrderAnalyticsService(repositories.orders, repositories.custom_orders, clock),
        repositories=repositories,
        notifier=notifier,
        audit_log=audit_log,
        stock_watcher=stock_watcher,
        payment_gateway=payment_gateway,
    )
