"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from cakeshop.application.analytics import CustomerOrderHistory, OrderAnalyticsService
from cakeshop.application.event_bus import EventBus
from cakeshop.application.facade import BusinessLogic, Repositories, build_business_logic
from cakeshop.application.order_service import (
    CreateOrderResult,
    CustomOrderUpdate,
    ModificationCheck,
    OrderService,
    StockCheck,
)
from cakeshop.application.workflow import (
    NextState,
    StateDefinition,
    ValidationKind,
    WorkflowDefinition,
    WorkflowManager,
    WorkflowType,
)

__all__ = [
    "BusinessLogic",
    "build_business_logic",
    "CreateOrderResult",
    "CustomerOrderHistory",
    "CustomOrderUpdate",
    "EventBus",
    "ModificationCheck",
    "NextState",
    "OrderAnalyticsService",
    "OrderService",
    "Repositories",
    "StateDefinition",
    "StockCheck",
    "ValidationKind",
    "WorkflowDefinition",
    "WorkflowManager",
    "WorkflowType",
]
