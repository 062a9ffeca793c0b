"""Domain layer - Entities, value objects, state machines, rules and validators.

This module exports the core domain building blocks:

- **Entities**: Objects with identity (Order, CustomOrder, Product)
- **Value Objects**: Immutable objects compared by value (CustomerInfo, Pricing)
- **State Machines**: Status enums and their transition tables
- **Rules**: The named business rules engine and the delivery fee calculator
- **Validators**: Pydantic payload models and cross-field checks
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from cakeshop.domain import RulesEngine, RulesConfig

    rules = RulesEngine(RulesConfig())
    quote = rules.calculate_delivery_fee(8000, "Negombo")
    print(quote.fee)  # 500
"""

from cakeshop.domain.delivery import (
    DeliveryConfig,
    DeliveryFeeCalculator,
    DeliveryOptions,
    DeliveryQuote,
    DeliveryZone,
    TimeSlot,
)
from cakeshop.domain.entities import (
    CustomOrder,
    Order,
    OrderItem,
    Product,
    new_custom_order,
    new_order,
)
from cakeshop.domain.events import BusinessEvent, EventName
from cakeshop.domain.exceptions import (
    ConcurrentModificationError,
    ConsistencyError,
    DomainError,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidStateError,
    OrderNotCancellableError,
    OrderNotFoundError,
    PaymentGatewayError,
    ProductNotFoundError,
    ProductUnavailableError,
    RuleNotFoundError,
    RuleViolationError,
    SideEffectError,
    ValidationError,
)
from cakeshop.domain.order_ids import OrderIdGenerator, OrderType, ParsedOrderId, parse_order_id
from cakeshop.domain.rules import (
    AdvancePayment,
    BusinessRule,
    OrderTotals,
    PlacementCheck,
    RulesConfig,
    RulesEngine,
)
from cakeshop.domain.state_machines import (
    AdvancePaymentStatus,
    CustomOrderStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from cakeshop.domain.tiers import CustomerTier, CustomerTierCalculator
from cakeshop.domain.validators import DataValidators, ValidationResult
from cakeshop.domain.value_objects import Address, CustomerInfo, DeliveryInfo, Pricing

__all__ = [
    # Delivery
    "DeliveryConfig",
    "DeliveryFeeCalculator",
    "DeliveryOptions",
    "DeliveryQuote",
    "DeliveryZone",
    "TimeSlot",
    # Entities
    "CustomOrder",
    "Order",
    "OrderItem",
    "Product",
    "new_custom_order",
    "new_order",
    # Events
    "BusinessEvent",
    "EventName",
    # Exceptions
    "ConcurrentModificationError",
    "ConsistencyError",
    "DomainError",
    "IllegalTransitionError",
    "InsufficientStockError",
    "InvalidStateError",
    "OrderNotCancellableError",
    "OrderNotFoundError",
    "PaymentGatewayError",
    "ProductNotFoundError",
    "ProductUnavailableError",
    "RuleNotFoundError",
    "RuleViolationError",
    "SideEffectError",
    "ValidationError",
    # Order IDs
    "OrderIdGenerator",
    "OrderType",
    "ParsedOrderId",
    "parse_order_id",
    # Rules
    "AdvancePayment",
    "BusinessRule",
    "OrderTotals",
    "PlacementCheck",
    "RulesConfig",
    "RulesEngine",
    # State machines
    "AdvancePaymentStatus",
    "CustomOrderStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    # Tiers
    "CustomerTier",
    "CustomerTierCalculator",
    # Validators
    "DataValidators",
    "ValidationResult",
    # Value objects
    "Address",
    "CustomerInfo",
    "DeliveryInfo",
    "Pricing",
]
