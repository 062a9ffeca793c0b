"""Domain entities for the cake shop.

Entities are domain objects with identity that persists across state changes.
This module contains the two order aggregates (Order, CustomOrder) and the
Product snapshot the order path reads and adjusts stock on.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from cakeshop.domain.base import AggregateRoot, Entity, ValueObject
from cakeshop.domain.exceptions import ValidationError
from cakeshop.domain.state_machines import (
    AdvancePaymentStatus,
    CustomOrderStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from cakeshop.domain.value_objects import CustomerInfo, DeliveryInfo, Pricing


# ============================================================================
# Product
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Product(Entity):
    """Product snapshot as seen by the order path.

    ``reserved_quantity`` counts units held by pending orders; those units
    are still part of ``stock_quantity`` until the order is confirmed.

    Attributes:
        name: Display name.
        price: Regular unit price.
        discount_price: Optional sale price, must be below ``price``.
        stock_quantity: Units on the shelf (including reserved ones).
        reserved_quantity: Units held by pending orders.
        sold_count: Units sold through confirmed orders.
        low_stock_threshold: Level at or below which stockLow fires.
        is_active: Inactive products can never be ordered.
        is_available_on_order: Made to order; bypasses stock checks.
        category: Free-text category name.
    """

    name: str
    price: int
    discount_price: int | None = None
    stock_quantity: int = 0
    reserved_quantity: int = 0
    sold_count: int = 0
    low_stock_threshold: int = 5
    is_active: bool = True
    is_available_on_order: bool = False
    category: str = ""

    @property
    def available_quantity(self) -> int:
        """Units that can still be promised to a new order."""
        return self.stock_quantity - self.reserved_quantity

    @property
    def unit_price(self) -> int:
        """Price charged per unit (discount price when set)."""
        if self.discount_price:
            return self.discount_price
        return self.price

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_quantity <= 0

    @property
    def tracks_stock(self) -> bool:
        """Whether orders for this product move inventory counters."""
        return not self.is_available_on_order

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "discount_price": self.discount_price,
            "stock_quantity": self.stock_quantity,
            "reserved_quantity": self.reserved_quantity,
            "sold_count": self.sold_count,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "is_available_on_order": self.is_available_on_order,
            "category": self.category,
        }


# ============================================================================
# Order Item
# ============================================================================


@dataclass(frozen=True)
class OrderItem(ValueObject):
    """A priced line of a standard order.

    Attributes:
        product_id: Referenced product.
        name: Product name at the time of ordering.
        price: Unit price at the time of ordering.
        quantity: Number of units.
    """

    product_id: str
    name: str
    price: int
    quantity: int

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError([f"Quantity must be positive, got {self.quantity}"])
        if self.price < 0:
            raise ValidationError([f"Price cannot be negative, got {self.price}"])

    @property
    def subtotal(self) -> int:
        """Line total (always price times quantity)."""
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }


# ============================================================================
# Order Aggregate
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot):
    """Standard order aggregate.

    The order tracks two independent lifecycles: ``status`` for fulfilment
    and ``payment_status`` for money.

    Attributes:
        order_id: Public order ID (ORD-PRM-YYYYMMDD-NNNN).
        customer_info: Customer contact snapshot.
        items: Priced line items.
        pricing: Subtotal, delivery fee and total.
        delivery: Delivery zone and slot metadata.
        delivery_date: Requested delivery day.
        status: Fulfilment status.
        payment_status: Payment status.
        payment_method: How the customer pays.
        customer_tier: Loyalty tier used for the delivery discount.
        special_instructions: Customer's free-text instructions.
        notes: Staff notes (cancellation reasons land here).
    """

    order_id: str
    customer_info: CustomerInfo
    items: list[OrderItem]
    pricing: Pricing
    delivery_date: date
    delivery: DeliveryInfo = field(default_factory=DeliveryInfo)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    customer_tier: str = "regular"
    special_instructions: str = ""
    notes: str = ""

    @property
    def items_subtotal(self) -> int:
        """Sum of line subtotals."""
        return sum(item.subtotal for item in self.items)

    @property
    def total_amount(self) -> int:
        return self.pricing.total_amount

    @property
    def customer_email(self) -> str:
        return self.customer_info.email

    @property
    def customer_name(self) -> str:
        return self.customer_info.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the order for events and callers."""
        return {
            "id": self.id,
            "order_id": self.order_id,
            "customer_info": self.customer_info.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "pricing": self.pricing.to_dict(),
            "delivery": self.delivery.to_dict(),
            "delivery_date": self.delivery_date.isoformat(),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value,
            "customer_tier": self.customer_tier,
            "special_instructions": self.special_instructions,
            "notes": self.notes,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ============================================================================
# Custom Order Aggregate
# ============================================================================


@dataclass(kw_only=True, eq=False)
class CustomOrder(AggregateRoot):
    """Custom (made-to-brief) cake order.

    Staff price the order after it is placed; confirmation may require an
    advance payment, tracked by ``advance_payment_status``.
    """

    order_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    event_type: str
    cake_size: str
    flavor: str
    delivery_date: date
    special_requirements: str = ""
    status: CustomOrderStatus = CustomOrderStatus.PENDING
    estimated_price: int | None = None
    advance_amount: int = 0
    advance_payment_status: AdvancePaymentStatus = AdvancePaymentStatus.NOT_REQUIRED
    admin_notes: str = ""
    notes: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @property
    def total_amount(self) -> int:
        return self.estimated_price or 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "event_type": self.event_type,
            "cake_size": self.cake_size,
            "flavor": self.flavor,
            "special_requirements": self.special_requirements,
            "delivery_date": self.delivery_date.isoformat(),
            "status": self.status.value,
            "estimated_price": self.estimated_price,
            "advance_amount": self.advance_amount,
            "advance_payment_status": self.advance_payment_status.value,
            "admin_notes": self.admin_notes,
            "notes": self.notes,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ============================================================================
# Factories
# ============================================================================


def new_order(
    *,
    order_id: str,
    customer_info: CustomerInfo,
    items: list[OrderItem],
    delivery: DeliveryInfo,
    delivery_date: date,
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY,
    customer_tier: str = "regular",
    special_instructions: str = "",
) -> Order:
    """Build a new pending order with derived pricing.

    Args:
        order_id: Pre-generated public order ID.
        customer_info: Normalised customer snapshot.
        items: Resolved line items.
        delivery: Delivery quote details; its fee becomes the pricing fee.
        delivery_date: Requested delivery day.
        payment_method: Payment method.
        customer_tier: Loyalty tier.
        special_instructions: Customer instructions.

    Returns:
        Order in ``pending`` with one creation entry in its history.
    """
    subtotal = sum(item.subtotal for item in items)
    order = Order(
        order_id=order_id,
        customer_info=customer_info,
        items=list(items),
        pricing=Pricing.create(subtotal, delivery.fee),
        delivery=delivery,
        delivery_date=delivery_date,
        payment_method=payment_method,
        customer_tier=customer_tier,
        special_instructions=special_instructions.strip(),
    )
    order.record_status_change(None, order.status.value, actor="customer", reason="Order placed")
    return order


def new_custom_order(
    *,
    order_id: str,
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    event_type: str,
    cake_size: str,
    flavor: str,
    delivery_date: date,
    special_requirements: str = "",
) -> CustomOrder:
    """Build a new pending custom order with normalised contact fields."""
    custom_order = CustomOrder(
        order_id=order_id,
        customer_name=customer_name.strip(),
        customer_email=customer_email.strip().lower(),
        customer_phone=customer_phone.strip(),
        event_type=event_type.strip(),
        cake_size=cake_size.strip(),
        flavor=flavor.strip(),
        delivery_date=delivery_date,
        special_requirements=special_requirements.strip(),
    )
    custom_order.record_status_change(
        None, custom_order.status.value, actor="customer", reason="Custom order requested"
    )
    return custom_order
