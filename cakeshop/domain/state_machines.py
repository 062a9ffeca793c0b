"""Status enums and transition tables.

Deterministic transition tables for orders, custom orders and payments.
These tables back the ``*.statusTransition`` rules of the rules engine;
the workflow manager keeps its own state graphs and cross-checks every
move against them, so the two must agree.
"""

from enum import Enum

from cakeshop.domain.exceptions import IllegalTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Standard order lifecycle states.

    State diagram:
        PENDING ──────────────────────────────────────► CANCELLED
          │                                               ▲
          │ confirm                                       │
          ▼                                               │
        CONFIRMED ──────────────────────────────────────►─┤
          │                                               │
          │ prepare                                       │
          ▼                                               │
        PREPARING ──────────────────────────────────────►─┘
          │
          │ ready
          ▼
        READY
          │
          │ deliver
          ▼
        DELIVERED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states, in declaration order."""
        return [s for s in OrderStatus if s in _ORDER_TRANSITIONS.get(self, set())]

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0

    def holds_committed_stock(self) -> bool:
        """Check if stock for this order has been decremented.

        Returns:
            True for states entered after confirmation and before delivery.
        """
        return self in {OrderStatus.CONFIRMED, OrderStatus.PREPARING}


_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Custom Order State Machine
# ============================================================================


class CustomOrderStatus(str, Enum):
    """Custom order lifecycle states.

    State diagram:
        PENDING ──► CONFIRMED ──► IN_PROGRESS ──► COMPLETED
           │            │              │
           └────────────┴──────────────┴────────► CANCELLED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "CustomOrderStatus") -> bool:
        return target in _CUSTOM_ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["CustomOrderStatus"]:
        return [
            s for s in CustomOrderStatus if s in _CUSTOM_ORDER_TRANSITIONS.get(self, set())
        ]

    def is_terminal(self) -> bool:
        return len(_CUSTOM_ORDER_TRANSITIONS.get(self, set())) == 0


_CUSTOM_ORDER_TRANSITIONS: dict[CustomOrderStatus, set[CustomOrderStatus]] = {
    CustomOrderStatus.PENDING: {CustomOrderStatus.CONFIRMED, CustomOrderStatus.CANCELLED},
    CustomOrderStatus.CONFIRMED: {CustomOrderStatus.IN_PROGRESS, CustomOrderStatus.CANCELLED},
    CustomOrderStatus.IN_PROGRESS: {CustomOrderStatus.COMPLETED, CustomOrderStatus.CANCELLED},
    CustomOrderStatus.COMPLETED: set(),  # Terminal state
    CustomOrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment lifecycle states.

    State diagram:
        PENDING ──► PAID ──► REFUNDED
          ▲  │
          │  ▼
         FAILED   (retry goes back to PENDING)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        return [s for s in PaymentStatus if s in _PAYMENT_TRANSITIONS.get(self, set())]

    def is_terminal(self) -> bool:
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING},  # Retry allowed
    PaymentStatus.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Supporting Enums
# ============================================================================


class AdvancePaymentStatus(str, Enum):
    """Advance payment sub-lifecycle of a custom order."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """How a standard order is paid."""

    CASH_ON_DELIVERY = "cash_on_delivery"
    ONLINE_TRANSFER = "online_transfer"


# ============================================================================
# Transition Tables (rule view)
# ============================================================================


def transition_table(enum_cls: type[Enum]) -> dict[str, list[str]]:
    """Render a status enum's transition table as plain strings.

    Args:
        enum_cls: One of OrderStatus, CustomOrderStatus, PaymentStatus.

    Returns:
        Mapping of state value to allowed target values.
    """
    return {
        state.value: [target.value for target in state.allowed_transitions()]  # type: ignore[attr-defined]
        for state in enum_cls
    }


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        IllegalTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise IllegalTransitionError(
            entity_type="order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_custom_order_transition(
    order_id: str,
    current_status: CustomOrderStatus,
    target_status: CustomOrderStatus,
) -> None:
    """Validate and raise if custom order state transition is invalid."""
    if not current_status.can_transition_to(target_status):
        raise IllegalTransitionError(
            entity_type="customOrder",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_payment_transition(
    order_id: str,
    current_status: PaymentStatus,
    target_status: PaymentStatus,
) -> None:
    """Validate and raise if payment state transition is invalid."""
    if not current_status.can_transition_to(target_status):
        raise IllegalTransitionError(
            entity_type="payment",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
