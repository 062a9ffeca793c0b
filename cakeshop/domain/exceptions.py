"""Domain exceptions.

All domain-level errors raised by the rules engine, validators, workflow
manager and order service. Every error carries a human-readable message
and a ``details`` dictionary so callers can surface them verbatim.

Taxonomy:
    ValidationError        malformed or out-of-range input
    RuleViolationError     well-formed input forbidden by business policy
    IllegalTransitionError state machine rejects the requested move
    ConsistencyError       cross-field invariant broken
    SideEffectError        downstream action failed after the decision was made
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def messages(self) -> list[str]:
        """Messages to surface to the caller."""
        return [self.message]


# ============================================================================
# Input and Policy Errors
# ============================================================================


class ValidationError(DomainError):
    """Raised when an input payload is malformed or out of range."""

    def __init__(self, errors: list[str], prefix: str = "Validation failed") -> None:
        """Initialize validation error.

        Args:
            errors: Field-level error messages.
            prefix: Leading text of the combined message.
        """
        super().__init__(f"{prefix}: {', '.join(errors)}", details={"errors": list(errors)})
        self.errors = list(errors)

    @property
    def messages(self) -> list[str]:
        return list(self.errors)


class RuleViolationError(DomainError):
    """Raised when a business rule rejects otherwise valid input."""

    def __init__(
        self, message: str, rule: str | None = None, errors: list[str] | None = None
    ) -> None:
        super().__init__(message, details={"rule": rule, "errors": errors or [message]})
        self.rule = rule
        self.errors = errors or [message]

    @property
    def messages(self) -> list[str]:
        return list(self.errors)


class RuleNotFoundError(DomainError):
    """Raised when a named rule or calculator is not registered."""

    def __init__(self, rule: str, kind: str = "Business rule") -> None:
        super().__init__(f"{kind} '{rule}' not found", details={"rule": rule})


class InsufficientStockError(RuleViolationError):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_name}. "
            f"Available: {available}, Requested: {requested}",
            rule="order.stockAvailability",
        )
        self.details.update(
            {"product_name": product_name, "available": available, "requested": requested}
        )


class ProductNotFoundError(DomainError):
    """Raised when a product is missing or inactive."""

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product not found or unavailable: {product_id}",
            details={"product_id": product_id},
        )


class ProductUnavailableError(RuleViolationError):
    """Raised when a product exists but is inactive."""

    def __init__(self, product_name: str) -> None:
        super().__init__(
            f"Product is not currently available: {product_name}",
            rule="order.stockAvailability",
        )
        self.details["product_name"] = product_name


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateError(DomainError):
    """Raised when a state is not a member of the workflow graph."""

    def __init__(self, workflow: str, state: str, which: str = "current") -> None:
        super().__init__(
            f"Invalid {which} state for {workflow}: {state}",
            details={"workflow": workflow, "state": state, "which": which},
        )


class IllegalTransitionError(DomainError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested operation cannot be performed
    in the current state of the entity.
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize illegal transition error.

        Args:
            entity_type: Workflow of the entity (e.g., "order", "customOrder").
            entity_id: Public ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Invalid transition for {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Consistency and Side-Effect Errors
# ============================================================================


class ConsistencyError(DomainError):
    """Raised when a cross-field invariant is broken."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(
            f"Consistency validation failed: {', '.join(errors)}",
            details={"errors": list(errors)},
        )
        self.errors = list(errors)

    @property
    def messages(self) -> list[str]:
        return list(self.errors)


class SideEffectError(DomainError):
    """Raised when a downstream action fails after a decision was made."""

    def __init__(self, action: str, message: str, entity_id: str | None = None) -> None:
        super().__init__(
            f"Failed to {action}: {message}",
            details={"action": action, "entity_id": entity_id},
        )
        self.action = action


class PaymentGatewayError(SideEffectError):
    """Raised when the payment gateway cannot be reached or answers badly."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__("read payment status", message)
        self.status_code = status_code


# ============================================================================
# Order Errors
# ============================================================================


class OrderError(DomainError):
    """Base class for order-related errors."""

    pass


class OrderNotFoundError(OrderError):
    """Raised when no order matches a public order ID."""

    def __init__(self, order_id: str, kind: str = "Order") -> None:
        super().__init__(f"{kind} not found: {order_id}", details={"order_id": order_id})


class OrderNotCancellableError(OrderError):
    """Raised when trying to cancel an order that is already in a terminal state."""

    def __init__(self, order_id: str, current_status: str, kind: str = "order") -> None:
        """Initialize order not cancellable error.

        Args:
            order_id: ID of the order.
            current_status: Current status of the order.
            kind: "order" or "custom order".
        """
        super().__init__(
            f"Cannot cancel {kind} in {current_status} status",
            details={"order_id": order_id, "current_status": current_status},
        )


class ConcurrentModificationError(OrderError):
    """Raised when a save loses an optimistic-lock race."""

    def __init__(self, order_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            details={
                "order_id": order_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
