"""Input payload validation.

Pydantic models describe the shape of every payload the core accepts.
DataValidators runs them and turns pydantic's errors into the short,
human-readable messages callers show to customers and staff. Rules that
need the clock (advance notice) come from the RulesEngine.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Any, Literal, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from cakeshop.domain.entities import CustomOrder, Order
from cakeshop.domain.exceptions import RuleViolationError, ValidationError
from cakeshop.domain.rules import EMAIL_PATTERN, PHONE_PATTERN, RulesEngine, to_date
from cakeshop.domain.state_machines import AdvancePaymentStatus, PaymentMethod
from cakeshop.domain.tiers import CustomerTier

EventType = Literal[
    "Birthday",
    "Wedding",
    "Anniversary",
    "Corporate Event",
    "Baby Shower",
    "Graduation",
    "Holiday Celebration",
    "Other",
]
CakeSize = Literal[
    "6 inch (serves 6-8)",
    "8 inch (serves 12-15)",
    "10 inch (serves 20-25)",
    "12 inch (serves 30-35)",
    "Multi-tier",
    "Sheet cake",
]
Flavor = Literal[
    "Vanilla",
    "Chocolate",
    "Red Velvet",
    "Carrot",
    "Lemon",
    "Strawberry",
    "Funfetti",
    "Coffee/Mocha",
    "Custom flavor",
]

ModelT = TypeVar("ModelT", bound=BaseModel)


def _strip_spaces(value: Any) -> Any:
    if isinstance(value, str):
        return re.sub(r"\s", "", value)
    return value


def _coerce_date(value: Any) -> Any:
    if isinstance(value, (date, str)) and value != "":
        try:
            return to_date(value)
        except ValueError:
            return value
    return value


PhoneNumber = Annotated[
    str, BeforeValidator(_strip_spaces), Field(pattern=PHONE_PATTERN.pattern)
]
DeliveryDate = Annotated[date, BeforeValidator(_coerce_date)]


# ============================================================================
# Payload Models
# ============================================================================


class PayloadModel(BaseModel):
    """Base for payload models: strips whitespace, ignores unknown keys."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class AddressPayload(PayloadModel):
    """Structured delivery address."""

    street: str = Field(..., min_length=5)
    city: str = Field(..., min_length=2)
    postal_code: str = ""
    country: str = "Sri Lanka"


class CustomerPayload(PayloadModel):
    """Customer contact details of a standard order."""

    name: str = Field(..., min_length=2, max_length=50)
    email: str = Field(..., max_length=100, pattern=EMAIL_PATTERN.pattern)
    phone: PhoneNumber
    address: AddressPayload | str

    @field_validator("address", mode="before")
    @classmethod
    def _address_complete(cls, value: Any) -> Any:
        if isinstance(value, str):
            if len(value.strip()) < 10:
                raise ValueError("Address must be at least 10 characters")
        elif isinstance(value, dict):
            if len(str(value.get("street") or "").strip()) < 5:
                raise ValueError("Street address must be at least 5 characters")
            if len(str(value.get("city") or "").strip()) < 2:
                raise ValueError("City is required")
        elif not isinstance(value, AddressPayload):
            raise ValueError("Address is required")
        return value


class OrderItemPayload(PayloadModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=100)


class OrderPayload(PayloadModel):
    """Standard order request."""

    customer_info: CustomerPayload
    items: list[OrderItemPayload] = Field(..., min_length=1)
    delivery_date: DeliveryDate
    time_slot: str = "standard"
    is_express: bool = False
    customer_tier: CustomerTier = CustomerTier.REGULAR
    special_instructions: str = Field(default="", max_length=500)
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    created_by: str = "customer"


class CustomOrderPayload(PayloadModel):
    """Custom cake request."""

    customer_name: str = Field(..., min_length=2, max_length=50)
    customer_email: str = Field(..., pattern=EMAIL_PATTERN.pattern)
    customer_phone: PhoneNumber
    event_type: EventType
    cake_size: CakeSize
    flavor: Flavor
    delivery_date: DeliveryDate
    special_requirements: str = Field(default="", max_length=500)


class ProductPayload(PayloadModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    price: int = Field(..., ge=1, le=1_000_000)
    discount_price: int | None = Field(default=None, ge=0)
    category: str = Field(..., min_length=1)
    type: Literal["regular", "custom", "seasonal"] = "regular"
    stock_quantity: int = Field(..., ge=0, le=10_000)
    low_stock_threshold: int = Field(default=5, ge=0, le=1000)
    preparation_time: int | None = Field(default=None, ge=1, le=720)
    weight: int | None = Field(default=None, ge=0, le=50_000)

    @model_validator(mode="after")
    def _discount_below_price(self) -> "ProductPayload":
        if self.discount_price and self.discount_price >= self.price:
            raise ValueError("Discount price must be less than regular price")
        return self


class PaymentPayload(PayloadModel):
    order_id: str = Field(..., pattern=r"^(ORD|CO|PAY)")
    amount: int = Field(..., ge=100, le=1_000_000)
    customer_name: str = Field(..., min_length=2, max_length=50)
    email: str = Field(..., pattern=EMAIL_PATTERN.pattern)
    phone: PhoneNumber


class ContactPayload(PayloadModel):
    customer_name: str = Field(..., min_length=2, max_length=50)
    customer_email: str = Field(..., pattern=EMAIL_PATTERN.pattern)
    subject: str = Field(..., min_length=5, max_length=100)
    message: str = Field(..., min_length=10, max_length=1000)


# ============================================================================
# Error Translation
# ============================================================================


def _field_name(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for part in loc:
        if isinstance(part, int):
            parts.append(f"[{part + 1}]")
        else:
            parts.append(("." if parts else "") + str(part))
    return "".join(parts) or "payload"


def _describe(error: dict[str, Any]) -> str:
    """Turn one pydantic error into a human-readable message."""
    name = _field_name(error.get("loc", ()))
    ctx = error.get("ctx") or {}
    kind = error.get("type", "")
    if kind == "missing":
        return f"{name} is required"
    if kind == "string_too_short":
        return f"{name} must be at least {ctx.get('min_length')} characters long"
    if kind == "string_too_long":
        return f"{name} cannot exceed {ctx.get('max_length')} characters"
    if kind == "string_pattern_mismatch":
        return f"{name} format is invalid"
    if kind in ("literal_error", "enum"):
        return f"{name} must be one of: {ctx.get('expected')}"
    if kind == "greater_than_equal":
        return f"{name} must be at least {ctx.get('ge')}"
    if kind == "less_than_equal":
        return f"{name} cannot exceed {ctx.get('le')}"
    if kind == "too_short":
        return f"{name} must have at least {ctx.get('min_length')} items"
    if kind == "value_error":
        return str(error.get("msg", "")).removeprefix("Value error, ")
    if kind.startswith(("date_", "datetime_")):
        return f"{name} must be a valid date"
    return f"{name}: {error.get('msg')}"


def _unique(messages: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for message in messages:
        seen.setdefault(message, None)
    return list(seen)


def parse_payload(model: type[ModelT], data: Any) -> tuple[ModelT | None, list[str]]:
    """Validate ``data`` against ``model``.

    Returns:
        The parsed model (None on failure) and the list of error messages.
    """
    try:
        return model.model_validate(data), []
    except PydanticValidationError as exc:
        return None, _unique([_describe(error) for error in exc.errors()])


# ============================================================================
# Validation Results
# ============================================================================


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    summary: str = "Validation passed"


def format_validation_result(errors: list[str]) -> ValidationResult:
    """Summarise a list of validation errors."""
    if not errors:
        return ValidationResult(is_valid=True)
    return ValidationResult(
        is_valid=False,
        errors=list(errors),
        summary=f"{len(errors)} validation error(s)",
    )


# ============================================================================
# Cross-field Checks
# ============================================================================


def validate_order_consistency(order: Order, today: date) -> list[str]:
    """Check the cross-field invariants of a standard order.

    Args:
        order: Order to check.
        today: Current calendar date.

    Returns:
        List of broken invariants (empty when consistent).
    """
    errors: list[str] = []
    if order.delivery_date < today:
        errors.append("Delivery date cannot be in the past")
    if order.items_subtotal != order.pricing.subtotal:
        errors.append("Order subtotal does not match the sum of item subtotals")
    if order.pricing.total_amount != order.pricing.subtotal + order.pricing.delivery_fee:
        errors.append("Order total amount does not match calculated total")
    if order.pricing.delivery_fee != order.delivery.fee:
        errors.append("Order delivery fee does not match the delivery quote")
    return errors


def validate_custom_order_consistency(custom_order: CustomOrder) -> list[str]:
    """Check advance payment coherence of a custom order."""
    errors: list[str] = []
    advance = custom_order.advance_amount or 0
    status = custom_order.advance_payment_status
    if advance < 0:
        errors.append("Advance amount cannot be negative")
    if advance > 0:
        if not custom_order.estimated_price:
            errors.append("Estimated price is required when advance payment is set")
        elif advance > custom_order.estimated_price:
            errors.append("Advance amount cannot exceed estimated price")
        if status == AdvancePaymentStatus.NOT_REQUIRED:
            errors.append(
                'Advance payment status should not be "not_required" when advance amount is set'
            )
    elif status != AdvancePaymentStatus.NOT_REQUIRED:
        errors.append(
            'Advance payment status should be "not_required" when no advance amount is set'
        )
    return errors


# ============================================================================
# Data Validators
# ============================================================================


class DataValidators:
    """Runs payload models and the date rules that depend on the clock."""

    def __init__(self, rules: RulesEngine) -> None:
        self.rules = rules

    def _rule_errors(self, rule_names: tuple[str, ...], value: Any) -> list[str]:
        errors: list[str] = []
        for rule_name in rule_names:
            try:
                self.rules.validate_rule(rule_name, value)
            except RuleViolationError as exc:
                errors.append(exc.message)
        return errors

    # ------------------------------------------------------------------
    # Parsers (raise on failure)
    # ------------------------------------------------------------------

    def parse_order(self, data: Any) -> OrderPayload:
        """Validate a standard order payload.

        Raises:
            ValidationError: With every field-level message.
        """
        payload, errors = self._order(data)
        if errors or payload is None:
            raise ValidationError(errors)
        return payload

    def parse_custom_order(self, data: Any) -> CustomOrderPayload:
        payload, errors = self._custom_order(data)
        if errors or payload is None:
            raise ValidationError(errors)
        return payload

    def _order(self, data: Any) -> tuple[OrderPayload | None, list[str]]:
        payload, errors = parse_payload(OrderPayload, data)
        if payload is not None:
            errors.extend(self._rule_errors(("order.minimumAdvanceNotice",), payload.delivery_date))
            if payload.time_slot not in self.rules.delivery.config.time_slots:
                slots = ", ".join(self.rules.delivery.config.time_slots)
                errors.append(f"time_slot must be one of: {slots}")
        return payload, errors

    def _custom_order(self, data: Any) -> tuple[CustomOrderPayload | None, list[str]]:
        payload, errors = parse_payload(CustomOrderPayload, data)
        if payload is not None:
            errors.extend(
                self._rule_errors(
                    ("customOrder.minimumAdvanceNotice", "customOrder.maximumAdvance"),
                    payload.delivery_date,
                )
            )
        return payload, errors

    # ------------------------------------------------------------------
    # Validators (return messages)
    # ------------------------------------------------------------------

    def validate_customer(self, data: Any) -> list[str]:
        return parse_payload(CustomerPayload, data)[1]

    def validate_order(self, data: Any) -> list[str]:
        return self._order(data)[1]

    def validate_custom_order(self, data: Any) -> list[str]:
        return self._custom_order(data)[1]

    def validate_product(self, data: Any) -> list[str]:
        return parse_payload(ProductPayload, data)[1]

    def validate_payment(self, data: Any) -> list[str]:
        return parse_payload(PaymentPayload, data)[1]

    def validate_contact(self, data: Any) -> list[str]:
        return parse_payload(ContactPayload, data)[1]

    def validate_order_consistency(self, order: Order) -> list[str]:
        return validate_order_consistency(order, self.rules.today())

    def validate_custom_order_consistency(self, custom_order: CustomOrder) -> list[str]:
        return validate_custom_order_consistency(custom_order)

    format_validation_result = staticmethod(format_validation_result)
