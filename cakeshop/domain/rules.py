"""Business rules engine.

Named business rules (validation predicates and calculators) plus the
business-level helpers built on top of them. The engine is constructed
explicitly with a frozen RulesConfig and a ``today`` clock so that tests
can build isolated instances.
"""

import calendar
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

import structlog

from cakeshop.domain.delivery import (
    DeliveryConfig,
    DeliveryFeeCalculator,
    DeliveryOptions,
    DeliveryQuote,
    round_half_up,
)
from cakeshop.domain.entities import Product
from cakeshop.domain.exceptions import RuleNotFoundError, RuleViolationError
from cakeshop.domain.state_machines import (
    CustomOrderStatus,
    OrderStatus,
    PaymentStatus,
    transition_table,
)
from cakeshop.domain.tiers import CustomerTierCalculator

logger = structlog.get_logger()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^(\+94|0)?[1-9]\d{8}$")
MULTI_TIER_SIZE = "Multi-tier"


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True)
class RulesConfig:
    """Tunable constants of the rule set.

    Attributes:
        standard_notice_days: Minimum days between today and a standard delivery.
        custom_notice_days: Minimum days between today and a custom delivery.
        custom_max_advance_months: Furthest a custom order may be booked.
        advance_price_threshold: Estimated price above which an advance is due.
        advance_requirements_length: Requirement text length above which an advance is due.
        advance_percentage: Share of the estimated price taken as advance.
        minimum_advance: Floor of the advance amount.
        delivery: Delivery fee tables.
    """

    standard_notice_days: int = 1
    custom_notice_days: int = 7
    custom_max_advance_months: int = 6
    advance_price_threshold: int = 10000
    advance_requirements_length: int = 100
    advance_percentage: float = 0.30
    minimum_advance: int = 2000
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig.default)


# ============================================================================
# Rule and Result Types
# ============================================================================


@dataclass(frozen=True)
class BusinessRule:
    """A named rule.

    Attributes:
        name: Dotted rule name, e.g. ``order.minimumAdvanceNotice``.
        description: Human-readable summary.
        validate: Predicate; may raise ValueError with a field-specific message.
        calculate: Calculator function.
        error: Message used when the predicate fails.
        config: Static configuration exposed to callers.
        transitions: Static transition table for status rules.
    """

    name: str
    description: str
    validate: Callable[..., bool] | None = None
    calculate: Callable[..., Any] | None = None
    error: str | None = None
    config: Mapping[str, Any] | None = None
    transitions: Mapping[str, list[str]] | None = None


@dataclass
class PlacementCheck:
    """Whether an order may be placed, with reasons when it may not."""

    can_place: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class OrderTotals:
    subtotal: int
    delivery_fee: int
    total: int
    free_delivery: bool
    delivery: DeliveryQuote

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "free_delivery": self.free_delivery,
        }


@dataclass
class AdvancePayment:
    """Advance payment due on a custom order."""

    required: bool
    amount: int = 0
    percentage: int = 0


# ============================================================================
# Helpers
# ============================================================================


def to_date(value: date | datetime | str) -> date:
    """Reduce a date, datetime or ISO string to a calendar date.

    Time of day is discarded.

    Raises:
        ValueError: If a string is not an ISO date or datetime.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    raise ValueError(f"Invalid date: {value!r}")


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _customer_fields(customer: Any) -> dict[str, Any]:
    if hasattr(customer, "to_dict"):
        return customer.to_dict()
    return dict(customer or {})


def validate_customer_info(customer: Any) -> bool:
    """Check customer contact details.

    The first failing field stops the check.

    Raises:
        ValueError: With a message naming the failing field.
    """
    info = _customer_fields(customer)
    name = (info.get("name") or "").strip()
    if not 2 <= len(name) <= 50:
        raise ValueError("Name must be between 2 and 50 characters")

    email = (info.get("email") or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please provide a valid email address")

    phone = re.sub(r"\s", "", info.get("phone") or "")
    if not PHONE_PATTERN.match(phone):
        raise ValueError("Please provide a valid Sri Lankan phone number")

    address = info.get("address")
    if isinstance(address, Mapping):
        if not address.get("street") or not address.get("city"):
            raise ValueError("Complete address with street and city is required")
    elif not address or len(str(address).strip()) < 10:
        raise ValueError("Please provide a complete address")

    return True


def _stock_available(product: Product, requested: int) -> bool:
    if not product.is_active:
        return False
    if product.is_available_on_order:
        return True
    return product.available_quantity >= requested


def _valid_pricing(product: Any) -> bool:
    price = _get(product, "price", 0) or 0
    discount = _get(product, "discount_price")
    if price <= 0:
        return False
    if discount and discount >= price:
        return False
    return True


def _stock_alert(product: Product) -> dict[str, Any]:
    threshold = product.low_stock_threshold
    stock = product.stock_quantity
    if stock == 0:
        urgency = "critical"
    elif stock <= threshold / 2:
        urgency = "high"
    else:
        urgency = "medium"
    return {
        "is_low_stock": stock <= threshold,
        "stock_percentage": stock / (threshold * 2) * 100 if threshold else 100.0,
        "urgency": urgency,
    }


# ============================================================================
# Rules Engine
# ============================================================================


class RulesEngine:
    """Registry of named business rules.

    Example:
        engine = RulesEngine(RulesConfig(), today=date.today)
        engine.validate_rule("order.minimumAdvanceNotice", delivery_date)
    """

    def __init__(
        self,
        config: RulesConfig | None = None,
        today: Callable[[], date] | None = None,
        tiers: CustomerTierCalculator | None = None,
    ) -> None:
        """Initialize the engine and register the default rule set.

        Args:
            config: Rule constants.
            today: Clock returning the current calendar date.
            tiers: Customer tier calculator.
        """
        self.config = config or RulesConfig()
        self._today = today or date.today
        self.delivery = DeliveryFeeCalculator(self.config.delivery)
        self.tiers = tiers or CustomerTierCalculator()
        self._rules: dict[str, BusinessRule] = {}
        self._register_default_rules()

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_rule(self, rule: BusinessRule) -> None:
        self._rules[rule.name] = rule

    def get_rule(self, name: str) -> BusinessRule | None:
        return self._rules.get(name)

    def get_all_rules(self) -> list[dict[str, Any]]:
        """Describe every registered rule."""
        return [
            {
                "name": rule.name,
                "description": rule.description,
                "config": dict(rule.config) if rule.config else None,
            }
            for rule in self._rules.values()
        ]

    def validate_rule(self, name: str, *args: Any) -> bool:
        """Run a rule's predicate.

        Args:
            name: Rule name.
            *args: Arguments passed to the predicate.

        Returns:
            True when the predicate holds.

        Raises:
            RuleNotFoundError: If no predicate is registered under ``name``.
            RuleViolationError: If the predicate returns False or raises.
        """
        rule = self._rules.get(name)
        if rule is None or rule.validate is None:
            raise RuleNotFoundError(name)
        try:
            result = rule.validate(*args)
        except (ValueError, TypeError, AttributeError) as exc:
            raise RuleViolationError(rule.error or str(exc), rule=name) from exc
        if not result:
            raise RuleViolationError(rule.error or f"Business rule '{name}' failed", rule=name)
        return True

    def check_rule(self, name: str, *args: Any) -> bool:
        """Run a rule's predicate, returning False instead of raising a violation."""
        try:
            return self.validate_rule(name, *args)
        except RuleViolationError:
            return False

    def calculate_rule(self, name: str, *args: Any) -> Any:
        """Run a rule's calculator.

        Raises:
            RuleNotFoundError: If no calculator is registered under ``name``.
        """
        rule = self._rules.get(name)
        if rule is None or rule.calculate is None:
            raise RuleNotFoundError(name, kind="Calculation rule")
        return rule.calculate(*args)

    # ------------------------------------------------------------------
    # Default rule set
    # ------------------------------------------------------------------

    def _register_default_rules(self) -> None:
        cfg = self.config

        self.add_rule(
            BusinessRule(
                name="order.minimumAdvanceNotice",
                description="Orders must be placed with minimum advance notice",
                validate=lambda delivery_date: to_date(delivery_date)
                >= self.today() + timedelta(days=cfg.standard_notice_days),
                error=f"Orders must be placed at least {cfg.standard_notice_days} day in advance",
                config={"days": cfg.standard_notice_days},
            )
        )
        self.add_rule(
            BusinessRule(
                name="customOrder.minimumAdvanceNotice",
                description="Custom orders must be placed with minimum advance notice",
                validate=lambda delivery_date: to_date(delivery_date)
                >= self.today() + timedelta(days=cfg.custom_notice_days),
                error=(
                    "Custom orders must be placed at least "
                    f"{cfg.custom_notice_days} days in advance"
                ),
                config={"days": cfg.custom_notice_days},
            )
        )
        self.add_rule(
            BusinessRule(
                name="customOrder.maximumAdvance",
                description="Custom orders cannot be booked too far ahead",
                validate=lambda delivery_date: to_date(delivery_date)
                <= add_months(self.today(), cfg.custom_max_advance_months),
                error=(
                    "Custom orders cannot be placed more than "
                    f"{cfg.custom_max_advance_months} months in advance"
                ),
                config={"months": cfg.custom_max_advance_months},
            )
        )
        self.add_rule(
            BusinessRule(
                name="order.stockAvailability",
                description="Order items must have sufficient stock",
                validate=_stock_available,
                error="Insufficient stock for requested quantity",
            )
        )
        self.add_rule(
            BusinessRule(
                name="order.deliveryFee",
                description="Delivery fee by zone, time slot, express flag and customer tier",
                calculate=lambda subtotal, options=None: self.delivery.quote_for(
                    subtotal,
                    options
                    if isinstance(options, DeliveryOptions)
                    else DeliveryOptions.from_dict(options),
                ),
                config=self.delivery.options(),
            )
        )
        self.add_rule(
            BusinessRule(
                name="payment.advanceRequired",
                description="Custom orders may require advance payment",
                validate=self._advance_required,
                calculate=lambda estimated_price: max(
                    estimated_price * cfg.advance_percentage, cfg.minimum_advance
                ),
                config={
                    "price_threshold": cfg.advance_price_threshold,
                    "requirements_length": cfg.advance_requirements_length,
                    "percentage": cfg.advance_percentage,
                    "minimum": cfg.minimum_advance,
                },
            )
        )
        self.add_rule(
            BusinessRule(
                name="product.pricing",
                description="Product pricing rules",
                validate=_valid_pricing,
                error="Invalid product pricing",
            )
        )
        for name, enum_cls, error in (
            ("order.statusTransition", OrderStatus, "Invalid status transition"),
            ("customOrder.statusTransition", CustomOrderStatus, "Invalid status transition"),
            ("payment.statusTransition", PaymentStatus, "Invalid payment status transition"),
        ):
            table = transition_table(enum_cls)
            self.add_rule(
                BusinessRule(
                    name=name,
                    description=f"Valid {name.split('.')[0]} status transitions",
                    validate=lambda current, new, table=table: new in table.get(current, []),
                    error=error,
                    transitions=table,
                )
            )
        self.add_rule(
            BusinessRule(
                name="inventory.lowStockAlert",
                description="Alert when product stock is low",
                validate=lambda product: product.stock_quantity <= product.low_stock_threshold,
                calculate=_stock_alert,
            )
        )
        self.add_rule(
            BusinessRule(
                name="customer.validation",
                description="Customer information validation rules",
                validate=validate_customer_info,
            )
        )
        self.add_rule(
            BusinessRule(
                name="customer.tierCalculation",
                description="Calculate customer tier based on lifetime spending",
                calculate=self.tiers.calculate_tier,
            )
        )
        self.add_rule(
            BusinessRule(
                name="customer.deliveryDiscount",
                description="Calculate delivery discount based on customer tier",
                calculate=self.tiers.delivery_discount,
            )
        )
        self.add_rule(
            BusinessRule(
                name="customer.tierProgress",
                description="Calculate progress to next tier",
                calculate=self.tiers.progress_to_next_tier,
            )
        )
        self.add_rule(
            BusinessRule(
                name="customer.upgradeOffer",
                description="Offer a tier upgrade when close to the next tier",
                validate=self.tiers.should_offer_upgrade,
            )
        )

    def _advance_required(self, custom_order: Any) -> bool:
        cfg = self.config
        estimated_price = _get(custom_order, "estimated_price") or 0
        requirements = _get(custom_order, "special_requirements") or ""
        if estimated_price > cfg.advance_price_threshold:
            return True
        if len(requirements) > cfg.advance_requirements_length:
            return True
        return _get(custom_order, "cake_size") == MULTI_TIER_SIZE

    # ------------------------------------------------------------------
    # Business-level helpers
    # ------------------------------------------------------------------

    def can_place_order(self, data: Mapping[str, Any]) -> PlacementCheck:
        """Check whether a standard order may be placed.

        Items whose ``product`` is already a Product are stock-checked here;
        bare product IDs are checked later when the order service resolves them.

        Args:
            data: Order payload with ``delivery_date``, ``customer_info`` and ``items``.

        Returns:
            PlacementCheck listing every failed rule.
        """
        errors: list[str] = []
        for rule_name, value in (
            ("order.minimumAdvanceNotice", data.get("delivery_date")),
            ("customer.validation", data.get("customer_info")),
        ):
            try:
                self.validate_rule(rule_name, value)
            except RuleViolationError as exc:
                errors.append(exc.message)

        for item in data.get("items") or []:
            product = _get(item, "product")
            if isinstance(product, Product):
                quantity = int(_get(item, "quantity", 0))
                if not self.check_rule("order.stockAvailability", product, quantity):
                    errors.append(f"Insufficient stock for {product.name}")

        if errors:
            logger.info("Order placement rejected", errors=errors)
        return PlacementCheck(can_place=not errors, errors=errors)

    def can_place_custom_order(self, data: Mapping[str, Any]) -> PlacementCheck:
        """Check whether a custom order may be placed.

        Custom orders carry no structured address, so only name, email
        and phone are checked.
        """
        errors: list[str] = []
        delivery_date = data.get("delivery_date")
        for rule_name in ("customOrder.minimumAdvanceNotice", "customOrder.maximumAdvance"):
            try:
                self.validate_rule(rule_name, delivery_date)
            except RuleViolationError as exc:
                errors.append(exc.message)
        try:
            self.validate_rule(
                "customer.validation",
                {
                    "name": data.get("customer_name"),
                    "email": data.get("customer_email"),
                    "phone": data.get("customer_phone"),
                    "address": "Custom order address",
                },
            )
        except RuleViolationError as exc:
            errors.append(exc.message)
        return PlacementCheck(can_place=not errors, errors=errors)

    def can_transition_order_status(
        self, current: str, new: str, order_type: str = "order"
    ) -> bool:
        """Check an order or custom order status move against the rule tables.

        Args:
            current: Current status value.
            new: Target status value.
            order_type: ``order`` or ``custom``/``customOrder``.
        """
        rule_name = (
            "customOrder.statusTransition"
            if order_type in ("custom", "customOrder")
            else "order.statusTransition"
        )
        return self.check_rule(
            rule_name,
            str(getattr(current, "value", current)),
            str(getattr(new, "value", new)),
        )

    def can_transition_payment_status(self, current: str, new: str) -> bool:
        return self.check_rule(
            "payment.statusTransition",
            str(getattr(current, "value", current)),
            str(getattr(new, "value", new)),
        )

    def calculate_delivery_fee(
        self,
        subtotal: int,
        city: str | None = None,
        options: DeliveryOptions | Mapping[str, Any] | None = None,
    ) -> DeliveryQuote:
        """Price a delivery with a full breakdown."""
        if not isinstance(options, DeliveryOptions):
            options = DeliveryOptions.from_dict(dict(options or {}))
        if city is not None:
            options = DeliveryOptions(
                city=city,
                is_express=options.is_express,
                time_slot=options.time_slot,
                customer_tier=options.customer_tier,
            )
        return self.calculate_rule("order.deliveryFee", subtotal, options)

    def calculate_order_totals(
        self,
        subtotal: int,
        options: DeliveryOptions | Mapping[str, Any] | None = None,
    ) -> OrderTotals:
        """Subtotal, delivery fee and total for an order."""
        quote = self.calculate_delivery_fee(subtotal, None, options)
        return OrderTotals(
            subtotal=subtotal,
            delivery_fee=quote.fee,
            total=subtotal + quote.fee,
            free_delivery=quote.fee == 0,
            delivery=quote,
        )

    def calculate_advance_payment(self, custom_order: Any) -> AdvancePayment:
        """Work out the advance due on a custom order.

        Args:
            custom_order: CustomOrder or mapping with ``estimated_price``,
                ``special_requirements`` and ``cake_size``.

        Returns:
            AdvancePayment; ``required`` is False until a price is set.
        """
        estimated_price = _get(custom_order, "estimated_price")
        if not estimated_price or not self.check_rule("payment.advanceRequired", custom_order):
            return AdvancePayment(required=False)
        amount = min(
            round_half_up(self.calculate_rule("payment.advanceRequired", estimated_price)),
            estimated_price,
        )
        return AdvancePayment(
            required=True,
            amount=amount,
            percentage=round_half_up(amount / estimated_price * 100),
        )

    def get_delivery_options(self) -> dict[str, Any]:
        return self.delivery.options()
