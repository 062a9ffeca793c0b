"""Tests for the business rules engine."""

from datetime import timedelta

import pytest
from conftest import TODAY, TOMORROW

from cakeshop.domain.entities import Product
from cakeshop.domain.exceptions import RuleNotFoundError, RuleViolationError
from cakeshop.domain.rules import BusinessRule, RulesEngine, add_months, to_date


def _customer(**overrides):
    data = {
        "name": "Nimali Perera",
        "email": "nimali@example.com",
        "phone": "0771234567",
        "address": {"street": "12 Temple Road", "city": "Kandy"},
    }
    data.update(overrides)
    return data


class TestAdvanceNotice:
    """Tests for the advance notice rules."""

    def test_tomorrow_midnight_passes(self, rules: RulesEngine) -> None:
        """Delivery at 00:00 tomorrow satisfies one day of notice."""
        assert rules.validate_rule("order.minimumAdvanceNotice", "2026-03-11T00:00:00")

    def test_late_today_fails(self, rules: RulesEngine) -> None:
        """Delivery at 23:59 today is rejected with the configured message."""
        with pytest.raises(RuleViolationError) as exc_info:
            rules.validate_rule("order.minimumAdvanceNotice", "2026-03-10T23:59:00")

        assert exc_info.value.message == "Orders must be placed at least 1 day in advance"
        assert exc_info.value.rule == "order.minimumAdvanceNotice"

    def test_custom_order_needs_seven_days(self, rules: RulesEngine) -> None:
        """Custom orders need a week of notice."""
        assert not rules.check_rule("customOrder.minimumAdvanceNotice", TODAY + timedelta(days=6))
        assert rules.check_rule("customOrder.minimumAdvanceNotice", TODAY + timedelta(days=7))

    def test_custom_order_maximum_advance(self, rules: RulesEngine) -> None:
        """Custom orders cannot be booked more than six months ahead."""
        assert rules.check_rule("customOrder.maximumAdvance", "2026-09-10")
        assert not rules.check_rule("customOrder.maximumAdvance", "2026-09-11")


class TestRuleRegistry:
    """Tests for rule lookup and evaluation."""

    def test_unknown_validation_rule_raises(self, rules: RulesEngine) -> None:
        """Unknown rule names raise RuleNotFoundError."""
        with pytest.raises(RuleNotFoundError) as exc_info:
            rules.validate_rule("order.unknown", TOMORROW)
        assert exc_info.value.message == "Business rule 'order.unknown' not found"

    def test_unknown_calculation_rule_raises(self, rules: RulesEngine) -> None:
        """Rules without a calculator cannot be calculated."""
        with pytest.raises(RuleNotFoundError) as exc_info:
            rules.calculate_rule("order.minimumAdvanceNotice", TOMORROW)
        assert "Calculation rule" in exc_info.value.message

    def test_check_rule_does_not_swallow_missing_rules(self, rules: RulesEngine) -> None:
        """check_rule only converts violations to False."""
        with pytest.raises(RuleNotFoundError):
            rules.check_rule("does.not.exist")

    def test_get_all_rules_lists_defaults(self, rules: RulesEngine) -> None:
        """Every default rule is described."""
        names = {rule["name"] for rule in rules.get_all_rules()}
        assert {
            "order.minimumAdvanceNotice",
            "customOrder.maximumAdvance",
            "order.deliveryFee",
            "payment.advanceRequired",
            "order.statusTransition",
            "customer.validation",
        } <= names


class TestCustomerValidation:
    """Tests for the customer.validation rule."""

    def test_valid_customer_passes(self, rules: RulesEngine) -> None:
        """A complete customer passes."""
        assert rules.validate_rule("customer.validation", _customer())

    def test_phone_with_spaces_passes(self, rules: RulesEngine) -> None:
        """Whitespace inside the phone number is ignored."""
        assert rules.check_rule("customer.validation", _customer(phone="+94 77 123 4567"))

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"name": "N"}, "Name must be between 2 and 50 characters"),
            ({"email": "not-an-email"}, "Please provide a valid email address"),
            ({"phone": "12345"}, "Please provide a valid Sri Lankan phone number"),
            (
                {"address": {"street": "12 Temple Road"}},
                "Complete address with street and city is required",
            ),
            ({"address": "short"}, "Please provide a complete address"),
        ],
    )
    def test_first_failing_field_is_reported(
        self, rules: RulesEngine, overrides: dict, message: str
    ) -> None:
        """The message names the failing field."""
        with pytest.raises(RuleViolationError) as exc_info:
            rules.validate_rule("customer.validation", _customer(**overrides))
        assert exc_info.value.message == message


class TestPlacementChecks:
    """Tests for can_place_order and can_place_custom_order."""

    def test_valid_order_can_be_placed(self, rules: RulesEngine) -> None:
        """Valid date and customer pass."""
        check = rules.can_place_order(
            {"delivery_date": TOMORROW, "customer_info": _customer(), "items": []}
        )
        assert check.can_place
        assert check.errors == []

    def test_every_failure_is_collected(self, rules: RulesEngine) -> None:
        """All failing rules are listed."""
        product = Product(id="p1", name="Sponge", price=4000, stock_quantity=1)
        check = rules.can_place_order(
            {
                "delivery_date": TODAY,
                "customer_info": _customer(email="bad"),
                "items": [{"product": product, "quantity": 3}],
            }
        )

        assert not check.can_place
        assert check.errors == [
            "Orders must be placed at least 1 day in advance",
            "Please provide a valid email address",
            "Insufficient stock for Sponge",
        ]

    def test_made_to_order_product_skips_stock(self, rules: RulesEngine) -> None:
        """Products available on order ignore stock levels."""
        product = Product(id="p2", name="Tier", price=9500, is_available_on_order=True)
        assert rules.check_rule("order.stockAvailability", product, 50)

    def test_custom_order_placement(self, rules: RulesEngine) -> None:
        """Custom orders check both date bounds and contact fields."""
        check = rules.can_place_custom_order(
            {
                "delivery_date": TODAY + timedelta(days=3),
                "customer_name": "Kasun Silva",
                "customer_email": "kasun@example.com",
                "customer_phone": "0712345678",
            }
        )
        assert check.errors == ["Custom orders must be placed at least 7 days in advance"]


class TestStatusTransitions:
    """Tests for the status transition rules."""

    def test_order_transition(self, rules: RulesEngine) -> None:
        """Order rule follows the order table."""
        assert rules.can_transition_order_status("pending", "confirmed")
        assert not rules.can_transition_order_status("ready", "cancelled")

    def test_custom_order_transition(self, rules: RulesEngine) -> None:
        """Custom order rule uses the custom table."""
        assert rules.can_transition_order_status("confirmed", "in-progress", "custom")
        assert not rules.can_transition_order_status("confirmed", "preparing", "custom")

    def test_payment_transition(self, rules: RulesEngine) -> None:
        """Payment rule allows retry after failure."""
        assert rules.can_transition_payment_status("failed", "pending")
        assert not rules.can_transition_payment_status("refunded", "paid")


class TestAdvancePayment:
    """Tests for advance payment calculation."""

    def test_high_price_requires_thirty_percent(self, rules: RulesEngine) -> None:
        """15000 estimated price needs a 4500 advance."""
        advance = rules.calculate_advance_payment(
            {"estimated_price": 15000, "cake_size": "8 inch (serves 12-15)"}
        )
        assert advance.required
        assert advance.amount == 4500
        assert advance.percentage == 30

    def test_minimum_advance_applies(self, rules: RulesEngine) -> None:
        """Multi-tier cakes pay at least the minimum advance."""
        advance = rules.calculate_advance_payment(
            {"estimated_price": 5000, "cake_size": "Multi-tier"}
        )
        assert advance.amount == 2000
        assert advance.percentage == 40

    def test_advance_never_exceeds_price(self, rules: RulesEngine) -> None:
        """The minimum is capped at the estimated price."""
        advance = rules.calculate_advance_payment(
            {"estimated_price": 1500, "cake_size": "Multi-tier"}
        )
        assert advance.amount == 1500
        assert advance.percentage == 100

    def test_long_requirements_require_advance(self, rules: RulesEngine) -> None:
        """Requirements over 100 characters trigger an advance."""
        advance = rules.calculate_advance_payment(
            {"estimated_price": 6000, "special_requirements": "x" * 101}
        )
        assert advance.required

    def test_simple_order_needs_no_advance(self, rules: RulesEngine) -> None:
        """Cheap simple orders need no advance."""
        advance = rules.calculate_advance_payment(
            {"estimated_price": 6000, "special_requirements": "x" * 100}
        )
        assert not advance.required
        assert advance.amount == 0

    def test_unpriced_order_needs_no_advance(self, rules: RulesEngine) -> None:
        """No advance is due before staff set a price."""
        assert not rules.calculate_advance_payment({"cake_size": "Multi-tier"}).required


class TestLowStockAlert:
    """Tests for the inventory.lowStockAlert rule."""

    def test_out_of_stock_is_critical(self, rules: RulesEngine) -> None:
        """Zero stock is critical."""
        product = Product(id="p", name="Sponge", price=100, stock_quantity=0)
        alert = rules.calculate_rule("inventory.lowStockAlert", product)
        assert alert["urgency"] == "critical"
        assert alert["is_low_stock"]

    def test_medium_urgency(self, rules: RulesEngine) -> None:
        """Stock above half the threshold is medium urgency."""
        product = Product(id="p", name="Sponge", price=100, stock_quantity=4)
        alert = rules.calculate_rule("inventory.lowStockAlert", product)
        assert alert["urgency"] == "medium"
        assert alert["stock_percentage"] == 40.0


class TestDateHelpers:
    """Tests for date helpers."""

    def test_to_date_drops_time(self) -> None:
        """Datetime strings reduce to their date."""
        assert to_date("2026-03-11T23:59:00Z") == TOMORROW

    def test_to_date_rejects_garbage(self) -> None:
        """Unparseable strings raise ValueError."""
        with pytest.raises(ValueError):
            to_date("soon")

    def test_add_months_clamps_day(self) -> None:
        """Month-end dates clamp to the shorter month."""
        assert add_months(TODAY.replace(month=8, day=31), 6).isoformat() == "2027-02-28"


class TestRuleRegistry:
    """Tests for registering and looking up rules."""

    def test_add_and_get_rule(self, rules: RulesEngine) -> None:
        """Added rules are validated like the built-in ones."""
        rule = BusinessRule(
            name="order.weekdayOnly",
            description="Deliveries run Monday to Saturday",
            validate=lambda day: day != "Sunday",
            error="We do not deliver on Sundays",
        )
        rules.add_rule(rule)

        assert rules.get_rule("order.weekdayOnly") is rule
        assert rules.validate_rule("order.weekdayOnly", "Monday")
        with pytest.raises(RuleViolationError, match="We do not deliver on Sundays"):
            rules.validate_rule("order.weekdayOnly", "Sunday")

    def test_get_missing_rule(self, rules: RulesEngine) -> None:
        """Unknown names return None."""
        assert rules.get_rule("order.nothing") is None


class TestDeliveryHelpers:
    """Tests for the delivery helpers on the engine."""

    def test_zone_and_tier(self, rules: RulesEngine) -> None:
        """City and options combine into one quote."""
        quote = rules.calculate_delivery_fee(5000, "Colombo 07", {"customer_tier": "gold"})
        assert quote.zone == "colombo"
        assert quote.fee == 240

    def test_express_minimum(self, rules: RulesEngine) -> None:
        """Express deliveries never cost less than the express minimum."""
        quote = rules.calculate_delivery_fee(5000, "Colombo", {"is_express": True})
        assert quote.fee == 800
        assert quote.is_express

    def test_options_listing(self, rules: RulesEngine) -> None:
        """Delivery options expose every zone."""
        options = rules.get_delivery_options()
        assert set(options["zones"]) == {"colombo", "gampaha", "kalutara", "kandy", "other"}
        assert options["express_delivery"]["minimum_fee"] == 800
