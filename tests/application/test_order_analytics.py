"""Tests for order analytics."""

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from conftest import NOW, fixed_now

from cakeshop.application.analytics import OrderAnalyticsService, order_frequency
from cakeshop.domain.entities import CustomOrder, Order, OrderItem, new_order
from cakeshop.domain.exceptions import ValidationError
from cakeshop.domain.state_machines import (
    AdvancePaymentStatus,
    CustomOrderStatus,
    OrderStatus,
    PaymentStatus,
)
from cakeshop.domain.value_objects import CustomerInfo, DeliveryInfo
from cakeshop.infrastructure.repositories import (
    InMemoryCustomOrderRepository,
    InMemoryOrderRepository,
)


def _at(day: int, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


def _sponge(quantity: int) -> OrderItem:
    return OrderItem("prod-sponge", "Vanilla Sponge", 4000, quantity)


def _cupcake(quantity: int) -> OrderItem:
    return OrderItem("prod-cupcake", "Red Velvet Cupcake", 450, quantity)


def _order(
    sequence: int,
    email: str,
    created_at: datetime,
    items: list[OrderItem],
    delivery_day: int,
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
) -> Order:
    order = new_order(
        order_id=f"ORD-PRM-{created_at:%Y%m%d}-{sequence:04d}",
        customer_info=CustomerInfo(
            name="Customer", email=email, phone="0771234567", address="12 Temple Road, Kandy"
        ),
        items=items,
        delivery=DeliveryInfo(fee=500),
        delivery_date=date(2026, 3, delivery_day),
    )
    order.created_at = created_at
    order.status = status
    order.payment_status = payment_status
    return order


def _custom_order(sequence: int, created_at: datetime, **fields) -> CustomOrder:
    custom_order = CustomOrder(
        order_id=f"ORD-CUS-{created_at:%Y%m%d}-{sequence:04d}",
        customer_name="Kasun Silva",
        customer_email="kasun@example.com",
        customer_phone="0712345678",
        event_type="Birthday",
        cake_size="Multi-tier",
        flavor="Chocolate",
        delivery_date=date(2026, 3, 28),
        **fields,
    )
    custom_order.created_at = created_at
    return custom_order


@pytest_asyncio.fixture
async def analytics() -> OrderAnalyticsService:
    orders = InMemoryOrderRepository()
    custom_orders = InMemoryCustomOrderRepository()

    # Previous week
    await orders.save(_order(1, "nimali@example.com", _at(1), [_sponge(1)], 5))
    await orders.save(_order(1, "ruwan@example.com", _at(2), [_cupcake(2)], 5))
    # Current week
    await orders.save(
        _order(
            1,
            "nimali@example.com",
            _at(8, 10, 15),
            [_sponge(2)],
            10,
            status=OrderStatus.DELIVERED,
            payment_status=PaymentStatus.PAID,
        )
    )
    await orders.save(_order(1, "amaya@example.com", _at(9, 14), [_cupcake(1)], 11))
    await orders.save(_order(2, "amaya@example.com", _at(9, 14, 45), [_sponge(1)], 13))

    await custom_orders.save(
        _custom_order(
            1,
            _at(9, 11),
            status=CustomOrderStatus.CONFIRMED,
            estimated_price=15000,
            advance_amount=4500,
            advance_payment_status=AdvancePaymentStatus.PAID,
        )
    )
    await custom_orders.save(_custom_order(2, _at(9, 12)))

    return OrderAnalyticsService(orders, custom_orders, clock=fixed_now)


class TestOrderAnalytics:
    """Tests for get_order_analytics."""

    @pytest.mark.asyncio
    async def test_totals_within_window(self, analytics: OrderAnalyticsService) -> None:
        """Revenue and breakdowns cover the requested window."""
        result = await analytics.get_order_analytics(
            {"start_date": _at(8, 0), "end_date": NOW}
        )

        regular = result["regular_orders"]
        assert regular["count"] == 3
        assert regular["total_revenue"] == 8500 + 950 + 4500
        assert regular["average_order_value"] == pytest.approx(13950 / 3)
        assert regular["status_breakdown"] == {"delivered": 1, "pending": 2}
        assert regular["payment_breakdown"] == {"paid": 1, "pending": 2}

        custom = result["custom_orders"]
        assert custom["count"] == 2
        assert custom["total_estimated_value"] == 15000
        assert custom["total_advance_collected"] == 4500
        assert custom["status_breakdown"] == {"confirmed": 1, "pending": 1}
        assert custom["advance_payment_breakdown"] == {"paid": 1, "not_required": 1}

        assert result["totals"] == {"all_orders": 5, "total_revenue": 13950 + 4500}

    @pytest.mark.asyncio
    async def test_status_and_payment_filters(self, analytics: OrderAnalyticsService) -> None:
        """Status and payment filters narrow the result."""
        paid = await analytics.get_order_analytics({"payment_status": "paid"})
        assert paid["regular_orders"]["count"] == 1

        pending = await analytics.get_order_analytics({"status": "pending"})
        assert pending["regular_orders"]["count"] == 4
        assert pending["custom_orders"]["count"] == 1

    @pytest.mark.asyncio
    async def test_empty_window(self, analytics: OrderAnalyticsService) -> None:
        """An empty window reports zeroes."""
        result = await analytics.get_order_analytics(
            {"start_date": NOW + timedelta(days=1), "end_date": NOW + timedelta(days=2)}
        )
        assert result["regular_orders"]["count"] == 0
        assert result["regular_orders"]["average_order_value"] == 0
        assert result["totals"]["all_orders"] == 0


class TestCustomerHistory:
    """Tests for get_customer_order_history."""

    @pytest.mark.asyncio
    async def test_history_by_email(self, analytics: OrderAnalyticsService) -> None:
        """History matches email case-insensitively, newest first."""
        history = await analytics.get_customer_order_history(" NIMALI@example.com ")

        assert [o.created_at for o in history.regular_orders] == [_at(8, 10, 15), _at(1)]
        assert history.custom_orders == []
        assert history.analytics["total_orders"] == 2
        assert history.analytics["total_spent"] == 8500 + 4500
        assert history.analytics["customer_since"] == _at(1).isoformat()

    @pytest.mark.asyncio
    async def test_unknown_customer(self, analytics: OrderAnalyticsService) -> None:
        """Unknown customers have an empty history."""
        history = await analytics.get_customer_order_history("nobody@example.com")
        assert history.analytics["total_orders"] == 0
        assert history.analytics["customer_since"] is None
        assert history.analytics["order_frequency"] == "N/A"


class TestBusinessInsights:
    """Tests for get_business_insights."""

    @pytest.mark.asyncio
    async def test_weekly_insights(self, analytics: OrderAnalyticsService) -> None:
        """Patterns are computed over the period's orders."""
        insights = await analytics.get_business_insights("7d")

        assert insights["period"] == "7d"
        assert insights["analytics"]["regular_orders"]["count"] == 3
        assert [p["product_id"] for p in insights["top_products"]] == [
            "prod-sponge",
            "prod-cupcake",
        ]
        assert insights["top_products"][0]["total_quantity"] == 3
        assert insights["top_products"][0]["total_revenue"] == 12000

        patterns = insights["insights"]
        assert patterns["busiest_day"] == "Monday"
        assert patterns["peak_order_time"] == "14:00"
        assert patterns["average_delivery_lead_time"] == pytest.approx(8 / 3)
        assert patterns["customer_retention_rate"] == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_unknown_period(self, analytics: OrderAnalyticsService) -> None:
        """Only known periods are accepted."""
        with pytest.raises(ValidationError) as exc_info:
            await analytics.get_business_insights("2w")
        assert exc_info.value.errors == ["period must be one of: 7d, 30d, 90d, 1y"]

    @pytest.mark.asyncio
    async def test_no_previous_customers(self, analytics: OrderAnalyticsService) -> None:
        """Retention is zero without a previous period."""
        rate = await analytics.get_customer_retention_rate(_at(1, 0), _at(3, 0))
        assert rate == 0.0


class TestOrderFrequency:
    """Tests for order_frequency."""

    def test_single_order(self) -> None:
        """A single order has no frequency."""
        assert order_frequency([_order(1, "a@b.lk", _at(1), [_sponge(1)], 5)]) == "N/A"

    def test_weekly(self) -> None:
        """Two orders a week apart read as weekly."""
        orders = [
            _order(1, "a@b.lk", _at(1), [_sponge(1)], 5),
            _order(2, "a@b.lk", _at(8), [_sponge(1)], 10),
        ]
        assert order_frequency(orders) == "2.0 orders/week"

    def test_daily(self) -> None:
        """Orders on consecutive hours read as daily."""
        orders = [
            _order(1, "a@b.lk", _at(1, 9), [_sponge(1)], 5),
            _order(2, "a@b.lk", _at(1, 10), [_sponge(1)], 5),
        ]
        assert order_frequency(orders) == "48.0 orders/day"
