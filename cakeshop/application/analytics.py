"""Read-only order analytics.

Aggregates standard and custom orders into revenue figures, status
breakdowns, per-customer history and period insights. Nothing here
mutates an order.
"""

from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from cakeshop.application.ports import CustomOrderRepository, OrderRepository
from cakeshop.domain.base import AggregateRoot, utcnow
from cakeshop.domain.entities import CustomOrder, Order
from cakeshop.domain.exceptions import ValidationError
from cakeshop.domain.state_machines import AdvancePaymentStatus

logger = structlog.get_logger()

PERIODS: dict[str, timedelta] = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}

TOP_PRODUCTS_LIMIT = 10


@dataclass
class CustomerOrderHistory:
    """Orders placed by one customer, newest first."""

    regular_orders: list[Order] = field(default_factory=list)
    custom_orders: list[CustomOrder] = field(default_factory=list)
    analytics: dict[str, Any] = field(default_factory=dict)


def status_breakdown(entities: Iterable[Any], status_field: str) -> dict[str, int]:
    """Count entities per value of ``status_field``."""
    counts: Counter[str] = Counter()
    for entity in entities:
        value = getattr(entity, status_field)
        counts[getattr(value, "value", value)] += 1
    return dict(counts)


def _collected_advance(custom_order: CustomOrder) -> int:
    if custom_order.advance_payment_status == AdvancePaymentStatus.PAID:
        return custom_order.advance_amount
    return 0


def order_frequency(entities: list[AggregateRoot]) -> str:
    """Describe how often orders arrive, e.g. ``"2.0 orders/week"``."""
    if len(entities) < 2:
        return "N/A"
    created = sorted(entity.created_at for entity in entities)
    span_days = (created[-1] - created[0]).total_seconds() / 86400
    if span_days == 0:
        return "N/A"
    per_day = len(entities) / span_days
    if per_day >= 1:
        return f"{per_day:.1f} orders/day"
    if per_day >= 1 / 7:
        return f"{per_day * 7:.1f} orders/week"
    return f"{per_day * 30:.1f} orders/month"


def busiest_day(orders: list[Order]) -> str:
    days = Counter(order.created_at.strftime("%A") for order in orders)
    return days.most_common(1)[0][0] if days else "N/A"


def peak_order_time(orders: list[Order]) -> str:
    hours = Counter(order.created_at.hour for order in orders)
    hour = hours.most_common(1)[0][0] if hours else 0
    return f"{hour}:00"


def average_lead_time(orders: list[Order]) -> float:
    """Mean number of days between placing an order and its delivery date."""
    lead_times = [(order.delivery_date - order.created_at.date()).days for order in orders]
    if not lead_times:
        return 0.0
    return sum(lead_times) / len(lead_times)


class OrderAnalyticsService:
    """Reporting over the order repositories.

    Example:
        analytics = OrderAnalyticsService(orders, custom_orders)
        insights = await analytics.get_business_insights("30d")
    """

    def __init__(
        self,
        orders: OrderRepository,
        custom_orders: CustomOrderRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.orders = orders
        self.custom_orders = custom_orders
        self._clock = clock

    async def get_order_analytics(
        self, filters: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Revenue and status breakdowns for standard and custom orders.

        Args:
            filters: Optional ``start_date``, ``end_date`` (datetimes),
                ``status`` and ``payment_status``.

        Returns:
            Dictionary with ``regular_orders``, ``custom_orders`` and ``totals``.
        """
        filters = filters or {}
        start, end = filters.get("start_date"), filters.get("end_date")
        status = filters.get("status")

        orders = await self.orders.list_all(status=status, created_from=start, created_to=end)
        custom_orders = await self.custom_orders.list_all(
            status=status, created_from=start, created_to=end
        )
        if filters.get("payment_status"):
            orders = [o for o in orders if o.payment_status.value == filters["payment_status"]]

        revenue = sum(order.total_amount for order in orders)
        advance_collected = sum(_collected_advance(co) for co in custom_orders)
        return {
            "regular_orders": {
                "count": len(orders),
                "total_revenue": revenue,
                "average_order_value": revenue / len(orders) if orders else 0,
                "status_breakdown": status_breakdown(orders, "status"),
                "payment_breakdown": status_breakdown(orders, "payment_status"),
            },
            "custom_orders": {
                "count": len(custom_orders),
                "total_estimated_value": sum(co.estimated_price or 0 for co in custom_orders),
                "total_advance_collected": advance_collected,
                "status_breakdown": status_breakdown(custom_orders, "status"),
                "advance_payment_breakdown": status_breakdown(
                    custom_orders, "advance_payment_status"
                ),
            },
            "totals": {
                "all_orders": len(orders) + len(custom_orders),
                "total_revenue": revenue + advance_collected,
            },
        }

    async def get_customer_order_history(self, email: str) -> CustomerOrderHistory:
        """All orders placed with ``email`` plus spend figures."""
        email = email.strip().lower()
        orders = await self.orders.list_all(customer_email=email)
        custom_orders = await self.custom_orders.list_all(customer_email=email)

        spent = sum(order.total_amount for order in orders)
        everything: list[AggregateRoot] = [*orders, *custom_orders]
        return CustomerOrderHistory(
            regular_orders=orders,
            custom_orders=custom_orders,
            analytics={
                "total_orders": len(everything),
                "total_spent": spent,
                "average_order_value": spent / len(orders) if orders else 0,
                "customer_since": (
                    min(entity.created_at for entity in everything).isoformat()
                    if everything
                    else None
                ),
                "order_frequency": order_frequency(everything),
            },
        )

    async def get_business_insights(self, period: str = "30d") -> dict[str, Any]:
        """Analytics, top products and trading patterns for a recent period.

        Args:
            period: One of ``7d``, ``30d``, ``90d``, ``1y``.

        Raises:
            ValidationError: If the period is not recognised.
        """
        if period not in PERIODS:
            raise ValidationError([f"period must be one of: {', '.join(PERIODS)}"])

        end = self._clock()
        start = end - PERIODS[period]
        analytics = await self.get_order_analytics({"start_date": start, "end_date": end})
        orders = await self.orders.list_all(created_from=start, created_to=end)

        logger.debug("Business insights computed", period=period, orders=len(orders))
        return {
            "period": period,
            "analytics": analytics,
            "top_products": self._top_products(orders),
            "insights": {
                "busiest_day": busiest_day(orders),
                "peak_order_time": peak_order_time(orders),
                "average_delivery_lead_time": average_lead_time(orders),
                "customer_retention_rate": await self.get_customer_retention_rate(start, end),
            },
        }

    def _top_products(self, orders: list[Order]) -> list[dict[str, Any]]:
        sales: dict[str, dict[str, Any]] = {}
        for order in orders:
            for item in order.items:
                entry = sales.setdefault(
                    item.product_id,
                    {
                        "product_id": item.product_id,
                        "name": item.name,
                        "total_quantity": 0,
                        "total_revenue": 0,
                    },
                )
                entry["total_quantity"] += item.quantity
                entry["total_revenue"] += item.subtotal
        ranked = sorted(sales.values(), key=lambda entry: entry["total_revenue"], reverse=True)
        return ranked[:TOP_PRODUCTS_LIMIT]

    async def get_customer_retention_rate(self, start: datetime, end: datetime) -> float:
        """Percentage of the previous period's customers who ordered again.

        The previous period has the same length and ends where this one starts.
        """
        current = await self.orders.list_all(created_from=start, created_to=end)
        previous = await self.orders.list_all(
            created_from=start - (end - start),
            created_to=start - timedelta(microseconds=1),
        )
        current_customers = {order.customer_email for order in current}
        previous_customers = {order.customer_email for order in previous}
        if not previous_customers:
            return 0.0
        retained = previous_customers & current_customers
        return len(retained) / len(previous_customers) * 100
