"""Shared fixtures for the cake shop tests."""

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from cakeshop.application.facade import BusinessLogic, Repositories, build_business_logic
from cakeshop.domain.entities import Product
from cakeshop.domain.rules import RulesConfig, RulesEngine
from cakeshop.infrastructure.config import Settings
from cakeshop.infrastructure.repositories import InMemoryInventoryRepository

TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)
TOMORROW = TODAY + timedelta(days=1)


def fixed_today() -> date:
    return TODAY


def fixed_now() -> datetime:
    return NOW


def make_products() -> list[Product]:
    return [
        Product(id="prod-sponge", name="Vanilla Sponge", price=4000, stock_quantity=10),
        Product(
            id="prod-cupcake",
            name="Red Velvet Cupcake",
            price=500,
            discount_price=450,
            stock_quantity=6,
            low_stock_threshold=5,
        ),
        Product(
            id="prod-tiered",
            name="Wedding Tier",
            price=9500,
            stock_quantity=0,
            is_available_on_order=True,
        ),
        Product(
            id="prod-retired",
            name="Retired Tart",
            price=1000,
            stock_quantity=5,
            is_active=False,
        ),
    ]


def make_order_data(
    items: list[dict[str, Any]] | None = None,
    city: str = "Jaffna",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a valid standard order payload."""
    data: dict[str, Any] = {
        "customer_info": {
            "name": "Nimali Perera",
            "email": "Nimali@Example.com",
            "phone": "077 123 4567",
            "address": {"street": "12 Temple Road", "city": city},
        },
        "items": items or [{"product_id": "prod-sponge", "quantity": 2}],
        "delivery_date": TOMORROW.isoformat(),
    }
    data.update(overrides)
    return data


def make_custom_order_data(**overrides: Any) -> dict[str, Any]:
    """Build a valid custom order payload."""
    data: dict[str, Any] = {
        "customer_name": "Kasun Silva",
        "customer_email": "Kasun@Example.com",
        "customer_phone": "0712345678",
        "event_type": "Birthday",
        "cake_size": "8 inch (serves 12-15)",
        "flavor": "Chocolate",
        "delivery_date": (TODAY + timedelta(days=10)).isoformat(),
        "special_requirements": "Blue icing with a dinosaur topper, please.",
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings() -> Settings:
    """Settings that ignore the environment's .env file."""
    return Settings(_env_file=None, log_json=False)


@pytest.fixture
def rules() -> RulesEngine:
    """Rules engine pinned to a fixed calendar date."""
    return RulesEngine(RulesConfig(), today=fixed_today)


@pytest.fixture
def inventory() -> InMemoryInventoryRepository:
    return InMemoryInventoryRepository(make_products())


@pytest.fixture
def logic(settings: Settings, inventory: InMemoryInventoryRepository) -> BusinessLogic:
    """Fully wired business layer over in-memory repositories."""
    return build_business_logic(
        settings,
        repositories=Repositories(inventory=inventory),
        today=fixed_today,
        clock=fixed_now,
    )
