"""Delivery fee calculator.

One calculator prices every delivery. The flat "free above threshold,
otherwise a fixed fee" rule is this calculator evaluated for a city that
matches no zone, a standard time slot and a regular customer.

Combination order:
    zone base fee -> free-threshold override -> tier discount
    -> express multiplier -> clamp at zero -> round half up
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from cakeshop.domain.value_objects import DeliveryInfo

OTHER_ZONE = "other"


@dataclass(frozen=True)
class DeliveryZone:
    """A group of cities sharing a delivery fee and free threshold."""

    key: str
    name: str
    fee: int
    free_threshold: int
    cities: tuple[str, ...] = ()

    def matches(self, city: str) -> bool:
        """Check whether ``city`` contains any of this zone's city names."""
        city_lower = city.lower().strip()
        return any(zone_city in city_lower for zone_city in self.cities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "fee": self.fee,
            "free_threshold": self.free_threshold,
            "cities": list(self.cities),
        }


@dataclass(frozen=True)
class TimeSlot:
    """Delivery window with its fee multiplier."""

    key: str
    name: str
    multiplier: float = 1.0


def _default_zones(other_fee: int, other_threshold: int) -> dict[str, DeliveryZone]:
    return {
        "colombo": DeliveryZone(
            "colombo",
            "Colombo District",
            300,
            8000,
            ("colombo", "mount lavinia", "dehiwala", "moratuwa", "kotte", "maharagama"),
        ),
        "gampaha": DeliveryZone(
            "gampaha",
            "Gampaha District",
            500,
            9000,
            ("gampaha", "negombo", "kelaniya", "kadawatha", "ja-ela", "wattala"),
        ),
        "kalutara": DeliveryZone(
            "kalutara",
            "Kalutara District",
            600,
            10000,
            ("kalutara", "panadura", "horana", "beruwala", "aluthgama"),
        ),
        "kandy": DeliveryZone(
            "kandy",
            "Kandy District",
            800,
            12000,
            ("kandy", "peradeniya", "gampola", "nawalapitiya"),
        ),
        OTHER_ZONE: DeliveryZone(OTHER_ZONE, "Other Areas", other_fee, other_threshold),
    }


def _default_time_slots() -> dict[str, TimeSlot]:
    return {
        "standard": TimeSlot("standard", "Standard Time", 1.0),
        "morning": TimeSlot("morning", "8:00 AM - 12:00 PM", 1.0),
        "afternoon": TimeSlot("afternoon", "12:00 PM - 6:00 PM", 1.0),
        "evening": TimeSlot("evening", "6:00 PM - 9:00 PM", 1.0),
        "express": TimeSlot("express", "Express (within 4 hours)", 1.5),
    }


@dataclass(frozen=True)
class DeliveryConfig:
    """Zone, slot and discount tables for the calculator.

    Attributes:
        zones: Zones keyed by zone key; must contain ``other``.
        time_slots: Time slots keyed by slot key.
        express_multiplier: Surcharge multiplier for express delivery.
        express_minimum_fee: Floor of an express fee.
        tier_discounts: Fractional discount per customer tier.
    """

    zones: dict[str, DeliveryZone] = field(default_factory=lambda: _default_zones(500, 9000))
    time_slots: dict[str, TimeSlot] = field(default_factory=_default_time_slots)
    express_multiplier: float = 1.5
    express_minimum_fee: int = 800
    tier_discounts: dict[str, float] = field(
        default_factory=lambda: {"regular": 0.0, "gold": 0.2, "premium": 0.5}
    )

    @classmethod
    def default(cls, default_fee: int = 500, free_threshold: int = 9000) -> "DeliveryConfig":
        """Default tables with the catch-all zone set from the flat rule.

        Args:
            default_fee: Fee outside the named zones.
            free_threshold: Free-delivery threshold outside the named zones.
        """
        return cls(zones=_default_zones(default_fee, free_threshold))


@dataclass(frozen=True)
class DeliveryOptions:
    """Caller-selected delivery options."""

    city: str | None = None
    is_express: bool = False
    time_slot: str = "standard"
    customer_tier: str = "regular"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DeliveryOptions":
        data = data or {}
        return cls(
            city=data.get("city"),
            is_express=bool(data.get("is_express", False)),
            time_slot=data.get("time_slot") or "standard",
            customer_tier=data.get("customer_tier") or "regular",
        )


@dataclass(frozen=True)
class DeliveryQuote:
    """Result of pricing one delivery."""

    fee: int
    zone: str
    zone_name: str
    is_free: bool
    reason: str
    is_express: bool = False
    time_slot: str = "standard"
    breakdown: dict[str, Any] = field(default_factory=dict)

    def to_delivery_info(self, time_slot_name: str = "Standard Time") -> DeliveryInfo:
        """Project the quote onto the order's delivery block."""
        return DeliveryInfo(
            fee=self.fee,
            zone=self.zone,
            zone_name=self.zone_name,
            is_free=self.is_free,
            reason=self.reason,
            is_express=self.is_express,
            time_slot=self.time_slot,
            time_slot_name=time_slot_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fee": self.fee,
            "zone": self.zone,
            "zone_name": self.zone_name,
            "is_free": self.is_free,
            "reason": self.reason,
            "breakdown": self.breakdown,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest whole rupee, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class DeliveryFeeCalculator:
    """Prices deliveries by zone, time slot, express flag and customer tier."""

    def __init__(self, config: DeliveryConfig | None = None) -> None:
        self.config = config or DeliveryConfig.default()

    def resolve_zone(self, city: str | None) -> DeliveryZone:
        """Find the zone for a city, falling back to the catch-all zone."""
        if city:
            for key, zone in self.config.zones.items():
                if key != OTHER_ZONE and zone.matches(city):
                    return zone
        return self.config.zones[OTHER_ZONE]

    def quote(
        self,
        subtotal: int,
        city: str | None = None,
        *,
        is_express: bool = False,
        time_slot: str = "standard",
        customer_tier: str = "regular",
    ) -> DeliveryQuote:
        """Price a delivery.

        Args:
            subtotal: Order subtotal.
            city: Delivery city; unknown or missing cities use the ``other`` zone.
            is_express: Same-day express delivery.
            time_slot: Delivery window key; unknown keys price as standard.
            customer_tier: ``regular``, ``gold`` or ``premium``.

        Returns:
            DeliveryQuote with the fee and a step-by-step breakdown.
        """
        zone = self.resolve_zone(city)
        slot = self.config.time_slots.get(time_slot) or self.config.time_slots["standard"]
        discount = self.config.tier_discounts.get(customer_tier, 0.0)

        fee: float = zone.fee
        free_by_threshold = subtotal >= zone.free_threshold
        if free_by_threshold:
            fee = 0

        fee *= 1 - discount

        multiplier = max(slot.multiplier, self.config.express_multiplier if is_express else 1.0)
        express_applied = fee > 0 and multiplier > 1.0
        if express_applied:
            fee = max(fee * multiplier, self.config.express_minimum_fee)

        final_fee = round_half_up(max(fee, 0))

        return DeliveryQuote(
            fee=final_fee,
            zone=zone.key,
            zone_name=zone.name,
            is_free=final_fee == 0,
            reason=self._reason(free_by_threshold, express_applied, slot.key, customer_tier),
            is_express=is_express or slot.key == "express",
            time_slot=slot.key,
            breakdown={
                "base_zone": zone.key,
                "base_fee": zone.fee,
                "threshold": zone.free_threshold,
                "free_by_threshold": free_by_threshold,
                "tier_discount": discount,
                "express_multiplier": multiplier if express_applied else 1.0,
                "time_slot": {"key": slot.key, "name": slot.name, "multiplier": slot.multiplier},
            },
        )

    def quote_for(self, subtotal: int, options: DeliveryOptions) -> DeliveryQuote:
        return self.quote(
            subtotal,
            options.city,
            is_express=options.is_express,
            time_slot=options.time_slot,
            customer_tier=options.customer_tier,
        )

    def flat_fee(self, subtotal: int) -> int:
        """Fee for a delivery outside every named zone at default options."""
        return self.quote(subtotal).fee

    def time_slot_name(self, time_slot: str) -> str:
        slot = self.config.time_slots.get(time_slot) or self.config.time_slots["standard"]
        return slot.name

    def options(self) -> dict[str, Any]:
        """Zones, time slots and express settings for display."""
        return {
            "zones": {key: zone.to_dict() for key, zone in self.config.zones.items()},
            "time_slots": {
                key: {"name": slot.name, "multiplier": slot.multiplier}
                for key, slot in self.config.time_slots.items()
            },
            "express_delivery": {
                "multiplier": self.config.express_multiplier,
                "minimum_fee": self.config.express_minimum_fee,
            },
            "tier_discounts": dict(self.config.tier_discounts),
        }

    @staticmethod
    def _reason(free: bool, express: bool, time_slot: str, customer_tier: str) -> str:
        if free and not express:
            return "Free delivery (above threshold)"
        reasons = []
        if express:
            reasons.append("Express delivery")
        if time_slot == "evening":
            reasons.append("Evening delivery")
        if customer_tier == "premium":
            reasons.append("Premium discount applied")
        elif customer_tier == "gold":
            reasons.append("Gold member discount")
        return ", ".join(reasons) if reasons else "Standard delivery"
