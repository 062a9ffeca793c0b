"""Customer loyalty tiers.

Tiers are earned by lifetime spend and discount delivery fees.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class CustomerTier(str, Enum):
    """Loyalty tiers, lowest first."""

    REGULAR = "regular"
    GOLD = "gold"
    PREMIUM = "premium"


@dataclass(frozen=True)
class TierInfo:
    """Benefits and entry threshold of one tier."""

    tier: CustomerTier
    name: str
    delivery_discount: float
    min_lifetime_spend: int
    benefits: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeliveryDiscount:
    original_fee: int
    discount: float
    final_fee: float
    discount_percentage: float


@dataclass(frozen=True)
class TierProgress:
    next_tier: CustomerTier
    next_tier_name: str
    remaining: int
    progress: float


TIERS: dict[CustomerTier, TierInfo] = {
    CustomerTier.REGULAR: TierInfo(
        CustomerTier.REGULAR,
        "Regular Customer",
        0.0,
        0,
        ("Standard delivery", "Order tracking", "Customer support"),
    ),
    CustomerTier.GOLD: TierInfo(
        CustomerTier.GOLD,
        "Gold Member",
        0.2,
        25000,
        ("20% off delivery fees", "Priority customer support", "Early access to new products"),
    ),
    CustomerTier.PREMIUM: TierInfo(
        CustomerTier.PREMIUM,
        "Premium Member",
        0.5,
        50000,
        ("50% off all delivery fees", "Dedicated account manager", "Custom cake consultation"),
    ),
}

UPGRADE_OFFER_PROGRESS = 80.0


class CustomerTierCalculator:
    """Tier assignment, delivery discounts and upgrade progress."""

    def __init__(self, tiers: dict[CustomerTier, TierInfo] | None = None) -> None:
        self.tiers = tiers or TIERS

    def calculate_tier(self, lifetime_spend: int) -> CustomerTier:
        """Highest tier whose threshold ``lifetime_spend`` reaches."""
        for tier in (CustomerTier.PREMIUM, CustomerTier.GOLD):
            if lifetime_spend >= self.tiers[tier].min_lifetime_spend:
                return tier
        return CustomerTier.REGULAR

    def get_tier_info(self, tier: str) -> TierInfo:
        try:
            return self.tiers[CustomerTier(tier)]
        except ValueError:
            return self.tiers[CustomerTier.REGULAR]

    def delivery_discount(self, tier: str, original_fee: int) -> DeliveryDiscount:
        info = self.get_tier_info(tier)
        discount = original_fee * info.delivery_discount
        return DeliveryDiscount(
            original_fee=original_fee,
            discount=discount,
            final_fee=max(0.0, original_fee - discount),
            discount_percentage=info.delivery_discount * 100,
        )

    def progress_to_next_tier(self, lifetime_spend: int, tier: str) -> TierProgress | None:
        """Progress toward the next tier, or None at the top tier."""
        current = self.get_tier_info(tier).tier
        if current is CustomerTier.PREMIUM:
            return None
        next_tier = CustomerTier.GOLD if current is CustomerTier.REGULAR else CustomerTier.PREMIUM
        info = self.tiers[next_tier]
        return TierProgress(
            next_tier=next_tier,
            next_tier_name=info.name,
            remaining=max(0, info.min_lifetime_spend - lifetime_spend),
            progress=min(100.0, lifetime_spend / info.min_lifetime_spend * 100),
        )

    def should_offer_upgrade(self, tier: str, lifetime_spend: int) -> bool:
        progress = self.progress_to_next_tier(lifetime_spend, tier)
        return progress is not None and progress.progress >= UPGRADE_OFFER_PROGRESS

    def benefit_comparison(self) -> list[dict[str, Any]]:
        return [
            {
                "id": info.tier.value,
                "name": info.name,
                "delivery_discount": info.delivery_discount,
                "min_lifetime_spend": info.min_lifetime_spend,
                "benefits": list(info.benefits),
            }
            for info in self.tiers.values()
        ]
