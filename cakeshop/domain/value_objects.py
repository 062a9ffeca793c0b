"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. Amounts are whole Sri Lankan rupees (LKR has no
minor unit in this shop), so money is carried as plain ``int``.
"""

from dataclasses import dataclass
from typing import Any, Self

from cakeshop.domain.base import ValueObject
from cakeshop.domain.exceptions import ConsistencyError


# ============================================================================
# Customer Contact
# ============================================================================


@dataclass(frozen=True)
class Address(ValueObject):
    """Structured delivery address.

    Attributes:
        street: Street line.
        city: City name, also used to resolve the delivery zone.
        postal_code: Postal code.
        country: Country name.
    """

    street: str
    city: str
    postal_code: str = ""
    country: str = "Sri Lanka"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            street=str(data.get("street", "")).strip(),
            city=str(data.get("city", "")).strip(),
            postal_code=str(data.get("postal_code", "")).strip(),
            country=str(data.get("country") or "Sri Lanka").strip(),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "street": self.street,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    def format_single_line(self) -> str:
        """Format address as single line."""
        parts = [self.street, self.city]
        if self.postal_code:
            parts.append(self.postal_code)
        parts.append(self.country)
        return ", ".join(p for p in parts if p)


@dataclass(frozen=True)
class CustomerInfo(ValueObject):
    """Customer contact snapshot taken when an order is placed.

    Attributes:
        name: Customer full name.
        email: Lower-cased email address.
        phone: Phone number as entered.
        address: Structured address or a free-text address line.
    """

    name: str
    email: str
    phone: str
    address: Address | str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a normalised snapshot from a payload dictionary."""
        raw_address = data.get("address")
        address: Address | str
        if isinstance(raw_address, dict):
            address = Address.from_dict(raw_address)
        else:
            address = str(raw_address or "").strip()
        return cls(
            name=str(data.get("name", "")).strip(),
            email=str(data.get("email", "")).strip().lower(),
            phone=str(data.get("phone", "")).strip(),
            address=address,
        )

    @property
    def city(self) -> str | None:
        """City used for delivery zoning, if the address is structured."""
        if isinstance(self.address, Address):
            return self.address.city or None
        return None

    def to_dict(self) -> dict[str, Any]:
        address = self.address.to_dict() if isinstance(self.address, Address) else self.address
        return {"name": self.name, "email": self.email, "phone": self.phone, "address": address}


# ============================================================================
# Pricing
# ============================================================================


@dataclass(frozen=True)
class Pricing(ValueObject):
    """Order pricing block.

    ``total_amount`` always equals ``subtotal + delivery_fee``; building
    one that does not raises ConsistencyError.
    """

    subtotal: int
    delivery_fee: int
    total_amount: int

    def __post_init__(self) -> None:
        errors: list[str] = []
        if self.subtotal < 0:
            errors.append("Subtotal cannot be negative")
        if self.delivery_fee < 0:
            errors.append("Delivery fee cannot be negative")
        if self.total_amount != self.subtotal + self.delivery_fee:
            errors.append("Order total amount does not match calculated total")
        if errors:
            raise ConsistencyError(errors)

    @classmethod
    def create(cls, subtotal: int, delivery_fee: int) -> Self:
        """Create pricing with a derived total."""
        return cls(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total_amount=subtotal + delivery_fee,
        )

    @property
    def is_free_delivery(self) -> bool:
        return self.delivery_fee == 0

    def to_dict(self) -> dict[str, int]:
        return {
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "total_amount": self.total_amount,
        }


@dataclass(frozen=True)
class DeliveryInfo(ValueObject):
    """Delivery metadata stored on an order."""

    fee: int = 0
    zone: str = "other"
    zone_name: str = "Other Areas"
    is_free: bool = False
    reason: str = "Standard delivery"
    is_express: bool = False
    time_slot: str = "standard"
    time_slot_name: str = "Standard Time"

    def to_dict(self) -> dict[str, Any]:
        return {
            "fee": self.fee,
            "zone": self.zone,
            "zone_name": self.zone_name,
            "is_free": self.is_free,
            "reason": self.reason,
            "is_express": self.is_express,
            "time_slot": self.time_slot,
            "time_slot_name": self.time_slot_name,
        }
