"""Public order identifiers.

Format: ``ORD-{TYPE}-{YYYYMMDD}-{NNNN}`` where TYPE is PRM for standard
orders and CUS for custom orders, and NNNN is the day's sequence number
for that type.
"""

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

import structlog

from cakeshop.domain.exceptions import SideEffectError

logger = structlog.get_logger()

ORDER_ID_PATTERN = re.compile(r"^ORD-(PRM|CUS)-(\d{8})-(\d{4,})$")


class OrderType(str, Enum):
    """Type code embedded in the order ID."""

    STANDARD = "PRM"
    CUSTOM = "CUS"


@dataclass(frozen=True)
class ParsedOrderId:
    """Fields recovered from an order ID."""

    is_valid: bool
    order_type: OrderType | None = None
    order_date: date | None = None
    sequence: int | None = None


OrderCounter = Callable[[OrderType, date], Awaitable[int]]
OrderExists = Callable[[str], Awaitable[bool]]


def format_order_id(order_type: OrderType, day: date, sequence: int) -> str:
    return f"ORD-{order_type.value}-{day:%Y%m%d}-{sequence:04d}"


def parse_order_id(value: str) -> ParsedOrderId:
    """Parse an order ID.

    Args:
        value: Candidate order ID.

    Returns:
        ParsedOrderId with ``is_valid=False`` for anything malformed.
    """
    match = ORDER_ID_PATTERN.match(value or "")
    if not match:
        return ParsedOrderId(is_valid=False)
    type_code, date_part, sequence = match.groups()
    try:
        day = datetime.strptime(date_part, "%Y%m%d").date()
    except ValueError:
        return ParsedOrderId(is_valid=False)
    return ParsedOrderId(
        is_valid=True,
        order_type=OrderType(type_code),
        order_date=day,
        sequence=int(sequence),
    )


class OrderIdGenerator:
    """Generates daily-sequenced order IDs.

    The sequence comes from ``counter`` (orders of the type already placed
    that day). If the counter fails, the last four digits of the current
    millisecond timestamp are used instead. Every candidate is checked with
    ``exists`` before it is returned.
    """

    def __init__(
        self,
        counter: OrderCounter,
        exists: OrderExists,
        clock: Callable[[], datetime] = datetime.now,
        max_attempts: int = 10,
    ) -> None:
        """Initialize generator.

        Args:
            counter: Async count of orders of a type on a date.
            exists: Async check whether an order ID is taken.
            clock: Source of the current time.
            max_attempts: Candidates tried before giving up.
        """
        self._counter = counter
        self._exists = exists
        self._clock = clock
        self._max_attempts = max_attempts

    async def generate(self, order_type: OrderType) -> str:
        """Generate an unused order ID.

        Raises:
            SideEffectError: If every candidate is already taken.
        """
        now = self._clock()
        day = now.date()
        try:
            sequence = await self._counter(order_type, day) + 1
        except Exception as exc:
            sequence = int(now.timestamp() * 1000) % 10000
            logger.warning(
                "Order sequence lookup failed, using timestamp suffix",
                order_type=order_type.value,
                error=str(exc),
            )

        for _ in range(self._max_attempts):
            candidate = format_order_id(order_type, day, sequence)
            if not await self._exists(candidate):
                return candidate
            logger.info("Order ID collision", order_id=candidate)
            sequence += 1

        raise SideEffectError("generate order ID", f"no free sequence for {day:%Y%m%d}")
