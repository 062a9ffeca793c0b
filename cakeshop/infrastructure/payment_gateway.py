"""Payment gateway HTTP client.

Read-only view of the payment provider. The workflow asks it whether an
online transfer has been started before an order is confirmed.
"""

from typing import Any

import httpx
import structlog

from cakeshop.domain.exceptions import PaymentGatewayError
from cakeshop.domain.state_machines import PaymentStatus

logger = structlog.get_logger()

# Provider status codes
STATUS_CODES: dict[str, PaymentStatus] = {
    "0": PaymentStatus.PENDING,
    "2": PaymentStatus.PAID,
    "-1": PaymentStatus.FAILED,
    "-2": PaymentStatus.FAILED,
    "-3": PaymentStatus.REFUNDED,
}


def map_status_code(status_code: Any) -> PaymentStatus:
    """Translate a provider status code.

    Raises:
        PaymentGatewayError: If the code is unknown.
    """
    status = STATUS_CODES.get(str(status_code).strip())
    if status is None:
        raise PaymentGatewayError(f"Unknown payment status code: {status_code}")
    return status


class HttpPaymentGateway:
    """HTTP client for the payment provider's status endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize gateway client.

        Args:
            base_url: Provider API base URL.
            timeout: Request timeout in seconds.
            transport: Optional transport override.
        """
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            response = await client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Payment gateway health check failed", error=str(e))
            return False

    async def get_payment_status(self, order_id: str) -> PaymentStatus | None:
        """Get the payment status for an order.

        Args:
            order_id: Public order ID.

        Returns:
            Payment status, or None when no payment was started.

        Raises:
            PaymentGatewayError: On transport errors or unexpected responses.
        """
        try:
            client = await self._get_client()
            response = await client.get(f"/payments/{order_id}")

            if response.status_code == 404:
                return None

            if response.status_code != 200:
                raise PaymentGatewayError(
                    f"Failed to get payment status: {response.text}",
                    response.status_code,
                )

            try:
                body = response.json()
            except ValueError as e:
                raise PaymentGatewayError("Invalid response body", response.status_code) from e

            status = map_status_code(body.get("status_code"))
            logger.info("Payment status fetched", order_id=order_id, status=status.value)
            return status

        except httpx.RequestError as e:
            logger.error(
                "Payment gateway request failed",
                order_id=order_id,
                error=str(e),
            )
            raise PaymentGatewayError(f"Request failed: {str(e)}") from e
