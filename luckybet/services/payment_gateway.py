"""
Payment Gateway - Pushes M-Pesa payment prompts (STK push) to handsets.

The gateway answers asynchronously through the deposit webhook; this
client only asks for the prompt.
"""

from decimal import Decimal

import httpx
from structlog import get_logger

from luckybet.exceptions import PaymentGatewayError

logger = get_logger(__name__)


class PaymentGateway:
    """HTTP client for the payment gateway."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def request_payment(self, msisdn: str, amount: Decimal, reference: str) -> None:
        """
        Ask the gateway to prompt msisdn for amount.

        Raises:
            PaymentGatewayError: not configured, unreachable, or non-2xx answer
        """
        if not self.url:
            raise PaymentGatewayError("payment gateway URL not configured")
        try:
            response = await self.http_client.post(
                self.url,
                json={"amount": str(amount), "msisdn": msisdn, "reference": reference},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "payment_request_rejected",
                status=e.response.status_code,
                text=e.response.text[:500],
                reference=reference,
            )
            raise PaymentGatewayError(f"gateway answered {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("payment_request_failed", error=str(e), reference=reference)
            raise PaymentGatewayError(f"gateway unreachable: {e}") from e

        logger.info("payment_requested", msisdn=msisdn, amount=str(amount), reference=reference)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
