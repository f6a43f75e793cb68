"""
Tests for deposit initiation and the payment gateway client.
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from luckybet.exceptions import PaymentGatewayError
from luckybet.models.api import DepositStatus
from luckybet.services.payment_gateway import PaymentGateway
from luckybet.services.wallet import WalletService, adjust_amount
from tests.fakes import MSISDN


class TestAdjustAmount:
    """Tests for shifting repeated deposit amounts."""

    def test_first_deposit(self):
        assert adjust_amount(Decimal("100"), None) == Decimal("100")

    def test_repeat_is_lowered(self):
        assert adjust_amount(Decimal("100"), Decimal("100")) == Decimal("99")

    def test_repeat_of_the_shifted_amount_is_raised(self):
        assert adjust_amount(Decimal("100"), Decimal("99")) == Decimal("101")

    def test_unrelated_previous(self):
        assert adjust_amount(Decimal("100"), Decimal("250")) == Decimal("100")

    def test_never_drops_to_zero(self):
        assert adjust_amount(Decimal("1"), Decimal("1")) == Decimal("1")


class TestWalletService:
    async def test_initiate_creates_pending_request(self, store_factory, fake_db):
        gateway = MagicMock(spec=PaymentGateway)
        gateway.request_payment = AsyncMock()
        wallet = WalletService(store_factory, gateway)

        request = await wallet.initiate_deposit(MSISDN, Decimal("100.00"))

        assert request.reference.startswith("WEB_")
        assert request.status == DepositStatus.PENDING
        assert fake_db.deposit_requests[request.reference].amount == Decimal("100.00")
        assert MSISDN in fake_db.accounts
        gateway.request_payment.assert_awaited_once_with(
            MSISDN, Decimal("100.00"), request.reference
        )

    async def test_second_identical_deposit_is_shifted(self, store_factory, fake_db):
        gateway = MagicMock(spec=PaymentGateway)
        gateway.request_payment = AsyncMock()
        wallet = WalletService(store_factory, gateway)

        await wallet.initiate_deposit(MSISDN, Decimal("100.00"))
        second = await wallet.initiate_deposit(MSISDN, Decimal("100.00"))

        assert second.amount == Decimal("99.00")

    async def test_gateway_failure_keeps_the_request(self, store_factory, fake_db):
        """The prompt failing is logged; the pending request is still committed."""
        gateway = MagicMock(spec=PaymentGateway)
        gateway.request_payment = AsyncMock(side_effect=PaymentGatewayError("down"))
        wallet = WalletService(store_factory, gateway)

        request = await wallet.initiate_deposit(MSISDN, Decimal("50.00"))

        assert request.reference in fake_db.deposit_requests


class TestPaymentGateway:
    """Tests for the STK push client."""

    async def test_posts_the_prompt(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = PaymentGateway("https://gateway.test/stk", http_client=client)

        await gateway.request_payment(MSISDN, Decimal("100.00"), "WEB_ABC")

        assert seen == [{"amount": "100.00", "msisdn": MSISDN, "reference": "WEB_ABC"}]
        await gateway.close()

    async def test_error_status(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        )
        gateway = PaymentGateway("https://gateway.test/stk", http_client=client)

        with pytest.raises(PaymentGatewayError, match="502"):
            await gateway.request_payment(MSISDN, Decimal("1.00"), "WEB_ABC")

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = PaymentGateway("https://gateway.test/stk", http_client=client)

        with pytest.raises(PaymentGatewayError, match="unreachable"):
            await gateway.request_payment(MSISDN, Decimal("1.00"), "WEB_ABC")

    async def test_not_configured(self):
        with pytest.raises(PaymentGatewayError, match="not configured"):
            await PaymentGateway("").request_payment(MSISDN, Decimal("1.00"), "WEB_ABC")

    async def test_close_without_client(self):
        await PaymentGateway("https://gateway.test/stk").close()
