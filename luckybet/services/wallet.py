"""
Wallet Service - Deposit initiation.

A deposit starts here and finishes in the deposit webhook: we record a
pending DepositRequest, commit it, then ask the payment gateway to prompt
the handset. The webhook is the only thing that credits a balance.
"""

from decimal import Decimal

from luckybet.exceptions import PaymentGatewayError
from luckybet.models.domain import DepositRequestData
from luckybet.observability.logging import get_logger
from luckybet.services.bets import generate_reference
from luckybet.services.payment_gateway import PaymentGateway
from luckybet.services.stores import StoreFactory

logger = get_logger(__name__)

DEPOSIT_REFERENCE_PREFIX = "WEB_"
ONE = Decimal("1")


def adjust_amount(amount: Decimal, previous: Decimal | None) -> Decimal:
    """
    Shift an amount that repeats the previous request by one shilling.

    The gateway drops a prompt identical to one it has just sent, so a
    repeat of the same amount (or of the already shifted one) is moved.
    """
    if previous is None:
        return amount
    if previous == amount and amount > ONE:
        return amount - ONE
    if previous == amount - ONE:
        return amount + ONE
    return amount


class WalletService:
    """Creates deposit requests and triggers the payment prompt."""

    def __init__(self, factory: StoreFactory, gateway: PaymentGateway) -> None:
        self.factory = factory
        self.gateway = gateway

    async def initiate_deposit(
        self, msisdn: str, amount: Decimal, channel: str = "WEB"
    ) -> DepositRequestData:
        async with self.factory.open() as stores:
            await stores.accounts.get_or_create(msisdn)
            previous = await stores.ledger.last_deposit_amount(msisdn)
            adjusted = adjust_amount(amount, previous)
            request = await stores.ledger.create_deposit_request(
                reference=generate_reference(DEPOSIT_REFERENCE_PREFIX),
                msisdn=msisdn,
                amount=adjusted,
                channel=channel,
            )
            await stores.commit()

        logger.info(
            "deposit_initiated",
            msisdn=msisdn,
            reference=request.reference,
            amount=str(adjusted),
            requested=str(amount),
        )

        try:
            await self.gateway.request_payment(msisdn, adjusted, request.reference)
        except PaymentGatewayError as e:
            # The request stays pending; a late or missing callback decides it
            logger.error("deposit_prompt_failed", reference=request.reference, error=str(e))

        return request
