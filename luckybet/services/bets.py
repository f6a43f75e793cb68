"""
Bet Executor - Validates and executes a bet against the live balance.

NO DICTIONARIES - All operations use strongly typed domain models.

Preconditions are checked in a fixed order, each with its own error:
1. stake equals the game's bet amount
2. choice within the game's range (lucky number only)
3. account active and not self-excluded
4. an active free bet, or balance >= stake

Execution runs in one transaction: debit (or free bet), resolve, credit the
payout, append the bet record. Any failure rolls the whole bet back.
"""

import secrets
import string
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import Decimal

from luckybet.exceptions import (
    AccountInactiveError,
    BetRejectedError,
    InsufficientBalanceError,
    InvalidBetAmountError,
    InvalidChoiceError,
    SelfExcludedError,
)
from luckybet.models.api import AccountStatus, BetType, Outcome, SmsKind
from luckybet.models.domain import (
    AccountSnapshot,
    BetIntent,
    BetOutcome,
    GameSnapshot,
    Resolution,
    SpinResolution,
)
from luckybet.observability.logging import get_logger, log_context
from luckybet.observability.metrics import metrics
from luckybet.observability.tracing import trace_operation
from luckybet.services.resolver import GameResolver
from luckybet.services.stores import StoreFactory, Stores

logger = get_logger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
USSD_CHANNEL = "USSD"


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_reference(prefix: str = "", length: int = 10) -> str:
    return prefix + "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))


def check_preconditions(
    account: AccountSnapshot,
    game: GameSnapshot,
    amount: Decimal,
    choice: int | None,
    now: datetime,
) -> bool:
    """
    Raise the first violated precondition. Returns True if the bet uses a free bet.

    choice is None for spins, which have no lucky number.
    """
    if amount != game.bet_amount:
        raise InvalidBetAmountError(amount, game.bet_amount)
    if choice is not None and not game.choice_min <= choice <= game.choice_max:
        raise InvalidChoiceError(choice)
    if account.status != AccountStatus.ACTIVE:
        raise AccountInactiveError(account.msisdn)
    if account.is_self_excluded(now):
        raise SelfExcludedError(account.msisdn, account.self_exclusion_until)
    if account.has_active_free_bet(now):
        return True
    if account.balance < amount:
        raise InsufficientBalanceError(account.balance, amount)
    return False


def result_message(
    outcome: Outcome, resolution: Resolution | SpinResolution, free_bets_left: int, reference: str
) -> str:
    if isinstance(resolution, SpinResolution):
        row = " | ".join(resolution.row)
        if outcome == Outcome.WIN:
            return f"{row}. You won KES {resolution.payout}. Ref: {reference}"
        return f"{row}. Sorry, try again. Ref: {reference}"

    boxes = ", ".join(f"Box {box} - {prize}" for box, prize in sorted(resolution.boxes.items()))
    if outcome == Outcome.WIN:
        return (
            f"Congratulations! You picked {resolution.choice} and won KES {resolution.payout}. "
            f"{boxes}. Free Bet - {free_bets_left}. Ref: {reference}"
        )
    return (
        f"Sorry, try again. You picked {resolution.choice}. "
        f"{boxes}. Free Bet - {free_bets_left}. Ref: {reference}"
    )


class BetExecutor:
    """
    Executes bets.

    place_bet/place_spin own their transaction; execute_bet/execute_spin run
    inside a caller's transaction (used when a deposit settles a USSD bet).
    """

    def __init__(
        self,
        factory: StoreFactory,
        resolver: GameResolver,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.factory = factory
        self.resolver = resolver
        self.clock = clock

    async def place_bet(self, account: AccountSnapshot, intent: BetIntent) -> BetOutcome:
        """
        Place a lucky number bet in its own transaction.

        Raises:
            BetRejectedError subclasses for violated preconditions
        """
        return await self._in_transaction(lambda stores: self.execute_bet(stores, account, intent))

    async def place_spin(self, account: AccountSnapshot, intent: BetIntent) -> BetOutcome:
        """Place a spin in its own transaction."""
        return await self._in_transaction(
            lambda stores: self.execute_spin(stores, account, intent)
        )

    async def execute_bet(
        self, stores: Stores, account: AccountSnapshot, intent: BetIntent
    ) -> BetOutcome:
        if intent.choice is None:
            raise InvalidChoiceError(0)
        return await self._execute(
            stores,
            account,
            intent,
            lambda: self.resolver.draw(intent.game, intent.choice),  # type: ignore[arg-type]
        )

    async def execute_spin(
        self, stores: Stores, account: AccountSnapshot, intent: BetIntent
    ) -> BetOutcome:
        return await self._execute(
            stores, account, intent, lambda: self.resolver.spin(intent.game, intent.amount)
        )

    async def _execute(
        self,
        stores: Stores,
        account: AccountSnapshot,
        intent: BetIntent,
        resolve: Callable[[], Resolution | SpinResolution],
    ) -> BetOutcome:
        now = self.clock()
        with log_context(msisdn=intent.msisdn, reference=intent.reference):
            try:
                use_free_bet = check_preconditions(
                    account, intent.game, intent.amount, intent.choice, now
                )
            except BetRejectedError as e:
                metrics.record_bet_rejection(type(e).__name__)
                logger.info("bet_rejected", reason=type(e).__name__, error=str(e))
                raise

            with trace_operation("execute_bet", game=intent.game.game_cat_id) as span:
                free_bets_left = account.free_bet_count
                balance = account.balance
                if use_free_bet:
                    left = await stores.accounts.consume_free_bet(intent.msisdn, now)
                    if left is None:
                        # Used up by a concurrent bet since validation
                        use_free_bet = False
                    else:
                        free_bets_left = left
                if not use_free_bet:
                    balance = await stores.accounts.debit(intent.msisdn, intent.amount)

                resolution = resolve()
                payout = resolution.payout
                if payout > 0:
                    outcome = Outcome.WIN
                    balance = await stores.accounts.credit(intent.msisdn, payout, winnings=True)
                else:
                    outcome = Outcome.LOSS
                    await stores.accounts.record_loss(intent.msisdn)

                bet_type = BetType.FREE_BET if use_free_bet else BetType.NORMAL
                result = BetOutcome(
                    reference=intent.reference,
                    bet_type=bet_type,
                    outcome=outcome,
                    amount=intent.amount,
                    payout=payout,
                    balance_after=balance,
                    free_bets_left=free_bets_left,
                    message=result_message(outcome, resolution, free_bets_left, intent.reference),
                    resolution=resolution,
                )
                await stores.ledger.append_bet(intent, result)
                if intent.channel.upper() == USSD_CHANNEL:
                    await stores.ledger.queue_sms(
                        intent.msisdn, result.message, SmsKind.BET_RESULT, intent.reference
                    )
                span.set_attribute("luckybet.outcome", outcome.value)

            metrics.record_bet(
                intent.game.game_cat_id, bet_type.value, outcome.value, float(intent.amount)
            )
            logger.info(
                "bet_placed",
                game=intent.game.game_cat_id,
                bet_type=bet_type.value,
                outcome=outcome.value,
                amount=str(intent.amount),
                payout=str(payout),
                balance_after=str(balance),
            )
            return result

    async def _in_transaction(
        self, run: Callable[[Stores], Awaitable[BetOutcome]]
    ) -> BetOutcome:
        async with self.factory.open() as stores:
            try:
                outcome = await run(stores)
                await stores.commit()
            except Exception:
                await stores.rollback()
                raise
            return outcome
