"""
Player Service - Login, OTP-gated account actions, profile and history.

NO DICTIONARIES - Views are pydantic API models built from ORM rows.

OTP-gated actions are two calls: the request issues a code by SMS, the
confirmation verifies it and applies the change in the same transaction.
History listings are read-only and go to the read replica when one is
configured.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import Select, select

from luckybet.db.models import Bet, Deposit, Withdrawal
from luckybet.exceptions import (
    AccountNotFoundError,
    InvalidExclusionPeriodError,
    InvalidMsisdnError,
    InvalidPromoCodeError,
    SelfExcludedError,
)
from luckybet.models.api import (
    AccountStatus,
    AccountView,
    BetItem,
    BetType,
    DepositItem,
    ExclusionPeriod,
    Outcome,
    WithdrawalItem,
    WithdrawalProvider,
)
from luckybet.observability.logging import get_logger
from luckybet.services.otp import VerificationGate
from luckybet.services.stores import StoreFactory
from luckybet.services.tokens import TokenService

logger = get_logger(__name__)

EXCLUSION_PERIODS: dict[ExclusionPeriod, timedelta] = {
    ExclusionPeriod.HOURS_24: timedelta(hours=24),
    ExclusionPeriod.DAYS_7: timedelta(days=7),
    ExclusionPeriod.DAYS_30: timedelta(days=30),
    ExclusionPeriod.YEAR_1: timedelta(days=365),
}


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def parse_exclusion_period(value: str) -> timedelta:
    try:
        return EXCLUSION_PERIODS[ExclusionPeriod(value.strip())]
    except ValueError as e:
        raise InvalidExclusionPeriodError(value) from e


def within_dates(
    stmt: Select[Any], column: Any, start: date | None, end: date | None
) -> Select[Any]:
    """Restrict to [start 00:00, end 24:00) UTC; either bound may be open."""
    if start is not None:
        stmt = stmt.where(column >= datetime.combine(start, time.min, tzinfo=UTC))
    if end is not None:
        stmt = stmt.where(column < datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC))
    return stmt


class PlayerService:
    """Player-facing account operations."""

    def __init__(
        self,
        factory: StoreFactory,
        gate: VerificationGate,
        tokens: TokenService,
        read_factory: StoreFactory | None = None,
        session_hours: int = 24,
        page_size: int = 50,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.factory = factory
        self.read_factory = read_factory or factory
        self.gate = gate
        self.tokens = tokens
        self.session_hours = session_hours
        self.page_size = page_size
        self.clock = clock

    # ========================================================================
    # Login
    # ========================================================================

    async def request_login(self, msisdn: str, name: str = "", promocode: str = "") -> None:
        """
        Create the account on first contact and send a login code.

        Raises:
            InvalidMsisdnError: empty phone number
            InvalidPromoCodeError: promocode given but unknown
            AccountNotFoundError: account deactivated
            SelfExcludedError: account self-excluded
        """
        if not msisdn:
            raise InvalidMsisdnError(msisdn)

        async with self.factory.open() as stores:
            if promocode and not await stores.accounts.promo_exists(promocode):
                logger.info("login_invalid_promo", msisdn=msisdn, promocode=promocode)
                raise InvalidPromoCodeError(promocode)

            account = await stores.accounts.get_or_create(
                msisdn, name=name or None, referred_by=promocode or None
            )
            if account.status != AccountStatus.ACTIVE:
                await stores.commit()
                raise AccountNotFoundError(msisdn)
            if account.is_self_excluded(self.clock()):
                await stores.commit()
                raise SelfExcludedError(msisdn, account.self_exclusion_until)

            await self.gate.issue(stores, msisdn)
            await stores.commit()

    async def verify_login(self, msisdn: str, code: str) -> tuple[str, int]:
        """
        Exchange a login code for a bearer token.

        Returns (token, seconds the code had left). The token outlives the
        code by the configured session length.
        """
        async with self.factory.open() as stores:
            remaining = await self.gate.verify(stores, msisdn, code)
            account = await stores.accounts.find(msisdn)
            if account is None:
                await stores.commit()
                raise AccountNotFoundError(msisdn)
            await stores.commit()

        token = self.tokens.issue(msisdn, remaining + self.session_hours * 3600)
        logger.info("player_logged_in", msisdn=msisdn)
        return token, remaining

    # ========================================================================
    # Self-exclusion and deletion
    # ========================================================================

    async def request_self_exclusion(self, msisdn: str, period: str) -> None:
        parse_exclusion_period(period)
        await self._send_code(msisdn)

    async def confirm_self_exclusion(self, msisdn: str, code: str, period: str) -> datetime:
        """Apply the exclusion once the code checks out. Returns its end."""
        length = parse_exclusion_period(period)
        async with self.factory.open() as stores:
            await self.gate.verify(stores, msisdn, code)
            until = self.clock() + length
            await stores.accounts.set_self_exclusion(msisdn, until)
            await stores.commit()
        logger.info("self_exclusion_applied", msisdn=msisdn, until=until.isoformat())
        return until

    async def request_deletion(self, msisdn: str) -> None:
        await self._send_code(msisdn)

    async def confirm_deletion(self, msisdn: str, code: str) -> None:
        async with self.factory.open() as stores:
            await self.gate.verify(stores, msisdn, code)
            await stores.accounts.delete(msisdn)
            await stores.commit()
        logger.info("account_deleted", msisdn=msisdn)

    async def _send_code(self, msisdn: str) -> None:
        async with self.factory.open() as stores:
            if await stores.accounts.find(msisdn) is None:
                raise AccountNotFoundError(msisdn)
            await self.gate.issue(stores, msisdn)
            await stores.commit()

    # ========================================================================
    # Profile
    # ========================================================================

    async def profile(self, msisdn: str) -> AccountView:
        async with self.read_factory.open() as stores:
            row = await stores.accounts.find_row(msisdn)
        if row is None:
            raise AccountNotFoundError(msisdn)
        return AccountView(
            msisdn=row.msisdn,
            name=row.name,
            balance=row.balance,
            free_bet_count=row.free_bet_count,
            free_bet_expiry=row.free_bet_expiry,
            status=AccountStatus(row.status),
            self_exclusion_until=row.self_exclusion_until,
            promo_code=row.promo_code,
            total_bets=row.total_bets,
            total_payout=row.total_payout,
            created_at=row.created_at,
        )

    async def update_name(self, msisdn: str, name: str) -> None:
        async with self.factory.open() as stores:
            await stores.accounts.update_name(msisdn, name.strip())
            await stores.commit()
        logger.info("player_renamed", msisdn=msisdn)

    # ========================================================================
    # History (newest first, one page)
    # ========================================================================

    async def bet_history(
        self, msisdn: str, start: date | None = None, end: date | None = None
    ) -> list[BetItem]:
        stmt = within_dates(select(Bet).where(Bet.msisdn == msisdn), Bet.created_at, start, end)
        rows = await self._page(stmt.order_by(Bet.created_at.desc()))
        return [
            BetItem(
                reference=row.reference,
                game_name=row.game_name,
                amount=row.amount,
                choice=row.choice,
                winning_number=row.winning_number,
                bet_type=BetType(row.bet_type),
                outcome=Outcome(row.outcome),
                payout=row.payout,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def deposit_history(
        self, msisdn: str, start: date | None = None, end: date | None = None
    ) -> list[DepositItem]:
        stmt = within_dates(
            select(Deposit).where(Deposit.msisdn == msisdn), Deposit.created_at, start, end
        )
        rows = await self._page(stmt.order_by(Deposit.created_at.desc()))
        return [
            DepositItem(
                transaction_id=row.transaction_id,
                reference=row.reference,
                amount=row.amount,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def withdrawal_history(
        self, msisdn: str, start: date | None = None, end: date | None = None
    ) -> list[WithdrawalItem]:
        stmt = within_dates(
            select(Withdrawal).where(Withdrawal.msisdn == msisdn),
            Withdrawal.created_at,
            start,
            end,
        )
        rows = await self._page(stmt.order_by(Withdrawal.created_at.desc()))
        return [
            WithdrawalItem(
                reference=row.reference,
                provider=WithdrawalProvider(row.provider),
                amount=row.amount,
                status=row.status,
                disburse_status=row.disburse_status,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def _page(self, stmt: Select[Any]) -> list[Any]:
        async with self.read_factory.open() as stores:
            result = await stores.session.execute(stmt.limit(self.page_size))
            return list(result.scalars().all())
