"""
Account Store - The only writer of account rows.

NO DICTIONARIES - Reads return AccountSnapshot domain objects.

Balance changes are single conditional UPDATE ... RETURNING statements, so
the database re-checks the condition under its row lock. Two concurrent
debits can never both spend the same funds.
"""

import secrets
import string
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from luckybet.db.models import Account, PromoCode
from luckybet.exceptions import AccountNotFoundError, InsufficientBalanceError
from luckybet.models.api import AccountStatus
from luckybet.models.domain import AccountSnapshot
from luckybet.observability.logging import get_logger

logger = get_logger(__name__)

PROMO_ALPHABET = string.ascii_uppercase + string.digits


def generate_promo_code(length: int = 5) -> str:
    return "".join(secrets.choice(PROMO_ALPHABET) for _ in range(length))


def carrier_for(msisdn: str) -> str:
    """Mobile network of a Kenyan number. Only Safaricom is routed today."""
    return "SAFARICOM"


def to_snapshot(account: Account) -> AccountSnapshot:
    return AccountSnapshot(
        msisdn=account.msisdn,
        balance=account.balance,
        free_bet_count=account.free_bet_count,
        free_bet_expiry=account.free_bet_expiry,
        status=AccountStatus(account.status),
        self_exclusion_until=account.self_exclusion_until,
        name=account.name,
        promo_code=account.promo_code,
    )


class AccountStore:
    """Account reads and atomic balance mutations over one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find(self, msisdn: str) -> AccountSnapshot | None:
        account = await self._find_row(msisdn)
        return to_snapshot(account) if account is not None else None

    async def find_row(self, msisdn: str) -> Account | None:
        """ORM row, for read-only views that need every column."""
        return await self._find_row(msisdn)

    async def get_or_create(
        self,
        msisdn: str,
        name: str | None = None,
        referred_by: str | None = None,
    ) -> AccountSnapshot:
        """
        Return the account, creating it (with its own promo code) on first contact.

        Concurrent first contacts race on the primary key; the loser's insert
        is a no-op and both read back the same row.
        """
        account = await self._find_row(msisdn)
        if account is not None:
            return to_snapshot(account)

        promo = generate_promo_code()
        result = await self.session.execute(
            insert(Account)
            .values(
                msisdn=msisdn,
                name=name or None,
                carrier=carrier_for(msisdn),
                balance=Decimal("0"),
                free_bet_count=0,
                status=AccountStatus.ACTIVE.value,
                promo_code=promo,
                referred_by=referred_by or None,
                total_bets=0,
                total_payout=Decimal("0"),
                lost_count=0,
            )
            .on_conflict_do_nothing(index_elements=[Account.msisdn])
            .returning(Account.msisdn)
        )
        created = result.scalar_one_or_none() is not None
        if created:
            self.session.add(PromoCode(code=promo, msisdn=msisdn))
            await self.session.flush()
            logger.info("account_created", msisdn=msisdn, referred_by=referred_by)

        account = await self._find_row(msisdn)
        if account is None:
            raise AccountNotFoundError(msisdn)
        return to_snapshot(account)

    async def debit(self, msisdn: str, amount: Decimal) -> Decimal:
        """
        Take a stake from the balance. Returns the new balance.

        Raises:
            InsufficientBalanceError: balance < amount at the moment of the update
        """
        result = await self.session.execute(
            update(Account)
            .where(Account.msisdn == msisdn, Account.balance >= amount)
            .values(
                balance=Account.balance - amount,
                total_bets=Account.total_bets + 1,
            )
            .returning(Account.balance)
        )
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            current = await self.find(msisdn)
            if current is None:
                raise AccountNotFoundError(msisdn)
            raise InsufficientBalanceError(current.balance, amount)
        return new_balance

    async def consume_free_bet(self, msisdn: str, now: datetime) -> int | None:
        """Use one free bet credit. Returns credits left, or None if none was usable."""
        result = await self.session.execute(
            update(Account)
            .where(
                Account.msisdn == msisdn,
                Account.free_bet_count > 0,
                Account.free_bet_expiry > now,
            )
            .values(
                free_bet_count=Account.free_bet_count - 1,
                total_bets=Account.total_bets + 1,
            )
            .returning(Account.free_bet_count)
        )
        return result.scalar_one_or_none()

    async def credit(self, msisdn: str, amount: Decimal, winnings: bool = False) -> Decimal:
        """Add funds (deposit or payout). Returns the new balance."""
        values: dict[str, object] = {"balance": Account.balance + amount}
        if winnings:
            values["total_payout"] = Account.total_payout + amount
        result = await self.session.execute(
            update(Account)
            .where(Account.msisdn == msisdn)
            .values(**values)
            .returning(Account.balance)
        )
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            raise AccountNotFoundError(msisdn)
        return new_balance

    async def record_loss(self, msisdn: str) -> None:
        await self.session.execute(
            update(Account)
            .where(Account.msisdn == msisdn)
            .values(lost_count=Account.lost_count + 1)
        )

    async def set_self_exclusion(self, msisdn: str, until: datetime) -> None:
        result = await self.session.execute(
            update(Account)
            .where(Account.msisdn == msisdn)
            .values(self_exclusion_until=until)
            .returning(Account.msisdn)
        )
        if result.scalar_one_or_none() is None:
            raise AccountNotFoundError(msisdn)

    async def update_name(self, msisdn: str, name: str) -> None:
        result = await self.session.execute(
            update(Account)
            .where(Account.msisdn == msisdn)
            .values(name=name)
            .returning(Account.msisdn)
        )
        if result.scalar_one_or_none() is None:
            raise AccountNotFoundError(msisdn)

    async def delete(self, msisdn: str) -> None:
        """Hard delete; the bet and deposit ledgers keep their rows."""
        await self.session.execute(delete(PromoCode).where(PromoCode.msisdn == msisdn))
        result = await self.session.execute(
            delete(Account).where(Account.msisdn == msisdn).returning(Account.msisdn)
        )
        if result.scalar_one_or_none() is None:
            raise AccountNotFoundError(msisdn)

    async def promo_exists(self, code: str) -> bool:
        result = await self.session.execute(
            select(PromoCode.code).where(PromoCode.code == code)
        )
        return result.scalar_one_or_none() is not None

    async def _find_row(self, msisdn: str) -> Account | None:
        stmt = select(Account).where(Account.msisdn == msisdn)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
