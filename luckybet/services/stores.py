"""
Stores - One unit of work over one database session.

Services receive a StoreFactory and open a Stores handle per unit of work:

    async with factory.open() as stores:
        account = await stores.accounts.get_or_create(msisdn)
        await stores.commit()

Anything not committed when the block exits is rolled back.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from luckybet.services.accounts import AccountStore
from luckybet.services.games import GameCatalog
from luckybet.services.idempotency import IdempotencyGuard
from luckybet.services.ledger import LedgerWriter


@dataclass(frozen=True)
class Stores:
    """The four stores, sharing one session and therefore one transaction."""

    session: AsyncSession
    accounts: AccountStore
    games: GameCatalog
    ledger: LedgerWriter
    guard: IdempotencyGuard

    @classmethod
    def over(cls, session: AsyncSession) -> "Stores":
        return cls(
            session=session,
            accounts=AccountStore(session),
            games=GameCatalog(session),
            ledger=LedgerWriter(session),
            guard=IdempotencyGuard(session),
        )

    async def ping(self) -> None:
        """Round-trip to the database; warms a pooled connection."""
        await self.session.execute(text("SELECT 1"))

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


class StoreFactory:
    """Opens Stores handles from a session factory."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def open(self) -> AsyncIterator[Stores]:
        async with self._sessionmaker() as session:
            yield Stores.over(session)
