"""
Database Session Management - Async SQLAlchemy engines and session factories.

The write engine backs every unit of work that touches balances or the
settlement ledger; the read engine (a replica when DATABASE_READ_URL is
set, otherwise the primary pool) serves history listings.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from luckybet.config import settings
from luckybet.observability.tracing import instrument_sqlalchemy


def _build_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.log_level.upper() == "DEBUG",
        # Shows up in pg_stat_activity next to the row locks we hold
        connect_args={"server_settings": {"application_name": settings.service_name}},
    )
    instrument_sqlalchemy(engine)
    return engine


class Engines:
    """Lazily created engines and their session factories."""

    def __init__(self) -> None:
        self.write: AsyncEngine | None = None
        self.read: AsyncEngine | None = None
        self.write_sessions: async_sessionmaker[AsyncSession] | None = None
        self.read_sessions: async_sessionmaker[AsyncSession] | None = None

    def write_engine(self) -> AsyncEngine:
        if self.write is None:
            self.write = _build_engine(settings.database_url)
        return self.write

    def read_engine(self) -> AsyncEngine:
        if self.read is None:
            if settings.database_read_url is None:
                self.read = self.write_engine()
            else:
                self.read = _build_engine(settings.read_database_url)
        return self.read

    def write_factory(self) -> async_sessionmaker[AsyncSession]:
        if self.write_sessions is None:
            self.write_sessions = async_sessionmaker(self.write_engine(), expire_on_commit=False)
        return self.write_sessions

    def read_factory(self) -> async_sessionmaker[AsyncSession]:
        if self.read_sessions is None:
            # Listings never write; skip autoflush bookkeeping
            self.read_sessions = async_sessionmaker(
                self.read_engine(), expire_on_commit=False, autoflush=False
            )
        return self.read_sessions

    async def dispose(self) -> None:
        if self.read is not None and self.read is not self.write:
            await self.read.dispose()
        if self.write is not None:
            await self.write.dispose()
        self.write = self.read = None
        self.write_sessions = self.read_sessions = None


_engines = Engines()


def get_write_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory on the primary."""
    return _engines.write_factory()


def get_read_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory on the replica, or the primary when there is none."""
    return _engines.read_factory()


async def close_engines() -> None:
    """Close all database engines (for graceful shutdown)."""
    await _engines.dispose()
