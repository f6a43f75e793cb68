"""
Concurrent Validator - Pre-bet reads fanned out in parallel.

A bet needs three independent reads before it can execute: a warm-up
round-trip, the game configuration and the player's account. They run as
concurrent tasks, each on its own session, under one deadline.

Failure semantics:
- First error wins: the first read to fail decides the error raised.
  Reads already in flight are left to finish and their results dropped.
- A missing game is GameNotFoundError, not a read failure.
- Missing the deadline raises OperationTimeoutError. Reads still in flight
  are abandoned, not cancelled: they run to completion and their results
  are dropped.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from luckybet.exceptions import GameNotFoundError, OperationTimeoutError, ServiceUnavailableError
from luckybet.models.domain import AccountSnapshot, GameSnapshot, Lobby, Validation
from luckybet.observability.logging import get_logger
from luckybet.observability.metrics import metrics
from luckybet.services.stores import StoreFactory

logger = get_logger(__name__)

T = TypeVar("T")


class ConcurrentValidator:
    """Parallel game/account reads with first-error and deadline semantics."""

    def __init__(self, factory: StoreFactory, timeout_seconds: float) -> None:
        self.factory = factory
        self.timeout_seconds = timeout_seconds
        # Abandoned fan-outs; the loop only keeps weak references to tasks
        self._abandoned: set[asyncio.Future[Any]] = set()

    async def validate(
        self, category: str | None, game_cat_id: str, msisdn: str
    ) -> Validation:
        """
        Load the game and the (lazily created) account for a bet.

        Raises:
            GameNotFoundError: no active game with that id
            OperationTimeoutError: the reads missed the deadline
            Any error raised by the first failing read
        """
        start = time.perf_counter()
        _, game, account = await self._with_deadline(
            "validate_bet",
            lambda: asyncio.gather(
                self._warm_up(),
                self._load_game(game_cat_id, category),
                self._load_account(msisdn),
            ),
        )
        metrics.validation_duration_seconds.observe(time.perf_counter() - start)

        if game is None:
            raise GameNotFoundError(game_cat_id, category)
        return Validation(game=game, account=account)

    async def load_lobby(self, category: str | None, msisdn: str | None) -> Lobby:
        """
        Games listing plus, when known, the player's account.

        Partial failures degrade: games default to an empty list and the
        failed reads are reported in Lobby.failures.

        Raises:
            ServiceUnavailableError: every read failed
            OperationTimeoutError: the reads missed the deadline
        """
        reads: list[Awaitable[object]] = [self._list_games(category)]
        if msisdn:
            reads.append(self._load_account(msisdn))

        results = await self._with_deadline(
            "load_lobby", lambda: asyncio.gather(*reads, return_exceptions=True)
        )

        names = ["games", "account"][: len(results)]
        failures = [
            f"{name}: {type(result).__name__}"
            for name, result in zip(names, results)
            if isinstance(result, BaseException)
        ]
        if failures and len(failures) == len(results):
            for result in results:
                logger.error("lobby_read_failed", error=str(result))
            raise ServiceUnavailableError("load_lobby", failures)

        games = results[0] if not isinstance(results[0], BaseException) else []
        account = None
        if len(results) > 1 and not isinstance(results[1], BaseException):
            account = results[1]

        if failures:
            logger.warning("lobby_partial_failure", failures=failures, msisdn=msisdn)

        return Lobby(games=games, account=account, failures=failures)  # type: ignore[arg-type]

    async def _with_deadline(self, operation: str, run: Callable[[], Awaitable[T]]) -> T:
        reads = asyncio.ensure_future(run())
        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await asyncio.shield(reads)
        except TimeoutError as e:
            self._abandon(reads)
            logger.warning(
                "validation_timeout", operation=operation, timeout_seconds=self.timeout_seconds
            )
            metrics.record_error("timeout", operation)
            raise OperationTimeoutError(operation, self.timeout_seconds) from e

    def _abandon(self, reads: asyncio.Future[Any]) -> None:
        self._abandoned.add(reads)
        reads.add_done_callback(self._drop_abandoned)

    def _drop_abandoned(self, reads: asyncio.Future[Any]) -> None:
        self._abandoned.discard(reads)
        if not reads.cancelled() and reads.exception() is not None:
            logger.info("abandoned_read_failed", error=str(reads.exception()))

    async def _warm_up(self) -> None:
        async with self.factory.open() as stores:
            await stores.ping()

    async def _load_game(self, game_cat_id: str, category: str | None) -> GameSnapshot | None:
        async with self.factory.open() as stores:
            return await stores.games.get(game_cat_id, category)

    async def _list_games(self, category: str | None) -> list[GameSnapshot]:
        async with self.factory.open() as stores:
            return await stores.games.list(category)

    async def _load_account(self, msisdn: str) -> AccountSnapshot:
        async with self.factory.open() as stores:
            account = await stores.accounts.get_or_create(msisdn)
            await stores.commit()
            return account
