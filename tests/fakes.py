"""
In-memory stand-ins for the store layer, plus account and game factories.

FakeStoreFactory opens handles with the same surface as Stores, so the
engine services run unchanged on top of it.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession

from luckybet.exceptions import AccountNotFoundError, InsufficientBalanceError
from luckybet.models.api import (
    AccountStatus,
    DepositStatus,
    SettlementKind,
    SettlementStatus,
    SmsKind,
    WithdrawalProvider,
)
from luckybet.models.domain import (
    AccountSnapshot,
    BetIntent,
    BetOutcome,
    DepositRequestData,
    GameSnapshot,
    Resolution,
    SpinResolution,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
MSISDN = "254700000001"
TEST_SECRET = "test-secret-key-for-jwt-signing-min-32-chars"


def later(hours: int = 1) -> datetime:
    return NOW + timedelta(hours=hours)


def scalar_result(value: Any) -> MagicMock:
    """Execute() result whose scalar_one_or_none() returns value."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=value)
    return result


# ============================================================================
# Account and Game Factories
# ============================================================================


def make_account(
    msisdn: str = MSISDN,
    balance: Decimal | str | int = Decimal("100.00"),
    free_bet_count: int = 0,
    free_bet_expiry: datetime | None = None,
    status: AccountStatus = AccountStatus.ACTIVE,
    self_exclusion_until: datetime | None = None,
    name: str | None = None,
) -> AccountSnapshot:
    """Factory function to create account snapshots."""
    return AccountSnapshot(
        msisdn=msisdn,
        balance=Decimal(balance),
        free_bet_count=free_bet_count,
        free_bet_expiry=free_bet_expiry,
        status=status,
        self_exclusion_until=self_exclusion_until,
        name=name,
    )


def make_game(
    game_cat_id: str = "1",
    category: str = "Money Prize",
    bet_amount: Decimal | str | int = Decimal("50.00"),
    name: str = "Lucky 50",
) -> GameSnapshot:
    """Factory function to create game snapshots."""
    return GameSnapshot(
        game_cat_id=game_cat_id,
        category=category,
        name=name,
        bet_amount=Decimal(bet_amount),
    )


def make_intent(
    game: GameSnapshot,
    msisdn: str = MSISDN,
    amount: Decimal | None = None,
    choice: int | None = 3,
    channel: str = "WEB",
    reference: str = "REF0000001",
) -> BetIntent:
    return BetIntent(
        msisdn=msisdn,
        game=game,
        amount=game.bet_amount if amount is None else amount,
        choice=choice,
        channel=channel,
        ussd="",
        reference=reference,
    )


class FixedResolver:
    """Resolver with a known payout for the player's pick."""

    def __init__(self, payout: Decimal | str | int = Decimal("0")) -> None:
        self.payout = Decimal(payout)

    def draw(self, game: GameSnapshot, choice: int) -> Resolution:
        boxes = {box: Decimal("0.00") for box in range(game.choice_min, game.choice_max + 1)}
        if self.payout > 0:
            boxes[choice] = self.payout
        else:
            other = game.choice_min if choice != game.choice_min else game.choice_max
            boxes[other] = game.bet_amount * game.win_multiplier
        return Resolution(boxes=boxes, choice=choice)

    def spin(self, game: GameSnapshot, stake: Decimal) -> SpinResolution:
        row = ["7", "7", "7"] if self.payout > 0 else ["7", "BAR", "LEMON"]
        return SpinResolution(row=row, payout=self.payout)


class FailingResolver(FixedResolver):
    """Resolver that blows up mid-transaction, after the stake was taken."""

    def draw(self, game: GameSnapshot, choice: int) -> Resolution:
        raise RuntimeError("resolver crashed")


# ============================================================================
# In-memory Store Layer
# ============================================================================


class Journal:
    """Undo log and row locks of one fake transaction."""

    def __init__(self) -> None:
        self.undo: list[Callable[[], None]] = []
        self.locks: list[asyncio.Lock] = []

    def put(self, mapping: dict[Any, Any], key: Any, value: Any) -> None:
        if key in mapping:
            old = mapping[key]
            self.undo.append(lambda: mapping.__setitem__(key, old))
        else:
            self.undo.append(lambda: mapping.pop(key, None))
        mapping[key] = value

    def remove(self, mapping: dict[Any, Any], key: Any) -> None:
        old = mapping.pop(key)
        self.undo.append(lambda: mapping.__setitem__(key, old))

    def append(self, items: list[Any], value: Any) -> None:
        items.append(value)
        self.undo.append(lambda: items.remove(value))

    async def lock(self, lock: asyncio.Lock) -> None:
        if lock not in self.locks:
            await lock.acquire()
            self.locks.append(lock)

    def rollback(self) -> None:
        for undo in reversed(self.undo):
            undo()
        self.commit()

    def commit(self) -> None:
        self.undo.clear()
        for lock in self.locks:
            lock.release()
        self.locks.clear()


class FakeDatabase:
    """
    Shared state behind every fake session.

    Mutations are applied immediately and undone on rollback, so readers in
    other units of work see uncommitted writes. Conditional updates run
    without an await in between check and write, which makes them atomic
    under asyncio just like the single-statement updates they stand in for.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, AccountSnapshot] = {}
        self.games: dict[str, GameSnapshot] = {}
        self.bets: list[tuple[BetIntent, BetOutcome]] = []
        self.deposit_requests: dict[str, DepositRequestData] = {}
        self.deposits: dict[str, dict[str, Any]] = {}
        self.withdrawals: dict[tuple[WithdrawalProvider, str], dict[str, Any]] = {}
        self.events: dict[tuple[str, SettlementKind], dict[str, Any]] = {}
        self.sms: list[tuple[str, str, SmsKind, str | None]] = []
        self.promos: set[str] = set()
        self.row_locks: dict[tuple[str, SettlementKind], asyncio.Lock] = {}
        self.errors: dict[str, BaseException] = {}
        self.delays: dict[str, float] = {}
        self.commits = 0
        self.rollbacks = 0

    async def hook(self, name: str) -> None:
        """Injected latency and failures, per read."""
        delay = self.delays.get(name)
        await asyncio.sleep(delay or 0)
        error = self.errors.get(name)
        if error is not None:
            raise error

    def add_account(self, account: AccountSnapshot) -> AccountSnapshot:
        self.accounts[account.msisdn] = account
        return account

    def add_game(self, game: GameSnapshot) -> GameSnapshot:
        self.games[game.game_cat_id] = game
        return game

    def add_deposit_request(
        self,
        reference: str,
        amount: Decimal | str = Decimal("100.00"),
        msisdn: str = MSISDN,
        channel: str = "WEB",
        game_cat_id: str | None = None,
        selected_box: int | None = None,
    ) -> DepositRequestData:
        request = DepositRequestData(
            reference=reference,
            msisdn=msisdn,
            amount=Decimal(amount),
            channel=channel,
            status=DepositStatus.PENDING,
            game_cat_id=game_cat_id,
            selected_box=selected_box,
        )
        self.deposit_requests[reference] = request
        return request

    def add_withdrawal(
        self,
        reference: str,
        provider: WithdrawalProvider = WithdrawalProvider.STANDARD,
        amount: Decimal = Decimal("100.00"),
        msisdn: str = MSISDN,
    ) -> None:
        self.withdrawals[(provider, reference)] = {
            "msisdn": msisdn,
            "amount": amount,
            "status": "processed",
            "transaction_id": None,
            "disburse_status": None,
        }

    def sms_of(self, kind: SmsKind) -> list[tuple[str, str, SmsKind, str | None]]:
        return [sms for sms in self.sms if sms[2] == kind]


class FakeAccountStore:
    def __init__(self, db: FakeDatabase, journal: Journal) -> None:
        self.db = db
        self.journal = journal

    def _set(self, msisdn: str, **changes: Any) -> AccountSnapshot:
        account = replace(self.db.accounts[msisdn], **changes)
        self.journal.put(self.db.accounts, msisdn, account)
        return account

    async def find(self, msisdn: str) -> AccountSnapshot | None:
        await self.db.hook("account")
        return self.db.accounts.get(msisdn)

    async def find_row(self, msisdn: str) -> SimpleNamespace | None:
        account = self.db.accounts.get(msisdn)
        if account is None:
            return None
        return SimpleNamespace(
            msisdn=account.msisdn,
            name=account.name,
            balance=account.balance,
            free_bet_count=account.free_bet_count,
            free_bet_expiry=account.free_bet_expiry,
            status=account.status.value,
            self_exclusion_until=account.self_exclusion_until,
            promo_code=account.promo_code,
            total_bets=0,
            total_payout=Decimal("0"),
            created_at=NOW,
        )

    async def get_or_create(
        self, msisdn: str, name: str | None = None, referred_by: str | None = None
    ) -> AccountSnapshot:
        await self.db.hook("account")
        account = self.db.accounts.get(msisdn)
        if account is None:
            account = make_account(msisdn, balance=0, name=name)
            self.journal.put(self.db.accounts, msisdn, account)
        return account

    async def debit(self, msisdn: str, amount: Decimal) -> Decimal:
        await asyncio.sleep(0)
        account = self.db.accounts.get(msisdn)
        if account is None:
            raise AccountNotFoundError(msisdn)
        if account.balance < amount:
            raise InsufficientBalanceError(account.balance, amount)
        return self._set(msisdn, balance=account.balance - amount).balance

    async def consume_free_bet(self, msisdn: str, now: datetime) -> int | None:
        await asyncio.sleep(0)
        account = self.db.accounts.get(msisdn)
        if account is None or not account.has_active_free_bet(now):
            return None
        return self._set(msisdn, free_bet_count=account.free_bet_count - 1).free_bet_count

    async def credit(self, msisdn: str, amount: Decimal, winnings: bool = False) -> Decimal:
        account = self.db.accounts.get(msisdn)
        if account is None:
            raise AccountNotFoundError(msisdn)
        return self._set(msisdn, balance=account.balance + amount).balance

    async def record_loss(self, msisdn: str) -> None:
        return None

    async def set_self_exclusion(self, msisdn: str, until: datetime) -> None:
        if msisdn not in self.db.accounts:
            raise AccountNotFoundError(msisdn)
        self._set(msisdn, self_exclusion_until=until)

    async def update_name(self, msisdn: str, name: str) -> None:
        if msisdn not in self.db.accounts:
            raise AccountNotFoundError(msisdn)
        self._set(msisdn, name=name)

    async def delete(self, msisdn: str) -> None:
        if msisdn not in self.db.accounts:
            raise AccountNotFoundError(msisdn)
        self.journal.remove(self.db.accounts, msisdn)

    async def promo_exists(self, code: str) -> bool:
        return code in self.db.promos


class FakeGameCatalog:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def get(self, game_cat_id: str, category: str | None = None) -> GameSnapshot | None:
        await self.db.hook("game")
        game = self.db.games.get(game_cat_id)
        if game is not None and category and category != "all" and game.category != category:
            return None
        return game

    async def list(self, category: str | None = None) -> list[GameSnapshot]:
        await self.db.hook("games")
        return [
            game
            for game in self.db.games.values()
            if not category or category == "all" or game.category == category
        ]


class FakeLedger:
    def __init__(self, db: FakeDatabase, journal: Journal) -> None:
        self.db = db
        self.journal = journal

    async def append_bet(self, intent: BetIntent, outcome: BetOutcome) -> None:
        self.journal.append(self.db.bets, (intent, outcome))

    async def create_deposit_request(
        self,
        reference: str,
        msisdn: str,
        amount: Decimal,
        channel: str,
        game_cat_id: str | None = None,
        selected_box: int | None = None,
        ussd: str | None = None,
    ) -> DepositRequestData:
        request = DepositRequestData(
            reference=reference,
            msisdn=msisdn,
            amount=amount,
            channel=channel,
            status=DepositStatus.PENDING,
            game_cat_id=game_cat_id,
            selected_box=selected_box,
        )
        self.journal.put(self.db.deposit_requests, reference, request)
        return request

    async def find_deposit_request(
        self, reference: str, for_update: bool = False
    ) -> DepositRequestData | None:
        return self.db.deposit_requests.get(reference)

    async def last_deposit_amount(self, msisdn: str) -> Decimal | None:
        amounts = [r.amount for r in self.db.deposit_requests.values() if r.msisdn == msisdn]
        return amounts[-1] if amounts else None

    async def mark_deposit_request(
        self,
        reference: str,
        status: DepositStatus,
        description: str | None = None,
        transaction_id: str | None = None,
        only_if_pending: bool = False,
    ) -> bool:
        request = self.db.deposit_requests.get(reference)
        if request is None:
            return False
        if only_if_pending and request.status != DepositStatus.PENDING:
            return False
        self.journal.put(self.db.deposit_requests, reference, replace(request, status=status))
        return True

    async def deposit_exists(self, transaction_id: str) -> bool:
        return transaction_id in self.db.deposits

    async def insert_deposit(
        self,
        transaction_id: str,
        msisdn: str,
        amount: Decimal,
        reference: str | None,
        name: str | None = None,
        shortcode: str | None = None,
        deposit_type: str = "normal",
    ) -> None:
        row = {"msisdn": msisdn, "amount": amount, "reference": reference, "name": name}
        self.journal.put(self.db.deposits, transaction_id, row)

    async def resolve_withdrawal(
        self,
        provider: WithdrawalProvider,
        reference: str,
        transaction_id: str,
        disburse_status: str,
        description: str,
    ) -> bool:
        key = (provider, reference)
        row = self.db.withdrawals.get(key)
        if row is None or row["status"] != "processed":
            return False
        resolved = {
            **row,
            "status": "disbursed",
            "transaction_id": transaction_id,
            "disburse_status": disburse_status,
        }
        self.journal.put(self.db.withdrawals, key, resolved)
        return True

    async def queue_sms(
        self, msisdn: str, message: str, kind: SmsKind, reference: str | None = None
    ) -> None:
        self.journal.append(self.db.sms, (msisdn, message, kind, reference))


class FakeGuard:
    def __init__(self, db: FakeDatabase, journal: Journal) -> None:
        self.db = db
        self.journal = journal

    async def record(
        self,
        reference: str,
        kind: SettlementKind,
        status: SettlementStatus,
        description: str | None = None,
        transaction_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        key = (reference, kind)
        event = self.db.events.get(key)
        if event is None:
            event = {"status": status, "description": description, "processed": False}
            self.journal.put(self.db.events, key, event)
            return True
        if not event["processed"]:
            event.update(status=status, description=description)
        return False

    async def try_acquire(
        self,
        reference: str,
        kind: SettlementKind,
        status: SettlementStatus,
        description: str | None = None,
        transaction_id: str | None = None,
    ) -> bool:
        await self.record(reference, kind, status, description, transaction_id)
        key = (reference, kind)
        await self.journal.lock(self.db.row_locks.setdefault(key, asyncio.Lock()))
        return bool(self.db.events[(reference, kind)]["processed"])

    async def mark_processed(self, reference: str, kind: SettlementKind) -> None:
        key = (reference, kind)
        event = self.db.events[key]
        if not event["processed"]:
            self.journal.put(self.db.events, key, {**event, "processed": True})


class FakeStores:
    """Stores handle over the in-memory database."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.journal = Journal()
        self.session = AsyncMock(spec=AsyncSession)
        self.accounts = FakeAccountStore(db, self.journal)
        self.games = FakeGameCatalog(db)
        self.ledger = FakeLedger(db, self.journal)
        self.guard = FakeGuard(db, self.journal)

    async def ping(self) -> None:
        await self.db.hook("ping")

    async def commit(self) -> None:
        self.journal.commit()
        self.db.commits += 1

    async def rollback(self) -> None:
        self.journal.rollback()
        self.db.rollbacks += 1


class FakeStoreFactory:
    """StoreFactory stand-in; uncommitted work is rolled back and locks released on exit."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    @asynccontextmanager
    async def open(self) -> AsyncIterator[FakeStores]:
        stores = FakeStores(self.db)
        try:
            yield stores
        finally:
            stores.journal.rollback()


