"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from luckybet.models.api import (
    AccountStatus,
    BetType,
    DepositStatus,
    Outcome,
    SettlementKind,
    WithdrawalProvider,
)


@dataclass(frozen=True)
class AccountSnapshot:
    """Immutable account state as read at one point in time."""

    msisdn: str
    balance: Decimal
    free_bet_count: int
    free_bet_expiry: datetime | None
    status: AccountStatus
    self_exclusion_until: datetime | None
    name: str | None = None
    promo_code: str | None = None

    def __post_init__(self) -> None:
        """Validate account invariants."""
        if not self.msisdn:
            raise ValueError("msisdn cannot be empty")
        if self.balance < 0:
            raise ValueError(f"Balance cannot be negative: {self.balance}")
        if self.free_bet_count < 0:
            raise ValueError(f"Free bet count cannot be negative: {self.free_bet_count}")

    def has_active_free_bet(self, now: datetime) -> bool:
        """A free bet is usable while credits remain and the grant hasn't expired."""
        return (
            self.free_bet_count > 0
            and self.free_bet_expiry is not None
            and self.free_bet_expiry > now
        )

    def is_self_excluded(self, now: datetime) -> bool:
        return self.self_exclusion_until is not None and self.self_exclusion_until > now


@dataclass(frozen=True)
class GameSnapshot:
    """Immutable game configuration."""

    game_cat_id: str
    category: str
    name: str
    bet_amount: Decimal
    choice_min: int = 1
    choice_max: int = 7
    win_multiplier: Decimal = Decimal("5")

    def __post_init__(self) -> None:
        """Validate game configuration."""
        if self.bet_amount <= 0:
            raise ValueError(f"Bet amount must be positive: {self.bet_amount}")
        if self.choice_min > self.choice_max:
            raise ValueError(f"Invalid choice range {self.choice_min}..{self.choice_max}")


@dataclass(frozen=True)
class Validation:
    """Result of the concurrent pre-bet reads."""

    game: GameSnapshot
    account: AccountSnapshot


@dataclass(frozen=True)
class Lobby:
    """Lobby listing; failures is non-empty when some reads failed."""

    games: list[GameSnapshot]
    account: AccountSnapshot | None
    failures: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True)
class BetIntent:
    """Domain model for a bet before execution - immutable intent."""

    msisdn: str
    game: GameSnapshot
    amount: Decimal
    choice: int | None
    channel: str
    ussd: str
    reference: str

    def __post_init__(self) -> None:
        """Validate bet constraints."""
        if self.amount <= 0:
            raise ValueError(f"Bet amount must be positive: {self.amount}")
        if not self.reference:
            raise ValueError("Reference cannot be empty")


@dataclass(frozen=True)
class Resolution:
    """Lucky number draw: the prize behind every box."""

    boxes: dict[int, Decimal]
    choice: int

    @property
    def payout(self) -> Decimal:
        return self.boxes.get(self.choice, Decimal("0"))

    @property
    def winning_number(self) -> int:
        """Box holding the top prize."""
        return max(self.boxes, key=lambda box: (self.boxes[box], -box))


@dataclass(frozen=True)
class SpinResolution:
    """Spin draw: the symbols shown and the payout."""

    row: list[str]
    payout: Decimal


@dataclass(frozen=True)
class BetOutcome:
    """Executed bet, as returned to the caller."""

    reference: str
    bet_type: BetType
    outcome: Outcome
    amount: Decimal
    payout: Decimal
    balance_after: Decimal
    free_bets_left: int
    message: str
    resolution: Resolution | SpinResolution

    @property
    def free_bet(self) -> bool:
        return self.bet_type == BetType.FREE_BET

    @property
    def number(self) -> Resolution:
        """Lucky number draw; TypeError for a spin."""
        if not isinstance(self.resolution, Resolution):
            raise TypeError(f"bet {self.reference} was not a lucky number draw")
        return self.resolution

    @property
    def spin(self) -> SpinResolution:
        if not isinstance(self.resolution, SpinResolution):
            raise TypeError(f"bet {self.reference} was not a spin")
        return self.resolution


# ============================================================================
# Settlement events
# ============================================================================


@dataclass(frozen=True)
class DepositSettlement:
    """Deposit callback, success or failure."""

    reference: str
    succeeded: bool
    description: str
    transaction_id: str
    amount: Decimal | None
    msisdn: str
    name: str
    shortcode: str

    kind = SettlementKind.DEPOSIT


@dataclass(frozen=True)
class WithdrawalDisbursement:
    """Disbursement callback for any withdrawal ledger."""

    provider: WithdrawalProvider
    reference: str
    transaction_id: str
    status: str
    description: str

    @property
    def kind(self) -> SettlementKind:
        if self.provider == WithdrawalProvider.B2B:
            return SettlementKind.B2B_WITHDRAWAL
        return SettlementKind.WITHDRAWAL


SettlementEventData = DepositSettlement | WithdrawalDisbursement


@dataclass(frozen=True)
class ReconcileResult:
    """applied is False for replays; found is False when nothing matched."""

    applied: bool
    found: bool = True


@dataclass(frozen=True)
class DepositRequestData:
    """Pending deposit as created by deposit initiation or a USSD bet."""

    reference: str
    msisdn: str
    amount: Decimal
    channel: str
    status: DepositStatus
    game_cat_id: str | None = None
    selected_box: int | None = None
