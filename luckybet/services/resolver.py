"""
Game Resolver - Decides the prizes of a draw.

The engine only depends on the GameResolver protocol; RandomResolver is
the default, drawing from the OS CSPRNG.
"""

import secrets
from decimal import Decimal
from typing import Protocol

from luckybet.models.domain import GameSnapshot, Resolution, SpinResolution

# Prize multipliers (of the stake) hidden behind the boxes; None = the game's top multiplier
BOX_PRIZES: tuple[Decimal | None, ...] = (
    None,
    Decimal("2"),
    Decimal("1"),
    Decimal("0"),
    Decimal("0"),
    Decimal("0"),
    Decimal("0"),
)

SPIN_SYMBOLS = ("7", "BAR", "BELL", "CHERRY", "LEMON")
SPIN_REELS = 3


class GameResolver(Protocol):
    """Strategy that produces the outcome of a bet."""

    def draw(self, game: GameSnapshot, choice: int) -> Resolution: ...

    def spin(self, game: GameSnapshot, stake: Decimal) -> SpinResolution: ...


class RandomResolver:
    """Shuffles a fixed prize table over the boxes; spins three reels."""

    def __init__(self) -> None:
        self._random = secrets.SystemRandom()

    def draw(self, game: GameSnapshot, choice: int) -> Resolution:
        boxes_count = game.choice_max - game.choice_min + 1
        prizes = [
            game.bet_amount * (game.win_multiplier if multiplier is None else multiplier)
            for multiplier in BOX_PRIZES
        ]
        prizes = (prizes + [Decimal("0")] * boxes_count)[:boxes_count]
        self._random.shuffle(prizes)
        boxes = {
            box: prize.quantize(Decimal("0.01"))
            for box, prize in zip(range(game.choice_min, game.choice_max + 1), prizes)
        }
        return Resolution(boxes=boxes, choice=choice)

    def spin(self, game: GameSnapshot, stake: Decimal) -> SpinResolution:
        row = [self._random.choice(SPIN_SYMBOLS) for _ in range(SPIN_REELS)]
        distinct = len(set(row))
        if distinct == 1:
            payout = stake * game.win_multiplier
        elif distinct == 2:
            payout = stake
        else:
            payout = Decimal("0")
        return SpinResolution(row=row, payout=payout.quantize(Decimal("0.01")))
