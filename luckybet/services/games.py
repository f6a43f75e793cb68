"""
Game Catalog - Read-only access to game configuration.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from luckybet.db.models import GameConfig
from luckybet.models.domain import GameSnapshot

ALL_CATEGORIES = "all"
GAME_CATEGORIES = (ALL_CATEGORIES, "Money Prize", "Car Prize", "Bike Prize", "JackPot")


def to_game(row: GameConfig) -> GameSnapshot:
    return GameSnapshot(
        game_cat_id=row.game_cat_id,
        category=row.category,
        name=row.name,
        bet_amount=row.bet_amount,
        choice_min=row.choice_min,
        choice_max=row.choice_max,
        win_multiplier=row.win_multiplier,
    )


class GameCatalog:
    """Game lookups. Inactive games are invisible."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, game_cat_id: str, category: str | None = None) -> GameSnapshot | None:
        stmt = select(GameConfig).where(
            GameConfig.game_cat_id == game_cat_id, GameConfig.active.is_(True)
        )
        if category and category != ALL_CATEGORIES:
            stmt = stmt.where(GameConfig.category == category)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return to_game(row) if row is not None else None

    async def list(self, category: str | None = None) -> list[GameSnapshot]:
        stmt = select(GameConfig).where(GameConfig.active.is_(True))
        if category and category != ALL_CATEGORIES:
            stmt = stmt.where(GameConfig.category == category)
        result = await self.session.execute(stmt.order_by(GameConfig.bet_amount, GameConfig.id))
        return [to_game(row) for row in result.scalars().all()]
