"""
API Routes - Bet placement, deposit initiation, lobby and health.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from luckybet.api.dependencies import (
    get_current_msisdn,
    get_executor,
    get_optional_msisdn,
    get_store_factory,
    get_validator,
    get_wallet,
)
from luckybet.models.api import (
    GameItem,
    GameResults,
    HealthResponse,
    InitiateDepositRequest,
    InitiateDepositResponse,
    LobbyResponse,
    PlaceBetRequest,
    PlaceBetResponse,
    PlaceSpinRequest,
    PlaceSpinResponse,
    SpinResults,
)
from luckybet.models.domain import BetIntent
from luckybet.services.bets import BetExecutor, generate_reference
from luckybet.services.games import GAME_CATEGORIES
from luckybet.services.stores import StoreFactory
from luckybet.services.validator import ConcurrentValidator
from luckybet.services.wallet import WalletService

router = APIRouter()
health_router = APIRouter()

BET_PLACED = "Bet Placed Successful"
FREE_BET_PLACED = "Free Bet Placed Successful"
DEPOSIT_PROMPT_SENT = "Kukamilisha BET weka M-Pesa PIN yako."
LOBBY_TITLE = "SHINDA HADI KES 3M CASH PAPO HAPO!"
SPIN_REFERENCE_PREFIX = "SPIN_"


def _flag(value: bool) -> str:
    return "true" if value else "false"


@router.post("/place_bet_luckynumber", response_model=PlaceBetResponse)
async def place_bet_luckynumber(
    request: PlaceBetRequest,
    msisdn: str = Depends(get_current_msisdn),
    validator: ConcurrentValidator = Depends(get_validator),
    executor: BetExecutor = Depends(get_executor),
) -> PlaceBetResponse:
    """
    Place a lucky number bet.

    Game and account are read concurrently, then the bet is executed in
    one transaction. Rejections come back as 202 envelopes.
    """
    validation = await validator.validate(request.category, request.game_cat_id, msisdn)
    intent = BetIntent(
        msisdn=msisdn,
        game=validation.game,
        amount=request.amount,
        choice=request.choice,
        channel=request.channel,
        ussd=request.ussd,
        reference=generate_reference(),
    )
    outcome = await executor.place_bet(validation.account, intent)

    resolution = outcome.number
    return PlaceBetResponse(
        status_message=FREE_BET_PLACED if outcome.free_bet else BET_PLACED,
        free_bet=_flag(outcome.free_bet),
        game_results=GameResults(
            boxes={str(box): prize for box, prize in sorted(resolution.boxes.items())},
            result_status=outcome.outcome,
            win_amount=outcome.payout,
            game_id=outcome.reference,
            selected_box=str(resolution.choice),
            result_message=outcome.message,
        ),
    )


@router.post("/place_bet_spin", response_model=PlaceSpinResponse)
async def place_bet_spin(
    request: PlaceSpinRequest,
    msisdn: str = Depends(get_current_msisdn),
    validator: ConcurrentValidator = Depends(get_validator),
    executor: BetExecutor = Depends(get_executor),
) -> PlaceSpinResponse:
    """Place a spin. Same pipeline as a lucky number bet without the pick."""
    validation = await validator.validate(request.category, request.game_cat_id, msisdn)
    intent = BetIntent(
        msisdn=msisdn,
        game=validation.game,
        amount=request.amount,
        choice=None,
        channel=request.channel,
        ussd="",
        reference=generate_reference(SPIN_REFERENCE_PREFIX),
    )
    outcome = await executor.place_spin(validation.account, intent)

    resolution = outcome.spin
    return PlaceSpinResponse(
        status_message=outcome.message,
        free_bet=_flag(outcome.free_bet),
        spin=SpinResults(
            row=resolution.row,
            win=outcome.payout > 0,
            win_amount=outcome.payout,
            game_id=outcome.reference,
        ),
    )


@router.post("/initiate_deposit", response_model=InitiateDepositResponse)
async def initiate_deposit(
    request: InitiateDepositRequest,
    msisdn: str = Depends(get_current_msisdn),
    wallet: WalletService = Depends(get_wallet),
) -> InitiateDepositResponse:
    """
    Start an M-Pesa deposit.

    The balance is credited later, when the gateway calls the deposit webhook.
    """
    await wallet.initiate_deposit(msisdn, request.amount, request.channel)
    return InitiateDepositResponse(status_message=DEPOSIT_PROMPT_SENT)


@router.get("/lucky_games", response_model=LobbyResponse)
async def lucky_games(
    category: str = Query("all", max_length=50),
    msisdn: str | None = Depends(get_optional_msisdn),
    validator: ConcurrentValidator = Depends(get_validator),
) -> LobbyResponse:
    """
    Games lobby, with balance and free bets when the caller is logged in.

    A failed account read still lists the games (Partial=true).
    """
    lobby = await validator.load_lobby(category, msisdn)
    now = datetime.now(UTC)
    account = lobby.account
    free_bets = (
        account.free_bet_count if account is not None and account.has_active_free_bet(now) else 0
    )
    return LobbyResponse(
        status_message="success",
        title=LOBBY_TITLE,
        categories=list(GAME_CATEGORIES),
        games=[
            GameItem(
                game_cat_id=game.game_cat_id,
                name=game.name,
                category=game.category,
                bet_amount=game.bet_amount,
                choice_min=game.choice_min,
                choice_max=game.choice_max,
            )
            for game in lobby.games
        ],
        balance=account.balance if account is not None else None,
        free_bet=free_bets,
        partial=lobby.partial,
    )


@health_router.get("/health", response_model=HealthResponse)
async def health_check(factory: StoreFactory = Depends(get_store_factory)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        async with factory.open() as stores:
            await stores.ping()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(status="healthy", database="connected", timestamp=datetime.now(UTC))
