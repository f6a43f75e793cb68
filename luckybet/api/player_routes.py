"""
Player Routes - Login, OTP-gated account actions, profile and history.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends

from luckybet.api.dependencies import get_current_msisdn, get_players
from luckybet.models.api import (
    BetHistoryResponse,
    DepositHistoryResponse,
    Envelope,
    HistoryRequest,
    LoginRequest,
    OtpOnlyRequest,
    OtpSentResponse,
    SelfExclusionRequest,
    SelfExclusionVerifyRequest,
    TokenResponse,
    UpdateUserRequest,
    UserResponse,
    VerifyOtpRequest,
    WithdrawalHistoryResponse,
)
from luckybet.services.players import PlayerService

router = APIRouter()

OTP_SENT = "Otp Verification has been sent!"


def _otp_sent(players: PlayerService) -> OtpSentResponse:
    return OtpSentResponse(status_message=OTP_SENT, expire_in=players.gate.ttl_minutes)


# ============================================================================
# Login
# ============================================================================


@router.post("/login", response_model=OtpSentResponse)
@router.post("/register", response_model=OtpSentResponse)
async def login(
    request: LoginRequest,
    players: PlayerService = Depends(get_players),
) -> OtpSentResponse:
    """
    Send a login code, registering the player on first contact.

    A promocode, when given, must belong to an existing player.
    """
    await players.request_login(request.msisdn, request.name, request.promocode)
    return _otp_sent(players)


@router.post("/verify_otp", response_model=TokenResponse)
async def verify_otp(
    request: VerifyOtpRequest,
    players: PlayerService = Depends(get_players),
) -> TokenResponse:
    """Exchange a login code for a bearer token. ExpireIn is the code's remaining seconds."""
    token, remaining = await players.verify_login(request.msisdn, request.otp)
    return TokenResponse(token=token, expire_in=remaining)


# ============================================================================
# Profile
# ============================================================================


@router.get("/user", response_model=UserResponse)
async def get_user(
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> UserResponse:
    return UserResponse(data=await players.profile(msisdn))


@router.put("/user", response_model=Envelope)
async def update_user(
    request: UpdateUserRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> Envelope:
    await players.update_name(msisdn, request.name)
    return Envelope()


# ============================================================================
# Self-exclusion and deletion
# ============================================================================


@router.post("/self_exclusion", response_model=OtpSentResponse)
async def self_exclusion(
    request: SelfExclusionRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> OtpSentResponse:
    await players.request_self_exclusion(msisdn, request.self_exclusion_period)
    return _otp_sent(players)


@router.post("/self_exclusion/verify", response_model=Envelope)
async def self_exclusion_verify(
    request: SelfExclusionVerifyRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> Envelope:
    """Confirm a self-exclusion. Bets and logins are refused until it ends."""
    until = await players.confirm_self_exclusion(
        msisdn, request.otp, request.self_exclusion_period
    )
    return Envelope(status_message=f"Self exclusion active until {until:%Y-%m-%d %H:%M} UTC")


@router.post("/delete_account", response_model=OtpSentResponse)
async def delete_account(
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> OtpSentResponse:
    await players.request_deletion(msisdn)
    return _otp_sent(players)


@router.post("/delete_account/verify", response_model=Envelope)
async def delete_account_verify(
    request: OtpOnlyRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> Envelope:
    await players.confirm_deletion(msisdn, request.otp)
    return Envelope(status_message="Account deleted")


# ============================================================================
# History
# ============================================================================


@router.post("/bet_history", response_model=BetHistoryResponse)
async def bet_history(
    request: HistoryRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> BetHistoryResponse:
    """Newest first, one page."""
    items = await players.bet_history(msisdn, request.start_date, request.end_date)
    return BetHistoryResponse(history=items)


@router.post("/list_deposit", response_model=DepositHistoryResponse)
async def list_deposit(
    request: HistoryRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> DepositHistoryResponse:
    items = await players.deposit_history(msisdn, request.start_date, request.end_date)
    return DepositHistoryResponse(deposit=items)


@router.post("/list_withdrawal", response_model=WithdrawalHistoryResponse)
async def list_withdrawal(
    request: HistoryRequest,
    msisdn: str = Depends(get_current_msisdn),
    players: PlayerService = Depends(get_players),
) -> WithdrawalHistoryResponse:
    items = await players.withdrawal_history(msisdn, request.start_date, request.end_date)
    return WithdrawalHistoryResponse(withdrawal=items)
