"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Response envelopes keep the wire names existing clients parse
(Status, StatusCode, StatusMessage, ...) through field aliases.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from luckybet.models.normalize import Choice, Identifier, Money, OptionalDate


class AccountStatus(str, Enum):
    """Account status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class BetType(str, Enum):
    """How a stake was funded."""

    NORMAL = "normal"
    FREE_BET = "free_bet"


class Outcome(str, Enum):
    """Terminal (or pending) result of a bet."""

    WIN = "win"
    LOSS = "loss"
    PENDING = "pending"


class SettlementKind(str, Enum):
    """Which ledger a settlement callback reconciles."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    B2B_WITHDRAWAL = "b2b_withdrawal"


class SettlementStatus(str, Enum):
    """Provider-reported outcome of a settlement."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class WithdrawalProvider(str, Enum):
    """Withdrawal ledgers, one per payout route."""

    STANDARD = "standard"
    MOTTO = "motto"
    B2B = "b2b"


class DepositStatus(str, Enum):
    """Deposit request lifecycle."""

    PENDING = "pending"
    SUCCESS = "success"
    FAIL = "fail"


class SmsKind(str, Enum):
    """Outbound SMS categories."""

    OTP = "otp"
    DEPOSIT_FAILED = "deposit_failed"
    DEPOSIT_SETTLED = "deposit_settled"
    BET_RESULT = "bet_result"


class ExclusionPeriod(str, Enum):
    """Self-exclusion periods offered to players."""

    HOURS_24 = "24 Hours"
    DAYS_7 = "7 Days"
    DAYS_30 = "30 Days"
    YEAR_1 = "1 Year"


# ============================================================================
# Envelope
# ============================================================================


class Envelope(BaseModel):
    """Base response: {Status, StatusCode, StatusMessage}."""

    model_config = ConfigDict(populate_by_name=True)

    status: int = Field(200, alias="Status")
    status_code: int = Field(0, alias="StatusCode")
    status_message: str = Field("Success", alias="StatusMessage")


# ============================================================================
# Bet Models
# ============================================================================


class PlaceBetRequest(BaseModel):
    """POST /api/v1/place_bet_luckynumber request body."""

    amount: Money
    choice: Choice
    game_cat_id: Identifier
    category: str = Field("all", max_length=50)
    channel: str = Field("WEB", max_length=20)
    ussd: str = Field("", max_length=50)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Stakes are strictly positive."""
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class PlaceSpinRequest(BaseModel):
    """POST /api/v1/place_bet_spin request body."""

    amount: Money
    game_cat_id: Identifier
    category: str = Field("all", max_length=50)
    channel: str = Field("WEB", max_length=20)
    mode: str = Field("normal", max_length=20)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Stakes are strictly positive."""
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class GameResults(BaseModel):
    """Per-box prizes and the result of the player's pick."""

    model_config = ConfigDict(populate_by_name=True)

    boxes: dict[str, Decimal] = Field(alias="Boxes")
    result_status: Outcome = Field(alias="ResultStatus")
    win_amount: Decimal = Field(alias="WinAmount")
    game_id: str = Field(alias="GameID")
    selected_box: str = Field(alias="SelectedBox")
    result_message: str = Field(alias="ResultMessage")


class PlaceBetResponse(Envelope):
    """Successful bet placement."""

    free_bet: str = Field("false", alias="FreeBet")
    game_results: GameResults | None = Field(None, alias="GameResults")


class SpinResults(BaseModel):
    """Reels shown to the player and the payout."""

    row: list[str]
    win: bool
    win_amount: Decimal
    game_id: str


class PlaceSpinResponse(Envelope):
    """Successful spin."""

    free_bet: str = Field("false", alias="FreeBet")
    spin: SpinResults | None = Field(None, alias="Spin")


# ============================================================================
# Deposit Models
# ============================================================================


class InitiateDepositRequest(BaseModel):
    """POST /api/v1/initiate_deposit request body."""

    amount: Money
    channel: str = Field("WEB", max_length=20)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Deposits are strictly positive."""
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class InitiateDepositResponse(Envelope):
    """Deposit prompt sent to the handset."""

    free_bet: str = Field("false", alias="FreeBet")


# ============================================================================
# Settlement Webhook Models
# ============================================================================


class DepositCallback(BaseModel):
    """Payment gateway deposit callback (POST /api/v1/settle_bet_luckynumber)."""

    model_config = ConfigDict(extra="ignore")

    status: Identifier
    reference: Identifier
    description: str = ""
    transaction_id: str = ""
    amount: Money | None = None
    msisdn: str = ""
    name: str = ""
    shortcode: str = ""

    @field_validator("description", "transaction_id", "msisdn", "name", "shortcode", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> str:
        """Gateways send numbers for some of these fields."""
        return "" if v is None else str(v).strip()


class WithdrawalCallback(BaseModel):
    """Disbursement callback (POST /api/v1/settle_withdrawal[_b2b])."""

    model_config = ConfigDict(extra="ignore")

    reference: Identifier
    transaction_id: str = ""
    status: str = ""
    description: str = ""

    @field_validator("transaction_id", "status", "description", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> str:
        """Gateways send numbers for some of these fields."""
        return "" if v is None else str(v).strip()


# ============================================================================
# Player Models
# ============================================================================


class LoginRequest(BaseModel):
    """POST /api/v1/login and /api/v1/register request body."""

    msisdn: str = ""
    name: str = Field("", max_length=255)
    promocode: str = Field("", max_length=50)

    @field_validator("msisdn", "promocode", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> str:
        """Phone numbers often arrive as integers."""
        return "" if v is None else str(v).strip()


class OtpSentResponse(Envelope):
    """Verification code dispatched."""

    units: str = Field("Minutes", alias="Units")
    expire_in: int = Field(2, alias="ExpireIn")


class VerifyOtpRequest(BaseModel):
    """POST /api/v1/verify_otp request body."""

    msisdn: Identifier
    otp: Identifier


class TokenResponse(Envelope):
    """Bearer token issued after a successful verification."""

    token: str = Field(alias="Token")
    expire_in: int = Field(alias="ExpireIn")


class OtpOnlyRequest(BaseModel):
    """Body of an OTP-gated confirmation."""

    otp: Identifier


class SelfExclusionRequest(BaseModel):
    """POST /api/v1/self_exclusion request body."""

    self_exclusion_period: str


class SelfExclusionVerifyRequest(BaseModel):
    """POST /api/v1/self_exclusion/verify request body."""

    otp: Identifier
    self_exclusion_period: str


class UpdateUserRequest(BaseModel):
    """PUT /api/v1/user request body."""

    name: str = Field(..., min_length=1, max_length=255)


class AccountView(BaseModel):
    """Player profile as returned to the owner."""

    msisdn: str
    name: str | None
    balance: Decimal
    free_bet_count: int
    free_bet_expiry: datetime | None
    status: AccountStatus
    self_exclusion_until: datetime | None
    promo_code: str | None
    total_bets: int
    total_payout: Decimal
    created_at: datetime


class UserResponse(Envelope):
    """GET /api/v1/user."""

    data: AccountView = Field(alias="Data")


# ============================================================================
# History Models
# ============================================================================


class HistoryRequest(BaseModel):
    """Date filters shared by all history listings."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: OptionalDate = Field(None, alias="StartDate")
    end_date: OptionalDate = Field(None, alias="EndDate")


class BetItem(BaseModel):
    """One bet in a player's history."""

    reference: str
    game_name: str
    amount: Decimal
    choice: int | None
    winning_number: int | None
    bet_type: BetType
    outcome: Outcome
    payout: Decimal
    created_at: datetime


class DepositItem(BaseModel):
    """One completed deposit."""

    transaction_id: str
    reference: str | None
    amount: Decimal
    created_at: datetime


class WithdrawalItem(BaseModel):
    """One withdrawal and its disbursement state."""

    reference: str
    provider: WithdrawalProvider
    amount: Decimal
    status: str
    disburse_status: str | None
    created_at: datetime


class BetHistoryResponse(Envelope):
    history: list[BetItem] = Field(default_factory=list, alias="History")


class DepositHistoryResponse(Envelope):
    deposit: list[DepositItem] = Field(default_factory=list, alias="Deposit")


class WithdrawalHistoryResponse(Envelope):
    withdrawal: list[WithdrawalItem] = Field(default_factory=list, alias="Withdrawal")


# ============================================================================
# Lobby Models
# ============================================================================


class GameItem(BaseModel):
    """A game as listed in the lobby."""

    game_cat_id: str
    name: str
    category: str
    bet_amount: Decimal
    choice_min: int
    choice_max: int


class LobbyResponse(Envelope):
    """GET /api/v1/lucky_games."""

    title: str = Field("", alias="Title")
    categories: list[str] = Field(default_factory=list, alias="Categories")
    games: list[GameItem] = Field(default_factory=list, alias="Games")
    balance: Decimal | None = Field(None, alias="Balance")
    free_bet: int = Field(0, alias="FreeBet")
    partial: bool = Field(False, alias="Partial")


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: datetime
