"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every error knows how it is rendered to clients: the HTTP status, the
envelope StatusCode (1 = rejected request, 2 = service failure,
3 = insufficient balance) and the public StatusMessage.
"""

from decimal import Decimal


class BettingError(Exception):
    """Base exception for all betting errors."""

    http_status: int = 500
    status_code: int = 2
    public_message: str = "Internal Server Error"

    @property
    def envelope_message(self) -> str:
        """Message shown to the client."""
        return self.public_message


# ============================================================================
# Rejections (business rules, HTTP 202)
# ============================================================================


class BetRejectedError(BettingError):
    """Base for requests refused by a business rule."""

    http_status = 202
    status_code = 1


class GameNotFoundError(BetRejectedError):
    """Raised when the requested game does not exist or is inactive."""

    public_message = "Game not found"

    def __init__(self, game_cat_id: str, category: str | None = None) -> None:
        self.game_cat_id = game_cat_id
        self.category = category
        super().__init__(f"Game not found: {category}/{game_cat_id}")


class InvalidBetAmountError(BetRejectedError):
    """Raised when the stake differs from the game's fixed bet amount."""

    def __init__(self, amount: Decimal, expected: Decimal) -> None:
        self.amount = amount
        self.expected = expected
        super().__init__(f"Invalid bet amount {amount}, expected {expected}")

    @property
    def envelope_message(self) -> str:
        return f"Invalid Bet Amount. Expected {self.expected}."


class InvalidChoiceError(BetRejectedError):
    """Raised when the lucky number is outside the game's range."""

    public_message = "Invalid lucky number. Please select a number between 1 and 7."

    def __init__(self, choice: int) -> None:
        self.choice = choice
        super().__init__(f"Invalid lucky number: {choice}")


class InsufficientBalanceError(BetRejectedError):
    """Raised when account has insufficient balance for the stake."""

    status_code = 3
    public_message = "insufficient balance"

    def __init__(self, balance: Decimal, required: Decimal) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient balance. Balance: {balance}, Required: {required}")


class AccountNotFoundError(BetRejectedError):
    """Raised when an account doesn't exist where one is required."""

    public_message = "user account not found"

    def __init__(self, msisdn: str) -> None:
        self.msisdn = msisdn
        super().__init__(f"Account not found: {msisdn}")


class AccountInactiveError(BetRejectedError):
    """Raised when the account has been deactivated."""

    public_message = "user account is inactive"

    def __init__(self, msisdn: str) -> None:
        self.msisdn = msisdn
        super().__init__(f"Account {msisdn} is inactive")


class SelfExcludedError(BetRejectedError):
    """Raised when the player has excluded themselves from play."""

    public_message = "user account is inactive"

    def __init__(self, msisdn: str, until: object) -> None:
        self.msisdn = msisdn
        self.until = until
        super().__init__(f"Account {msisdn} self-excluded until {until}")


class InvalidPromoCodeError(BetRejectedError):
    """Raised when a registration promo code does not exist."""

    public_message = "Invalid PromoCode"

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Unknown promo code: {code}")


class InvalidMsisdnError(BetRejectedError):
    """Raised when a phone number is missing or malformed."""

    public_message = "Invalid Phone Number"

    def __init__(self, msisdn: str) -> None:
        self.msisdn = msisdn
        super().__init__(f"Invalid msisdn: {msisdn!r}")


class InvalidExclusionPeriodError(BetRejectedError):
    """Raised when a self-exclusion period is not one of the offered ones."""

    public_message = "Invalid self exclusion period"

    def __init__(self, period: str) -> None:
        self.period = period
        super().__init__(f"Invalid self exclusion period: {period}")


class OtpInvalidError(BetRejectedError):
    """Raised when the code does not match an unused verification code."""

    public_message = "Wrong Code"

    def __init__(self, msisdn: str) -> None:
        self.msisdn = msisdn
        super().__init__(f"Wrong verification code for {msisdn}")


class OtpExpiredError(BetRejectedError):
    """Raised when the verification code is past its expiry."""

    public_message = "otp expired"

    def __init__(self, msisdn: str) -> None:
        self.msisdn = msisdn
        super().__init__(f"Verification code expired for {msisdn}")


# ============================================================================
# Boundary errors
# ============================================================================


class InvalidPayloadError(BettingError):
    """Raised when a request body cannot be normalized."""

    http_status = 400
    status_code = 1
    public_message = "invalid JSON"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid payload: {message}")


class ForbiddenCallerError(BettingError):
    """Raised when a webhook arrives from an address outside the allow-list."""

    http_status = 403
    status_code = 1
    public_message = "forbidden"

    def __init__(self, client_ip: str) -> None:
        self.client_ip = client_ip
        super().__init__(f"Caller {client_ip} is not allowed")


class AuthenticationError(BettingError):
    """Raised when the bearer token is missing or invalid."""

    http_status = 401
    status_code = 1
    public_message = "Unauthorized"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


# ============================================================================
# Service failures
# ============================================================================


class OperationTimeoutError(BettingError):
    """Raised when a fan-out of reads misses its deadline."""

    http_status = 504
    status_code = 2
    public_message = "Request timed out"

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds}s")


class ServiceUnavailableError(BettingError):
    """Raised when every read of a fan-out failed."""

    http_status = 503
    status_code = 2
    public_message = "Service temporarily unavailable"

    def __init__(self, operation: str, failures: list[str]) -> None:
        self.operation = operation
        self.failures = failures
        super().__init__(f"{operation} failed: {', '.join(failures)}")


class WriteVerificationError(BettingError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DatabaseError(BettingError):
    """Raised when database operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class PaymentGatewayError(BettingError):
    """Raised when the payment gateway rejects or fails a request."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment gateway error: {message}")


class BackgroundQueueFullError(BettingError):
    """Raised when the background job backlog is at capacity."""

    public_message = "Service busy"
    http_status = 503

    def __init__(self, job_name: str, pending: int) -> None:
        self.job_name = job_name
        self.pending = pending
        super().__init__(f"Background queue full ({pending} pending), rejected {job_name}")
