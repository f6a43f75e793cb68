"""
FastAPI Dependencies - Authentication, caller checks and service wiring.

NO DICTIONARIES - All dependencies return typed objects.

Services are built once in the application lifespan and kept on
app.state; the getters below hand them to routes. Tests replace them
through app.dependency_overrides.
"""

import ipaddress

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from luckybet.config import settings
from luckybet.exceptions import AuthenticationError, ForbiddenCallerError
from luckybet.observability.logging import get_logger
from luckybet.observability.metrics import metrics
from luckybet.services.bets import BetExecutor
from luckybet.services.players import PlayerService
from luckybet.services.settlement import SettlementReconciler
from luckybet.services.stores import StoreFactory
from luckybet.services.supervisor import TaskSupervisor
from luckybet.services.tokens import TokenService
from luckybet.services.validator import ConcurrentValidator
from luckybet.services.wallet import WalletService

logger = get_logger(__name__)

# Bearer token scheme; the x-access-token header is also accepted
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Service getters
# ============================================================================


def get_store_factory(request: Request) -> StoreFactory:
    return request.app.state.store_factory


def get_supervisor(request: Request) -> TaskSupervisor:
    return request.app.state.supervisor


def get_validator(request: Request) -> ConcurrentValidator:
    return request.app.state.validator


def get_executor(request: Request) -> BetExecutor:
    return request.app.state.executor


def get_reconciler(request: Request) -> SettlementReconciler:
    return request.app.state.reconciler


def get_wallet(request: Request) -> WalletService:
    return request.app.state.wallet


def get_players(request: Request) -> PlayerService:
    return request.app.state.players


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


# ============================================================================
# Player authentication
# ============================================================================


def _bearer_value(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, rest = header.strip().partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip() or None
    return header.strip() or None


async def get_current_msisdn(
    x_access_token: str | None = Header(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_tokens),
) -> str:
    """
    Resolve the player's msisdn from their bearer token.

    Accepts: x-access-token: Bearer {jwt} or Authorization: Bearer {jwt}

    Raises:
        AuthenticationError: no token, or the token does not verify
    """
    token = _bearer_value(x_access_token)
    if token is None and credentials is not None:
        token = credentials.credentials
    if token is None:
        raise AuthenticationError("token required")
    return tokens.subject(token)


async def get_optional_msisdn(
    x_access_token: str | None = Header(None),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_tokens),
) -> str | None:
    """Like get_current_msisdn, but anonymous callers get None."""
    if _bearer_value(x_access_token) is None and credentials is None:
        return None
    try:
        return await get_current_msisdn(x_access_token, credentials, tokens)
    except AuthenticationError:
        return None


# ============================================================================
# Settlement caller allow-list
# ============================================================================


def strip_port(address: str) -> str:
    """Drop a port from 'a.b.c.d:p' or '[v6]:p'; bare IPv6 is left alone."""
    if address.startswith("["):
        end = address.find("]")
        return address[1:end] if end != -1 else address
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, falling back to the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if not first and request.client is not None:
        first = request.client.host
    return strip_port(first)


def get_allowed_ips() -> list[str]:
    return settings.settlement_allowed_ips


def is_allowed(address: str, allowed: list[str]) -> bool:
    try:
        caller = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(caller == ipaddress.ip_address(entry) for entry in allowed)


async def require_settlement_caller(
    request: Request, allowed: list[str] = Depends(get_allowed_ips)
) -> str:
    """
    Reject deposit webhooks from outside the gateway allow-list.

    Runs before the body is parsed, so a rejected caller leaves no trace
    in the settlement ledger.
    """
    address = client_ip(request)
    if not is_allowed(address, allowed):
        metrics.settlement_rejected_callers_total.inc()
        logger.warning("settlement_caller_forbidden", client_ip=address)
        raise ForbiddenCallerError(address)
    return address
