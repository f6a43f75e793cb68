"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

from luckybet.api.player_routes import router as player_router
from luckybet.api.routes import health_router
from luckybet.api.routes import router as betting_router
from luckybet.api.settlement_routes import router as settlement_router
from luckybet.config import settings
from luckybet.db.migration_runner import run_migrations
from luckybet.db.session import (
    close_engines,
    get_read_session_factory,
    get_write_session_factory,
)
from luckybet.exceptions import BettingError, InvalidPayloadError
from luckybet.models.api import Envelope
from luckybet.observability import (
    get_logger,
    log_context,
    metrics,
    setup_logging,
    setup_tracing,
)
from luckybet.observability.tracing import instrument_fastapi
from luckybet.services.bets import BetExecutor
from luckybet.services.otp import VerificationGate
from luckybet.services.payment_gateway import PaymentGateway
from luckybet.services.players import PlayerService
from luckybet.services.resolver import RandomResolver
from luckybet.services.settlement import SettlementReconciler
from luckybet.services.stores import StoreFactory
from luckybet.services.supervisor import TaskSupervisor
from luckybet.services.tokens import TokenService
from luckybet.services.validator import ConcurrentValidator
from luckybet.services.wallet import WalletService

# Before any module-level logger is used
setup_logging()
logger = get_logger(__name__)

API_PREFIX = "/api/v1"


def build_services(app: FastAPI) -> None:
    """Wire the services onto app.state. Each request gets them through dependencies."""
    factory = StoreFactory(get_write_session_factory())
    read_factory = StoreFactory(get_read_session_factory())
    executor = BetExecutor(factory, RandomResolver())
    tokens = TokenService(settings.jwt_secret, settings.jwt_algorithm)
    gateway = PaymentGateway(
        settings.payment_gateway_url, settings.payment_gateway_timeout_seconds
    )

    app.state.store_factory = factory
    app.state.supervisor = TaskSupervisor(
        settings.background_max_concurrency, settings.background_max_pending
    )
    app.state.validator = ConcurrentValidator(factory, settings.validation_timeout_seconds)
    app.state.executor = executor
    app.state.reconciler = SettlementReconciler(factory, executor)
    app.state.gateway = gateway
    app.state.wallet = WalletService(factory, gateway)
    app.state.tokens = tokens
    app.state.players = PlayerService(
        factory,
        VerificationGate(settings.otp_ttl_seconds, settings.otp_fixed_codes),
        tokens,
        read_factory=read_factory,
        session_hours=settings.jwt_expire_hours,
        page_size=settings.history_page_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Migrate (when asked), wire services, then drain background settlement
    jobs before the engines go away.
    """
    logger.info(
        "luckybet_starting",
        version=settings.api_version,
        migrations=settings.run_migrations_on_startup,
        tracing=settings.tracing_enabled,
    )
    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations)
    build_services(app)

    yield

    logger.info("luckybet_stopping")
    await app.state.supervisor.shutdown()
    await app.state.gateway.close()
    await close_engines()
    logger.info("luckybet_stopped")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


def _envelope(http_status: int, status_code: int, message: str) -> JSONResponse:
    body = Envelope(status=http_status, status_code=status_code, status_message=message)
    return JSONResponse(status_code=http_status, content=body.model_dump(by_alias=True))


@app.exception_handler(BettingError)
async def betting_exception_handler(request: Request, exc: BettingError) -> JSONResponse:
    """Render every betting error as the client envelope."""
    if exc.http_status >= 500:
        metrics.record_error(type(exc).__name__, request.url.path)
        logger.error(
            "request_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
            exc_info=exc,
        )
    elif exc.http_status != 202:
        logger.warning(
            "request_refused",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
    return _envelope(exc.http_status, exc.status_code, exc.envelope_message)



def _validation_summary(exc: RequestValidationError) -> list[str]:
    """One "field.path: message" line per problem; values are never echoed."""
    summary = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        summary.append(f"{location}: {error.get('msg')}")
    return summary


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed or incomplete bodies all get the invalid JSON envelope."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=_validation_summary(exc),
    )
    error = InvalidPayloadError("request validation failed")
    return _envelope(error.http_status, error.status_code, error.envelope_message)


setup_tracing()
instrument_fastapi(app)


class RequestObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Per-request bookkeeping: scheme from the reverse proxy, request id on
    every log line, the in-flight gauge and the request histogram.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        scheme = request.headers.get("X-Forwarded-Proto")
        if scheme:
            request.scope["scheme"] = scheme

        path, method = request.url.path, request.method
        in_flight = metrics.http_requests_in_progress.labels(endpoint=path, method=method)
        started = time.perf_counter()
        status = 500
        in_flight.inc()
        with log_context(request_id=request.headers.get("X-Request-ID", "unknown")):
            try:
                response = await call_next(request)
                status = response.status_code
                return response
            except Exception:
                metrics.record_error("UnhandledException", "http_request")
                logger.exception("request_failed", method=method, path=path)
                raise
            finally:
                elapsed = time.perf_counter() - started
                in_flight.dec()
                metrics.record_http_request(path, method, status, elapsed)
                logger.info(
                    "request_completed",
                    method=method,
                    path=path,
                    status_code=status,
                    duration_seconds=round(elapsed, 4),
                )


app.add_middleware(RequestObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(betting_router, prefix=API_PREFIX)
app.include_router(settlement_router, prefix=API_PREFIX)
app.include_router(player_router, prefix=API_PREFIX)
app.include_router(health_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """Prometheus scrape target."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "luckybet.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
