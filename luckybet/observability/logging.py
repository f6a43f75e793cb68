"""
Structured Logging with Structlog.

Provides JSON-formatted logs with request context (msisdn, reference).
Phone numbers are masked before rendering; logs leave the process and
players are identified by msisdn everywhere else.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from luckybet.config import settings

MASKED_KEYS = ("msisdn",)

# Libraries that log every statement or request at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "httpx")


def mask_msisdn(value: str) -> str:
    """254712345678 -> 2547****5678. Short values are masked entirely."""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def mask_personal_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in MASKED_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and value:
            event_dict[key] = mask_msisdn(value)
    return event_dict


def _renderer() -> Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    JSON log lines look like:
    {
        "event": "bet_placed",
        "level": "info",
        "timestamp": "2026-10-18T12:00:00.123456Z",
        "logger": "luckybet.services.bets",
        "service": "luckybet-api",
        "version": "0.1.0",
        "msisdn": "2547****0001",
        "reference": "K3J9QX2M7A",
        ...additional context
    }
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        mask_personal_data,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("bet_placed", msisdn=msisdn, outcome="win")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """
    Bind msisdn/reference (or any keys) to every log line in the block.

    Nested blocks restore the outer values on exit, so a settlement job
    started from a request keeps the request's context afterwards.

    Usage:
        with log_context(reference="WEB_ABC", kind="deposit"):
            logger.info("settlement_received")
    """
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
