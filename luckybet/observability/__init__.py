"""
Observability module - Logging, Metrics, and Tracing.
"""

from luckybet.observability.logging import get_logger, log_context, setup_logging
from luckybet.observability.metrics import metrics
from luckybet.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
