"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from luckybet.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    KIND = "kind"
    RESULT = "result"


class BettingMetrics:
    """
    Centralized metrics for the betting API.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Bets (placed by outcome and funding, rejections by reason)
    - Settlements (by kind and result, replays)
    - Background jobs (outcomes, backlog)
    - Validation fan-out latency
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info("luckybet_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "luckybet_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "luckybet_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "luckybet_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Bet Metrics
        # ====================================================================
        self.bets_total = Counter(
            "luckybet_bets_total",
            "Bets executed",
            ["game", "bet_type", "outcome"],
        )

        self.bet_rejections_total = Counter(
            "luckybet_bet_rejections_total",
            "Bets refused before execution",
            ["reason"],
        )

        self.bet_stake = Histogram(
            "luckybet_bet_stake",
            "Stake per bet",
            buckets=(10, 20, 50, 100, 200, 500, 1000, 5000),
        )

        self.validation_duration_seconds = Histogram(
            "luckybet_validation_duration_seconds",
            "Duration of the concurrent pre-bet reads",
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        # ====================================================================
        # Settlement Metrics
        # ====================================================================
        self.settlements_total = Counter(
            "luckybet_settlements_total",
            "Settlement callbacks reconciled",
            [MetricLabels.KIND, MetricLabels.RESULT],
        )

        self.settlement_rejected_callers_total = Counter(
            "luckybet_settlement_rejected_callers_total",
            "Webhook calls refused by the address allow-list",
        )

        # ====================================================================
        # Background Job Metrics
        # ====================================================================
        self.background_jobs_total = Counter(
            "luckybet_background_jobs_total",
            "Background jobs by outcome",
            ["job", MetricLabels.RESULT],
        )

        self.background_jobs_pending = Gauge(
            "luckybet_background_jobs_pending",
            "Background jobs submitted and not yet finished",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "luckybet_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_bet(self, game: str, bet_type: str, outcome: str, stake: float) -> None:
        """Record an executed bet."""
        self.bets_total.labels(game=game, bet_type=bet_type, outcome=outcome).inc()
        self.bet_stake.observe(stake)

    def record_bet_rejection(self, reason: str) -> None:
        self.bet_rejections_total.labels(reason=reason).inc()

    def record_settlement(self, kind: str, result: str) -> None:
        """Record a settlement outcome: applied, replay, not_found or failed."""
        self.settlements_total.labels(kind=kind, result=result).inc()

    def record_background_job(self, job: str, result: str) -> None:
        self.background_jobs_total.labels(job=job, result=result).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = BettingMetrics()
