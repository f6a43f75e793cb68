"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Settings refuse to construct when the service could not run
with them, so a bad deploy dies at import instead of on the first bet.
"""

import ipaddress
import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_JWT_SECRET_LENGTH = 32


class ConfigurationError(Exception):
    """Settings that the service cannot start with."""


class Settings(BaseSettings):
    """Environment-driven settings (case-insensitive, optional .env file)."""

    # Postgres; empty means unset and is rejected below
    database_url: str = ""
    database_read_url: str | None = None
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # HTTP surface
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Lucky Number API"
    api_version: str = "0.1.0"
    api_description: str = "Bet placement and settlement reconciliation for lucky number games"

    # Player tokens (generate with: openssl rand -hex 32)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24

    # One-time passwords
    otp_ttl_seconds: int = 120
    otp_fixed_codes: dict[str, str] = {}  # msisdn -> code, for store review accounts

    # Addresses the payment gateway calls back from
    settlement_allowed_ips: list[str] = []

    # Bet validation
    validation_timeout_seconds: float = 5.0
    history_page_size: int = 50

    # Background jobs (settlement after webhook acknowledgement)
    background_max_concurrency: int = 20
    background_max_pending: int = 1000

    # Payment gateway (STK push)
    payment_gateway_url: str = ""
    payment_gateway_timeout_seconds: float = 10.0

    # Logging: "json" for shipping, "console" for a terminal
    log_level: str = "INFO"
    log_format: str = "json"

    metrics_enabled: bool = True

    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "luckybet-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def _database_problems(self) -> list[str]:
        if not self.database_url:
            return ["DATABASE_URL is required but empty or missing"]
        if not self.database_url.startswith(("postgresql", "postgres")):
            scheme = self.database_url.split(":", 1)[0]
            return [f"DATABASE_URL must be a PostgreSQL URL, got scheme {scheme!r}"]
        return []

    def _token_problems(self) -> list[str]:
        if not self.jwt_secret:
            return ["JWT_SECRET is required but empty or missing"]
        if len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            return [f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters"]
        return []

    def _gateway_problems(self) -> list[str]:
        problems = []
        for address in self.settlement_allowed_ips:
            try:
                ipaddress.ip_address(address)
            except ValueError:
                problems.append(f"SETTLEMENT_ALLOWED_IPS contains an invalid address: {address}")
        for msisdn, code in self.otp_fixed_codes.items():
            if not (code.isdigit() and len(code) == 4):
                problems.append(f"OTP_FIXED_CODES entry for {msisdn} must be 4 digits")
        return problems

    @model_validator(mode="after")
    def refuse_unusable_config(self) -> "Settings":
        problems = [
            *self._database_problems(),
            *self._token_problems(),
            *self._gateway_problems(),
        ]
        if self.validation_timeout_seconds <= 0:
            problems.append("VALIDATION_TIMEOUT_SECONDS must be positive")

        if problems:
            banner = "-" * 60
            report = "\n".join(
                [
                    banner,
                    "luckybet cannot start, fix the environment:",
                    *[f"  * {problem}" for problem in problems],
                    banner,
                ]
            )
            # Visible in container logs even before structlog is configured
            print(report, file=sys.stderr)
            raise ConfigurationError(report)

        return self

    @property
    def read_database_url(self) -> str:
        """Replica URL, or the primary when no replica is configured."""
        return self.database_read_url or self.database_url


# Validates at import time
settings = Settings()
