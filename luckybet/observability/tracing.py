"""
Distributed Tracing with OpenTelemetry.

Spans cover HTTP requests, SQL statements and the two money-moving
operations (bet execution and settlement). Everything is a no-op
unless TRACING_ENABLED is set.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode
from sqlalchemy.ext.asyncio import AsyncEngine

from luckybet.config import settings

TRACER_NAME = "luckybet.operations"
ATTRIBUTE_PREFIX = "luckybet."

# Health checks and scrapes would drown the interesting spans
EXCLUDED_URLS = "health,metrics"


def setup_tracing() -> None:
    """Install the OTLP exporter as the global tracer provider."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: FastAPI) -> None:
    """Must be called after app creation."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def instrument_sqlalchemy(engine: AsyncEngine) -> None:
    if settings.tracing_enabled:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def span_attribute(value: Any) -> str | int | float | bool:
    """OTel only takes primitives; Decimals, enums and the rest go in as text."""
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@contextmanager
def trace_operation(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Span around one operation, marked as an error when it raises.

    Attribute keys are namespaced under "luckybet."; None values are skipped.

    Usage:
        with trace_operation("execute_bet", game="1") as span:
            ...
            span.set_attribute("luckybet.outcome", "win")
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, record_exception=False) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(ATTRIBUTE_PREFIX + key, span_attribute(value))
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.record_exception(e)
            raise
