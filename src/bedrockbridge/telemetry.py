"""Logging and tracing setup for applications that embed bedrockbridge.

The library itself only calls ``structlog.get_logger`` and
``trace.get_tracer``; nothing is configured on import.  Applications call
:func:`configure_logging` and :func:`configure_tracing` once at startup.
"""

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from bedrockbridge.config import settings


def configure_logging(level: str | None = None) -> None:
    """Render structlog events as JSON lines filtered at *level*.

    Args:
        level: Minimum level name (``"DEBUG"``, ``"INFO"``...).  Defaults to
            ``settings.log_level``; unknown names fall back to ``INFO``.
    """
    level_name = (level or settings.log_level).lower()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.stdlib.NAME_TO_LEVEL.get(level_name, 20)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_tracing(
    service_name: str | None = None,
    endpoint: str | None = None,
    set_global: bool = True,
) -> TracerProvider:
    """Build a tracer provider that exports spans over OTLP/HTTP.

    Args:
        service_name: ``service.name`` resource attribute.  Defaults to
            ``settings.otel_service_name``.
        endpoint: OTLP collector base URL (``/v1/traces`` is appended).
            Defaults to ``settings.otel_exporter_otlp_endpoint``; when neither
            is set the provider records spans but exports nothing.
        set_global: Install the provider as the global OpenTelemetry tracer
            provider.

    Returns:
        The configured provider.  Call ``shutdown()`` on it at exit to flush
        pending spans.
    """
    resource = Resource.create({"service.name": service_name or settings.otel_service_name})
    tracer_provider = TracerProvider(resource=resource)

    endpoint = endpoint or settings.otel_exporter_otlp_endpoint
    if endpoint:
        exporter = OTLPSpanExporter(endpoint=f"{endpoint.rstrip('/')}/v1/traces")
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(tracer_provider)
    return tracer_provider
