"""Logging and tracing setup for the PMS API."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from pms.core.config import Settings

APP_LOGGER = "pms"
SQL_LOGGER = "sqlalchemy.engine"

_installed_provider: TracerProvider | None = None


def parse_otlp_headers(header_string: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas, skipping malformed items."""

    headers: dict[str, str] = {}
    for item in (header_string or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"pms": {"format": settings.log_format}},
        "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "pms"}},
        "root": {"handlers": ["console"], "level": logging.WARNING},
        "loggers": {
            APP_LOGGER: {"level": level},
            # statements are logged at INFO by the engine
            SQL_LOGGER: {"level": logging.INFO if settings.database_echo else logging.WARNING},
        },
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the console handler and return the ``pms`` logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger(APP_LOGGER)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Export ticket and notification spans over OTLP when tracing is enabled.

    Returns ``None`` when tracing is off or a provider is already installed.
    """

    global _installed_provider

    if _installed_provider is not None or not settings.otel_enabled:
        return None

    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=parse_otlp_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider = TracerProvider(
        resource=Resource(
            attributes={
                "service.name": settings.otel_service_name,
                "deployment.environment": settings.environment,
            }
        )
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _installed_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _installed_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _installed_provider:
        _installed_provider = None
