import logging

import pytest

from pms.core.config import Settings, get_settings
from pms.core.logging import (
    configure_logging,
    init_tracer,
    logging_config,
    parse_otlp_headers,
    shutdown_tracer,
)
from pms.main import to_async_dsn


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_PAGE_SIZE", "10")
    monkeypatch.setenv("AUTH_TOKENS", '{"t": "u-1:admin"}')

    settings = get_settings()

    assert settings.notification_page_size == 10
    assert settings.auth_tokens == {"t": "u-1:admin"}
    assert get_settings() is settings


@pytest.mark.parametrize(
    "dsn,expected",
    [
        ("postgresql://u:p@db/pms", "postgresql+asyncpg://u:p@db/pms"),
        ("postgresql+asyncpg://u:p@db/pms", "postgresql+asyncpg://u:p@db/pms"),
        ("sqlite+aiosqlite:///pms.db", "sqlite+aiosqlite:///pms.db"),
    ],
)
def test_to_async_dsn(dsn, expected):
    assert to_async_dsn(dsn) == expected


def test_parse_otlp_headers_skips_malformed_items():
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("api-key=abc, broken,=x,tenant = t1") == {"api-key": "abc", "tenant": "t1"}


def test_configure_logging_sets_levels():
    logger = configure_logging(Settings(log_level="debug"))

    assert logger.name == "pms"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_database_echo_routes_sql_through_logging():
    configure_logging(Settings(database_echo=True))

    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
    assert logging.getLogger("pms").level == logging.INFO


def test_unknown_log_level_falls_back_to_info():
    config = logging_config(Settings(log_level="chatty"))

    assert config["loggers"]["pms"]["level"] == logging.INFO


def test_tracer_is_not_installed_when_disabled():
    provider = init_tracer(Settings(otel_enabled=False))

    assert provider is None
    shutdown_tracer(provider)
