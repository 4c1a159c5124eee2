"""Test settings and logging setup."""

import pytest

from dataselector.core.config import Settings
from dataselector.core.logging import app_context, configure_logging, get_logger
from dataselector.core.tracing import configure_tracing, is_tracing_enabled, trace_query


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.created_at_column == "created_at"
        assert settings.updated_at_column == "updated_at"
        assert settings.deleted_at_column == "deleted_at"
        assert settings.max_page_size == 1000
        assert settings.page_query_param == "page"

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SELECTOR_DELETED_AT_COLUMN", "removed_at")
        monkeypatch.setenv("SELECTOR_MAX_PAGE_SIZE", "50")
        settings = Settings()
        assert settings.deleted_at_column == "removed_at"
        assert settings.max_page_size == 50

    def test_is_production(self) -> None:
        assert Settings(environment="Production").is_production is True
        assert Settings(environment="testing").is_production is False


class TestLogging:
    def test_configure_and_log(self) -> None:
        configure_logging(Settings(log_level="WARNING"))
        logger = get_logger("tests.core")
        logger.warning("Selector test event", key="value")


def test_tracing_disabled_under_pytest() -> None:
    assert is_tracing_enabled() is False


def test_configure_tracing_disabled() -> None:
    """Test that no provider is installed when tracing is off."""
    assert configure_tracing(Settings(otel_enabled=False)) is None
    assert configure_tracing(Settings(otel_enabled=True)) is None


def test_app_context_processor() -> None:
    processor = app_context(Settings(environment="staging", otel_service_name="billing"))
    assert processor(None, "info", {"event": "x"}) == {
        "event": "x",
        "service": "billing",
        "environment": "staging",
    }


def test_trace_query_is_passthrough_when_disabled() -> None:
    async def fetch() -> int:
        return 1

    assert trace_query("selector.fetch")(fetch) is fetch
