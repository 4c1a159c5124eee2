"""Structured logging configuration using structlog.

Selector modules log through ``get_logger`` with key/value context
(model, relation, row counts). Applications that already configure
structlog can skip ``configure_logging``; the loggers follow whatever
configuration is active.
"""
import logging
import os
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from dataselector.core.config import Settings, settings as default_settings


def app_context(settings: Settings) -> Processor:
    """Build a processor stamping service and environment on every entry."""

    def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.otel_service_name)
        event_dict.setdefault("environment", settings.environment)
        return event_dict

    return add_app_context


def _running_tests() -> bool:
    return bool(
        "pytest" in os.environ.get("_", "")
        or os.environ.get("PYTEST_CURRENT_TEST")
        or "pytest" in sys.modules
    )


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog: JSON lines in production and tests, console output otherwise."""
    settings = settings or default_settings
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        app_context(settings),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_format == "json" or settings.is_production or _running_tests():
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    logger: structlog.BoundLogger = structlog.get_logger(name)
    return logger
